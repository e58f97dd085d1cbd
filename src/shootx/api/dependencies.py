"""FastAPI dependencies for request handling.

This module provides reusable FastAPI dependencies for:
- Unit of Work factory access
- Generation dispatcher access
"""

from fastapi import Request

from shootx.uow import UoWFactory
from shootx.workers.generation_dispatcher import GenerationDispatcher


def get_uow_factory(request: Request) -> UoWFactory:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.tryon_jobs.get_by_id(job_id)
    """
    return request.app.state.uow_factory


def get_dispatcher(request: Request) -> GenerationDispatcher:
    """Get the generation worker pool from app state."""
    return request.app.state.dispatcher
