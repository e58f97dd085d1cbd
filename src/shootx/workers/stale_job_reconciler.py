"""Stale job reconciler.

Fails try-on jobs that stayed ``processing`` past STALE_JOB_MINUTES, which
happens when the generation task that owned them was lost (restart, crash,
shutdown with a non-empty queue). Runs once at startup and then every
RECONCILE_INTERVAL_SECONDS.
"""

import asyncio

import structlog

from shootx.core.config import Settings
from shootx.services.orchestrator import TryOnOrchestrator

logger = structlog.get_logger(__name__)


async def run_stale_job_reconciler(orchestrator: TryOnOrchestrator, settings: Settings) -> None:
    """Main reconciler loop.

    Args:
        orchestrator: Orchestrator owning the job state machine
        settings: Application settings (stale cutoff, interval)
    """
    logger.info(
        "reconciler.started",
        stale_job_minutes=settings.stale_job_minutes,
        interval=settings.reconcile_interval_seconds,
    )

    try:
        while True:
            try:
                await orchestrator.reconcile_stale(settings.stale_job_minutes)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Database hiccup - log and try again next interval
                logger.error(
                    "reconciler.error",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )

            await asyncio.sleep(settings.reconcile_interval_seconds)

    except asyncio.CancelledError:
        logger.info("reconciler.stopped")
        raise
