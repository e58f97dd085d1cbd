"""UTC time handling.

Importing this module pins the process timezone to UTC. All persisted
timestamps are naive datetimes expressed in UTC.
"""

import os
from datetime import datetime, timezone

os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime (database column format)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
