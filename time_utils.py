from __future__ import annotations

import logging
import math
import time
from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    if not name:
        return local_timezone()
    try:
        return ZoneInfo(name)
    except Exception as exc:  # pragma: no cover - environment-dependent
        logger.warning("Failed to load timezone %s via zoneinfo (%s)", name, exc)
    local_tz = local_timezone()
    logger.warning("Using system local timezone instead: %s", getattr(local_tz, "key", local_tz))
    return local_tz


def local_timezone() -> Optional[tzinfo]:
    return datetime.now().astimezone().tzinfo


def now_epoch() -> int:
    return int(time.time())


def parse_iso8601_to_epoch(text: str, default_tz: Optional[tzinfo] = None) -> int:
    """Convert an ISO-8601 timestamp to Unix seconds.

    A trailing ``Z`` is read as UTC. Timestamps without an offset are taken in
    ``default_tz``, or in the system local timezone when it is not given.
    Raises ``ValueError`` for anything ``datetime.fromisoformat`` rejects.
    """
    if not isinstance(text, str):
        raise ValueError(f"ISO-8601 timestamp must be a string, got {type(text).__name__}")
    raw = text.strip()
    if not raw:
        raise ValueError("ISO-8601 timestamp is empty")
    if raw[-1] in "Zz":
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz or local_timezone())
    return math.floor(dt.timestamp())
