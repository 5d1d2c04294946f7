from __future__ import annotations

import logging
import random
from typing import Optional, Tuple

from time_utils import now_epoch

from .scheduler import AlarmScheduler

logger = logging.getLogger(__name__)

FIRST_ALARM_WINDOW = (30, 60)
SECOND_ALARM_WINDOW = (80, 120)


def add_fake_alarms(
    scheduler: AlarmScheduler,
    alarm_id: str,
    now: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> Tuple[int, int]:
    """Schedule two synthetic alarms a little while from now, both under ``alarm_id``."""
    rng = rng or random.Random()
    timestamp = now_epoch() if now is None else now
    first = timestamp + rng.randrange(*FIRST_ALARM_WINDOW)
    second = timestamp + rng.randrange(*SECOND_ALARM_WINDOW)
    logger.info("Simulating alarms %s at +%ss and +%ss", alarm_id, first - timestamp, second - timestamp)
    scheduler.add_alarm(alarm_id, first)
    scheduler.add_alarm(alarm_id, second)
    return first, second
