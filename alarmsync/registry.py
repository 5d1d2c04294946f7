from __future__ import annotations

import logging
from typing import Iterator, List

logger = logging.getLogger(__name__)


class AlarmRegistry:
    """Ordered set of alarm ids the scheduler currently believes are active."""

    def __init__(self) -> None:
        self._known_ids: List[str] = []

    @property
    def known_ids(self) -> List[str]:
        return list(self._known_ids)

    def contains(self, alarm_id: str) -> bool:
        return alarm_id in self._known_ids

    def add(self, alarm_id: str) -> None:
        if alarm_id in self._known_ids:
            logger.warning("Alarm %s is already registered, ignoring duplicate add", alarm_id)
            return
        self._known_ids.append(alarm_id)

    def remove(self, alarm_id: str) -> bool:
        try:
            self._known_ids.remove(alarm_id)
        except ValueError:
            logger.debug("Alarm %s is not registered, nothing to remove", alarm_id)
            return False
        return True

    def clear(self) -> None:
        self._known_ids.clear()

    def __contains__(self, alarm_id: object) -> bool:
        return alarm_id in self._known_ids

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._known_ids))

    def __len__(self) -> int:
        return len(self._known_ids)
