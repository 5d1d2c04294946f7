from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlarmRecord:
    id: str
    ring_time: Optional[str] = None

    @property
    def has_ring_time(self) -> bool:
        return self.ring_time is not None

    def to_dict(self) -> dict:
        data = {"id": self.id}
        if self.ring_time is not None:
            data["ring_time"] = self.ring_time
        return data

    @classmethod
    def from_mapping(cls, data: Any) -> Optional["AlarmRecord"]:
        """Build a record from one settings entry, or ``None`` if it has no usable id.

        Only the ``id`` and ``ring_time`` keys are read; anything else in the
        entry belongs to the settings owner and is ignored.
        """
        if not isinstance(data, Mapping):
            logger.debug("Skipping alarm entry of type %s", type(data).__name__)
            return None
        alarm_id = data.get("id")
        if not isinstance(alarm_id, str) or not alarm_id:
            logger.debug("Skipping alarm entry without id: %r", data)
            return None
        ring_time = data.get("ring_time")
        if not isinstance(ring_time, str) or not ring_time:
            ring_time = None
        return cls(id=alarm_id, ring_time=ring_time)
