from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Event, Lock, Thread
from typing import Callable, List, Optional, Protocol

from time_utils import now_epoch

logger = logging.getLogger(__name__)


class AlarmScheduler(Protocol):
    def add_alarm(self, alarm_id: str, epoch_seconds: int) -> None: ...

    def remove_alarm(self, alarm_id: str) -> None: ...


@dataclass(frozen=True)
class ScheduledAlarm:
    id: str
    fire_at: int


class LocalAlarmScheduler:
    """In-process scheduler that fires alarms from a background thread."""

    def __init__(
        self,
        check_interval: float = 0.8,
        on_alarm_fired: Optional[Callable[[str, int], None]] = None,
        clock: Callable[[], int] = now_epoch,
    ):
        self.check_interval = max(0.2, check_interval)
        self.on_alarm_fired = on_alarm_fired
        self._clock = clock

        self._alarms: List[ScheduledAlarm] = []
        self._lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def start(self) -> None:
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="alarm-scheduler", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None

    def add_alarm(self, alarm_id: str, epoch_seconds: int) -> None:
        if not alarm_id:
            raise ValueError("Alarm id must not be empty")
        with self._lock:
            self._alarms.append(ScheduledAlarm(id=alarm_id, fire_at=int(epoch_seconds)))
            self._alarms.sort(key=lambda a: a.fire_at)
        logger.info("Alarm %s scheduled at %s", alarm_id, epoch_seconds)

    def remove_alarm(self, alarm_id: str) -> None:
        with self._lock:
            before = len(self._alarms)
            self._alarms = [a for a in self._alarms if a.id != alarm_id]
            removed = before - len(self._alarms)
        logger.info("Alarm %s cancelled (%s pending entries)", alarm_id, removed)

    def pending(self) -> List[ScheduledAlarm]:
        with self._lock:
            return list(self._alarms)

    def fire_due(self, now: Optional[int] = None) -> List[ScheduledAlarm]:
        due = self._pop_due_alarms(self._clock() if now is None else now)
        for alarm in due:
            self._trigger_alarm(alarm)
        return due

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            self.fire_due()
            self._stop_event.wait(self.check_interval)

    def _pop_due_alarms(self, now: int) -> List[ScheduledAlarm]:
        with self._lock:
            due = [a for a in self._alarms if a.fire_at <= now]
            if due:
                self._alarms = [a for a in self._alarms if a.fire_at > now]
        return due

    def _trigger_alarm(self, alarm: ScheduledAlarm) -> None:
        logger.info("Alarm %s fired (scheduled at %s)", alarm.id, alarm.fire_at)
        if self.on_alarm_fired:
            try:
                self.on_alarm_fired(alarm.id, alarm.fire_at)
            except Exception:  # pragma: no cover - callback safety
                logger.error("on_alarm_fired callback failed", exc_info=True)
