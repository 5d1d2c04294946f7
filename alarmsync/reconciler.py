from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import tzinfo
from threading import RLock
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol

from time_utils import now_epoch, parse_iso8601_to_epoch

from .records import AlarmRecord
from .registry import AlarmRegistry
from .scheduler import AlarmScheduler
from .simulation import add_fake_alarms

logger = logging.getLogger(__name__)


class SettingsSubscription(Protocol):
    def unsubscribe(self) -> None: ...


class SettingsStore(Protocol):
    def get_alarms(self) -> Optional[List[Mapping]]: ...

    def subscribe(self, callback: Callable[[], None]) -> SettingsSubscription: ...


@dataclass(frozen=True)
class Transition:
    action: str
    alarm_id: str
    epoch_seconds: Optional[int] = None


class Reconciler:
    """Forwards alarm additions and removals from the settings store to the scheduler.

    Each snapshot entry is compared against the registry of ids already sent
    to the scheduler. An unknown id with a ring time is added, a known id
    without one is removed, and everything else is left alone. A bad entry
    never stops the rest of the snapshot from being processed.

    With ``simulate`` set, :meth:`start` schedules two synthetic alarms
    instead and the store and registry are never used.
    """

    def __init__(
        self,
        store: SettingsStore,
        scheduler: AlarmScheduler,
        registry: Optional[AlarmRegistry] = None,
        simulate: bool = False,
        simulate_alarm_id: str = "alarm-sync.simulated",
        timezone: Optional[tzinfo] = None,
        clock: Callable[[], int] = now_epoch,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.registry = registry if registry is not None else AlarmRegistry()
        self.simulate = simulate
        self.simulate_alarm_id = simulate_alarm_id
        self.tzinfo = timezone
        self._clock = clock
        self._rng = rng

        self._lock = RLock()
        self._subscription: Optional[SettingsSubscription] = None
        self._started = False

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        with self._lock:
            if self._started:
                logger.debug("Reconciler already started")
                return
            self._started = True
            if self.simulate:
                add_fake_alarms(self.scheduler, self.simulate_alarm_id, now=self._clock(), rng=self._rng)
                return
            self._subscription = self.store.subscribe(self.on_alarms_changed)
            self.on_alarms_changed()

    def close(self) -> None:
        with self._lock:
            if self._subscription is not None:
                self._subscription.unsubscribe()
                self._subscription = None
            self.registry.clear()
            self._started = False

    def on_alarms_changed(self) -> List[Transition]:
        return self.process_snapshot(self.store.get_alarms())

    def process_snapshot(self, snapshot: Optional[Iterable[Any]]) -> List[Transition]:
        if not snapshot:
            return []
        transitions: List[Transition] = []
        with self._lock:
            for entry in snapshot:
                record = entry if isinstance(entry, AlarmRecord) else AlarmRecord.from_mapping(entry)
                if record is None:
                    continue
                transition = self.process_record(record)
                if transition is not None:
                    transitions.append(transition)
        if transitions:
            logger.info("Applied %s alarm change(s)", len(transitions))
        return transitions

    def process_record(self, record: Optional[AlarmRecord]) -> Optional[Transition]:
        if record is None or not record.id:
            return None
        with self._lock:
            exists = self.registry.contains(record.id)
            if not exists and record.has_ring_time:
                return self._add(record)
            if exists and not record.has_ring_time:
                return self._remove(record.id)
            if exists:
                # Known id: a changed ring_time is not forwarded.
                logger.debug("Alarm %s already scheduled, ignoring ring_time %s", record.id, record.ring_time)
            return None

    def _add(self, record: AlarmRecord) -> Optional[Transition]:
        try:
            timestamp = parse_iso8601_to_epoch(record.ring_time, self.tzinfo)
        except ValueError as exc:
            logger.warning("Skipping alarm %s with bad ring_time %r: %s", record.id, record.ring_time, exc)
            return None
        logger.info("Adding alarm: %s", record.id)
        self.scheduler.add_alarm(record.id, timestamp)
        self.registry.add(record.id)
        return Transition(action="add", alarm_id=record.id, epoch_seconds=timestamp)

    def _remove(self, alarm_id: str) -> Transition:
        logger.info("Removing alarm: %s", alarm_id)
        self.scheduler.remove_alarm(alarm_id)
        self.registry.remove(alarm_id)
        return Transition(action="remove", alarm_id=alarm_id)
