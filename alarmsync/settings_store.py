from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Event, Lock, Thread
from typing import Callable, Iterable, List, Mapping, Optional, Tuple, Union

from .records import AlarmRecord

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]


class Subscription:
    """Handle for one change-notification callback registered on a store."""

    def __init__(self, store: "JsonSettingsStore", callback: ChangeCallback):
        self._store = store
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._store._detach(self)


class JsonSettingsStore:
    """Alarm list kept in a JSON file and watched for external edits.

    The file holds a list of alarm entries, each a mapping with at least an
    ``id`` and, while the alarm is set, a ``ring_time``. Subscribers are
    called with no payload whenever the file changes and read the new list
    through :meth:`get_alarms`.
    """

    def __init__(self, path: Path, poll_interval: float = 1.0):
        self.path = Path(path)
        self.poll_interval = max(0.1, poll_interval)

        self._subscriptions: List[Subscription] = []
        self._lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self._signature = self._read_signature()

    def start(self) -> None:
        self._signature = self._read_signature()
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="settings-watcher", daemon=True)
        self._thread.start()
        logger.info("Watching %s for alarm changes", self.path)

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None

    def get_alarms(self) -> Optional[List[Mapping]]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error("Failed to load alarms from %s: %s", self.path, exc)
            return None
        if not isinstance(payload, list):
            logger.error("Alarm settings in %s must be a list, got %s", self.path, type(payload).__name__)
            return None
        alarms: List[Mapping] = []
        for item in payload:
            if isinstance(item, Mapping):
                alarms.append(item)
            else:
                logger.warning("Skipping alarm entry that is not an object: %r", item)
        return alarms

    def set_alarms(self, alarms: Iterable[Union[AlarmRecord, Mapping]]) -> None:
        entries = [a.to_dict() if isinstance(a, AlarmRecord) else dict(a) for a in alarms]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(entries, f, ensure_ascii=False, indent=2)

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def check_for_changes(self) -> bool:
        signature = self._read_signature()
        if signature == self._signature:
            return False
        self._signature = signature
        logger.debug("Alarm settings changed: %s", self.path)
        self._emit_changed()
        return True

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _emit_changed(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            try:
                subscription.callback()
            except Exception:
                logger.error("alarms-changed callback failed", exc_info=True)

    def _loop(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            self.check_for_changes()

    def _read_signature(self) -> Optional[Tuple[int, int]]:
        try:
            stat = self.path.stat()
        except OSError:
            return None
        return stat.st_mtime_ns, stat.st_size
