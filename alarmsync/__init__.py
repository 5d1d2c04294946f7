"""Keeps a scheduler in sync with the alarm list from a settings store."""

from .reconciler import Reconciler, Transition
from .records import AlarmRecord
from .registry import AlarmRegistry
from .scheduler import AlarmScheduler, LocalAlarmScheduler
from .settings_store import JsonSettingsStore, Subscription
