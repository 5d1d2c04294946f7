import random
from datetime import datetime, timezone

import pytest

from alarm_sync import SyncRuntime
from alarmsync.reconciler import Reconciler, Transition
from alarmsync.records import AlarmRecord
from alarmsync.registry import AlarmRegistry
from alarmsync.scheduler import LocalAlarmScheduler
from alarmsync.settings_store import JsonSettingsStore
from alarmsync.simulation import add_fake_alarms
from config import Config


class FakeScheduler:
    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on

    def add_alarm(self, alarm_id, epoch_seconds):
        if alarm_id == self.fail_on:
            raise RuntimeError("scheduler unavailable")
        self.calls.append(("add", alarm_id, epoch_seconds))

    def remove_alarm(self, alarm_id):
        if alarm_id == self.fail_on:
            raise RuntimeError("scheduler unavailable")
        self.calls.append(("remove", alarm_id))


class FakeSubscription:
    def __init__(self, store):
        self.store = store

    def unsubscribe(self):
        self.store.subscriptions.remove(self)


class FakeStore:
    def __init__(self, alarms=None):
        self.alarms = alarms
        self.subscriptions = []
        self.reads = 0

    def get_alarms(self):
        self.reads += 1
        return self.alarms

    def subscribe(self, callback):
        subscription = FakeSubscription(self)
        subscription.callback = callback
        self.subscriptions.append(subscription)
        return subscription

    def emit(self):
        for subscription in list(self.subscriptions):
            subscription.callback()


def _epoch(text: str) -> int:
    return int(datetime.fromisoformat(text).replace(tzinfo=timezone.utc).timestamp())


def _reconciler(known=(), alarms=None, simulate=False, scheduler=None):
    registry = AlarmRegistry()
    for alarm_id in known:
        registry.add(alarm_id)
    return Reconciler(
        store=FakeStore(alarms),
        scheduler=scheduler or FakeScheduler(),
        registry=registry,
        simulate=simulate,
        timezone=timezone.utc,
    )


def test_new_alarm_is_added():
    rec = _reconciler()
    rec.process_snapshot([{"id": "a", "ring_time": "2030-01-01T10:00:00Z"}])
    assert rec.registry.known_ids == ["a"]
    assert rec.scheduler.calls == [("add", "a", _epoch("2030-01-01T10:00:00"))]


def test_known_alarm_without_ring_time_is_removed():
    rec = _reconciler(known=["a"])
    transitions = rec.process_snapshot([{"id": "a"}])
    assert rec.registry.known_ids == []
    assert rec.scheduler.calls == [("remove", "a")]
    assert transitions == [Transition(action="remove", alarm_id="a")]


def test_known_alarms_untouched_and_new_one_appended():
    rec = _reconciler(known=["a", "b"])
    rec.process_snapshot(
        [
            {"id": "a", "ring_time": "2030-06-01T00:00:00Z"},
            {"id": "c", "ring_time": "2030-07-01T00:00:00Z"},
        ]
    )
    assert rec.registry.known_ids == ["a", "b", "c"]
    assert rec.scheduler.calls == [("add", "c", _epoch("2030-07-01T00:00:00"))]


def test_same_snapshot_twice_sends_nothing_the_second_time():
    snapshot = [
        {"id": "a", "ring_time": "2030-01-01T10:00:00Z"},
        {"id": "b", "ring_time": "2030-01-02T10:00:00Z"},
        {"id": "c"},
    ]
    rec = _reconciler()
    first = rec.process_snapshot(snapshot)
    calls_after_first = list(rec.scheduler.calls)
    second = rec.process_snapshot(snapshot)
    assert len(first) == 2
    assert second == []
    assert rec.scheduler.calls == calls_after_first
    assert rec.registry.known_ids == ["a", "b"]


def test_add_then_remove_in_order():
    rec = _reconciler()
    rec.process_snapshot([{"id": "a", "ring_time": "2030-01-01T10:00:00Z"}])
    rec.process_snapshot([{"id": "a"}])
    assert not rec.registry.contains("a")
    assert [call[0] for call in rec.scheduler.calls] == ["add", "remove"]


def test_add_and_remove_within_one_snapshot():
    rec = _reconciler()
    rec.process_snapshot([{"id": "a", "ring_time": "2030-01-01T10:00:00Z"}, {"id": "a"}])
    assert rec.registry.known_ids == []
    assert [call[0] for call in rec.scheduler.calls] == ["add", "remove"]


def test_unknown_alarm_without_ring_time_is_ignored():
    rec = _reconciler()
    assert rec.process_record(AlarmRecord(id="ghost")) is None
    assert rec.scheduler.calls == []
    assert rec.registry.known_ids == []


def test_entry_without_id_does_not_stop_the_snapshot():
    rec = _reconciler()
    rec.process_snapshot(
        [
            {"ring_time": "2030-01-01T10:00:00Z"},
            {"id": 42, "ring_time": "2030-01-01T10:00:00Z"},
            "not a mapping",
            {"id": "b", "ring_time": "2030-01-01T11:00:00Z", "name": "Wake up"},
        ]
    )
    assert rec.registry.known_ids == ["b"]
    assert rec.scheduler.calls == [("add", "b", _epoch("2030-01-01T11:00:00"))]


def test_bad_ring_time_skips_only_that_record():
    rec = _reconciler()
    rec.process_snapshot(
        [
            {"id": "a", "ring_time": "tomorrow morning"},
            {"id": "b", "ring_time": "2030-01-01T11:00:00+02:00"},
        ]
    )
    assert rec.registry.known_ids == ["b"]
    assert rec.scheduler.calls == [("add", "b", _epoch("2030-01-01T09:00:00"))]


def test_changed_ring_time_for_known_alarm_is_not_forwarded():
    rec = _reconciler(known=["a"])
    assert rec.process_record(AlarmRecord(id="a", ring_time="2031-01-01T00:00:00Z")) is None
    assert rec.scheduler.calls == []


def test_naive_ring_time_uses_configured_timezone():
    rec = _reconciler()
    rec.process_snapshot([{"id": "a", "ring_time": "2030-01-01T10:00:00"}])
    assert rec.scheduler.calls == [("add", "a", _epoch("2030-01-01T10:00:00"))]


def test_empty_or_missing_snapshot_is_noop():
    rec = _reconciler()
    assert rec.process_snapshot(None) == []
    assert rec.process_snapshot([]) == []
    assert rec.scheduler.calls == []


def test_scheduler_failure_propagates_and_registry_stays_consistent():
    rec = _reconciler(scheduler=FakeScheduler(fail_on="a"))
    with pytest.raises(RuntimeError):
        rec.process_snapshot([{"id": "a", "ring_time": "2030-01-01T10:00:00Z"}])
    assert rec.registry.known_ids == []


def test_start_subscribes_once_and_processes_current_snapshot():
    rec = _reconciler(alarms=[{"id": "a", "ring_time": "2030-01-01T10:00:00Z"}])
    rec.start()
    rec.start()
    assert len(rec.store.subscriptions) == 1
    assert rec.subscribed
    assert rec.registry.known_ids == ["a"]

    rec.store.alarms = [{"id": "a"}, {"id": "b", "ring_time": "2030-01-02T10:00:00Z"}]
    rec.store.emit()
    assert rec.registry.known_ids == ["b"]
    assert [call[:2] for call in rec.scheduler.calls] == [("add", "a"), ("remove", "a"), ("add", "b")]


def test_close_unsubscribes_and_clears_registry():
    rec = _reconciler(alarms=[{"id": "a", "ring_time": "2030-01-01T10:00:00Z"}])
    rec.start()
    rec.close()
    assert rec.store.subscriptions == []
    assert not rec.subscribed
    assert len(rec.registry) == 0


def test_simulation_mode_bypasses_store_and_registry():
    scheduler = FakeScheduler()
    rec = Reconciler(
        store=FakeStore([{"id": "a", "ring_time": "2030-01-01T10:00:00Z"}]),
        scheduler=scheduler,
        simulate=True,
        simulate_alarm_id="sim",
        clock=lambda: 1_000_000,
        rng=random.Random(7),
    )
    rec.start()
    assert rec.store.reads == 0
    assert rec.store.subscriptions == []
    assert rec.registry.known_ids == []
    assert len(scheduler.calls) == 2
    (_, first_id, first), (_, second_id, second) = scheduler.calls
    assert first_id == second_id == "sim"
    assert 1_000_030 <= first < 1_000_060
    assert 1_000_080 <= second < 1_000_120
    assert first < second


@pytest.mark.parametrize("seed", range(20))
def test_fake_alarm_offsets_stay_in_windows(seed):
    scheduler = FakeScheduler()
    first, second = add_fake_alarms(scheduler, "sim", now=0, rng=random.Random(seed))
    assert 30 <= first < 60
    assert 80 <= second < 120
    assert scheduler.calls == [("add", "sim", first), ("add", "sim", second)]


def test_pre_epoch_ring_time_does_not_block_later_records():
    scheduler = LocalAlarmScheduler(clock=lambda: 0)
    rec = Reconciler(store=FakeStore(), scheduler=scheduler, timezone=timezone.utc)
    rec.process_snapshot(
        [
            {"id": "old", "ring_time": "1969-12-31T23:00:00Z"},
            {"id": "b", "ring_time": "2030-01-01T10:00:00Z"},
        ]
    )
    assert rec.registry.known_ids == ["old", "b"]
    assert [a.id for a in scheduler.pending()] == ["old", "b"]
    assert [a.id for a in scheduler.fire_due()] == ["old"]


def test_settings_file_edits_reach_the_scheduler(tmp_path):
    store = JsonSettingsStore(tmp_path / "alarms.json")
    store.set_alarms([AlarmRecord(id="a", ring_time="2030-01-01T10:00:00Z")])
    scheduler = LocalAlarmScheduler(clock=lambda: 0)
    rec = Reconciler(store=store, scheduler=scheduler, timezone=timezone.utc)
    rec.start()
    assert rec.registry.known_ids == ["a"]

    store.set_alarms(
        [AlarmRecord(id="a"), AlarmRecord(id="bb", ring_time="2030-01-02T10:00:00Z")]
    )
    assert store.check_for_changes() is True
    assert rec.registry.known_ids == ["bb"]
    assert scheduler.pending()[0].id == "bb"
    assert [a.fire_at for a in scheduler.pending()] == [_epoch("2030-01-02T10:00:00")]

    rec.close()
    store.set_alarms([AlarmRecord(id="bb")])
    store.check_for_changes()
    assert [a.id for a in scheduler.pending()] == ["bb"]


def test_runtime_in_simulate_mode_leaves_store_idle(tmp_path):
    config = Config(
        alarms_path=tmp_path / "alarms.json",
        store_poll_interval_ms=1000,
        alarm_check_interval_ms=800,
        simulate=True,
        simulate_alarm_id="sim",
        timezone_name="UTC",
        debug=False,
        log_level="INFO",
        log_dir=tmp_path / "logs",
    )
    runtime = SyncRuntime(config)
    runtime.start()
    try:
        assert runtime.store._thread is None
        assert not runtime.reconciler.subscribed
        assert [a.id for a in runtime.scheduler.pending()] == ["sim", "sim"]
        assert runtime.registry.known_ids == []
    finally:
        runtime.shutdown()
