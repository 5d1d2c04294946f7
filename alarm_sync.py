import logging
import signal
import time

from alarmsync.reconciler import Reconciler
from alarmsync.registry import AlarmRegistry
from alarmsync.scheduler import LocalAlarmScheduler
from alarmsync.settings_store import JsonSettingsStore
from config import Config, load_config, setup_logging
from time_utils import resolve_timezone

try:
    import winsound
except ImportError:  # pragma: no cover
    winsound = None

logger = logging.getLogger("alarm_sync")


def beep() -> None:
    if winsound:
        try:
            winsound.Beep(880, 120)
            return
        except RuntimeError:
            logger.debug("winsound.Beep failed, falling back to log")
    logger.info("Beep")


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


class SyncRuntime:
    def __init__(self, config: Config):
        self.config = config
        self.store = JsonSettingsStore(
            config.alarms_path,
            poll_interval=config.store_poll_interval_ms / 1000.0,
        )
        self.scheduler = LocalAlarmScheduler(
            check_interval=config.alarm_check_interval_ms / 1000.0,
            on_alarm_fired=self._on_alarm_fired,
        )
        self.registry = AlarmRegistry()
        self.reconciler = Reconciler(
            store=self.store,
            scheduler=self.scheduler,
            registry=self.registry,
            simulate=config.simulate,
            simulate_alarm_id=config.simulate_alarm_id,
            timezone=resolve_timezone(config.timezone_name),
        )

    def start(self) -> None:
        self.scheduler.start()
        if not self.config.simulate:
            self.store.start()
        self.reconciler.start()

    def shutdown(self) -> None:
        self.store.shutdown()
        self.reconciler.close()
        self.scheduler.shutdown()

    def _on_alarm_fired(self, alarm_id: str, epoch_seconds: int) -> None:
        when = time.strftime("%H:%M", time.localtime(epoch_seconds))
        logger.info("Alarm %s ringing (%s)", alarm_id, when)
        beep()


def main() -> None:
    config = load_config()
    setup_logging(config.log_level, config.log_dir)
    signal.signal(signal.SIGINT, graceful_exit)
    signal.signal(signal.SIGTERM, graceful_exit)
    mode = "simulate" if config.simulate else "settings"
    logger.info("Starting alarm sync (mode=%s, storage=%s)", mode, config.alarms_path)

    runtime = SyncRuntime(config)
    runtime.start()
    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        runtime.shutdown()


if __name__ == "__main__":
    main()
