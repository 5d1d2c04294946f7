import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


@dataclass
class Config:
    alarms_path: Path
    store_poll_interval_ms: int
    alarm_check_interval_ms: int
    simulate: bool
    simulate_alarm_id: str
    timezone_name: Optional[str]
    debug: bool
    log_level: str
    log_dir: Path


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    alarms_path = Path(os.getenv("ALARM_STORAGE_PATH", "data/alarms.json"))
    store_poll_interval_ms = _get_env_int("ALARM_STORE_POLL_MS", 1000)
    alarm_check_interval_ms = _get_env_int("ALARM_CHECK_INTERVAL_MS", 800)
    simulate = _get_env_bool("ALARM_SIMULATE", False)
    simulate_alarm_id = os.getenv("ALARM_SIMULATE_ID") or "alarm-sync.simulated"
    timezone_name = os.getenv("ALARM_TIMEZONE") or None
    debug = _get_env_bool("DEBUG", False)
    log_level = os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO").upper()
    log_dir = Path(os.getenv("LOG_DIR", "logs"))

    if store_poll_interval_ms <= 0:
        raise ValueError("ALARM_STORE_POLL_MS must be positive")
    if alarm_check_interval_ms <= 0:
        raise ValueError("ALARM_CHECK_INTERVAL_MS must be positive")

    return Config(
        alarms_path=alarms_path,
        store_poll_interval_ms=store_poll_interval_ms,
        alarm_check_interval_ms=alarm_check_interval_ms,
        simulate=simulate,
        simulate_alarm_id=simulate_alarm_id,
        timezone_name=timezone_name,
        debug=debug,
        log_level=log_level,
        log_dir=log_dir,
    )


def setup_logging(log_level: str = "INFO", log_dir: Path = Path("logs")) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)

    log_path = log_dir / "alarm_sync.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
