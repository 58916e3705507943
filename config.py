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


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


@dataclass
class Config:
    alarms_path: Path
    alarm_sound_path: Path
    timezone_name: Optional[str]
    max_timer_hours: float
    default_snooze_min: int
    max_ahead_days: int
    upcoming_window_hours: float
    alarm_volume: float
    enable_speech: bool
    debug: bool
    log_level: str


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    max_timer_hours = _get_env_float("ALARM_MAX_TIMER_HOURS", 24.0)
    if max_timer_hours <= 0:
        raise ValueError("Environment variable ALARM_MAX_TIMER_HOURS must be positive")

    debug = _get_env_bool("DEBUG", False)
    log_level = "DEBUG" if debug else os.getenv("LOG_LEVEL", "INFO").upper()

    return Config(
        alarms_path=Path(os.getenv("ALARM_STORAGE_PATH", "data/alarms.json")),
        alarm_sound_path=Path(os.getenv("ALARM_SOUND_PATH", "data/alarm.wav")),
        timezone_name=os.getenv("ALARM_TIMEZONE") or None,
        max_timer_hours=max_timer_hours,
        default_snooze_min=max(1, _get_env_int("ALARM_DEFAULT_SNOOZE_MIN", 5)),
        max_ahead_days=_get_env_int("ALARM_MAX_AHEAD_DAYS", 365),
        upcoming_window_hours=_get_env_float("ALARM_UPCOMING_WINDOW_HOURS", 24.0),
        alarm_volume=_get_env_float("ALARM_VOLUME", 0.3),
        enable_speech=_get_env_bool("ENABLE_SPEECH", False),
        debug=debug,
        log_level=log_level,
    )


def setup_logging(log_level: str = "INFO") -> None:
    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    log_path = logs_dir / "alarm_clock.log"
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
