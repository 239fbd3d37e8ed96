"""Typed configuration objects backed by python-decouple settings."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from decouple import Config as DecoupleConfig, RepositoryEmpty, RepositoryEnv

__all__ = [
    "TimelineSettings",
    "LoggingSettings",
    "Settings",
    "load_config",
    "get_settings",
]


@dataclass(frozen=True, slots=True)
class TimelineSettings:
    """Knobs for timeline reconstruction and bar placement.

    ``init_estimate_ms`` and ``teardown_estimate_ms`` are placeholder figures
    for phases that cannot be observed from record timestamps.
    """

    default_worker: str = "main"
    init_estimate_ms: int = 2000
    teardown_estimate_ms: int = 1000
    startup_cap_ms: int = 5000
    min_bar_width_percent: float = 1.0


@dataclass(frozen=True, slots=True)
class LoggingSettings:
    level: str = "WARNING"


@dataclass(frozen=True, slots=True)
class Settings:
    """Top-level immutable configuration container."""

    env_path: str
    timeline: TimelineSettings
    logging: LoggingSettings


def load_config(env_path: str = ".env") -> DecoupleConfig:
    """Return a python-decouple config anchored to ``env_path``.

    Falls back to process environment variables only when the file is absent.
    """

    if Path(env_path).is_file():
        return DecoupleConfig(RepositoryEnv(env_path))
    return DecoupleConfig(RepositoryEmpty())


def _int(cfg: DecoupleConfig, key: str, *, default: int) -> int:
    return cfg(key, cast=int, default=default)


def _float(cfg: DecoupleConfig, key: str, *, default: float) -> float:
    return cfg(key, cast=float, default=default)


@lru_cache(maxsize=1)
def get_settings(env_path: str = ".env") -> Settings:
    """Load and memoize structured settings for the current process."""

    cfg = load_config(env_path)

    timeline = TimelineSettings(
        default_worker=cfg("TIMELINE_DEFAULT_WORKER", default="main") or "main",
        init_estimate_ms=_int(cfg, "TIMELINE_INIT_ESTIMATE_MS", default=2000),
        teardown_estimate_ms=_int(cfg, "TIMELINE_TEARDOWN_ESTIMATE_MS", default=1000),
        startup_cap_ms=_int(cfg, "TIMELINE_STARTUP_CAP_MS", default=5000),
        min_bar_width_percent=_float(cfg, "TIMELINE_MIN_BAR_WIDTH_PERCENT", default=1.0),
    )
    for name in ("init_estimate_ms", "teardown_estimate_ms", "startup_cap_ms"):
        if getattr(timeline, name) < 0:
            msg = f"TIMELINE_{name.upper()} must be >= 0"
            raise ValueError(msg)
    if not 0 <= timeline.min_bar_width_percent <= 100:
        msg = "TIMELINE_MIN_BAR_WIDTH_PERCENT must be between 0 and 100"
        raise ValueError(msg)

    logging_settings = LoggingSettings(
        level=str(cfg("REPORTING_LOG_LEVEL", default="WARNING")).upper(),
    )

    return Settings(
        env_path=env_path,
        timeline=timeline,
        logging=logging_settings,
    )
