import logging
import os
from datetime import timedelta

from routersync.config import settings

logger = logging.getLogger(__name__)


def _env_value(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value


def _env_bool(name: str) -> bool | None:
    raw = _env_value(name)
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str) -> int | None:
    raw = _env_value(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return None


def get_celery_config() -> dict:
    config: dict[str, object] = {
        "broker_url": settings.celery_broker_url,
        "result_backend": settings.celery_result_backend,
        "timezone": settings.celery_timezone,
        "worker_prefetch_multiplier": 1,
    }
    config["beat_max_loop_interval"] = _env_int("CELERY_BEAT_MAX_LOOP_INTERVAL") or 5
    return config


def build_beat_schedule() -> dict:
    schedule: dict[str, dict] = {}
    enabled = _env_bool("ROUTER_SYNC_ENABLED")
    if enabled is None:
        enabled = True
    tick_minutes = _env_int("ROUTER_SYNC_TICK_MINUTES") or settings.router_sync_tick_minutes
    if enabled:
        schedule["router_reconciliation"] = {
            "task": "routersync.tasks.router_sync.run_router_reconciliation",
            "schedule": timedelta(minutes=max(tick_minutes, 1)),
        }
    else:
        logger.info("Router reconciliation beat entry disabled")
    return schedule
