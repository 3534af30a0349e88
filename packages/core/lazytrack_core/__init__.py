"""Core services for installer settings, logging, and diagnostics."""

from .config import (
    AppConfig,
    default_bin_dir,
    load_config,
    resolve_bin_dir,
    save_config,
    touch_update_check,
)
from .diagnostics import build_doctor_payload, redact
from .logging_setup import configure_logging, get_logger

__all__ = [
    "AppConfig",
    "build_doctor_payload",
    "configure_logging",
    "default_bin_dir",
    "get_logger",
    "load_config",
    "redact",
    "resolve_bin_dir",
    "save_config",
    "touch_update_check",
]
