"""Doctor payload helpers for support requests."""

from __future__ import annotations

import platform
import re
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from .config import AppConfig, config_path, resolve_bin_dir
from .logging_setup import log_dir


_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth|etag)", re.IGNORECASE)


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = "***REDACTED***" if v else v
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def build_doctor_payload(
    cfg: AppConfig,
    resolution: dict[str, Any] | None = None,
    manifest_issues: list[str] | None = None,
) -> dict[str, Any]:
    """Collect host, config and artifact-resolution facts into one JSON-able dict."""
    bin_dir = resolve_bin_dir(cfg)
    return {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "system": platform.system(),
        "machine": platform.machine(),
        "python": platform.python_version(),
        "config_path": str(config_path()),
        "log_dir": str(log_dir()),
        "bin_dir": str(bin_dir),
        "bin_dir_exists": bin_dir.is_dir(),
        "config": redact(asdict(cfg)),
        "resolution": resolution or {},
        "manifest_issues": list(manifest_issues or []),
    }
