"""Persistent installer settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


CONFIG_VERSION = 2
DEFAULT_REPO = "master-wayne7/lazytrack"


@dataclass
class NetworkConfig:
    timeout_s: int = 60
    retries: int = 3
    backoff_s: float = 2.0
    ca_bundle: str | None = None


@dataclass
class InstallConfig:
    bin_dir: str | None = None
    manifest_path: str | None = None
    smoke_test_timeout_s: int = 30
    allow_placeholder_checksums: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    keep_files: int = 7
    console: bool = False


@dataclass
class UpdatesConfig:
    repo: str = DEFAULT_REPO
    last_check_utc: str | None = None
    etag: str | None = None


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    network: NetworkConfig = field(default_factory=NetworkConfig)
    install: InstallConfig = field(default_factory=InstallConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    updates: UpdatesConfig = field(default_factory=UpdatesConfig)


def config_root() -> Path:
    if platform.system() == "Darwin":
        return Path.home() / "Library" / "Application Support" / "LazyTrackInstaller"
    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    return (Path(base) if base else Path.home() / ".config") / "lazytrack-installer"


def config_path() -> Path:
    return config_root() / "config.json"


def default_bin_dir() -> Path:
    override = os.environ.get("LAZYTRACK_BIN_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "bin"


def resolve_bin_dir(cfg: AppConfig) -> Path:
    if cfg.install.bin_dir:
        return Path(cfg.install.bin_dir).expanduser()
    return default_bin_dir()


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _coerce(value: Any, cast, default):
    try:
        return cast(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value.strip() else None


def _normalize_network(cfg: AppConfig) -> None:
    d = NetworkConfig()
    cfg.network.ca_bundle = _optional_str(cfg.network.ca_bundle)
    cfg.network.timeout_s = max(5, min(600, _coerce(cfg.network.timeout_s, int, d.timeout_s)))
    cfg.network.retries = max(1, min(10, _coerce(cfg.network.retries, int, d.retries)))
    cfg.network.backoff_s = max(0.0, _coerce(cfg.network.backoff_s, float, d.backoff_s))


def _normalize_install(cfg: AppConfig) -> None:
    d = InstallConfig()
    cfg.install.bin_dir = _optional_str(cfg.install.bin_dir)
    cfg.install.manifest_path = _optional_str(cfg.install.manifest_path)
    cfg.install.smoke_test_timeout_s = max(
        1, min(600, _coerce(cfg.install.smoke_test_timeout_s, int, d.smoke_test_timeout_s))
    )
    cfg.install.allow_placeholder_checksums = cfg.install.allow_placeholder_checksums is True


def _normalize_logging(cfg: AppConfig) -> None:
    level = str(cfg.logging.level).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        level = "INFO"
    cfg.logging.level = level
    cfg.logging.keep_files = max(2, _coerce(cfg.logging.keep_files, int, LoggingConfig().keep_files))
    cfg.logging.console = cfg.logging.console is True


def _normalize_updates(cfg: AppConfig) -> None:
    cfg.updates.repo = _optional_str(cfg.updates.repo) or DEFAULT_REPO
    cfg.updates.etag = _optional_str(cfg.updates.etag)
    cfg.updates.last_check_utc = _optional_str(cfg.updates.last_check_utc)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return dict(value) if isinstance(value, dict) else {}


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = _coerce(raw.get("config_version", 1), int, 1)
    data = dict(raw)

    if version < 2:
        # v1 stored network/install settings as flat top-level keys.
        network = _section(data, "network")
        for key in ("timeout_s", "retries", "backoff_s", "ca_bundle"):
            if key in data:
                network.setdefault(key, data.pop(key))
        install = _section(data, "install")
        for key in ("bin_dir", "manifest_path"):
            if key in data:
                install.setdefault(key, data.pop(key))
        data["network"] = network
        data["install"] = install
        data.setdefault("logging", {})
        data.setdefault("updates", {})
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()

    data = _migrate(raw)
    cfg = AppConfig(
        config_version=_coerce(data.get("config_version", CONFIG_VERSION), int, CONFIG_VERSION),
        network=_merge(NetworkConfig, data.get("network", {})),
        install=_merge(InstallConfig, data.get("install", {})),
        logging=_merge(LoggingConfig, data.get("logging", {})),
        updates=_merge(UpdatesConfig, data.get("updates", {})),
    )

    _normalize_network(cfg)
    _normalize_install(cfg)
    _normalize_logging(cfg)
    _normalize_updates(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path


def touch_update_check(cfg: AppConfig) -> None:
    cfg.updates.last_check_utc = datetime.now(timezone.utc).isoformat()
