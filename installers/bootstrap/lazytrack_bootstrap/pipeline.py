"""Sequential install pipeline: resolve, download, verify, install, smoke test."""

from __future__ import annotations

import shutil
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from lazytrack_core.config import AppConfig
from lazytrack_core.logging_setup import get_logger

from . import service
from .errors import ExtractionError, InstallError, ManifestError
from .manifest import DEFAULT_MANIFEST, PlatformArtifact, PlatformTarget, ReleaseManifest, is_placeholder_checksum
from .resolver import detect_target, resolve_artifact, resolve_target


logger = get_logger("pipeline")

ProgressCallback = Callable[[str], None]


class InstallState(str, Enum):
    NOT_STARTED = "NotStarted"
    RESOLVED = "Resolved"
    DOWNLOADED = "Downloaded"
    VERIFIED = "Verified"
    INSTALLED = "Installed"
    TESTED = "Tested"
    FAILED = "Failed"


@dataclass
class InstallOptions:
    timeout_s: float = 60
    retries: int = 3
    backoff_s: float = 2.0
    ca_bundle: str | None = None
    smoke_test_timeout_s: float = 30
    allow_placeholder_checksums: bool = False

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "InstallOptions":
        return cls(
            timeout_s=cfg.network.timeout_s,
            retries=cfg.network.retries,
            backoff_s=cfg.network.backoff_s,
            ca_bundle=cfg.network.ca_bundle,
            smoke_test_timeout_s=cfg.install.smoke_test_timeout_s,
            allow_placeholder_checksums=cfg.install.allow_placeholder_checksums,
        )


@dataclass(frozen=True)
class InstallResult:
    target: PlatformTarget
    artifact: PlatformArtifact
    installed_path: Path
    state: InstallState
    exit_code: int
    history: tuple[InstallState, ...]

    def to_dict(self) -> dict:
        return {
            "target_os": self.target.os_name,
            "target_arch": self.target.arch,
            "asset": self.artifact.asset_name,
            "url": self.artifact.url,
            "version": self.artifact.version,
            "path": str(self.installed_path),
            "state": self.state.value,
            "exit_code": self.exit_code,
            "history": [s.value for s in self.history],
        }


class Installer:
    """Runs one install attempt and records every state it passes through.

    Any :class:`InstallError` moves the installer to ``Failed`` and is
    re-raised unchanged. If the smoke test rejects the new binary, whatever
    occupied the destination before the run is put back.
    """

    def __init__(
        self,
        manifest: ReleaseManifest = DEFAULT_MANIFEST,
        options: InstallOptions | None = None,
        progress: ProgressCallback | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.manifest = manifest
        self.options = options or InstallOptions()
        self.progress = progress or (lambda _msg: None)
        self.sleep = sleep
        self.state = InstallState.NOT_STARTED
        self.history: list[InstallState] = [self.state]

    def _advance(self, state: InstallState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"state -> {state.value}", extra={"event": "state_changed"})

    def run(self, target_dir: Path, os_name: str | None = None, arch: str | None = None) -> InstallResult:
        if self.state is not InstallState.NOT_STARTED:
            raise RuntimeError("Installer instances are single-use")
        try:
            return self._run(Path(target_dir), os_name, arch)
        except InstallError as exc:
            failed_in = self.state
            self._advance(InstallState.FAILED)
            logger.error(
                f"install failed after {failed_in.value}: {exc}",
                extra={"event": "install_failed"},
            )
            raise

    def _run(self, target_dir: Path, os_name: str | None, arch: str | None) -> InstallResult:
        if os_name is None or arch is None:
            detected = detect_target()
            os_name = os_name or detected.os_name
            arch = arch or detected.arch
        target = resolve_target(os_name, arch)

        self.progress(f"Resolving artifact for {target.os_name}/{target.arch}")
        artifact = resolve_artifact(target.os_name, target.arch, self.manifest)
        self._advance(InstallState.RESOLVED)

        if is_placeholder_checksum(artifact.checksum) and not self.options.allow_placeholder_checksums:
            raise ManifestError(
                f"Checksum for {artifact.asset_name} is a placeholder; refusing to install unverifiable artifact"
            )

        self.progress(f"Downloading {artifact.asset_name}")
        data = service.download_with_retry(
            artifact.url,
            timeout=self.options.timeout_s,
            attempts=self.options.retries,
            backoff_s=self.options.backoff_s,
            ca_bundle=self.options.ca_bundle,
            sleep=self.sleep,
        )
        self._advance(InstallState.DOWNLOADED)

        self.progress("Verifying checksum")
        service.verify_checksum(data, artifact.checksum, url=artifact.url)
        self._advance(InstallState.VERIFIED)

        dest = target_dir / self.manifest.binary_name
        with tempfile.TemporaryDirectory(prefix="lazytrack-previous-") as stash:
            previous = self._stash_existing(dest, Path(stash))
            try:
                self.progress(f"Installing {self.manifest.binary_name} into {target_dir}")
                installed = service.install_binary(data, target_dir, self.manifest.binary_name)
                self._advance(InstallState.INSTALLED)

                self.progress("Running smoke test")
                service.smoke_test(installed, timeout=self.options.smoke_test_timeout_s)
            except InstallError:
                self._restore(dest, previous)
                raise

        self._advance(InstallState.TESTED)
        self.progress("Install complete")
        return InstallResult(
            target=target,
            artifact=artifact,
            installed_path=installed,
            state=self.state,
            exit_code=0,
            history=tuple(self.history),
        )

    @staticmethod
    def _stash_existing(dest: Path, stash_dir: Path) -> Path | None:
        if not dest.exists():
            return None
        kept = stash_dir / dest.name
        try:
            shutil.copy2(dest, kept)
        except OSError as exc:
            raise ExtractionError(f"Could not set aside existing {dest}: {exc}") from exc
        return kept

    @staticmethod
    def _restore(dest: Path, previous: Path | None) -> None:
        try:
            if previous is not None:
                shutil.copy2(previous, dest)
                logger.warning(f"restored previous {dest}", extra={"event": "install_rolled_back", "path": str(dest)})
            elif dest.is_file():
                dest.unlink()
                logger.warning(f"removed rejected {dest}", extra={"event": "install_rolled_back", "path": str(dest)})
        except OSError as exc:
            raise ExtractionError(f"Could not roll back {dest}: {exc}") from exc
