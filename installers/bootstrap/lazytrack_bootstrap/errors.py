"""Installer error taxonomy. Every failure aborts the current install attempt."""

from __future__ import annotations

from pathlib import Path


class InstallError(RuntimeError):
    """Base class for all installer failures."""


class ManifestError(InstallError):
    pass


class UnsupportedPlatformError(InstallError):
    def __init__(self, os_name: str, arch: str) -> None:
        super().__init__(f"No release artifact declared for {os_name}/{arch}")
        self.os_name = os_name
        self.arch = arch


class DownloadError(InstallError):
    def __init__(self, message: str, url: str, attempts: int = 1, retryable: bool = True) -> None:
        super().__init__(message)
        self.url = url
        self.attempts = attempts
        self.retryable = retryable


class ChecksumMismatchError(InstallError):
    def __init__(self, url: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Checksum mismatch for {url}:\n"
            f"  Expected: {expected.lower()}\n"
            f"  Actual:   {actual.lower()}"
        )
        self.url = url
        self.expected = expected
        self.actual = actual


class ExtractionError(InstallError):
    pass


class SmokeTestError(InstallError):
    def __init__(self, path: Path, exit_code: int | None, reason: str | None = None) -> None:
        detail = reason or f"exited with code {exit_code}"
        super().__init__(f"Smoke test failed for {path}: {detail}")
        self.path = path
        self.exit_code = exit_code
