"""Platform-resolving installer for prebuilt lazytrack binaries."""

from .errors import (
    ChecksumMismatchError,
    DownloadError,
    ExtractionError,
    InstallError,
    ManifestError,
    SmokeTestError,
    UnsupportedPlatformError,
)
from .manifest import (
    DEFAULT_MANIFEST,
    PlatformArtifact,
    PlatformTarget,
    ReleaseManifest,
    apply_checksums,
    load_manifest,
    validate_manifest,
)
from .pipeline import InstallOptions, InstallResult, InstallState, Installer
from .resolver import detect_target, resolve_artifact, resolve_target
from .service import fetch_and_verify, install_binary, smoke_test

__all__ = [
    "ChecksumMismatchError",
    "DEFAULT_MANIFEST",
    "DownloadError",
    "ExtractionError",
    "InstallError",
    "InstallOptions",
    "InstallResult",
    "InstallState",
    "Installer",
    "ManifestError",
    "PlatformArtifact",
    "PlatformTarget",
    "ReleaseManifest",
    "SmokeTestError",
    "UnsupportedPlatformError",
    "apply_checksums",
    "detect_target",
    "fetch_and_verify",
    "install_binary",
    "load_manifest",
    "resolve_artifact",
    "resolve_target",
    "smoke_test",
    "validate_manifest",
]
