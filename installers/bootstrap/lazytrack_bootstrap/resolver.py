"""Release artifact resolution for OS/architecture specific binaries."""

from __future__ import annotations

import platform

from lazytrack_core.logging_setup import get_logger

from .errors import UnsupportedPlatformError
from .manifest import DEFAULT_MANIFEST, PlatformArtifact, PlatformTarget, ReleaseManifest


logger = get_logger("resolver")


def _normalize_os(system: str) -> str:
    s = system.strip().lower()
    if s.startswith("win"):
        return "windows"
    if s.startswith("darwin") or s.startswith("mac"):
        return "macos"
    if s.startswith("linux"):
        return "linux"
    return s


def _normalize_arch(machine: str) -> str:
    m = machine.strip().lower()
    if m in ("x86_64", "amd64", "x64"):
        return "x86_64"
    if m in ("aarch64", "arm64", "armv8"):
        return "arm64"
    return m


def resolve_target(system: str, machine: str) -> PlatformTarget:
    return PlatformTarget(os_name=_normalize_os(system), arch=_normalize_arch(machine))


def detect_target() -> PlatformTarget:
    return resolve_target(platform.system(), platform.machine())


def resolve_artifact(
    os_name: str,
    arch: str,
    manifest: ReleaseManifest = DEFAULT_MANIFEST,
) -> PlatformArtifact:
    """Look up the single artifact declared for ``os_name``/``arch``.

    Host spellings such as ``Darwin`` or ``aarch64`` are normalized first.
    Anything not in the manifest raises :class:`UnsupportedPlatformError`;
    no nearest match is ever substituted.
    """
    target = resolve_target(os_name, arch)
    artifact = manifest.lookup(target.os_name, target.arch)
    if artifact is None:
        raise UnsupportedPlatformError(target.os_name, target.arch)

    logger.info(
        f"resolved {artifact.asset_name} for {target.os_name}/{target.arch}",
        extra={"event": "artifact_resolved", "os_name": target.os_name, "arch": target.arch, "url": artifact.url},
    )
    return artifact
