"""Declarative release manifest: one downloadable artifact per supported platform."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable

from .errors import ManifestError


SUPPORTED_OS = ("macos", "linux")
SUPPORTED_ARCH = ("arm64", "x86_64")

_HEX_DIGEST_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_ASSET_OS_LABELS = {"macos": "Darwin", "linux": "Linux"}


@dataclass(frozen=True)
class PlatformTarget:
    os_name: str
    arch: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.os_name, self.arch)


@dataclass(frozen=True)
class PlatformArtifact:
    os_name: str
    arch: str
    url: str
    checksum: str
    version: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.os_name, self.arch)

    @property
    def asset_name(self) -> str:
        return self.url.rstrip("/").rsplit("/", 1)[-1]

    def to_dict(self) -> dict[str, str]:
        return {
            "os": self.os_name,
            "arch": self.arch,
            "url": self.url,
            "checksum": self.checksum,
            "version": self.version,
        }


@dataclass(frozen=True)
class ReleaseManifest:
    name: str
    description: str
    homepage: str
    version: str
    binary_name: str
    artifacts: tuple[PlatformArtifact, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        seen: set[tuple[str, str]] = set()
        for artifact in self.artifacts:
            if artifact.key in seen:
                raise ManifestError(f"Duplicate artifact for {artifact.os_name}/{artifact.arch}")
            seen.add(artifact.key)

    @property
    def table(self) -> dict[tuple[str, str], PlatformArtifact]:
        return {a.key: a for a in self.artifacts}

    def lookup(self, os_name: str, arch: str) -> PlatformArtifact | None:
        return self.table.get((os_name, arch))

    def with_artifacts(self, artifacts: Iterable[PlatformArtifact]) -> "ReleaseManifest":
        return replace(self, artifacts=tuple(artifacts))


def release_url(homepage: str, version: str, os_name: str, arch: str, binary_name: str) -> str:
    label = _ASSET_OS_LABELS.get(os_name, os_name)
    return f"{homepage.rstrip('/')}/releases/download/v{version}/{binary_name}_{label}_{arch}.tar.gz"


_HOMEPAGE = "https://github.com/master-wayne7/lazytrack"
_VERSION = "1.0.0"
_BINARY = "lazytrack"
_PLACEHOLDER = "0" * 64


def _declare(os_name: str, arch: str, checksum: str) -> PlatformArtifact:
    return PlatformArtifact(
        os_name=os_name,
        arch=arch,
        url=release_url(_HOMEPAGE, _VERSION, os_name, arch, _BINARY),
        checksum=checksum,
        version=_VERSION,
    )


DEFAULT_MANIFEST = ReleaseManifest(
    name=_BINARY,
    description="A fun CLI-based time/habit tracker",
    homepage=_HOMEPAGE,
    version=_VERSION,
    binary_name=_BINARY,
    artifacts=(
        _declare("macos", "arm64", _PLACEHOLDER),
        _declare("macos", "x86_64", "E0EECC7010E5406AE40E3DF3E9D09E05627FC8FEE288505311C20289EAFF2D06"),
        _declare("linux", "arm64", _PLACEHOLDER),
        _declare("linux", "x86_64", _PLACEHOLDER),
    ),
)


def is_placeholder_checksum(checksum: str) -> bool:
    return bool(checksum) and set(checksum) == {"0"}


def validate_manifest(manifest: ReleaseManifest) -> list[str]:
    """Return human readable problems with the manifest's checksums and coverage."""
    issues: list[str] = []
    by_digest: dict[str, str] = {}

    for artifact in manifest.artifacts:
        where = f"{artifact.os_name}/{artifact.arch}"
        if not _HEX_DIGEST_RE.match(artifact.checksum):
            issues.append(f"{where}: checksum is not a 64-character hex SHA-256 digest")
            continue
        if is_placeholder_checksum(artifact.checksum):
            issues.append(f"{where}: checksum is an all-zero placeholder")
            continue
        digest = artifact.checksum.lower()
        if digest in by_digest:
            issues.append(f"{where}: checksum duplicates {by_digest[digest]}")
        else:
            by_digest[digest] = where

    for os_name in SUPPORTED_OS:
        for arch in SUPPORTED_ARCH:
            if manifest.lookup(os_name, arch) is None:
                issues.append(f"{os_name}/{arch}: no artifact declared")

    return issues


def parse_checksums(text: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for raw in text.splitlines():
        parts = raw.strip().split()
        if len(parts) >= 2:
            out[parts[-1].lstrip("*")] = parts[0]
    return out


def apply_checksums(manifest: ReleaseManifest, checksums_text: str) -> ReleaseManifest:
    """Replace each artifact's digest with the one listed for its asset in checksums.txt."""
    checksums = parse_checksums(checksums_text)
    updated = []
    for artifact in manifest.artifacts:
        digest = checksums.get(artifact.asset_name)
        if digest is None:
            raise ManifestError(f"missing checksum for {artifact.asset_name}")
        updated.append(replace(artifact, checksum=digest))
    return manifest.with_artifacts(updated)


def manifest_from_dict(data: dict[str, Any]) -> ReleaseManifest:
    try:
        version = str(data["version"])
        artifacts = tuple(
            PlatformArtifact(
                os_name=str(item["os"]).lower(),
                arch=str(item["arch"]).lower(),
                url=str(item["url"]),
                checksum=str(item["checksum"]),
                version=str(item.get("version", version)),
            )
            for item in data.get("artifacts", [])
        )
        return ReleaseManifest(
            name=str(data.get("name", _BINARY)),
            description=str(data.get("description", "")),
            homepage=str(data.get("homepage", "")),
            version=version,
            binary_name=str(data.get("binary_name", data.get("name", _BINARY))),
            artifacts=artifacts,
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise ManifestError(f"Malformed manifest: {exc}") from exc


def manifest_to_dict(manifest: ReleaseManifest) -> dict[str, Any]:
    return {
        "name": manifest.name,
        "description": manifest.description,
        "homepage": manifest.homepage,
        "version": manifest.version,
        "binary_name": manifest.binary_name,
        "artifacts": [a.to_dict() for a in manifest.artifacts],
    }


def load_manifest(path: Path | None = None) -> ReleaseManifest:
    if path is None:
        return DEFAULT_MANIFEST
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ManifestError(f"Could not read manifest {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ManifestError(f"Manifest {path} must be a JSON object")
    return manifest_from_dict(raw)
