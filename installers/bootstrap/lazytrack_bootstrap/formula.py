"""Render the Homebrew formula for a release manifest."""

from __future__ import annotations

from .errors import ManifestError
from .manifest import SUPPORTED_ARCH, SUPPORTED_OS, ReleaseManifest


def formula_class_name(name: str) -> str:
    return "".join(part.capitalize() for part in name.replace("_", "-").split("-") if part)


def _branch(manifest: ReleaseManifest, os_name: str) -> str:
    arm = manifest.lookup(os_name, "arm64")
    intel = manifest.lookup(os_name, "x86_64")
    return f"""    if Hardware::CPU.arm?
      url "{arm.url}"
      sha256 "{arm.checksum}"
    else
      url "{intel.url}"
      sha256 "{intel.checksum}"
    end"""


def render_formula(manifest: ReleaseManifest) -> str:
    missing = [
        f"{os_name}/{arch}"
        for os_name in SUPPORTED_OS
        for arch in SUPPORTED_ARCH
        if manifest.lookup(os_name, arch) is None
    ]
    if missing:
        raise ManifestError(f"missing artifacts for {', '.join(missing)}")

    binary = manifest.binary_name
    return f"""class {formula_class_name(manifest.name)} < Formula
  desc "{manifest.description}"
  homepage "{manifest.homepage}"
  version "{manifest.version}"

  on_macos do
{_branch(manifest, "macos")}
  end

  on_linux do
{_branch(manifest, "linux")}
  end

  def install
    bin.install "{binary}"
  end

  test do
    system "#{{bin}}/{binary}", "--help"
  end
end
"""
