from __future__ import annotations

import io
import sys
import tarfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "installers" / "bootstrap"))
sys.path.insert(0, str(ROOT / "packages" / "core"))


def build_archive(entries: dict[str, bytes], mode: int = 0o755) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, payload in entries.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(payload)
            info.mode = mode
            tf.addfile(info, io.BytesIO(payload))
    return buf.getvalue()


def script(exit_code: int) -> bytes:
    return f"#!/bin/sh\nexit {exit_code}\n".encode("utf-8")


@pytest.fixture
def make_archive():
    return build_archive


@pytest.fixture
def shell_script():
    return script


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.delenv("LAZYTRACK_BIN_DIR", raising=False)
    monkeypatch.delenv("LAZYTRACK_CA_BUNDLE", raising=False)
    monkeypatch.delenv("LAZYTRACK_ALLOW_INSECURE_TLS", raising=False)
    return home
