from __future__ import annotations

import hashlib
import json
import runpy
from pathlib import Path

import lazytrack_bootstrap.__main__ as bootstrap_main
import lazytrack_bootstrap.cli as cli
import lazytrack_bootstrap.service as service
from lazytrack_bootstrap.manifest import DEFAULT_MANIFEST, manifest_to_dict


def _write_manifest(path: Path, linux_x64_digest: str) -> Path:
    data = manifest_to_dict(DEFAULT_MANIFEST)
    for item in data["artifacts"]:
        if (item["os"], item["arch"]) == ("linux", "x86_64"):
            item["checksum"] = linux_x64_digest
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_resolve_prints_selected_artifact(capsys) -> None:
    rc = cli.main(["resolve", "--os", "Darwin", "--arch", "x86_64"])
    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert out["url"].endswith("lazytrack_Darwin_x86_64.tar.gz")
    assert out["os"] == "macos"


def test_resolve_unsupported_platform_exits_one(capsys) -> None:
    rc = cli.main(["resolve", "--os", "Windows", "--arch", "x86_64"])
    assert rc == 1
    assert "windows/x86_64" in capsys.readouterr().err


def test_verify_manifest_flags_placeholders(capsys) -> None:
    rc = cli.main(["verify-manifest"])
    assert rc == 1
    out = json.loads(capsys.readouterr().out)
    assert out["ok"] is False
    assert len(out["issues"]) == 3


def test_install_end_to_end(monkeypatch, tmp_path, capsys, make_archive, shell_script) -> None:
    archive = make_archive({"lazytrack": shell_script(0)})
    manifest = _write_manifest(tmp_path / "manifest.json", hashlib.sha256(archive).hexdigest())
    calls: list[str] = []

    def fake_download_bytes(url, timeout=60, ca_bundle=None):
        calls.append(url)
        return archive

    monkeypatch.setattr(service, "download_bytes", fake_download_bytes)

    rc = cli.main(
        ["install", "--bin-dir", str(tmp_path / "bin"), "--os", "linux", "--arch", "x86_64", "--manifest", str(manifest)]
    )
    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert out["state"] == "Tested"
    assert out["exit_code"] == 0
    assert len(calls) == 1
    assert (tmp_path / "bin" / "lazytrack").exists()


def test_install_checksum_mismatch_exits_one(monkeypatch, tmp_path, capsys, make_archive, shell_script) -> None:
    manifest = _write_manifest(tmp_path / "manifest.json", "ab" * 32)
    monkeypatch.setattr(service, "download_bytes", lambda url, timeout=60, ca_bundle=None: b"tampered")

    rc = cli.main(
        ["install", "--bin-dir", str(tmp_path / "bin"), "--os", "linux", "--arch", "x86_64", "--manifest", str(manifest)]
    )
    assert rc == 1
    err = capsys.readouterr().err
    assert "Checksum mismatch" in err
    assert "ab" * 32 in err


def test_formula_applies_checksums(tmp_path) -> None:
    checksums = tmp_path / "checksums.txt"
    checksums.write_text(
        "".join(f"{hashlib.sha256(a.asset_name.encode()).hexdigest()}  {a.asset_name}\n" for a in DEFAULT_MANIFEST.artifacts),
        encoding="utf-8",
    )
    out = tmp_path / "lazytrack.rb"

    rc = cli.main(["formula", "--checksums", str(checksums), "--out", str(out)])
    assert rc == 0
    text = out.read_text(encoding="utf-8")
    assert "0" * 64 not in text
    assert hashlib.sha256(b"lazytrack_Linux_arm64.tar.gz").hexdigest() in text


def test_formula_missing_checksums_file_exits_one(tmp_path, capsys) -> None:
    rc = cli.main(["formula", "--checksums", str(tmp_path / "absent.txt")])
    assert rc == 1
    err = capsys.readouterr().err
    assert err.startswith("Error:")
    assert "absent.txt" in err


def test_formula_unwritable_out_exits_one(tmp_path, capsys) -> None:
    rc = cli.main(["formula", "--out", str(tmp_path / "missing-dir" / "lazytrack.rb")])
    assert rc == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_config_is_loaded_once_per_invocation(monkeypatch, tmp_path, capsys) -> None:
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"config_version": 2, "network": {"retries": 4}}), encoding="utf-8")
    loaded: list[Path | None] = []
    real_load = cli.load_config

    def counting_load(path=None):
        loaded.append(path)
        return real_load(path)

    monkeypatch.setattr(cli, "load_config", counting_load)

    rc = cli.main(["--config", str(config), "resolve", "--os", "linux", "--arch", "arm64"])
    assert rc == 0
    assert loaded == [config]
    assert json.loads(capsys.readouterr().out)["arch"] == "arm64"


def test_doctor_reports_resolution_error(capsys) -> None:
    rc = cli.main(["doctor", "--os", "Windows", "--arch", "arm64"])
    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert out["resolution"]["ok"] is False
    assert len(out["manifest_issues"]) == 3


def test_check_update_persists_etag(monkeypatch, tmp_path, capsys) -> None:
    from lazytrack_bootstrap.releases import UpdateCheckResult, UpdateService

    def fake_check(self, current_version, etag=None, timeout_s=30):
        return UpdateCheckResult(
            checked_at_utc="2026-01-01T00:00:00+00:00",
            current_version=current_version,
            update_available=True,
            latest_version="1.1.0",
            release_name="1.1.0",
            download_url="https://example/release",
            asset_names=(),
            etag='"new"',
        )

    monkeypatch.setattr(UpdateService, "check", fake_check)
    config = tmp_path / "config.json"

    rc = cli.main(["--config", str(config), "check-update"])
    assert rc == 0
    assert json.loads(capsys.readouterr().out)["latest_version"] == "1.1.0"
    saved = json.loads(config.read_text(encoding="utf-8"))
    assert saved["updates"]["etag"] == '"new"'
    assert saved["updates"]["last_check_utc"]


def test_main_defaults_to_install(monkeypatch) -> None:
    calls: list[list[str]] = []
    monkeypatch.setattr(bootstrap_main, "_cli_main", lambda argv=None: calls.append(list(argv or [])) or 0)

    assert bootstrap_main.main([]) == 0
    assert calls == [["install"]]


def test_main_passes_through_args(monkeypatch) -> None:
    calls: list[list[str]] = []
    monkeypatch.setattr(bootstrap_main, "_cli_main", lambda argv=None: calls.append(list(argv or [])) or 0)

    assert bootstrap_main.main(["resolve", "--os", "linux"]) == 0
    assert calls == [["resolve", "--os", "linux"]]


def test_main_module_runpath_without_package_context() -> None:
    main_path = Path(__file__).resolve().parents[1] / "installers" / "bootstrap" / "lazytrack_bootstrap" / "__main__.py"
    result = runpy.run_path(str(main_path))
    assert "main" in result
