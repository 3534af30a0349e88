"""CLI entrypoints for installing lazytrack and maintaining its release manifest."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

from lazytrack_core import (
    build_doctor_payload,
    configure_logging,
    get_logger,
    load_config,
    resolve_bin_dir,
    save_config,
    touch_update_check,
)
from lazytrack_core.config import AppConfig

from .errors import InstallError, ManifestError
from .formula import render_formula
from .manifest import ReleaseManifest, apply_checksums, load_manifest, validate_manifest
from .pipeline import InstallOptions, Installer
from .releases import UpdateService
from .resolver import detect_target, resolve_artifact


logger = get_logger("cli")


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _config_path(args: argparse.Namespace) -> Path | None:
    return Path(args.config).expanduser() if args.config else None


def _manifest(args: argparse.Namespace, cfg: AppConfig) -> ReleaseManifest:
    path = getattr(args, "manifest", None) or cfg.install.manifest_path
    return load_manifest(Path(path).expanduser() if path else None)


def _platform(args: argparse.Namespace) -> tuple[str, str]:
    detected = detect_target()
    return (args.os or detected.os_name, args.arch or detected.arch)


def cmd_install(args: argparse.Namespace) -> int:
    cfg = args.cfg
    manifest = _manifest(args, cfg)
    options = InstallOptions.from_config(cfg)
    if args.allow_placeholder_checksums:
        options.allow_placeholder_checksums = True

    bin_dir = Path(args.bin_dir).expanduser() if args.bin_dir else resolve_bin_dir(cfg)
    os_name, arch = _platform(args)

    installer = Installer(
        manifest=manifest,
        options=options,
        progress=(lambda msg: print(msg, file=sys.stderr)) if args.verbose else None,
    )
    result = installer.run(bin_dir, os_name=os_name, arch=arch)
    _print_json(result.to_dict())
    return 0


def cmd_resolve(args: argparse.Namespace) -> int:
    cfg = args.cfg
    manifest = _manifest(args, cfg)
    os_name, arch = _platform(args)
    artifact = resolve_artifact(os_name, arch, manifest)
    _print_json(artifact.to_dict())
    return 0


def cmd_verify_manifest(args: argparse.Namespace) -> int:
    cfg = args.cfg
    manifest = _manifest(args, cfg)
    issues = validate_manifest(manifest)
    _print_json({"version": manifest.version, "ok": not issues, "issues": issues})
    return 0 if not issues else 1


def cmd_formula(args: argparse.Namespace) -> int:
    cfg = args.cfg
    manifest = _manifest(args, cfg)
    if args.checksums:
        try:
            checksums = Path(args.checksums).read_text(encoding="utf-8")
        except OSError as exc:
            raise ManifestError(f"Could not read checksums file {args.checksums}: {exc}") from exc
        manifest = apply_checksums(manifest, checksums)

    text = render_formula(manifest)
    if args.out:
        try:
            Path(args.out).write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ManifestError(f"Could not write formula to {args.out}: {exc}") from exc
    else:
        sys.stdout.write(text)
    return 0


def cmd_check_update(args: argparse.Namespace) -> int:
    cfg = args.cfg
    manifest = _manifest(args, cfg)
    service = UpdateService(repo=args.repo or cfg.updates.repo, ca_bundle=cfg.network.ca_bundle)

    result = service.check(
        current_version=manifest.version,
        etag=(None if args.ignore_etag else cfg.updates.etag),
        timeout_s=cfg.network.timeout_s,
    )

    cfg.updates.etag = result.etag or cfg.updates.etag
    touch_update_check(cfg)
    save_config(cfg, _config_path(args))

    _print_json(asdict(result))
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = args.cfg
    manifest = _manifest(args, cfg)
    os_name, arch = _platform(args)
    try:
        resolution = {"ok": True, "artifact": resolve_artifact(os_name, arch, manifest).to_dict()}
    except InstallError as exc:
        resolution = {"ok": False, "error": str(exc), "os": os_name, "arch": arch}

    _print_json(build_doctor_payload(cfg, resolution=resolution, manifest_issues=validate_manifest(manifest)))
    return 0


def _add_manifest_arg(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--manifest", default=None, help="JSON release manifest overriding the built-in table")


def _add_platform_args(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--os", default=None, help="Override detected operating system (macos, linux)")
    cmd.add_argument("--arch", default=None, help="Override detected CPU architecture (arm64, x86_64)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lazytrack-installer", description="Install prebuilt lazytrack binaries")
    parser.add_argument("--config", default=None, help="Path to installer config.json")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print progress and log to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    install_cmd = sub.add_parser("install", help="Download, verify, install and smoke test lazytrack")
    install_cmd.add_argument("--bin-dir", default=None, help="Directory to place the binary in")
    install_cmd.add_argument(
        "--allow-placeholder-checksums",
        action="store_true",
        help="Permit artifacts whose declared checksum is an all-zero placeholder",
    )
    _add_platform_args(install_cmd)
    _add_manifest_arg(install_cmd)
    install_cmd.set_defaults(func=cmd_install)

    resolve_cmd = sub.add_parser("resolve", help="Show the artifact selected for a platform")
    _add_platform_args(resolve_cmd)
    _add_manifest_arg(resolve_cmd)
    resolve_cmd.set_defaults(func=cmd_resolve)

    verify_cmd = sub.add_parser("verify-manifest", help="Check manifest checksums and platform coverage")
    _add_manifest_arg(verify_cmd)
    verify_cmd.set_defaults(func=cmd_verify_manifest)

    formula_cmd = sub.add_parser("formula", help="Render the Homebrew formula")
    formula_cmd.add_argument("--checksums", default=None, help="checksums.txt whose digests replace the manifest's")
    formula_cmd.add_argument("--out", default=None, help="Write formula to this path instead of stdout")
    _add_manifest_arg(formula_cmd)
    formula_cmd.set_defaults(func=cmd_formula)

    update_cmd = sub.add_parser("check-update", help="Check GitHub for a newer lazytrack release")
    update_cmd.add_argument("--repo", default=None, help="GitHub owner/repo")
    update_cmd.add_argument("--ignore-etag", action="store_true")
    _add_manifest_arg(update_cmd)
    update_cmd.set_defaults(func=cmd_check_update)

    doctor_cmd = sub.add_parser("doctor", help="Print platform, resolution and config diagnostics")
    _add_platform_args(doctor_cmd)
    _add_manifest_arg(doctor_cmd)
    doctor_cmd.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = load_config(_config_path(args))
    args.cfg = cfg
    configure_logging(
        keep_files=cfg.logging.keep_files,
        console=cfg.logging.console or args.verbose,
        level=cfg.logging.level,
    )

    try:
        return int(args.func(args))
    except InstallError as exc:
        logger.error(str(exc), extra={"event": "command_failed"})
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
