"""Download, verification, extraction and smoke-test steps shared by installer front ends."""

from __future__ import annotations

import hashlib
import hmac
import http.client
import io
import os
import ssl
import subprocess
import tarfile
import tempfile
import time
import urllib.error
import urllib.request
import zlib
from pathlib import Path, PurePosixPath
from typing import Callable

import certifi

from lazytrack_core.logging_setup import get_logger

from .errors import ChecksumMismatchError, DownloadError, ExtractionError, SmokeTestError
from .manifest import PlatformArtifact


USER_AGENT = "LazyTrackInstaller/1.0 (+https://github.com/master-wayne7/lazytrack)"
_FATAL_HTTP_CODES = (401, 403, 404, 410)

ProgressCallback = Callable[[str], None]

logger = get_logger("service")


def _build_ssl_context(ca_bundle: str | None = None) -> ssl.SSLContext:
    """Create TLS context for artifact downloads with explicit CA handling."""
    if os.environ.get("LAZYTRACK_ALLOW_INSECURE_TLS", "").strip() == "1":
        return ssl._create_unverified_context()

    env_bundle = os.environ.get("LAZYTRACK_CA_BUNDLE", "").strip()
    if env_bundle:
        return ssl.create_default_context(cafile=env_bundle)

    if ca_bundle:
        return ssl.create_default_context(cafile=ca_bundle)

    return ssl.create_default_context(cafile=certifi.where())


def _urlopen(url: str, timeout: float, accept: str = "*/*", ca_bundle: str | None = None, headers: dict | None = None):
    request = urllib.request.Request(
        url,
        headers={"User-Agent": USER_AGENT, "Accept": accept, **(headers or {})},
    )
    return urllib.request.urlopen(request, timeout=timeout, context=_build_ssl_context(ca_bundle))


def download_bytes(url: str, timeout: float = 60, ca_bundle: str | None = None) -> bytes:
    try:
        with _urlopen(url, timeout=timeout, ca_bundle=ca_bundle) as response:
            return response.read()
    except urllib.error.HTTPError as exc:
        raise DownloadError(
            f"HTTP {exc.code} fetching {url}: {exc.reason}",
            url=url,
            retryable=exc.code not in _FATAL_HTTP_CODES,
        ) from exc
    except urllib.error.URLError as exc:
        raise DownloadError(f"Network error fetching {url}: {exc.reason}", url=url) from exc
    except (TimeoutError, http.client.HTTPException, OSError) as exc:
        raise DownloadError(f"Transfer of {url} failed: {exc}", url=url) from exc


def download_with_retry(
    url: str,
    *,
    timeout: float = 60,
    attempts: int = 3,
    backoff_s: float = 2.0,
    ca_bundle: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bytes:
    """Download ``url``, retrying transport failures with exponential backoff.

    Only :class:`DownloadError` is retried, and not when the server answered
    with a status that will not change on retry (404 and friends).
    """
    attempts = max(1, attempts)
    last_error: DownloadError | None = None

    for attempt in range(1, attempts + 1):
        logger.info(
            f"downloading {url} (attempt {attempt}/{attempts})",
            extra={"event": "download_attempt", "url": url, "attempt": attempt},
        )
        try:
            return download_bytes(url, timeout=timeout, ca_bundle=ca_bundle)
        except DownloadError as exc:
            last_error = exc
            if not exc.retryable:
                exc.attempts = attempt
                raise
            logger.warning(str(exc), extra={"event": "download_failed", "url": url, "attempt": attempt})

        if attempt < attempts:
            delay = backoff_s * (2 ** (attempt - 1))
            if delay > 0:
                sleep(delay)

    raise DownloadError(
        f"Failed to download {url} after {attempts} attempts",
        url=url,
        attempts=attempts,
    ) from last_error


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def verify_checksum(data: bytes, expected: str, url: str = "") -> str:
    actual = sha256_bytes(data)
    wanted = expected.strip().lower()
    if not hmac.compare_digest(actual.encode("ascii"), wanted.encode("utf-8")):
        raise ChecksumMismatchError(url=url, expected=wanted, actual=actual)
    logger.info(f"checksum verified for {url or 'payload'}", extra={"event": "checksum_verified", "url": url})
    return actual


def fetch_and_verify(
    artifact: PlatformArtifact,
    *,
    timeout: float = 60,
    attempts: int = 3,
    backoff_s: float = 2.0,
    ca_bundle: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bytes:
    data = download_with_retry(
        artifact.url,
        timeout=timeout,
        attempts=attempts,
        backoff_s=backoff_s,
        ca_bundle=ca_bundle,
        sleep=sleep,
    )
    verify_checksum(data, artifact.checksum, url=artifact.url)
    return data


def _read_binary_member(archive: bytes, binary_name: str) -> bytes:
    try:
        with tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz") as tf:
            candidates = [
                m for m in tf.getmembers() if m.isfile() and PurePosixPath(m.name).name == binary_name
            ]
            if not candidates:
                raise ExtractionError(f"Binary {binary_name!r} not found in archive")
            if len(candidates) > 1:
                names = ", ".join(m.name for m in candidates)
                raise ExtractionError(f"Archive contains more than one {binary_name!r}: {names}")
            fh = tf.extractfile(candidates[0])
            if fh is None:
                raise ExtractionError(f"Archive entry {candidates[0].name!r} is not readable")
            return fh.read()
    except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
        raise ExtractionError(f"Malformed archive: {exc}") from exc


def install_binary(archive: bytes, target_dir: Path, binary_name: str) -> Path:
    """Extract ``binary_name`` from a gzip tarball and place it in ``target_dir``.

    The file is written next to its destination and renamed over it, so the
    target path never holds a partially written binary.
    """
    payload = _read_binary_member(archive, binary_name)

    target_dir = Path(target_dir)
    dest = target_dir / binary_name

    tmp_path: Path | None = None
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{binary_name}-", suffix=".tmp", dir=str(target_dir))
        tmp_path = Path(tmp_name)
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
        tmp_path.chmod(0o755)
        os.replace(tmp_path, dest)
    except OSError as exc:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        raise ExtractionError(f"Could not place {binary_name} in {target_dir}: {exc}") from exc

    logger.info(f"installed {dest}", extra={"event": "binary_installed", "path": str(dest)})
    return dest


def smoke_test(installed_path: Path, timeout: float = 30) -> bool:
    """Run ``<installed_path> --help``; only the exit status is inspected."""
    try:
        completed = subprocess.run(
            [str(installed_path), "--help"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise SmokeTestError(installed_path, None, f"timed out after {timeout}s") from exc
    except OSError as exc:
        raise SmokeTestError(installed_path, None, f"could not execute: {exc}") from exc

    if completed.returncode != 0:
        raise SmokeTestError(installed_path, completed.returncode)

    logger.info(
        f"smoke test passed for {installed_path}",
        extra={"event": "smoke_test_passed", "path": str(installed_path), "exit_code": 0},
    )
    return True
