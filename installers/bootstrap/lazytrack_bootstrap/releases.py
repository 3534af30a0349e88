"""Check GitHub Releases for a version newer than the pinned manifest."""

from __future__ import annotations

import http.client
import json
import urllib.error
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from lazytrack_core.config import DEFAULT_REPO

from . import service
from .errors import DownloadError


@dataclass(frozen=True)
class UpdateCheckResult:
    checked_at_utc: str
    current_version: str
    update_available: bool
    latest_version: str | None
    release_name: str | None
    download_url: str | None
    asset_names: tuple[str, ...]
    etag: str | None
    not_modified: bool = False


def extract_version(tag_name: str | None) -> str | None:
    if not tag_name:
        return None
    return tag_name[1:] if tag_name.startswith("v") else tag_name


def _parts(version: str) -> tuple[int, ...]:
    out = []
    for p in version.replace("-", ".").split("."):
        try:
            out.append(int(p))
        except ValueError:
            out.append(0)
    return tuple(out)


def is_newer(current_version: str, latest_version: str | None) -> bool:
    if not latest_version or current_version == latest_version:
        return False
    return _parts(latest_version) > _parts(current_version)


class UpdateService:
    def __init__(self, repo: str = DEFAULT_REPO, ca_bundle: str | None = None) -> None:
        self.repo = repo
        self.ca_bundle = ca_bundle

    def _fetch_latest(self, etag: str | None, timeout_s: float) -> tuple[dict[str, Any] | None, str | None]:
        url = f"https://api.github.com/repos/{self.repo}/releases/latest"
        headers = {"If-None-Match": etag} if etag else None
        try:
            with service._urlopen(
                url,
                timeout=timeout_s,
                accept="application/vnd.github+json",
                ca_bundle=self.ca_bundle,
                headers=headers,
            ) as resp:
                body = resp.read()
                resp_etag = resp.headers.get("ETag")
        except urllib.error.HTTPError as exc:
            if exc.code == 304:
                return None, etag
            raise DownloadError(f"HTTP {exc.code} checking {url}", url=url, retryable=False) from exc
        except urllib.error.URLError as exc:
            raise DownloadError(f"Network error checking {url}: {exc.reason}", url=url) from exc
        except (TimeoutError, http.client.HTTPException, OSError) as exc:
            raise DownloadError(f"Transfer of {url} failed: {exc}", url=url) from exc

        try:
            payload = json.loads(body.decode("utf-8"))
        except ValueError as exc:
            raise DownloadError(f"Malformed release payload from {url}: {exc}", url=url, retryable=False) from exc
        if not isinstance(payload, dict):
            raise DownloadError(f"Malformed release payload from {url}: expected a JSON object", url=url, retryable=False)
        return payload, resp_etag

    def check(self, current_version: str, etag: str | None = None, timeout_s: float = 30) -> UpdateCheckResult:
        checked = datetime.now(timezone.utc).isoformat()
        payload, resp_etag = self._fetch_latest(etag, timeout_s)

        if payload is None:
            return UpdateCheckResult(
                checked_at_utc=checked,
                current_version=current_version,
                update_available=False,
                latest_version=None,
                release_name=None,
                download_url=None,
                asset_names=(),
                etag=resp_etag,
                not_modified=True,
            )

        tag = payload.get("tag_name")
        latest = extract_version(tag if isinstance(tag, str) else None)
        return UpdateCheckResult(
            checked_at_utc=checked,
            current_version=current_version,
            update_available=is_newer(current_version, latest),
            latest_version=latest,
            release_name=payload.get("name"),
            download_url=payload.get("html_url"),
            asset_names=tuple(a.get("name", "") for a in payload.get("assets") or [] if isinstance(a, dict)),
            etag=resp_etag,
        )
