"""
SocialBridge Temporary File Stager
==================================
Re-host a file at a public anonymous host so platform APIs can fetch it.

Exports:
  - stage(source_url, client=None) -> public URL
  - stage_file(source_url, client=None) -> StagedFile

Flow: GET source_url -> multipart POST to the host -> files[0].url
No retry here; the caller decides whether to abort the whole publish.
The host expires files on its own, so there is no cleanup.
"""

import os
import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

from .errors import DownloadError, UploadError
from .models import StagedFile

logger = logging.getLogger("socialbridge")

STAGING_UPLOAD_URL = os.environ.get("STAGING_UPLOAD_URL", "https://uguu.se/upload")
STAGING_TIMEOUT = float(os.environ.get("STAGING_TIMEOUT_SECONDS", "120"))
DEFAULT_FILENAME = "downloaded-file"


def filename_from_url(url: str) -> str:
    """Last path segment of the URL, or DEFAULT_FILENAME."""
    return urlparse(url).path.split("/")[-1] or DEFAULT_FILENAME


async def _download(client: httpx.AsyncClient, source_url: str) -> httpx.Response:
    try:
        resp = await client.get(source_url, follow_redirects=True)
    except httpx.HTTPError as e:
        raise DownloadError(
            f"Failed to download file: {e}",
            details={"source_url": source_url},
        ) from e

    if not resp.is_success:
        raise DownloadError(
            f"Failed to download file: {resp.reason_phrase}",
            details={"source_url": source_url, "http_status": resp.status_code},
        )
    return resp


async def _upload(client: httpx.AsyncClient, filename: str, payload: bytes, content_type: str) -> str:
    try:
        resp = await client.post(
            STAGING_UPLOAD_URL,
            files={"files[]": (filename, payload, content_type)},
        )
    except httpx.HTTPError as e:
        raise UploadError(f"Upload failed: {e}", details={"filename": filename}) from e

    if not resp.is_success:
        raise UploadError(
            f"Upload failed: {resp.reason_phrase}",
            details={"filename": filename, "http_status": resp.status_code, "body": resp.text[:300]},
        )

    try:
        data = resp.json()
    except ValueError as e:
        raise UploadError(
            "Upload host returned an unreadable response",
            details={"filename": filename, "body": resp.text[:300]},
        ) from e

    if not isinstance(data, dict):
        data = {}
    files = data.get("files") or []
    first = files[0] if files and isinstance(files[0], dict) else {}
    url = first.get("url")
    if not data.get("success") or not url:
        raise UploadError(
            "Upload successful but no URL returned",
            details={"filename": filename, "body": resp.text[:300]},
        )
    return url


async def stage(source_url: str, client: Optional[httpx.AsyncClient] = None) -> str:
    """
    Download source_url and re-upload it to the public host.

    Args:
        source_url: Where the file lives now (may be private or short-lived).
        client: Optional shared AsyncClient; one is created if omitted.

    Returns:
        The public URL assigned by the host.

    Raises:
        DownloadError: source fetch failed or was non-2xx.
        UploadError: host was non-2xx, reported failure, or returned no files.
    """
    if client is None:
        async with httpx.AsyncClient(timeout=STAGING_TIMEOUT) as own_client:
            return await stage(source_url, client=own_client)

    filename = filename_from_url(source_url)
    logger.info(f"Staging: {source_url} -> {STAGING_UPLOAD_URL} as {filename}")

    source = await _download(client, source_url)
    content_type = source.headers.get("content-type", "application/octet-stream")
    public_url = await _upload(client, filename, source.content, content_type)

    logger.info(f"Staging complete: {public_url} ({len(source.content)} bytes)")
    return public_url


async def stage_file(source_url: str, client: Optional[httpx.AsyncClient] = None) -> StagedFile:
    return StagedFile(public_url=await stage(source_url, client=client))
