"""
SocialBridge X Publisher
========================
Post a tweet, optionally with one media attachment.

Flow:
  1. Validate text / media URL (no network)
  2. GET media_url, enforce size ceilings from content-length
  3. POST binary to the v1.1 upload endpoint (OAuth 1.0a) -> media_id_string
  4. POST {text, media.media_ids} to the v2 tweets endpoint (OAuth 1.0a)

Media upload only exists on v1.1; tweet creation uses v2. Single attempt end
to end, callers retry the whole operation.
"""

import os
import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import (
    MediaFetchError,
    MediaSizeLimitError,
    MediaUploadError,
    TweetCreateError,
    ValidationError,
    XAuthenticationError,
    XRateLimitError,
)
from .models import TWEET_MAX_CHARS, TweetRequest, TweetResult, UploadedMediaHandle
from .oauth1 import OAuth1Signer

logger = logging.getLogger("socialbridge")

X_MEDIA_UPLOAD_URL = "https://upload.twitter.com/1.1/media/upload.json"
X_TWEET_URL = "https://api.twitter.com/2/tweets"
X_STATUS_URL = "https://twitter.com/i/web/status/{id}"
X_TIMEOUT = float(os.environ.get("X_TIMEOUT_SECONDS", "120"))

DEFAULT_MEDIA_CONTENT_TYPE = "image/jpeg"

# Size ceilings per media kind, in MB
IMAGE_LIMIT_MB = 5
GIF_LIMIT_MB = 15
VIDEO_LIMIT_MB = 512


def _utf16_length(text: str) -> int:
    """Length in UTF-16 code units; characters outside the BMP count twice."""
    return len(text.encode("utf-16-le")) // 2


def validate_tweet(text: Any, media_url: Any = None) -> TweetRequest:
    if not text or not isinstance(text, str):
        raise ValidationError("Text is required and must be a string")
    if _utf16_length(text) > TWEET_MAX_CHARS:
        raise ValidationError(f"Text must be {TWEET_MAX_CHARS} characters or less")
    if media_url is not None and not isinstance(media_url, str):
        raise ValidationError("Media URL must be a string")
    return TweetRequest(text=text, media_url=media_url or None)


def check_media_size(content_type: str, content_length: Optional[str]) -> None:
    """
    Enforce X's per-kind ceilings. Best-effort: skipped when the source
    does not report a usable content-length.
    """
    if not content_length:
        return
    try:
        size = int(content_length)
    except ValueError:
        logger.warning(f"X: Ignoring unparsable content-length {content_length!r}")
        return
    size_mb = size / (1024 * 1024)

    if "gif" in content_type:
        kind, limit = "gif", GIF_LIMIT_MB
    elif content_type.startswith("image/"):
        kind, limit = "image", IMAGE_LIMIT_MB
    elif content_type.startswith("video/"):
        kind, limit = "video", VIDEO_LIMIT_MB
    else:
        return

    if size_mb > limit:
        raise MediaSizeLimitError(kind, limit, size)


def _response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return (resp.text or "")[:1000]


def _raise_for_x_status(resp: httpx.Response, step: str) -> None:
    """Map auth and rate-limit rejections before the step-specific error."""
    body = _response_body(resp)
    details = {"step": step, "http_status": resp.status_code, "body": body}
    if resp.status_code in (401, 403):
        raise XAuthenticationError(f"X API authentication failed during {step}", details=details)
    if resp.status_code == 429:
        raise XRateLimitError(f"X API rate limit exceeded during {step}", details=details)


class TweetComposer:
    """Posts tweets for one set of OAuth 1.0a credentials."""

    def __init__(self, signer: OAuth1Signer, client: Optional[httpx.AsyncClient] = None):
        self.signer = signer
        self.client = client

    async def post(self, request: TweetRequest) -> TweetResult:
        if self.client is None:
            async with httpx.AsyncClient(timeout=X_TIMEOUT) as client:
                return await self._post(client, request)
        return await self._post(self.client, request)

    async def _post(self, client: httpx.AsyncClient, request: TweetRequest) -> TweetResult:
        media_ids: List[str] = []
        if request.media_url:
            handle = await self.upload_media(client, request.media_url)
            media_ids.append(handle.media_id)
        else:
            logger.info("X: No media URL provided, posting text-only tweet")

        payload: Dict[str, Any] = {"text": request.text}
        if media_ids:
            payload["media"] = {"media_ids": media_ids}

        resp = await client.post(
            X_TWEET_URL,
            headers={"Authorization": self.signer.sign("POST", X_TWEET_URL)},
            json=payload,
        )
        if not resp.is_success:
            _raise_for_x_status(resp, "tweet create")
            body = _response_body(resp)
            logger.error(f"X: Tweet posting failed: {resp.status_code} {body}")
            raise TweetCreateError(
                f"Tweet posting failed: {resp.status_code} {resp.reason_phrase}",
                details={"http_status": resp.status_code, "body": body},
            )

        data = resp.json()["data"]
        result = TweetResult(id=data["id"], text=data["text"], url=X_STATUS_URL.format(id=data["id"]))
        logger.info(f"X publish accepted: tweet_id={result.id}, media={len(media_ids)}")
        return result

    async def upload_media(self, client: httpx.AsyncClient, media_url: str) -> UploadedMediaHandle:
        logger.info(f"X: Downloading media from {media_url}")
        try:
            media_resp = await client.get(media_url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise MediaFetchError(f"Failed to fetch media from URL: {e}", details={"media_url": media_url}) from e

        if not media_resp.is_success:
            raise MediaFetchError(
                f"Failed to fetch media from URL: {media_resp.reason_phrase}",
                details={"media_url": media_url, "http_status": media_resp.status_code},
            )

        content_type = media_resp.headers.get("content-type") or DEFAULT_MEDIA_CONTENT_TYPE
        check_media_size(content_type, media_resp.headers.get("content-length"))

        content = media_resp.content
        logger.info(f"X: Uploading media ({len(content)} bytes, {content_type})")
        resp = await client.post(
            X_MEDIA_UPLOAD_URL,
            headers={"Authorization": self.signer.sign("POST", X_MEDIA_UPLOAD_URL)},
            files={"media": ("media", content, content_type)},
        )
        if not resp.is_success:
            _raise_for_x_status(resp, "media upload")
            body = _response_body(resp)
            logger.error(f"X: Media upload failed: {resp.status_code} {body}")
            raise MediaUploadError(
                f"v1.1 Media upload failed: {resp.status_code} {resp.reason_phrase}",
                details={"http_status": resp.status_code, "body": body},
            )

        result = resp.json()
        media_id = result.get("media_id_string") or result.get("media_id")
        if not media_id:
            raise MediaUploadError(
                "Media upload succeeded but no media_id returned",
                details={"fields": sorted(result.keys())},
            )
        logger.info(f"X: Media uploaded, media_id={media_id}")
        return UploadedMediaHandle(media_id=str(media_id))


async def post_tweet(
    text: Any,
    media_url: Any = None,
    signer: Optional[OAuth1Signer] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> TweetResult:
    """
    Validate, sign and post one tweet.

    Raises ValidationError or CredentialsMissingError before any network call.
    """
    request = validate_tweet(text, media_url)
    signer = signer or OAuth1Signer.from_env()
    return await TweetComposer(signer, client=client).post(request)
