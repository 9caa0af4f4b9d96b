"""
SocialBridge Instagram Peek
===========================
Browse a user's posts, or one post by shortcode, through the private API.

Raw media_type codes: 1 = IMAGE, 2 = VIDEO, 8 = CAROUSEL_ALBUM. Feed items
with any other code are skipped; peek_post refuses them.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from .errors import UnsupportedMediaTypeError, ValidationError
from .instagram_session import InstagramSession
from .models import ChildMediaItem, MediaItem

logger = logging.getLogger("socialbridge")

MEDIA_TYPES = {1: "IMAGE", 2: "VIDEO", 8: "CAROUSEL_ALBUM"}
PERMALINK = "https://www.instagram.com/p/{code}/"


def _first_image_url(item: dict) -> Optional[str]:
    candidates = (item.get("image_versions2") or {}).get("candidates") or []
    return candidates[0].get("url") if candidates else None


def _media_url(item: dict, media_type: str) -> Optional[str]:
    versions = item.get("video_versions") or []
    if media_type == "VIDEO" and versions:
        return versions[0].get("url")
    return _first_image_url(item)


def to_media_item(item: dict) -> Optional[MediaItem]:
    """Map a raw feed/media-info item, or None for unsupported media types."""
    media_type = MEDIA_TYPES.get(item.get("media_type"))
    if media_type is None:
        return None

    children = None
    if media_type == "CAROUSEL_ALBUM" and item.get("carousel_media"):
        children = []
        for child in item["carousel_media"]:
            child_type = "IMAGE" if child.get("media_type") == 1 else "VIDEO"
            children.append(ChildMediaItem(
                id=str(child.get("id", "")),
                media_type=child_type,
                media_url=_media_url(child, child_type),
                thumbnail_url=_first_image_url(child),
            ))

    taken_at = datetime.fromtimestamp(int(item.get("taken_at", 0)), tz=timezone.utc)
    return MediaItem(
        id=str(item.get("id", "")),
        media_type=media_type,
        media_url=_media_url(item, media_type),
        permalink=PERMALINK.format(code=item.get("code", "")),
        thumbnail_url=_first_image_url(item),
        timestamp=taken_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        username=(item.get("user") or {}).get("username", ""),
        caption=(item.get("caption") or {}).get("text") or "",
        children=children,
        likes=item.get("like_count") or 0,
        comments=item.get("comment_count") or 0,
    )


def apply_filter(items: List[MediaItem], filter: str) -> List[MediaItem]:
    if filter == "photos":
        return [m for m in items if m.media_type in ("IMAGE", "CAROUSEL_ALBUM")]
    if filter == "videos":
        return [m for m in items if m.media_type == "VIDEO"]
    return items


async def peek(session: InstagramSession, username: str, filter: str = "all", limit: int = 0) -> List[MediaItem]:
    """
    Page through username's feed.

    Stops once `limit` matching items are collected (limit <= 0 reads every
    page). The result is truncated to `limit` when limit > 0.
    """
    if not username:
        raise ValidationError("username is required")

    user_id = await session.run("user_id_from_username", username)
    collected: List[MediaItem] = []
    max_id = ""

    while True:
        params = {"max_id": max_id} if max_id else {}
        page = await session.run("private_request", f"feed/user/{user_id}/", params=params)

        items = [m for m in (to_media_item(i) for i in page.get("items") or []) if m is not None]
        collected.extend(apply_filter(items, filter))

        if limit > 0 and len(collected) >= limit:
            break
        max_id = page.get("next_max_id") or ""
        if not page.get("more_available") or not max_id:
            break

    logger.info(f"Instagram: Peeked {len(collected)} item(s) from @{username} (filter={filter})")
    return collected[:limit] if limit > 0 else collected


async def peek_post(session: InstagramSession, shortcode: str) -> MediaItem:
    """Look up one post by the shortcode from its /p/<shortcode>/ URL."""
    media_pk = await session.run("media_pk_from_code", shortcode)
    info = await session.run("private_request", f"media/{media_pk}/info/")
    item = (info.get("items") or [{}])[0]

    media_item = to_media_item(item)
    if media_item is None:
        raise UnsupportedMediaTypeError(
            f"Unsupported media type: {item.get('media_type')}",
            details={"shortcode": shortcode, "media_type": item.get("media_type")},
        )
    return media_item
