"""
SocialBridge Instagram Direct Messages
======================================
Read the account's direct inbox and decode each item into a typed message.

Every inbox item carries an item_type. Each known type has one decoder that
returns its own message class; unknown types, and known types missing their
payload, decode to UnsupportedMessage. Nothing is passed through as a raw blob.
"""

import os
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional

from .instagram_session import InstagramSession
from .models import DirectThread

logger = logging.getLogger("socialbridge")

IG_INBOX_ENDPOINT = "direct_v2/inbox/"
IG_ALLOWED_USERS = os.environ.get("IG_ALLOWED_USERS", "")


def allowed_users_from_env() -> List[str]:
    return [u.strip() for u in IG_ALLOWED_USERS.split(",") if u.strip()]


# =====================================================================
# Message kinds
# =====================================================================

@dataclass
class DirectMessage:
    item_id: str
    sender_id: str
    timestamp: str
    sender: str = ""

    type: ClassVar[str] = ""

    @property
    def kind(self) -> str:
        return self.type

    def content(self) -> Any:
        raise NotImplementedError

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "content": self.content(),
            "senderId": self.sender_id,
            "sender": self.sender,
            "timestamp": self.timestamp,
            "media_id": self.item_id,
        }


@dataclass
class TextMessage(DirectMessage):
    text: str = ""
    type: ClassVar[str] = "text"

    def content(self):
        return self.text


@dataclass
class MediaShareMessage(DirectMessage):
    caption: str = ""
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    username: str = ""
    type: ClassVar[str] = "media_share"

    def content(self):
        return {
            "caption": self.caption,
            "media_url": self.media_url,
            "thumbnail_url": self.thumbnail_url,
            "username": self.username,
        }


@dataclass
class SharedChild:
    media_url: Optional[str]
    thumbnail_url: Optional[str]
    type: str  # video | image


@dataclass
class CarouselShareMessage(DirectMessage):
    caption: str = ""
    children: List[SharedChild] = field(default_factory=list)
    username: str = ""
    type: ClassVar[str] = "carousel_share"

    def content(self):
        return {
            "caption": self.caption,
            "children": [
                {"media_url": c.media_url, "thumbnail_url": c.thumbnail_url, "type": c.type}
                for c in self.children
            ],
            "username": self.username,
        }


@dataclass
class MediaMessage(DirectMessage):
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    type: ClassVar[str] = "media"

    def content(self):
        return {"media_url": self.media_url, "thumbnail_url": self.thumbnail_url}


@dataclass
class ClipMessage(DirectMessage):
    """A reel sent in a thread."""
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    caption: str = ""
    type: ClassVar[str] = "clip"

    def content(self):
        return {"media_url": self.media_url, "thumbnail_url": self.thumbnail_url, "caption": self.caption}


@dataclass
class LinkMessage(DirectMessage):
    text: str = ""
    url: Optional[str] = None
    type: ClassVar[str] = "link"

    def content(self):
        return {"text": self.text, "url": self.url}


@dataclass
class LikeMessage(DirectMessage):
    type: ClassVar[str] = "like"

    def content(self):
        return "❤️"


@dataclass
class StoryShareMessage(DirectMessage):
    text: Optional[str] = None
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    type: ClassVar[str] = "story_share"

    def content(self):
        return {"text": self.text, "media_url": self.media_url, "thumbnail_url": self.thumbnail_url}


@dataclass
class StoryUnavailableMessage(DirectMessage):
    username: str = ""
    type: ClassVar[str] = "story_share"

    def content(self):
        return f"Story by {self.username} is unavailable."


@dataclass
class VoiceMessage(DirectMessage):
    audio_url: Optional[str] = None
    duration: Optional[int] = None
    type: ClassVar[str] = "voice_media"

    def content(self):
        return {"audio_url": self.audio_url, "duration": self.duration}


@dataclass
class PlaceholderMessage(DirectMessage):
    message: str = ""
    type: ClassVar[str] = "placeholder"

    def content(self):
        return self.message


@dataclass
class UnsupportedMessage(DirectMessage):
    item_type: str = ""

    @property
    def kind(self) -> str:
        return self.item_type

    def content(self):
        return f"Unsupported message type: {self.item_type}"


# =====================================================================
# Decoders
# =====================================================================

def _first_video_url(media: dict) -> Optional[str]:
    versions = media.get("video_versions") or []
    return versions[0].get("url") if versions else None


def _first_image_url(media: dict) -> Optional[str]:
    candidates = (media.get("image_versions2") or {}).get("candidates") or []
    return candidates[0].get("url") if candidates else None


def _best_url(media: dict) -> Optional[str]:
    return _first_video_url(media) or _first_image_url(media)


def _caption_text(media: dict) -> str:
    return (media.get("caption") or {}).get("text") or ""


def _decode_text(item: dict, base: dict) -> DirectMessage:
    return TextMessage(text=item.get("text", ""), **base)


def _decode_media_share(item: dict, base: dict) -> Optional[DirectMessage]:
    share = item.get("media_share")
    if not share:
        return None
    username = (share.get("user") or {}).get("username", "")
    carousel = share.get("carousel_media") or []
    if carousel:
        return CarouselShareMessage(
            caption=_caption_text(share),
            children=[
                SharedChild(
                    media_url=_best_url(child),
                    thumbnail_url=_first_image_url(child),
                    type="video" if _first_video_url(child) else "image",
                )
                for child in carousel
            ],
            username=username,
            **base,
        )
    return MediaShareMessage(
        caption=_caption_text(share),
        media_url=_best_url(share),
        thumbnail_url=_first_image_url(share),
        username=username,
        **base,
    )


def _decode_media(item: dict, base: dict) -> Optional[DirectMessage]:
    media = item.get("media")
    if not media:
        return None
    return MediaMessage(media_url=_best_url(media), thumbnail_url=_first_image_url(media), **base)


def _decode_clip(item: dict, base: dict) -> Optional[DirectMessage]:
    clip = (item.get("clip") or {}).get("clip")
    if not clip:
        return None
    return ClipMessage(
        media_url=_first_video_url(clip),
        thumbnail_url=_first_image_url(clip),
        caption=_caption_text(clip),
        **base,
    )


def _decode_link(item: dict, base: dict) -> Optional[DirectMessage]:
    link = item.get("link") or {}
    context = link.get("link_context")
    if not context:
        return None
    return LinkMessage(text=link.get("text", ""), url=context.get("link_url"), **base)


def _decode_like(item: dict, base: dict) -> DirectMessage:
    return LikeMessage(**base)


def _decode_story_share(item: dict, base: dict) -> Optional[DirectMessage]:
    story = item.get("story_share") or {}
    media = story.get("media")
    if not media:
        return None
    media_url = _best_url(media)
    if not media_url:
        return StoryUnavailableMessage(username=(media.get("user") or {}).get("username", ""), **base)
    return StoryShareMessage(
        text=story.get("text"),
        media_url=media_url,
        thumbnail_url=_first_image_url(media),
        **base,
    )


def _decode_voice_media(item: dict, base: dict) -> Optional[DirectMessage]:
    media = (item.get("voice_media") or {}).get("media")
    if not media:
        return None
    audio = media.get("audio") or {}
    return VoiceMessage(audio_url=audio.get("audio_src"), duration=audio.get("duration"), **base)


def _decode_placeholder(item: dict, base: dict) -> Optional[DirectMessage]:
    placeholder = item.get("placeholder")
    if not placeholder:
        return None
    return PlaceholderMessage(message=placeholder.get("message", ""), **base)


DECODERS: Dict[str, Callable[[dict, dict], Optional[DirectMessage]]] = {
    "text": _decode_text,
    "media_share": _decode_media_share,
    "media": _decode_media,
    "clip": _decode_clip,
    "link": _decode_link,
    "like": _decode_like,
    "story_share": _decode_story_share,
    "voice_media": _decode_voice_media,
    "placeholder": _decode_placeholder,
}


def _iso_from_micros(value: Any) -> str:
    """Inbox timestamps are microseconds since the epoch."""
    dt = datetime.fromtimestamp(int(value) / 1_000_000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def decode_item(item: dict) -> DirectMessage:
    item_type = item.get("item_type", "")
    base = {
        "item_id": str(item.get("item_id", "")),
        "sender_id": str(item.get("user_id", "")),
        "timestamp": _iso_from_micros(item.get("timestamp", 0)),
    }
    decoder = DECODERS.get(item_type)
    message = decoder(item, base) if decoder else None
    if message is None:
        return UnsupportedMessage(item_type=item_type, **base)
    return message


# =====================================================================
# Inbox
# =====================================================================

def build_threads(
    raw_threads: Iterable[dict],
    current_user_id: str,
    current_username: str,
    limit: int = 10,
    kind: str = "all",
    allowed_users: Optional[List[str]] = None,
) -> List[DirectThread]:
    """
    Filter, decode and order raw inbox threads.

    Only threads that include an allowed user are kept (all threads when the
    allow-list is empty). Per thread the newest `limit` items are taken,
    restricted to clips when kind == "clip", and returned oldest first.
    """
    allowed = set(allowed_users or [])
    threads = []
    for raw in raw_threads:
        users = raw.get("users") or []
        if allowed and not any(u.get("username") in allowed for u in users):
            continue

        names = {str(u.get("pk")): u.get("username", "") for u in users}
        names[str(current_user_id)] = current_username

        items = (raw.get("items") or [])[:limit]
        if kind == "clip":
            items = [i for i in items if i.get("item_type") == "clip"]

        messages = []
        for item in items:
            message = decode_item(item)
            message.sender = names.get(message.sender_id) or f"User ID: {message.sender_id}"
            messages.append(message)
        messages.reverse()

        threads.append(DirectThread(
            thread_id=str(raw.get("thread_id", "")),
            thread_title=raw.get("thread_title"),
            users=[u.get("username", "") for u in users],
            messages=messages,
        ))
    return threads


async def get_direct_messages(
    session: InstagramSession,
    limit: int = 10,
    kind: str = "all",
    allowed_users: Optional[List[str]] = None,
) -> List[DirectThread]:
    inbox = await session.run("private_request", IG_INBOX_ENDPOINT, params={"persistentBadging": "true"})
    raw_threads = (inbox.get("inbox") or {}).get("threads") or []

    threads = build_threads(
        raw_threads,
        current_user_id=await session.current_identity(),
        current_username=await session.current_username(),
        limit=limit,
        kind=kind,
        allowed_users=allowed_users if allowed_users is not None else allowed_users_from_env(),
    )
    logger.info(f"Instagram: Read {len(threads)} thread(s) from inbox ({len(raw_threads)} total)")
    return threads
