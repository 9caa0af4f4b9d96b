"""
SocialBridge Models
===================
Transient request/response objects that flow through the connectors.
Nothing here is persisted; every object lives for one inbound request.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Any


class MediaType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class PostType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    REELS = "REELS"
    STORIES = "STORIES"
    CAROUSEL = "CAROUSEL"


# Single-media post types that are sent to the Graph API as media_type
SINGLE_MEDIA_TYPE_PARAMS = {PostType.REELS, PostType.STORIES, PostType.VIDEO}

CAROUSEL_MIN_ITEMS = 2
CAROUSEL_MAX_ITEMS = 10
TWEET_MAX_CHARS = 280


@dataclass(frozen=True)
class MediaObject:
    """One piece of media to publish. Must live at a fetchable URL."""
    url: str
    type: MediaType = MediaType.IMAGE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MediaObject":
        return cls(url=data["url"], type=MediaType(data.get("type", "IMAGE")))


@dataclass
class PostRequest:
    """
    An Instagram publish request.

    CAROUSEL takes 2-10 media items, every other post type exactly one.
    The caption applies to the whole post, never to carousel children.
    """
    media: List[MediaObject]
    post_type: PostType
    caption: Optional[str] = None


@dataclass
class MediaContainer:
    """Server-side processing job. Status mirrors the platform, never cached."""
    container_id: str
    status: str = "IN_PROGRESS"
    is_carousel_child: bool = False


@dataclass
class StagedFile:
    public_url: str


@dataclass
class TweetRequest:
    text: str
    media_url: Optional[str] = None


@dataclass
class UploadedMediaHandle:
    media_id: str


@dataclass
class TweetResult:
    id: str
    text: str
    url: str

    def to_dict(self) -> dict:
        return asdict(self)


# =====================================================================
# Peek
# =====================================================================

@dataclass
class ChildMediaItem:
    id: str
    media_type: str
    media_url: Optional[str]
    thumbnail_url: Optional[str] = None


@dataclass
class MediaItem:
    """A post as returned by peek/peek_post."""
    id: str
    media_type: str  # IMAGE | VIDEO | CAROUSEL_ALBUM
    media_url: Optional[str]
    permalink: str
    timestamp: str
    username: str
    caption: str = ""
    thumbnail_url: Optional[str] = None
    children: Optional[List[ChildMediaItem]] = None
    likes: int = 0
    comments: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["children"] is None:
            data.pop("children")
        return data


# =====================================================================
# Direct messages
# =====================================================================

@dataclass
class DirectThread:
    thread_id: str
    thread_title: Optional[str]
    users: List[str] = field(default_factory=list)
    messages: List[Any] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "threadId": self.thread_id,
            "threadTitle": self.thread_title,
            "users": self.users,
            "messages": [m.to_dict() for m in self.messages],
        }
