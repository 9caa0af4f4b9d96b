"""
SocialBridge Clip Forwarder
===========================
Republish clips received by DM as reels on the account's own feed.

Reads the newest clip of each allowed thread, takes the first thread, and
publishes every message in it as a single-media post. Clips go out as REELS
(VIDEO media); anything else as an IMAGE post.
"""

import logging
from typing import Any, Dict, List, Optional

from .direct_messages import get_direct_messages
from .instagram_publish import InstagramPublisher
from .instagram_session import InstagramSession
from .models import MediaObject, MediaType, PostType

logger = logging.getLogger("socialbridge")


async def forward_clips(
    session: InstagramSession,
    publisher: InstagramPublisher,
    allowed_users: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    threads = await get_direct_messages(session, limit=1, kind="clip", allowed_users=allowed_users)
    if not threads:
        logger.info("Instagram: No allowed threads to forward from")
        return []

    results = []
    for message in threads[0].messages:
        content = message.content()
        if not isinstance(content, dict) or not content.get("media_url"):
            logger.warning(f"Instagram: Skipping {message.kind} {message.item_id} with no media URL")
            continue

        if message.kind == "clip":
            post_type, media_type = PostType.REELS, MediaType.VIDEO
        else:
            post_type, media_type = PostType.IMAGE, MediaType.IMAGE

        logger.info(f"Instagram: Forwarding {message.kind} {message.item_id} from {message.sender}")
        result = await publisher.publish(
            [MediaObject(url=content["media_url"], type=media_type)],
            post_type,
            caption=content.get("caption"),
        )
        results.append(result)

    return results
