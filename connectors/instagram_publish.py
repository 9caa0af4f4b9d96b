"""
SocialBridge Instagram Publisher
================================
Top-level entry point for publishing to Instagram via the Graph API.

Single media (IMAGE, VIDEO, REELS, STORIES):
  stage -> create container (wait if VIDEO) -> publish

Carousel (2-10 items):
  stage + create every child concurrently -> create carousel container
  -> wait until ready -> publish

Requires IG_ACCESS_TOKEN (long-lived Instagram token with
instagram_content_publish). The acting account is resolved from the token
once per request.
"""

import os
import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Sequence

import httpx

from .containers import IG_GRAPH_BASE_URL, InstagramContainerClient
from .errors import (
    CredentialsMissingError,
    IdentityLookupError,
    InvalidCarouselSizeError,
    InvalidMediaCountError,
)
from .models import (
    CAROUSEL_MAX_ITEMS,
    CAROUSEL_MIN_ITEMS,
    MediaObject,
    PostRequest,
    PostType,
)

logger = logging.getLogger("socialbridge")

IG_PUBLISH_TIMEOUT = float(os.environ.get("IG_PUBLISH_TIMEOUT_SECONDS", "120"))


def get_access_token() -> str:
    access_token = os.environ.get("IG_ACCESS_TOKEN", "")
    if not access_token:
        raise CredentialsMissingError("Instagram access token is not available.")
    return access_token


def validate_post_shape(media: Sequence[MediaObject], post_type: PostType) -> None:
    """Reject media counts the platform would refuse, before any network call."""
    count = len(media or [])
    if post_type is PostType.CAROUSEL:
        if not CAROUSEL_MIN_ITEMS <= count <= CAROUSEL_MAX_ITEMS:
            raise InvalidCarouselSizeError(
                f"Carousel posts require {CAROUSEL_MIN_ITEMS} to {CAROUSEL_MAX_ITEMS} media items.",
                details={"count": count},
            )
    elif count != 1:
        raise InvalidMediaCountError(
            f"{post_type.value} posts require exactly 1 media item.",
            details={"count": count},
        )


async def get_ig_user_id(client: httpx.AsyncClient, access_token: str, base_url: str = IG_GRAPH_BASE_URL) -> str:
    resp = await client.get(f"{base_url}/me", params={"fields": "id", "access_token": access_token})
    if not resp.is_success:
        try:
            body = resp.json()
        except ValueError:
            body = resp.text[:300]
        logger.error(f"Instagram identity lookup failed: {body}")
        raise IdentityLookupError(
            f"Could not fetch Instagram user. Status: {resp.status_code}",
            details={"http_status": resp.status_code, "body": body},
        )
    return resp.json()["id"]


async def _gather_or_cancel(coros: List[Awaitable[Any]]) -> List[Any]:
    """
    Run coros concurrently and return their results in order.

    On the first failure the remaining tasks are cancelled and awaited before
    the error propagates, so none outlive the request's HTTP client.
    """
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class InstagramPublisher:
    """
    Publishes one post per call.

    containers_factory lets tests swap the container client (stager, poll
    schedule) while keeping the orchestration under test.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        access_token: Optional[str] = None,
        base_url: str = IG_GRAPH_BASE_URL,
        containers_factory=None,
    ):
        self.client = client
        self.access_token = access_token
        self.base_url = base_url
        self.containers_factory = containers_factory or (
            lambda client, token: InstagramContainerClient(client, token, base_url=base_url)
        )

    async def publish(
        self,
        media: Sequence[MediaObject],
        post_type: PostType,
        caption: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Validate, build containers, publish. Returns the raw publish response."""
        post_type = PostType(post_type)
        validate_post_shape(media, post_type)
        access_token = self.access_token or get_access_token()

        if self.client is None:
            async with httpx.AsyncClient(timeout=IG_PUBLISH_TIMEOUT) as client:
                return await self._publish(client, access_token, list(media), post_type, caption)
        return await self._publish(self.client, access_token, list(media), post_type, caption)

    async def publish_request(self, request: PostRequest) -> Dict[str, Any]:
        return await self.publish(request.media, request.post_type, request.caption)

    async def _publish(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        media: List[MediaObject],
        post_type: PostType,
        caption: Optional[str],
    ) -> Dict[str, Any]:
        owner_id = await get_ig_user_id(client, access_token, self.base_url)
        containers = self.containers_factory(client, access_token)
        logger.info(f"Instagram: Publishing {post_type.value} with {len(media)} item(s) for ig_user_id={owner_id}")

        if post_type is PostType.CAROUSEL:
            child_ids = await _gather_or_cancel([
                containers.create_container(owner_id, item, True) for item in media
            ])
            container_id = await containers.create_carousel(owner_id, list(child_ids), caption)
            await containers.wait_until_ready(container_id)
        else:
            container_id = await containers.create_container(
                owner_id, media[0], False, caption, post_type
            )

        return await containers.publish(owner_id, container_id)


async def publish(
    media: Sequence[MediaObject],
    post_type: PostType,
    caption: Optional[str] = None,
) -> Dict[str, Any]:
    """Publish with the environment's access token and a fresh HTTP client."""
    return await InstagramPublisher().publish(media, post_type, caption)
