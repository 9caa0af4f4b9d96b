"""
SocialBridge Instagram Media Containers
=======================================
Drive the Graph API's asynchronous media-processing pipeline.

Flow:
  1. POST /{ig_user_id}/media  (image_url | video_url, ...)  -> container id
  2. Poll GET /{container_id}?fields=status_code until terminal
  3. (carousel) POST /{ig_user_id}/media  (media_type=CAROUSEL, children)
  4. POST /{ig_user_id}/media_publish  (creation_id)

State machine:
  CREATED -> IN_PROGRESS -> FINISHED | PUBLISHED   (ready)
  IN_PROGRESS -> ERROR | EXPIRED                    (failed, not retryable)
  CREATED -> FINISHED                               (images are never polled)

transition() is a pure function of (state, status sample). The poll loop in
drive_until_ready() owns the delay and attempt budget, and takes the sleep
function as a parameter so tests can feed a synthetic status sequence.
"""

import os
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .errors import (
    ContainerCreateError,
    ContainerFailedError,
    ContainerStatusError,
    ContainerTimeoutError,
    ContainerUnknownStateError,
    InvalidCarouselSizeError,
    PublishError,
)
from .models import (
    CAROUSEL_MAX_ITEMS,
    CAROUSEL_MIN_ITEMS,
    SINGLE_MEDIA_TYPE_PARAMS,
    MediaContainer,
    MediaObject,
    MediaType,
    PostType,
    StagedFile,
)
from .staging import stage_file

logger = logging.getLogger("socialbridge")

IG_GRAPH_API_VERSION = os.environ.get("IG_GRAPH_API_VERSION", "v20.0")
IG_GRAPH_BASE_URL = f"https://graph.instagram.com/{IG_GRAPH_API_VERSION}"

# Container polling
IG_POLL_INTERVAL = float(os.environ.get("IG_POLL_INTERVAL_SECONDS", "3"))
IG_POLL_MAX_ATTEMPTS = int(os.environ.get("IG_POLL_MAX_ATTEMPTS", "20"))  # 60s max (20 * 3s)


class ContainerState(str, Enum):
    CREATED = "CREATED"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"
    PUBLISHED = "PUBLISHED"
    ERROR = "ERROR"
    EXPIRED = "EXPIRED"


READY_STATES = frozenset({ContainerState.FINISHED, ContainerState.PUBLISHED})
FAILED_STATES = frozenset({ContainerState.ERROR, ContainerState.EXPIRED})
TERMINAL_STATES = READY_STATES | FAILED_STATES


def transition(state: ContainerState, sample: str, container_id: str = "") -> ContainerState:
    """
    Next container state given one status_code sample from the platform.

    Terminal states absorb every further sample. CREATED is client-side only,
    so the platform reporting it counts as unknown.
    """
    if state in TERMINAL_STATES:
        return state
    try:
        next_state = ContainerState(sample)
    except ValueError:
        next_state = None
    if next_state is None or next_state is ContainerState.CREATED:
        raise ContainerUnknownStateError(
            f"Unknown status for container {container_id}: {sample}",
            details={"container_id": container_id, "status_code": sample},
        )
    return next_state


@dataclass(frozen=True)
class PollPolicy:
    interval: float = IG_POLL_INTERVAL
    max_attempts: int = IG_POLL_MAX_ATTEMPTS


async def drive_until_ready(
    container_id: str,
    check_status: Callable[[str], Awaitable[str]],
    policy: Optional[PollPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> MediaContainer:
    """
    Poll check_status until the container is ready, failed, or out of attempts.

    Returns the container in its ready state (FINISHED or PUBLISHED).

    Raises:
        ContainerFailedError: ERROR or EXPIRED.
        ContainerUnknownStateError: unrecognized status_code.
        ContainerTimeoutError: policy.max_attempts polls without a terminal state.
    """
    policy = policy or PollPolicy()
    state = ContainerState.CREATED

    for attempt in range(1, policy.max_attempts + 1):
        sample = await check_status(container_id)
        state = transition(state, sample, container_id)

        if state in READY_STATES:
            if state is ContainerState.PUBLISHED:
                logger.info(f"Instagram: Container {container_id} has already been published")
            else:
                logger.info(f"Instagram: Container {container_id} ready after {attempt} poll(s)")
            return MediaContainer(container_id=container_id, status=state.value)

        if state in FAILED_STATES:
            raise ContainerFailedError(
                f"Container {container_id} failed with status: {state.value}",
                details={"container_id": container_id, "status_code": state.value},
            )

        logger.info(f"Instagram: Container {container_id} processing... attempt {attempt}/{policy.max_attempts}")
        if attempt < policy.max_attempts:
            await sleep(policy.interval)

    raise ContainerTimeoutError(
        f"Container {container_id} did not become ready in time "
        f"({policy.max_attempts} polls, last status: {state.value})",
        details={"container_id": container_id, "attempts": policy.max_attempts, "last_status": state.value},
    )


def _error_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return (resp.text or "")[:300]


Stager = Callable[[str, httpx.AsyncClient], Awaitable[StagedFile]]


class InstagramContainerClient:
    """
    Container operations for one access token.

    Args:
        client: Shared AsyncClient for every Graph/staging call of a request.
        access_token: Long-lived Instagram token.
        stager: Re-hosts source media, defaults to the public temp host.
        poll_policy / sleep: Readiness polling schedule.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        base_url: str = IG_GRAPH_BASE_URL,
        stager: Stager = stage_file,
        poll_policy: Optional[PollPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.stager = stager
        self.poll_policy = poll_policy or PollPolicy()
        self.sleep = sleep

    async def check_status(self, container_id: str) -> str:
        resp = await self.client.get(
            f"{self.base_url}/{container_id}",
            params={"fields": "status_code", "access_token": self.access_token},
        )
        if not resp.is_success:
            body = _error_body(resp)
            logger.error(f"Instagram: Status check failed for container {container_id}: {body}")
            raise ContainerStatusError(
                f"Failed to check container status. Status: {resp.status_code}",
                details={"container_id": container_id, "http_status": resp.status_code, "body": body},
            )
        return resp.json().get("status_code", "")

    async def wait_until_ready(self, container_id: str) -> MediaContainer:
        return await drive_until_ready(
            container_id, self.check_status, policy=self.poll_policy, sleep=self.sleep
        )

    async def _create(self, owner_id: str, params: Dict[str, str]) -> httpx.Response:
        return await self.client.post(
            f"{self.base_url}/{owner_id}/media",
            params={"access_token": self.access_token, **params},
        )

    async def create_container(
        self,
        owner_id: str,
        media: MediaObject,
        is_carousel_child: bool,
        caption: Optional[str] = None,
        single_media_post_type: Optional[PostType] = None,
    ) -> str:
        """
        Stage media and create its container. VIDEO containers are waited on
        before returning; image containers are ready as soon as they exist.
        """
        staged = await self.stager(media.url, self.client)
        logger.info(f"Instagram: Staged {media.url} -> {staged.public_url}")

        params: Dict[str, str] = {}
        if media.type is MediaType.VIDEO:
            params["video_url"] = staged.public_url
        else:
            params["image_url"] = staged.public_url

        if single_media_post_type and not is_carousel_child:
            if PostType(single_media_post_type) in SINGLE_MEDIA_TYPE_PARAMS:
                params["media_type"] = PostType(single_media_post_type).value

        if is_carousel_child:
            params["is_carousel_item"] = "true"
        elif caption:
            params["caption"] = caption

        resp = await self._create(owner_id, params)
        if not resp.is_success:
            body = _error_body(resp)
            logger.error(f"Instagram container creation failed: {body}")
            raise ContainerCreateError(
                f"Could not create media container for {staged.public_url}. Status: {resp.status_code}",
                details={"staged_url": staged.public_url, "http_status": resp.status_code, "body": body},
            )

        container = MediaContainer(container_id=resp.json()["id"], is_carousel_child=is_carousel_child)
        logger.info(f"Instagram: Container created, id={container.container_id} ({media.type.value})")

        if media.type is MediaType.VIDEO:
            ready = await self.wait_until_ready(container.container_id)
            container.status = ready.status
        return container.container_id

    async def create_carousel(self, owner_id: str, child_ids: List[str], caption: Optional[str] = None) -> str:
        if not CAROUSEL_MIN_ITEMS <= len(child_ids) <= CAROUSEL_MAX_ITEMS:
            raise InvalidCarouselSizeError(
                f"Carousel posts require {CAROUSEL_MIN_ITEMS} to {CAROUSEL_MAX_ITEMS} media items.",
                details={"count": len(child_ids)},
            )

        params = {"media_type": PostType.CAROUSEL.value, "children": ",".join(child_ids)}
        if caption:
            params["caption"] = caption

        resp = await self._create(owner_id, params)
        if not resp.is_success:
            body = _error_body(resp)
            logger.error(f"Instagram carousel creation failed: {body}")
            raise ContainerCreateError(
                f"Could not create carousel container. Status: {resp.status_code}",
                details={"children": child_ids, "http_status": resp.status_code, "body": body},
            )

        container_id = resp.json()["id"]
        logger.info(f"Instagram: Carousel container created, id={container_id} children={len(child_ids)}")
        return container_id

    async def publish(self, owner_id: str, container_id: str) -> Dict[str, Any]:
        resp = await self.client.post(
            f"{self.base_url}/{owner_id}/media_publish",
            params={"access_token": self.access_token, "creation_id": container_id},
        )
        if not resp.is_success:
            body = _error_body(resp)
            logger.error(f"Instagram publish failed for container {container_id}: {body}")
            raise PublishError(
                f"Could not publish media container {container_id}. Status: {resp.status_code}",
                details={"container_id": container_id, "http_status": resp.status_code, "body": body},
            )

        result = resp.json()
        logger.info(f"Instagram publish accepted: media_id={result.get('id')}")
        return result
