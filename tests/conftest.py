"""Shared fakes for connector and route tests."""

import asyncio

import httpx
import pytest


def run(coro):
    return asyncio.run(coro)


def mock_client(handler):
    """AsyncClient whose every request is answered by handler(request)."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class FakeSession:
    """
    Stands in for InstagramSession.

    responses maps a client method name to either a value or a callable taking
    the call's arguments.
    """

    def __init__(self, responses=None, user_id="1", username="bridge"):
        self.responses = responses or {}
        self.user_id = user_id
        self.username = username
        self.calls = []

    async def run(self, method, *args, **kwargs):
        self.calls.append((method, args, kwargs))
        handler = self.responses[method]
        if isinstance(handler, Exception):
            raise handler
        return handler(*args, **kwargs) if callable(handler) else handler

    async def current_identity(self):
        return self.user_id

    async def current_username(self):
        return self.username


class FakePublisher:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def publish(self, media, post_type, caption=None):
        self.calls.append((list(media), post_type, caption))
        if self.error:
            raise self.error
        return {"id": f"media-{len(self.calls)}"}

    async def publish_request(self, request):
        return await self.publish(request.media, request.post_type, request.caption)


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def fake_publisher():
    return FakePublisher()
