"""
SocialBridge Instagram Session
==============================
Private-API session for the read paths (direct inbox, user feeds).

The session provider is injectable:
  - authenticate() -> logged-in client
  - current_identity() -> acting account id
  - run(fn, *args) -> call a blocking client method off the event loop

Login state is cached through a SessionStore. FileSessionStore keeps it in
one JSON file; MemorySessionStore keeps it in-process (tests). A missing or
unreadable cache only means a full username/password login.

Known hazard: concurrent requests that both log in read and write the same
cache file without a lock (last writer wins).
"""

import os
import json
import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from .errors import CredentialsMissingError, SessionLoginError

logger = logging.getLogger("socialbridge")

IG_SESSION_PATH = os.environ.get("IG_SESSION_PATH", "ig-session.json")


class SessionStore(Protocol):
    def load(self) -> Optional[Dict[str, Any]]: ...

    def save(self, settings: Dict[str, Any]) -> None: ...


class FileSessionStore:
    """Session settings serialized to a single JSON file."""

    def __init__(self, path: str = IG_SESSION_PATH):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Instagram: Session cache {self.path} unreadable, logging in again: {e}")
            return None
        return data if isinstance(data, dict) else None

    def save(self, settings: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(settings))


class MemorySessionStore:
    def __init__(self, settings: Optional[Dict[str, Any]] = None):
        self.settings = settings
        self.saves = 0

    def load(self) -> Optional[Dict[str, Any]]:
        return dict(self.settings) if self.settings else None

    def save(self, settings: Dict[str, Any]) -> None:
        self.settings = dict(settings)
        self.saves += 1


def _default_client_factory():
    from instagrapi import Client

    return Client()


class InstagramSession:
    """
    One logged-in private-API client for the lifetime of a request.

    Args:
        username / password: Account credentials (IG_USERNAME / IG_PASSWORD).
        store: Where login state is cached between requests.
        client_factory: Builds an unauthenticated client (instagrapi.Client).
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        store: Optional[SessionStore] = None,
        client_factory: Callable[[], Any] = _default_client_factory,
    ):
        self.username = username if username is not None else os.environ.get("IG_USERNAME", "")
        self.password = password if password is not None else os.environ.get("IG_PASSWORD", "")
        self.store = store if store is not None else FileSessionStore()
        self.client_factory = client_factory
        self._client = None
        self._account = None

    async def _blocking(self, fn: Callable, *args, **kwargs):
        return await asyncio.get_event_loop().run_in_executor(None, partial(fn, *args, **kwargs))

    def _persist(self) -> None:
        self.store.save(self._client.get_settings())

    async def authenticate(self):
        """Return a logged-in client, restoring the cached session when it still works."""
        if self._client is not None:
            return self._client

        if not self.username or not self.password:
            raise CredentialsMissingError(
                "Instagram username or password is not available in environment variables."
            )

        client = self.client_factory()
        cached = self.store.load()
        if cached:
            try:
                client.set_settings(cached)
                self._account = await self._blocking(client.account_info)
                self._client = client
                logger.info("Instagram: Logged in with session")
                self._persist()
                return client
            except Exception as e:
                logger.info(f"Instagram: Session saved is invalid, logging in again ({e})")
                client = self.client_factory()

        try:
            await self._blocking(client.login, self.username, self.password)
            self._account = await self._blocking(client.account_info)
        except Exception as e:
            raise SessionLoginError(
                f"Instagram login failed: {e}", details={"username": self.username}
            ) from e

        self._client = client
        logger.info("Instagram: Logged in with username and password")
        self._persist()
        return client

    async def current_identity(self) -> str:
        await self.authenticate()
        return str(self._account.pk)

    async def current_username(self) -> str:
        await self.authenticate()
        return self._account.username

    async def run(self, method: str, *args, **kwargs):
        """Call a client method off the event loop, then persist the session state."""
        client = await self.authenticate()
        result = await self._blocking(getattr(client, method), *args, **kwargs)
        self._persist()
        return result
