"""
Async HTTP client for the chat host backend.

Every endpoint is a JSON ``POST``. ``fetch_with_retry`` retries network
failures and 5xx responses with linear backoff (``retry_delay * attempt``);
4xx responses are returned to the caller untouched. The endpoint helpers
raise :class:`BackendError` on any non-2xx outcome so the cached gateway can
decide how to degrade.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import aiohttp

from chat_lobby.config import backend as backend_cfg
from chat_lobby.pipeline.chats import normalize_chats
from chat_lobby.pipeline.collation import collation_key

logger = logging.getLogger(__name__)

_IMAGE_EXT_RE = re.compile(r"\.(png|jpg|webp)$", re.IGNORECASE)


class BackendError(Exception):
    """A backend call failed after all retries or returned an error status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(slots=True)
class BackendResponse:
    status: int
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class BackendClient:
    """Thin JSON client; pass ``session`` to share one ``aiohttp.ClientSession``."""

    def __init__(
        self,
        base_url: str | None = None,
        session: aiohttp.ClientSession | None = None,
        retries: int | None = None,
        retry_delay: float | None = None,
        timeout: float | None = None,
        csrf_token: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._base_url = (base_url or backend_cfg.BASE_URL).rstrip("/")
        self._session = session
        self._retries = backend_cfg.RETRY_COUNT if retries is None else retries
        self._retry_delay = backend_cfg.RETRY_DELAY if retry_delay is None else retry_delay
        self._timeout = aiohttp.ClientTimeout(total=timeout or backend_cfg.REQUEST_TIMEOUT)
        self._csrf_token = csrf_token if csrf_token is not None else backend_cfg.CSRF_TOKEN
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._csrf_token:
            headers["X-CSRF-Token"] = self._csrf_token
        return headers

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    async def _post_once(self, session: aiohttp.ClientSession, path: str, payload: Any) -> BackendResponse:
        async with session.post(
            f"{self._base_url}{path}", json=payload, headers=self._headers()
        ) as resp:
            try:
                data = await resp.json(content_type=None)
            except ValueError:
                data = None
            return BackendResponse(resp.status, data)

    async def fetch_with_retry(self, path: str, payload: Any = None) -> BackendResponse:
        """
        POST ``payload`` to ``path``.

        Makes up to ``retries + 1`` attempts. A 5xx on the final attempt is
        returned as is; a network error on the final attempt raises
        :class:`BackendError`.
        """

        if self._session is not None:
            return await self._attempts(self._session, path, payload)
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            return await self._attempts(session, path, payload)

    async def _attempts(self, session: aiohttp.ClientSession, path: str, payload: Any) -> BackendResponse:
        last_error: Exception | None = None
        for attempt in range(self._retries + 1):
            try:
                response = await self._post_once(session, path, payload)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_error = exc
                if attempt < self._retries:
                    logger.warning(
                        "Request %s failed, retrying (%d/%d): %s", path, attempt + 1, self._retries, exc
                    )
                    await self._sleep(self._retry_delay * (attempt + 1))
                    continue
                break

            if response.status >= 500 and attempt < self._retries:
                logger.warning(
                    "Server error %s on %s, retrying (%d/%d)", response.status, path, attempt + 1, self._retries
                )
                await self._sleep(self._retry_delay * (attempt + 1))
                continue
            return response

        raise BackendError(f"Request {path} failed after {self._retries + 1} attempts: {last_error}")

    async def _post_ok(self, path: str, payload: Any = None) -> BackendResponse:
        response = await self.fetch_with_retry(path, payload)
        if not response.ok:
            raise BackendError(f"{path} returned HTTP {response.status}", status=response.status)
        return response

    # ------------------------------------------------------------------ #
    # Endpoints
    # ------------------------------------------------------------------ #

    async def fetch_personas(self, names: dict[str, str] | None = None) -> list[dict]:
        """Persona avatars as ``{"key", "name"}`` dicts in collation order."""

        response = await self._post_ok("/api/avatars/get")
        avatars = response.data if isinstance(response.data, list) else []
        names = names or {}
        personas = [
            {"key": avatar, "name": names.get(avatar) or _IMAGE_EXT_RE.sub("", avatar)}
            for avatar in avatars
            if isinstance(avatar, str)
        ]
        return sorted(personas, key=lambda p: collation_key(p["name"]))

    async def fetch_characters(self) -> list[dict]:
        response = await self._post_ok("/api/characters/all")
        data = response.data
        if isinstance(data, dict):
            data = list(data.values())
        return [c for c in (data or []) if isinstance(c, dict)]

    async def fetch_chats_for_character(self, character_id: str) -> list[dict]:
        response = await self._post_ok(
            "/api/characters/chats", {"avatar_url": character_id, "simple": False}
        )
        chats = normalize_chats(response.data)
        logger.info("Fetched %d chats for %s", len(chats), character_id)
        return chats

    async def delete_chat(self, file_name: str, character_id: str) -> bool:
        await self._post_ok("/api/chats/delete", {"chatfile": file_name, "avatar_url": character_id})
        return True

    async def delete_persona(self, persona_key: str) -> bool:
        await self._post_ok("/api/avatars/delete", {"avatar": persona_key})
        return True

    async def delete_character(self, character_id: str) -> bool:
        await self._post_ok("/api/characters/delete", {"avatar_url": character_id, "delete_chats": True})
        return True


__all__ = ["BackendClient", "BackendError", "BackendResponse"]
