"""
Kill-switch sources consulted by the RiskGate.

Both sources are optional. Their is_active() may raise on transport
errors; the RiskGate decides how to treat that.

    RedisFlagSource   - fast shared flag (key "sniper-kill-switch" == "true")
    ControlLogSource  - remote control table (Supabase / PostgREST); the most
                        recent row's `action` of kill/stop/off is active
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import aiohttp
from redis.asyncio import Redis

logger = logging.getLogger(__name__)

KILL_SWITCH_KEY = "sniper-kill-switch"


class ControlLogError(Exception):
    """Remote control log could not be read."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RedisFlagSource:
    """Kill-switch flag stored in a shared Redis key."""

    def __init__(self, redis: Redis, key: str = KILL_SWITCH_KEY) -> None:
        self._redis = redis
        self._key = key

    @classmethod
    def from_url(
        cls,
        url: str,
        key: str = KILL_SWITCH_KEY,
        timeout: float = 2.0,
    ) -> "RedisFlagSource":
        redis = Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=True,
        )
        return cls(redis, key=key)

    @property
    def key(self) -> str:
        return self._key

    async def is_active(self) -> bool:
        value = await self._redis.get(self._key)
        if value is None:
            return False
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        return str(value).strip().lower() == "true"

    async def close(self) -> None:
        await self._redis.aclose()


class ControlLogSource:
    """
    Kill-switch read from the most recent row of a remote control table.

    Expects a PostgREST endpoint (Supabase) with `action` and `created_at`
    columns.
    """

    ACTIVE_ACTIONS = frozenset({"kill", "stop", "off"})

    def __init__(
        self,
        url: str,
        api_key: str,
        table: str = "kill_switch_log",
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 5.0,
    ) -> None:
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._table = table
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def latest_action(self) -> Optional[str]:
        """Return the `action` of the most recent row, or None if empty."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        url = f"{self._url}/rest/v1/{self._table}"
        params = {"select": "action", "order": "created_at.desc", "limit": "1"}
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }

        async with self._session.get(url, params=params, headers=headers) as response:
            if response.status >= 400:
                text = await response.text()
                raise ControlLogError(
                    f"Control log error: {response.status} - {text[:200]}",
                    status_code=response.status,
                )
            rows: Any = await response.json(content_type=None)

        if not rows or not isinstance(rows, list):
            return None
        action = (rows[0] or {}).get("action")
        return str(action) if action is not None else None

    async def is_active(self) -> bool:
        action = await self.latest_action()
        return action is not None and action.strip().lower() in self.ACTIVE_ACTIONS
