"""HTTP client for the economy backend.

Every mutating call here is at-most-once: the client never retries, and the
backend has no idempotency keys, so duplicate suppression is the session
engine's job.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .errors import BackendError

logger = logging.getLogger(__name__)


@dataclass
class BackendConfig:
    """Connection settings for the backend API."""

    base_url: str = "http://localhost:5000/api"
    timeout: float = 15.0

    @classmethod
    def from_env(cls, default_timeout: float = 15.0) -> "BackendConfig":
        timeout_env = os.getenv("POKEBOT_BACKEND_TIMEOUT")
        timeout = default_timeout
        if timeout_env:
            try:
                timeout = float(timeout_env)
            except ValueError:
                logger.warning("Invalid POKEBOT_BACKEND_TIMEOUT value: %s", timeout_env)
        return cls(
            base_url=os.getenv("BACKEND_API_URL", cls.base_url),
            timeout=timeout,
        )


def _error_message(payload: Any, status: int) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if value:
                return str(value)
    return f"Backend request failed with status {status}"


class BackendClient:
    def __init__(
        self,
        config: Optional[BackendConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or BackendConfig.from_env()
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def request(
        self,
        method: str,
        path: str,
        *,
        guild_id: Optional[int] = None,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"
        headers = {"x-guild-id": str(guild_id)} if guild_id is not None else {}
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}
        session = await self._get_session()
        try:
            async with session.request(
                method, url, json=json, params=query or None, headers=headers
            ) as resp:
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    payload = None
                if resp.status >= 400:
                    message = _error_message(payload, resp.status)
                    logger.warning("%s %s -> %s: %s", method, path, resp.status, message)
                    raise BackendError(resp.status, message)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise BackendError(0, "The game server is unavailable. Please try again later.") from exc
        return payload if isinstance(payload, dict) else {"data": payload}

    # Duplicates ---------------------------------------------------------

    async def sell_duplicates_preview(self, user_id: int, guild_id: Optional[int]) -> Dict[str, Any]:
        return await self.request(
            "POST",
            f"/users/{user_id}/pokemon/sell-duplicates",
            guild_id=guild_id,
            json={"preview": True},
        )

    async def sell_duplicates(
        self,
        user_id: int,
        guild_id: Optional[int],
        *,
        pokemon_id: int,
        is_shiny: bool,
        quantity: int,
    ) -> Dict[str, Any]:
        return await self.request(
            "POST",
            f"/users/{user_id}/pokemon/sell-duplicates",
            guild_id=guild_id,
            json={"pokemonId": pokemon_id, "isShiny": is_shiny, "quantity": quantity},
        )

    # Card packs ---------------------------------------------------------

    async def list_packs(self, user_id: int, guild_id: Optional[int]) -> Dict[str, Any]:
        return await self.request("GET", f"/tcg/users/{user_id}/packs", guild_id=guild_id)

    async def purchase_pack(
        self, user_id: int, guild_id: Optional[int], pack_id: str, quantity: int = 1
    ) -> Dict[str, Any]:
        return await self.request(
            "POST",
            f"/tcg/users/{user_id}/packs/purchase",
            guild_id=guild_id,
            json={"packId": pack_id, "quantity": quantity},
        )

    async def opening_stats(self, user_id: int, guild_id: Optional[int]) -> Dict[str, Any]:
        return await self.request(
            "GET", f"/tcg/users/{user_id}/packs/opening-stats", guild_id=guild_id
        )

    async def open_pack(
        self, user_id: int, guild_id: Optional[int], pack_opening_id: str
    ) -> Dict[str, Any]:
        return await self.request(
            "POST",
            f"/tcg/users/{user_id}/packs/open",
            guild_id=guild_id,
            json={"packOpeningId": pack_opening_id},
        )

    async def list_cards(
        self,
        user_id: int,
        guild_id: Optional[int],
        *,
        search: Optional[str] = None,
        rarity_category: Optional[str] = None,
        supertype: Optional[str] = None,
        limit: int = 500,
    ) -> Dict[str, Any]:
        return await self.request(
            "GET",
            f"/tcg/users/{user_id}/cards",
            guild_id=guild_id,
            params={
                "search": search,
                "rarityCategory": rarity_category,
                "supertype": supertype,
                "page": 1,
                "limit": limit,
            },
        )

    # Users and shop -----------------------------------------------------

    async def get_user(self, user_id: int, guild_id: Optional[int]) -> Dict[str, Any]:
        data = await self.request("GET", f"/users/{user_id}", guild_id=guild_id)
        return data.get("user") or data

    async def buy_shop_item(
        self, user_id: int, guild_id: Optional[int], item_key: str
    ) -> Dict[str, Any]:
        return await self.request(
            "POST", f"/users/{user_id}/shop/buy", guild_id=guild_id, json={"item": item_key}
        )

    async def get_pokedex(self, user_id: int, guild_id: Optional[int]) -> Dict[str, Any]:
        return await self.request("GET", f"/users/{user_id}/pokedex", guild_id=guild_id)

    # Battles ------------------------------------------------------------

    async def create_battle(
        self,
        *,
        challenger_id: int,
        opponent_id: int,
        guild_id: Optional[int],
        count: int,
        friendly: bool = True,
        battle_dex: bool = False,
    ) -> Dict[str, Any]:
        return await self.request(
            "POST",
            "/battles",
            guild_id=guild_id,
            json={
                "challengerId": str(challenger_id),
                "opponentId": str(opponent_id),
                "guildId": str(guild_id) if guild_id is not None else None,
                "count": count,
                "friendly": friendly,
                "battleDex": battle_dex,
            },
        )

    async def get_battle(self, battle_id: str) -> Dict[str, Any]:
        data = await self.request("GET", f"/battles/{battle_id}")
        return data.get("session") or {}

    async def respond_battle(
        self,
        battle_id: str,
        *,
        user_id: int,
        accept: bool,
        guild_id: Optional[int] = None,
        expired: bool = False,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"accept": accept, "userId": str(user_id)}
        if expired:
            body["expired"] = True
        return await self.request(
            "POST", f"/battles/{battle_id}/respond", guild_id=guild_id, json=body
        )


__all__ = ["BackendClient", "BackendConfig"]
