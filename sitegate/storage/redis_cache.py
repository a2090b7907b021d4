from __future__ import annotations

import json
from typing import Any, Dict, Optional

import redis.asyncio as aioredis

SITE_SETTINGS_KEY = "site:settings"


class RedisCache:
    """Thin Redis wrapper for the shared site settings document and refresh denylist."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 2.0):
        self.redis_url = redis_url
        # Short timeouts: the gate sits on every request and must fail fast
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity before enabling dependent features."""
        from redis import Redis

        # Short-lived sync client so the async pool is not bound to a startup loop
        sync_client = Redis.from_url(self.redis_url, decode_responses=True)
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    async def get_site_settings(self) -> Optional[Dict[str, Any]]:
        raw = await self.client.get(SITE_SETTINGS_KEY)
        if not raw:
            return None
        return json.loads(raw)

    async def set_site_settings(self, document: Dict[str, Any], ttl_seconds: int) -> None:
        payload = json.dumps(document)
        if ttl_seconds > 0:
            await self.client.set(SITE_SETTINGS_KEY, payload, ex=ttl_seconds)
        else:
            await self.client.set(SITE_SETTINGS_KEY, payload)

    async def invalidate_site_settings(self) -> None:
        await self.client.delete(SITE_SETTINGS_KEY)

    async def mark_refresh_revoked(self, jti: str, ttl_seconds: int) -> None:
        await self.client.set(f"auth:refresh:revoked:{jti}", "1", ex=max(ttl_seconds, 1))

    async def is_refresh_revoked(self, jti: str) -> bool:
        return bool(await self.client.exists(f"auth:refresh:revoked:{jti}"))

    async def close(self) -> None:
        """Close Redis connection pool. Call when shutting down or resetting runtime."""
        await self.client.close()
        await self.client.connection_pool.disconnect()
