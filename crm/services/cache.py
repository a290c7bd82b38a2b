"""
Servicio de caché con Redis.

Patrón cache-aside para las estadísticas de los dashboards:
antes de recorrer toda la colección, mira si el resultado ya
está en caché. Si Redis no responde, se sigue sin caché.
"""

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from crm.config import get_settings

logger = logging.getLogger(__name__)

# Cliente Redis async (singleton)
_redis_client: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Obtiene el cliente Redis (lo crea si no existe)."""
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


class CacheService:
    """Operaciones de caché sobre Redis."""

    # TTL por defecto: 1 minuto
    DEFAULT_TTL = 60

    PREFIX_STATS = "stats"

    def __init__(self, redis: aioredis.Redis, ttl: int | None = None) -> None:
        self.redis = redis
        self.ttl = ttl or self.DEFAULT_TTL

    def _make_key(self, prefix: str, identifier: str) -> str:
        """Genera una key con formato consistente: crm:{prefix}:{id}"""
        return f"crm:{prefix}:{identifier}"

    async def get(self, prefix: str, identifier: str) -> dict[str, Any] | None:
        """Busca un valor en caché. Devuelve None si no existe o expiró."""
        key = self._make_key(prefix, identifier)
        try:
            data = await self.redis.get(key)
            if data:
                logger.debug("Cache HIT: %s", key)
                return json.loads(data)
            logger.debug("Cache MISS: %s", key)
            return None
        except Exception as e:
            logger.error("Error leyendo caché %s: %s", key, e)
            return None

    async def set(self, prefix: str, identifier: str, data: dict[str, Any]) -> None:
        """Guarda un valor en caché con TTL."""
        key = self._make_key(prefix, identifier)
        try:
            await self.redis.set(key, json.dumps(data, default=str), ex=self.ttl)
            logger.debug("Cache SET: %s (TTL: %ss)", key, self.ttl)
        except Exception as e:
            logger.error("Error escribiendo caché %s: %s", key, e)

    async def delete(self, prefix: str, identifier: str) -> None:
        """Elimina un valor de caché."""
        key = self._make_key(prefix, identifier)
        try:
            await self.redis.delete(key)
            logger.debug("Cache DELETE: %s", key)
        except Exception as e:
            logger.error("Error eliminando caché %s: %s", key, e)

    async def get_stats(self, name: str) -> dict[str, Any] | None:
        return await self.get(self.PREFIX_STATS, name)

    async def set_stats(self, name: str, data: dict[str, Any]) -> None:
        await self.set(self.PREFIX_STATS, name, data)

    async def invalidate_stats(self, name: str) -> None:
        await self.delete(self.PREFIX_STATS, name)
