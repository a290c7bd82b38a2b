"""
Tareas Celery de leads.

Las cargas masivas grandes se importan en background para no
bloquear la petición HTTP.

NOTA: Celery no soporta async nativo. Usamos un event loop
propio para ejecutar el servicio async dentro de la tarea.
"""

import asyncio
import logging
from typing import Any

import redis.asyncio as aioredis

from crm.schemas.lead import LeadUploadRequest
from crm.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Ejecuta una coroutine async dentro de una tarea sync de Celery."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    bind=True,
    name="import_leads",
    max_retries=3,
    default_retry_delay=60,
)
def import_leads(self, payload: dict[str, Any]) -> dict[str, Any]:
    """Importa una carga masiva ya parseada (LeadUploadRequest en JSON)."""
    request = LeadUploadRequest.model_validate(payload)
    logger.info("📥 Importando %s leads (task: %s)", len(request.rows), self.request.id)

    try:
        lead_ids = run_async(_do_import(request))
    except Exception as exc:
        logger.error("❌ Error importando leads: %s", exc)
        raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

    logger.info("✅ Importación terminada: %s leads", len(lead_ids))
    return {"status": "imported", "created": len(lead_ids)}


async def _do_import(request: LeadUploadRequest) -> list[str]:
    """Construye el servicio del worker y ejecuta la carga."""
    from crm.api.dependencies import get_blob_store, get_persistence_context
    from crm.config import get_settings
    from crm.services.cache import CacheService
    from crm.services.lead_service import LeadService
    from crm.services.lifecycle import LeadLifecycleEngine

    # Cliente Redis propio: cada tarea corre en un event loop nuevo
    settings = get_settings()
    redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    cache = CacheService(redis, ttl=settings.STATS_CACHE_TTL)
    try:
        engine = LeadLifecycleEngine(get_persistence_context(), cache=cache)
        service = LeadService(engine, get_blob_store(), cache)
        return await service.upload_leads(request)
    finally:
        await redis.aclose()
