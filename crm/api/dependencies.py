"""
Dependencias compartidas de los endpoints.

- Autenticación por API Key via header (X-API-Key).
- Construcción de los servicios. El contexto de persistencia es
  único por proceso: el paso a modo local dura toda la sesión.
  Los tests sustituyen estas funciones con dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from crm.config import get_settings
from crm.services.blob_store import BlobStore, build_blob_store
from crm.services.cache import CacheService, get_redis
from crm.services.lead_service import LeadService
from crm.services.lifecycle import LeadLifecycleEngine
from crm.services.store.context import PersistenceContext, build_persistence_context
from crm.services.workflows import LeadWorkflows

settings = get_settings()

# La API Key viene en el header "X-API-Key"
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_api_key(
    api_key: str | None = Security(api_key_header),
) -> str:
    """Valida la API Key. Sin key o con una inválida devuelve 401."""
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API Key requerida. Envía el header X-API-Key.",
        )

    if api_key not in settings.API_KEYS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API Key inválida.",
        )

    return api_key


# --- Servicios ---


@lru_cache
def get_persistence_context() -> PersistenceContext:
    """Contexto único del proceso (PostgreSQL + memoria)."""
    from crm.database import async_session

    return build_persistence_context(async_session, settings.PERSISTENCE_MODE)


@lru_cache
def get_blob_store() -> BlobStore:
    return build_blob_store(settings)


async def get_cache() -> CacheService:
    return CacheService(await get_redis(), ttl=settings.STATS_CACHE_TTL)


def get_engine(
    context: PersistenceContext = Depends(get_persistence_context),
    cache: CacheService = Depends(get_cache),
) -> LeadLifecycleEngine:
    return LeadLifecycleEngine(context, cache=cache)


def get_lead_service(
    engine: LeadLifecycleEngine = Depends(get_engine),
    blob_store: BlobStore = Depends(get_blob_store),
    cache: CacheService = Depends(get_cache),
) -> LeadService:
    """Crea el servicio de leads con sus dependencias."""
    return LeadService(engine, blob_store, cache)


def get_workflows(
    engine: LeadLifecycleEngine = Depends(get_engine),
) -> LeadWorkflows:
    return LeadWorkflows(engine)
