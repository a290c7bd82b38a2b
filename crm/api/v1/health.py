"""
Health check endpoint.

Además de confirmar que la API está viva, indica con qué
backend de persistencia está trabajando el proceso.
"""

from fastapi import APIRouter, Depends

from crm.api.dependencies import get_persistence_context
from crm.config import get_settings
from crm.services.store.context import PersistenceContext

router = APIRouter()
settings = get_settings()


@router.get("/health", status_code=200)
async def health_check(
    context: PersistenceContext = Depends(get_persistence_context),
) -> dict[str, str | None]:
    """Devuelve el estado de la API y el modo de persistencia."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "persistence_mode": context.mode.value,
        "degraded_reason": context.degraded_reason,
    }
