"""
Entry point de la aplicación FastAPI.

Crea la app, registra routers y traduce las excepciones
de negocio a códigos HTTP.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from crm.api.v1.router import api_v1_router
from crm.config import get_settings
from crm.services.errors import (
    AuthorizationDeniedError,
    LeadNotFoundError,
    LeadValidationError,
    StorageError,
)

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Gestiona el ciclo de vida de la aplicación.

    - startup: configura el logging
    - shutdown: cierra el pool de conexiones
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("🚀 %s v%s arrancando...", settings.APP_NAME, settings.APP_VERSION)
    logger.info("Persistencia: %s", settings.PERSISTENCE_MODE.value)

    yield

    from crm.database import engine

    await engine.dispose()
    logger.info("👋 %s cerrándose...", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="CRM de préstamos e inversiones con traspaso automático entre roles",
    lifespan=lifespan,
)


# --- Errores de negocio → HTTP ---


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(LeadNotFoundError)
async def lead_not_found_handler(request: Request, exc: LeadNotFoundError) -> JSONResponse:
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(LeadValidationError)
async def lead_validation_handler(request: Request, exc: LeadValidationError) -> JSONResponse:
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)


@app.exception_handler(AuthorizationDeniedError)
async def authorization_denied_handler(request: Request, exc: AuthorizationDeniedError) -> JSONResponse:
    return _error_response(status.HTTP_403_FORBIDDEN, exc)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Error de almacenamiento en %s: %s", request.url.path, exc)
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc)


app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)
