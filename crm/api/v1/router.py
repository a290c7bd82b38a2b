"""Router principal de la API v1. Agrupa todos los sub-routers."""

from fastapi import APIRouter

from crm.api.v1.health import router as health_router
from crm.api.v1.leads import router as leads_router
from crm.api.v1.users import router as users_router

api_v1_router = APIRouter()

api_v1_router.include_router(health_router, tags=["Health"])
api_v1_router.include_router(leads_router, prefix="/leads", tags=["Leads"])
api_v1_router.include_router(users_router, prefix="/users", tags=["Users"])
