"""Endpoints del directorio de usuarios."""

from fastapi import APIRouter, Depends, Query

from crm.api.dependencies import get_persistence_context
from crm.models.user import UserRole
from crm.schemas.user import UserRef
from crm.services.store.context import PersistenceContext

router = APIRouter()


@router.get(
    "",
    response_model=list[UserRef],
    summary="Listar usuarios de un rol",
)
async def list_users_by_role(
    role: UserRole = Query(..., description="Rol a consultar"),
    context: PersistenceContext = Depends(get_persistence_context),
) -> list[UserRef]:
    return await context.run(lambda backend: backend.users.query_by_role(role))
