"""Schemas Pydantic del directorio de usuarios."""

from pydantic import BaseModel

from crm.models.user import UserRole


class UserRef(BaseModel):
    """Referencia a un usuario candidato para una asignación."""
    uid: str
    display_name: str | None = None
    email: str
    role: UserRole

    model_config = {"frozen": True}
