"""
Modelo de usuarios del CRM.

Solo lo necesario para el directorio: rol y datos de contacto.
La autenticación vive fuera de este servicio.
"""

import enum

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from crm.models.base import BaseModel


class UserRole(str, enum.Enum):
    """Roles del CRM. Cada etapa del pipeline tiene el suyo."""
    ADMIN = "admin"
    ADMINISTRATOR = "administrator"
    SUPERVISOR = "supervisor"
    LOAN_EXECUTIVE = "loan_executive"
    INVESTMENT_EXECUTIVE = "investment_executive"
    LEGAL = "legal"
    COMMERCIAL = "commercial"
    CLOSER = "closer"                        # Formalizador: atiende la cita
    APPRAISAL_MANAGER = "appraisal_manager"  # Gestor de tasación


class User(BaseModel):
    """Usuario interno. El id es el uid que se guarda en assigned_to."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"
