"""
Modelo base de SQLAlchemy con campos comunes.

Todos los modelos del proyecto heredan de BaseModel,
que incluye id, created_at y updated_at.
Los ids son cadenas generadas por el store (estilo documento).
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def new_id() -> str:
    """Genera un id de documento: 32 caracteres hex."""
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Clase base de SQLAlchemy. Todas las tablas heredan de aquí."""
    pass


class BaseModel(Base):
    """
    Modelo abstracto con campos comunes a todas las tablas.

    - id: clave primaria asignada por el store (inmutable)
    - created_at: fecha de creación (automática)
    - updated_at: fecha de última actualización (automática)
    """

    __abstract__ = True

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
