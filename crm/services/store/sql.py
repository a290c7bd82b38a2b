"""
Almacén de leads sobre PostgreSQL (SQLAlchemy async).

Cada operación abre su propia sesión y transacción. Los errores
del driver se traducen a las excepciones de negocio: permisos
denegados → AuthorizationDeniedError, el resto → StorageError.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm.models.base import new_id
from crm.models.lead import LeadDocument
from crm.services.errors import (
    AuthorizationDeniedError,
    LeadNotFoundError,
    StorageError,
)
from crm.services.store.base import LeadStore, apply_field_paths

logger = logging.getLogger(__name__)

# SQLSTATE de permisos: insufficient_privilege, invalid_authorization,
# invalid_password
AUTH_SQLSTATES = {"42501", "28000", "28P01"}


def translate_error(exc: SQLAlchemyError) -> Exception:
    """Convierte un error de SQLAlchemy en una excepción de negocio."""
    orig = getattr(exc, "orig", None)
    candidates = [orig, getattr(orig, "__cause__", None)]
    for candidate in candidates:
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code in AUTH_SQLSTATES:
            return AuthorizationDeniedError(str(exc))
    return StorageError(str(exc))


def _field_clause(field: str, value: Any):
    """Condición WHERE sobre una ruta JSON del documento."""
    path = tuple(field.split("."))
    element = LeadDocument.data[path] if len(path) > 1 else LeadDocument.data[path[0]]
    if value is None:
        return element.as_string().is_(None)
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, (int, float)):
        return element.as_float() == value
    return element.as_string() == str(value)


def _as_document(row: LeadDocument) -> dict[str, Any]:
    return {**row.data, "id": row.id}


def _strip_id(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if key != "id"}


class SqlLeadStore(LeadStore):
    """Documentos de leads en la tabla lead_documents."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @property
    def name(self) -> str:
        return "postgresql"

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Sesión con transacción. Traduce los errores del driver."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            logger.error("Error de BD en %s: %s", self.name, exc)
            raise translate_error(exc) from exc

    async def get(self, lead_id: str) -> dict[str, Any]:
        async with self._transaction() as session:
            row = await session.get(LeadDocument, lead_id)
            if row is None:
                raise LeadNotFoundError(lead_id)
            return _as_document(row)

    async def query(self, field: str, value: Any) -> list[dict[str, Any]]:
        async with self._transaction() as session:
            result = await session.execute(
                select(LeadDocument).where(_field_clause(field, value))
            )
            return [_as_document(row) for row in result.scalars().all()]

    async def list_all(self) -> list[dict[str, Any]]:
        async with self._transaction() as session:
            result = await session.execute(
                select(LeadDocument).order_by(LeadDocument.created_at)
            )
            return [_as_document(row) for row in result.scalars().all()]

    async def write(self, lead_id: str, fields: dict[str, Any]) -> None:
        async with self._transaction() as session:
            result = await session.execute(
                select(LeadDocument)
                .where(LeadDocument.id == lead_id)
                .with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is None:
                raise LeadNotFoundError(lead_id)
            # Asignar un dict nuevo para que SQLAlchemy detecte el cambio
            row.data = apply_field_paths(row.data, _strip_id(fields))

    async def create(self, fields: dict[str, Any]) -> str:
        async with self._transaction() as session:
            row = LeadDocument(id=new_id(), data=apply_field_paths({}, _strip_id(fields)))
            session.add(row)
            await session.flush()
            return row.id

    async def create_many(self, documents: list[dict[str, Any]]) -> list[str]:
        async with self._transaction() as session:
            rows = [
                LeadDocument(id=new_id(), data=apply_field_paths({}, _strip_id(document)))
                for document in documents
            ]
            session.add_all(rows)
            await session.flush()
            logger.info("Lote de %s leads insertado", len(rows))
            return [row.id for row in rows]

    async def batch_delete(self, lead_ids: list[str]) -> None:
        if not lead_ids:
            return
        async with self._transaction() as session:
            await session.execute(
                delete(LeadDocument).where(LeadDocument.id.in_(lead_ids))
            )
