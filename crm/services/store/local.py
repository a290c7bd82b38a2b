"""
Almacén local en memoria del proceso.

Es el modo degradado: se usa cuando la BD deniega permisos o
cuando se arranca con PERSISTENCE_MODE=local. No sobrevive
a un reinicio.
"""

import copy
import logging
from typing import Any

from crm.models.base import new_id
from crm.services.errors import LeadNotFoundError
from crm.services.store.base import LeadStore, apply_field_paths, get_path

logger = logging.getLogger(__name__)


class LocalLeadStore(LeadStore):
    """Documentos en un diccionario. Las lecturas devuelven copias."""

    def __init__(self, documents: dict[str, dict[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = copy.deepcopy(documents or {})

    @property
    def name(self) -> str:
        return "local"

    def _snapshot(self, lead_id: str) -> dict[str, Any]:
        return {**copy.deepcopy(self._documents[lead_id]), "id": lead_id}

    async def get(self, lead_id: str) -> dict[str, Any]:
        if lead_id not in self._documents:
            raise LeadNotFoundError(lead_id)
        return self._snapshot(lead_id)

    async def query(self, field: str, value: Any) -> list[dict[str, Any]]:
        return [
            self._snapshot(lead_id)
            for lead_id, document in self._documents.items()
            if get_path(document, field) == value
        ]

    async def list_all(self) -> list[dict[str, Any]]:
        return [self._snapshot(lead_id) for lead_id in self._documents]

    async def write(self, lead_id: str, fields: dict[str, Any]) -> None:
        if lead_id not in self._documents:
            raise LeadNotFoundError(lead_id)
        # Se calcula la copia entera antes de sustituir: nunca queda a medias
        self._documents[lead_id] = apply_field_paths(self._documents[lead_id], fields)

    async def create(self, fields: dict[str, Any]) -> str:
        lead_id = new_id()
        self._documents[lead_id] = apply_field_paths({}, fields)
        logger.debug("Lead creado en memoria: %s", lead_id)
        return lead_id

    async def create_many(self, documents: list[dict[str, Any]]) -> list[str]:
        return [await self.create(document) for document in documents]

    async def batch_delete(self, lead_ids: list[str]) -> None:
        for lead_id in lead_ids:
            self._documents.pop(lead_id, None)
