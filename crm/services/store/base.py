"""
Interfaz base del almacén de leads.

El almacén es un store de documentos indexado por id. Hay dos
implementaciones (PostgreSQL y memoria local) con el mismo contrato,
así el motor del ciclo de vida no sabe cuál está usando.
"""

import copy
from abc import ABC, abstractmethod
from typing import Any

_MISSING = object()


def get_path(document: dict[str, Any], path: str, default: Any = None) -> Any:
    """Lee un campo con ruta con puntos: 'closer_follow_up.paid_appraisal'."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current


def apply_field_paths(document: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    """
    Devuelve una copia del documento con los campos escritos.

    Las claves con puntos escriben solo esa hoja y crean los
    diccionarios intermedios que falten.
    """
    result = copy.deepcopy(document)
    for path, value in fields.items():
        parts = path.split(".")
        target = result
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[parts[-1]] = copy.deepcopy(value)
    return result


class LeadStore(ABC):
    """Contrato que cumplen todos los almacenes de leads."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Nombre del almacén (para logs)."""
        ...

    @abstractmethod
    async def get(self, lead_id: str) -> dict[str, Any]:
        """
        Devuelve el documento con su id incluido.

        Raises:
            LeadNotFoundError si no existe.
        """
        ...

    @abstractmethod
    async def query(self, field: str, value: Any) -> list[dict[str, Any]]:
        """Documentos cuyo campo (ruta con puntos) es igual a value.

        value=None incluye los documentos donde el campo no existe.
        """
        ...

    @abstractmethod
    async def list_all(self) -> list[dict[str, Any]]:
        """Todos los documentos de la colección."""
        ...

    @abstractmethod
    async def write(self, lead_id: str, fields: dict[str, Any]) -> None:
        """Escribe campos (rutas con puntos) en una sola operación atómica."""
        ...

    @abstractmethod
    async def create(self, fields: dict[str, Any]) -> str:
        """Crea un documento con id autogenerado y devuelve el id."""
        ...

    @abstractmethod
    async def create_many(self, documents: list[dict[str, Any]]) -> list[str]:
        """Crea varios documentos en un único lote."""
        ...

    @abstractmethod
    async def batch_delete(self, lead_ids: list[str]) -> None:
        """Borra varios documentos en un único lote."""
        ...
