"""
Contexto de persistencia: backend primario + backend local.

El modo activo es estado explícito de este objeto (no una variable
global escondida). Si el primario deniega permisos, el contexto pasa
a LOCAL una sola vez y la operación se repite contra el local.
El paso es de un solo sentido durante la vida del proceso.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm.config import PersistenceMode
from crm.services.directory import LocalUserDirectory, SqlUserDirectory, UserDirectory
from crm.services.errors import AuthorizationDeniedError
from crm.services.store.base import LeadStore
from crm.services.store.local import LocalLeadStore
from crm.services.store.sql import SqlLeadStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class StorageBackend:
    """Pareja almacén de leads + directorio de usuarios."""
    leads: LeadStore
    users: UserDirectory


class PersistenceContext:
    """Elige el backend según el modo y gestiona el paso a modo degradado."""

    def __init__(
        self,
        primary: StorageBackend,
        local: StorageBackend,
        mode: PersistenceMode = PersistenceMode.PRIMARY,
    ) -> None:
        self._primary = primary
        self._local = local
        self._mode = mode
        self.degraded_reason: str | None = None

    @property
    def mode(self) -> PersistenceMode:
        return self._mode

    @property
    def backend(self) -> StorageBackend:
        """Backend del modo actual."""
        if self._mode is PersistenceMode.LOCAL:
            return self._local
        return self._primary

    def degrade(self, reason: str) -> bool:
        """Pasa a modo local. Devuelve True solo la primera vez."""
        if self._mode is PersistenceMode.LOCAL:
            return False
        self._mode = PersistenceMode.LOCAL
        self.degraded_reason = reason
        logger.warning("⚠️ Permisos denegados en el almacén principal, modo local activado: %s", reason)
        return True

    async def run(self, operation: Callable[[StorageBackend], Awaitable[T]]) -> T:
        """
        Ejecuta una operación contra el backend activo.

        Si el backend primario deniega permisos, se degrada y se
        reintenta una vez contra el local. Cualquier otro error
        se propaga tal cual.
        """
        backend = self.backend
        try:
            return await operation(backend)
        except AuthorizationDeniedError as exc:
            if backend is self._local:
                raise
            self.degrade(str(exc))
            return await operation(self._local)


def build_persistence_context(
    session_factory: async_sessionmaker[AsyncSession],
    mode: PersistenceMode = PersistenceMode.PRIMARY,
) -> PersistenceContext:
    """Contexto de producción: PostgreSQL como primario, memoria como local."""
    return PersistenceContext(
        primary=StorageBackend(
            leads=SqlLeadStore(session_factory),
            users=SqlUserDirectory(session_factory),
        ),
        local=StorageBackend(
            leads=LocalLeadStore(),
            users=LocalUserDirectory(),
        ),
        mode=mode,
    )
