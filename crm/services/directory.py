"""
Directorio de usuarios por rol.

El motor lo consulta para elegir a quién transferir un lead
(legal, comercial, closer) o a qué ejecutivo asignar uno nuevo.
"""

import logging
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm.models.user import User, UserRole
from crm.schemas.user import UserRef
from crm.services.store.sql import translate_error

logger = logging.getLogger(__name__)


# Usuarios con los que arranca el modo local
DEFAULT_LOCAL_USERS: tuple[UserRef, ...] = (
    UserRef(uid="admin-id", email="admin@intercapital.com",
            display_name="Administrador Sistema", role=UserRole.ADMINISTRATOR),
    UserRef(uid="supervisor-id", email="supervisor@intercapital.com",
            display_name="Supervisor General", role=UserRole.SUPERVISOR),
    UserRef(uid="exec-id", email="ejecutivo@intercapital.com",
            display_name="Ejecutivo Préstamos", role=UserRole.LOAN_EXECUTIVE),
    UserRef(uid="appraisal-id", email="tasacion@intercapital.com",
            display_name="Gestor de Tasación", role=UserRole.APPRAISAL_MANAGER),
    UserRef(uid="investment-id", email="inversion@intercapital.com",
            display_name="Ejecutivo Inversiones", role=UserRole.INVESTMENT_EXECUTIVE),
    UserRef(uid="legal-id", email="legal@intercapital.com",
            display_name="Analista Legal", role=UserRole.LEGAL),
    UserRef(uid="commercial-id", email="comercial@intercapital.com",
            display_name="Gerente Comercial", role=UserRole.COMMERCIAL),
    UserRef(uid="closer-id", email="formalizador@intercapital.com",
            display_name="Formalizador", role=UserRole.CLOSER),
)


class UserDirectory(ABC):
    """Interfaz del directorio."""

    @abstractmethod
    async def query_by_role(self, role: UserRole) -> list[UserRef]:
        """Usuarios con ese rol (lista vacía si no hay)."""
        ...


class SqlUserDirectory(UserDirectory):
    """Directorio sobre la tabla users."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def query_by_role(self, role: UserRole) -> list[UserRef]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(User).where(User.role == role).order_by(User.created_at)
                )
                users = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.error("Error consultando usuarios con rol %s: %s", role.value, exc)
            raise translate_error(exc) from exc

        return [
            UserRef(uid=u.id, display_name=u.display_name, email=u.email, role=u.role)
            for u in users
        ]


class LocalUserDirectory(UserDirectory):
    """Directorio en memoria para el modo local y los tests."""

    def __init__(self, users: list[UserRef] | tuple[UserRef, ...] = DEFAULT_LOCAL_USERS) -> None:
        self._users = list(users)

    def add(self, user: UserRef) -> None:
        self._users.append(user)

    def remove(self, uid: str) -> None:
        self._users = [u for u in self._users if u.uid != uid]

    async def query_by_role(self, role: UserRole) -> list[UserRef]:
        return [u for u in self._users if u.role == role]
