"""
Configuración de la base de datos con SQLAlchemy async.

Define el engine y la factory de sesiones que usan el almacén
de leads y el directorio de usuarios. El esquema lo gestiona
Alembic (alembic/versions).
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from crm.config import get_settings

settings = get_settings()

# echo=True en debug para ver las queries SQL en consola
engine = create_async_engine(
    settings.database_url,
    echo=settings.DEBUG,
    pool_size=5,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
