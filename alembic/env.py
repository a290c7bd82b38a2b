"""
Configuración de Alembic para migraciones de base de datos.

Conecta Alembic con los modelos del CRM (lead_documents, users)
y con la configuración del proyecto.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

from crm.config import get_settings

# Importar TODOS los modelos aquí para que Alembic los detecte
from crm.models.base import Base
from crm.models.lead import LeadDocument  # noqa: F401
from crm.models.user import User  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

settings = get_settings()

# Alembic usa conexión SÍNCRONA: asyncpg → psycopg2
sync_database_url = settings.database_url.replace(
    "postgresql+asyncpg", "postgresql+psycopg2"
)


def run_migrations_offline() -> None:
    """Genera SQL sin conectarse a la BD (modo offline)."""
    context.configure(
        url=sync_database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Ejecuta migraciones conectándose a la BD."""
    engine = create_engine(sync_database_url)

    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
        )
        with context.begin_transaction():
            context.run_migrations()

    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
