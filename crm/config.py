"""
Configuración central del CRM.

Usa Pydantic BaseSettings para leer variables de entorno
y validarlas automáticamente al arrancar la aplicación.
"""

import enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class PersistenceMode(str, enum.Enum):
    """Backend de persistencia activo."""
    PRIMARY = "primary"          # PostgreSQL
    LOCAL = "local"              # Memoria del proceso (modo degradado)


class Settings(BaseSettings):
    """Configuración de la aplicación cargada desde variables de entorno."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- App ---
    APP_NAME: str = "InterCapital CRM"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- API ---
    API_V1_PREFIX: str = "/api/v1"
    API_KEYS: list[str] = ["dev-key"]

    # --- Database ---
    POSTGRES_USER: str = "crm"
    POSTGRES_PASSWORD: str = "crm"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "crm"

    # Modo con el que arranca el proceso. Si la BD deniega permisos
    # se pasa a LOCAL durante el resto de la sesión.
    PERSISTENCE_MODE: PersistenceMode = PersistenceMode.PRIMARY

    @property
    def database_url(self) -> str:
        """Genera la URL de conexión a PostgreSQL para SQLAlchemy async."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # --- Redis ---
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def redis_url(self) -> str:
        """Genera la URL de conexión a Redis."""
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # TTL de las estadísticas de dashboards (segundos)
    STATS_CACHE_TTL: int = 60

    # --- Celery ---
    CELERY_BROKER_URL: str | None = None
    CELERY_RESULT_BACKEND: str | None = None

    # Cargas masivas con más filas que esto se procesan en background
    IMPORT_ASYNC_THRESHOLD: int = 500

    # --- Blob storage (S3 compatible) ---
    S3_BUCKET_NAME: str | None = None
    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_REGION: str | None = None
    S3_PUBLIC_URL: str | None = None

    # URL base que se devuelve si la subida falla
    BLOB_PLACEHOLDER_URL: str = "https://storage.placeholder.local"

    def model_post_init(self, __context: object) -> None:
        """Asigna valores por defecto que dependen de otros campos."""
        if not self.CELERY_BROKER_URL:
            self.CELERY_BROKER_URL = self.redis_url
        if not self.CELERY_RESULT_BACKEND:
            self.CELERY_RESULT_BACKEND = self.redis_url


@lru_cache
def get_settings() -> Settings:
    """Devuelve la instancia de configuración (cacheada).

    Usar lru_cache asegura que solo se crea una instancia
    de Settings durante toda la vida de la aplicación.
    """
    return Settings()
