"""
Fixtures de Pytest para tests del CRM.

Estrategia:
- Los tests trabajan contra el backend local en memoria (sin PostgreSQL)
- Selección determinista: siempre el primer candidato
- Reloj fijo para poder comparar fechas
- Override de las dependencias de FastAPI para que la app use estos objetos
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from crm.api.dependencies import (
    get_blob_store,
    get_cache,
    get_engine,
    get_persistence_context,
)
from crm.config import PersistenceMode, get_settings
from crm.main import app
from crm.services.blob_store import InMemoryBlobStore
from crm.services.directory import LocalUserDirectory
from crm.services.lead_service import LeadService
from crm.services.lifecycle import LeadLifecycleEngine
from crm.services.selection import SelectionStrategy
from crm.services.store.context import PersistenceContext, StorageBackend
from crm.services.store.local import LocalLeadStore
from crm.services.workflows import LeadWorkflows

settings = get_settings()

FIXED_NOW = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)


class FirstCandidate(SelectionStrategy):
    """Elige siempre el primer candidato."""

    def pick_one(self, candidates):
        return candidates[0]


# --- Persistencia y servicios ---


@pytest.fixture
def backend() -> StorageBackend:
    """Almacén en memoria con los usuarios por defecto."""
    return StorageBackend(leads=LocalLeadStore(), users=LocalUserDirectory())


@pytest.fixture
def context(backend: StorageBackend) -> PersistenceContext:
    return PersistenceContext(
        primary=backend,
        local=StorageBackend(leads=LocalLeadStore(), users=LocalUserDirectory()),
        mode=PersistenceMode.PRIMARY,
    )


@pytest.fixture
def engine(context: PersistenceContext) -> LeadLifecycleEngine:
    return LeadLifecycleEngine(context, selector=FirstCandidate(), clock=lambda: FIXED_NOW)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def service(engine: LeadLifecycleEngine, blob_store: InMemoryBlobStore) -> LeadService:
    return LeadService(engine, blob_store)


@pytest.fixture
def workflows(engine: LeadLifecycleEngine) -> LeadWorkflows:
    return LeadWorkflows(engine)


@pytest.fixture
def seed_lead(backend: StorageBackend) -> Callable[..., Awaitable[str]]:
    """Crea un lead directamente en el almacén con los campos dados."""

    async def _seed(**fields: Any) -> str:
        document = {
            "name": "María Quispe",
            "phone": "+51 987 654 321",
            "amount": 25000,
            "status": "nuevo",
            "lead_type": "loan",
            "assigned_to": "exec-id",
            "created_at": FIXED_NOW.isoformat(),
        }
        document.update(fields)
        return await backend.leads.create(document)

    return _seed


# --- App ---


@pytest.fixture(autouse=True)
def _setup_app_overrides(
    context: PersistenceContext,
    engine: LeadLifecycleEngine,
    blob_store: InMemoryBlobStore,
):
    """Override de las dependencias: sin BD, sin Redis, sin S3."""

    async def _no_cache():
        return None

    app.dependency_overrides[get_persistence_context] = lambda: context
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_cache] = _no_cache
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP que habla directamente con la app FastAPI."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# --- Headers con API Key ---

@pytest.fixture
def api_key_headers() -> dict[str, str]:
    """Headers con una API Key válida."""
    return {"X-API-Key": settings.API_KEYS[0]}


# --- Datos de prueba ---

@pytest.fixture
def sample_lead_data() -> dict:
    """Datos de un lead válido."""
    return {
        "name": "Test User",
        "phone": "+51 900 000 000",
        "email": "Test@Example.com",
        "amount": 30000,
        "lead_type": "loan",
        "assigned_to": "exec-id",
    }


# --- Mock de Celery ---

@pytest.fixture(autouse=True)
def mock_celery_tasks(monkeypatch: pytest.MonkeyPatch) -> list:
    """Desactiva las tareas de Celery y guarda las llamadas."""
    from crm.tasks import lead_tasks

    calls: list = []
    monkeypatch.setattr(
        lead_tasks.import_leads, "delay", lambda *args, **kwargs: calls.append(args),
    )
    return calls
