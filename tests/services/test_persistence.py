"""
Tests del contexto de persistencia y del almacén local.

El paso a modo local ocurre una sola vez, cuando el backend
principal deniega permisos, y la operación se repite en el local.
"""

import pytest

from crm.config import PersistenceMode
from crm.services.directory import LocalUserDirectory
from crm.services.errors import AuthorizationDeniedError, LeadNotFoundError, StorageError
from crm.services.lifecycle import LeadLifecycleEngine
from crm.services.store.base import apply_field_paths, get_path
from crm.services.store.context import PersistenceContext, StorageBackend
from crm.services.store.local import LocalLeadStore


class DenyingLeadStore(LocalLeadStore):
    """Almacén que rechaza todo por permisos."""

    def __init__(self, error: Exception | None = None) -> None:
        super().__init__()
        self.error = error or AuthorizationDeniedError("permission denied for table lead_documents")
        self.calls = 0

    async def get(self, lead_id):
        self.calls += 1
        raise self.error

    async def list_all(self):
        self.calls += 1
        raise self.error


def _context(primary_leads: LocalLeadStore) -> tuple[PersistenceContext, StorageBackend]:
    local = StorageBackend(leads=LocalLeadStore(), users=LocalUserDirectory())
    context = PersistenceContext(
        primary=StorageBackend(leads=primary_leads, users=LocalUserDirectory()),
        local=local,
    )
    return context, local


class TestFieldPaths:

    def test_apply_dotted_path_creates_intermediate(self) -> None:
        """Las rutas con puntos crean los sub-registros que falten."""
        result = apply_field_paths({"name": "A"}, {"closer_follow_up.client_attended": True})
        assert result == {"name": "A", "closer_follow_up": {"client_attended": True}}

    def test_apply_does_not_mutate_original(self) -> None:
        original = {"appointment": {"date": "2026-01-20"}}
        apply_field_paths(original, {"appointment.time": "10:00"})
        assert original == {"appointment": {"date": "2026-01-20"}}

    def test_get_path_missing_returns_default(self) -> None:
        assert get_path({"a": {"b": 1}}, "a.c", "x") == "x"
        assert get_path({"a": {"b": 1}}, "a.b") == 1


class TestLocalLeadStore:

    async def test_query_none_matches_missing_field(self) -> None:
        """Consultar por None encuentra los leads sin el campo."""
        store = LocalLeadStore()
        unassigned = await store.create({"name": "A"})
        await store.create({"name": "B", "assigned_to": "exec-id"})

        result = await store.query("assigned_to", None)
        assert [lead["id"] for lead in result] == [unassigned]

    async def test_query_nested_path(self) -> None:
        store = LocalLeadStore()
        paid = await store.create({"closer_follow_up": {"paid_appraisal": True}})
        await store.create({"closer_follow_up": {"paid_appraisal": False}})

        result = await store.query("closer_follow_up.paid_appraisal", True)
        assert [lead["id"] for lead in result] == [paid]

    async def test_reads_return_copies(self) -> None:
        """Modificar lo leído no cambia lo guardado."""
        store = LocalLeadStore()
        lead_id = await store.create({"appointment": {"date": "2026-01-20"}})
        lead = await store.get(lead_id)
        lead["appointment"]["date"] = "2099-01-01"

        assert (await store.get(lead_id))["appointment"]["date"] == "2026-01-20"

    async def test_write_missing_lead_raises_not_found(self) -> None:
        with pytest.raises(LeadNotFoundError):
            await LocalLeadStore().write("missing", {"status": "contactado"})

    async def test_batch_delete_removes_all(self) -> None:
        store = LocalLeadStore()
        ids = await store.create_many([{"name": "A"}, {"name": "B"}])
        await store.batch_delete(ids)
        assert await store.list_all() == []


class TestPersistenceContext:

    async def test_authorization_denied_degrades_and_retries(self) -> None:
        """Permisos denegados → modo local y reintento en el local."""
        primary = DenyingLeadStore()
        context, local = _context(primary)
        await local.leads.create({"name": "Local"})

        leads = await context.run(lambda backend: backend.leads.list_all())

        assert [lead["name"] for lead in leads] == ["Local"]
        assert context.mode is PersistenceMode.LOCAL
        assert "permission denied" in context.degraded_reason

    async def test_degraded_mode_is_one_way(self) -> None:
        """Tras degradar no se vuelve a tocar el principal."""
        primary = DenyingLeadStore()
        context, _ = _context(primary)

        await context.run(lambda backend: backend.leads.list_all())
        await context.run(lambda backend: backend.leads.list_all())

        assert primary.calls == 1
        assert context.degrade("otra vez") is False

    async def test_storage_error_propagates_without_degrading(self) -> None:
        """Otros errores del almacén no cambian de modo."""
        context, _ = _context(DenyingLeadStore(StorageError("connection reset")))

        with pytest.raises(StorageError):
            await context.run(lambda backend: backend.leads.list_all())
        assert context.mode is PersistenceMode.PRIMARY

    async def test_not_found_propagates(self) -> None:
        context, _ = _context(LocalLeadStore())
        with pytest.raises(LeadNotFoundError):
            await context.run(lambda backend: backend.leads.get("missing"))

    async def test_local_denial_is_raised(self) -> None:
        """Si el local también deniega, el error llega al llamador."""
        context = PersistenceContext(
            primary=StorageBackend(leads=LocalLeadStore(), users=LocalUserDirectory()),
            local=StorageBackend(leads=DenyingLeadStore(), users=LocalUserDirectory()),
            mode=PersistenceMode.LOCAL,
        )
        with pytest.raises(AuthorizationDeniedError):
            await context.run(lambda backend: backend.leads.list_all())

    async def test_engine_update_retried_on_local_store(self) -> None:
        """Una actualización del motor se repite completa en el local."""
        context, local = _context(DenyingLeadStore())
        lead_id = await local.leads.create({"status": "nuevo", "assigned_to": "exec-id"})
        engine = LeadLifecycleEngine(context)

        result = await engine.apply_update(lead_id, {"status": "no_contactado"})

        assert result["status"] == "no_contactado"
        assert (await local.leads.get(lead_id))["status"] == "no_contactado"
        assert context.mode is PersistenceMode.LOCAL
