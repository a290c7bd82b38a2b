"""
Servicio de leads: alta, consultas de dashboards, estadísticas y documentos.

Los endpoints y las tareas llaman a este servicio, nunca al almacén
directamente. Cualquier cambio de un lead existente pasa por el
motor del ciclo de vida (LeadLifecycleEngine.apply_update).
"""

import logging
import uuid
from collections import Counter
from typing import Any

from crm.models.lead import (
    DocumentType,
    LeadStatus,
    LeadType,
    ReviewStatus,
    Substatus,
)
from crm.models.user import UserRole
from crm.schemas.lead import (
    AssigneeCount,
    CreateDistribution,
    ExecutiveStats,
    GlobalStats,
    LeadCreate,
    LeadsStats,
    LeadUploadRequest,
    ReviewCounts,
    UploadDistribution,
)
from crm.services.blob_store import BlobStore
from crm.services.cache import CacheService
from crm.services.lifecycle import LeadLifecycleEngine
from crm.services.store.context import StorageBackend

logger = logging.getLogger(__name__)

Lead = dict[str, Any]


def _newest_first(leads: list[Lead], field: str) -> list[Lead]:
    return sorted(leads, key=lambda lead: lead.get(field) or "", reverse=True)


class LeadService:
    """Operaciones de negocio sobre leads."""

    def __init__(
        self,
        engine: LeadLifecycleEngine,
        blob_store: BlobStore,
        cache: CacheService | None = None,
    ) -> None:
        self.engine = engine
        self.context = engine.context
        self.blob_store = blob_store
        self.cache = cache

    async def _invalidate_stats(self) -> None:
        if self.cache:
            await self.cache.invalidate_stats("global")

    # ------------------------------------------
    # Alta
    # ------------------------------------------

    async def create_lead(
        self,
        data: LeadCreate,
        distribution: CreateDistribution = CreateDistribution.EQUITABLE,
    ) -> Lead:
        """
        Crea un lead a mano. Siempre nace en 'nuevo'.

        Con distribución aleatoria se asigna a un ejecutivo del
        tipo del lead (préstamos o inversiones).
        """
        now = self.engine.timestamp()
        document = data.model_dump(mode="json")
        document.update(status=LeadStatus.NUEVO.value, created_at=now, updated_at=now)

        async def _create(backend: StorageBackend) -> Lead:
            fields = dict(document)
            if distribution is CreateDistribution.RANDOM:
                role = (
                    UserRole.INVESTMENT_EXECUTIVE
                    if data.lead_type is LeadType.INVESTMENT
                    else UserRole.LOAN_EXECUTIVE
                )
                executives = await backend.users.query_by_role(role)
                if executives:
                    fields["assigned_to"] = self.engine.selector.pick_one(executives).uid
                else:
                    logger.warning("⚠️ No hay ejecutivos con rol %s, lead sin asignar", role.value)
            lead_id = await backend.leads.create(fields)
            return {**fields, "id": lead_id}

        lead = await self.context.run(_create)
        await self._invalidate_stats()
        logger.info("Lead creado: %s (%s) asignado a %s", lead["name"], lead["id"], lead.get("assigned_to"))
        return lead

    async def upload_leads(self, request: LeadUploadRequest) -> list[str]:
        """
        Carga masiva de filas ya parseadas en un único lote.

        round_robin reparte executive_ids en orden; manual respeta
        el assigned_to de cada fila.
        """
        round_robin = request.distribution is UploadDistribution.ROUND_ROBIN
        if round_robin and not request.executive_ids:
            logger.warning("⚠️ Reparto round-robin sin ejecutivos, se respeta cada fila")

        now = self.engine.timestamp()
        documents: list[Lead] = []
        for index, row in enumerate(request.rows):
            assigned_to = row.assigned_to
            if round_robin and request.executive_ids:
                assigned_to = request.executive_ids[index % len(request.executive_ids)]
            documents.append({
                "name": row.name,
                "phone": row.phone,
                "email": row.email,
                "amount": row.amount,
                "status": LeadStatus.NUEVO.value,
                "assigned_to": assigned_to,
                "lead_type": request.lead_type.value,
                "source": "excel-upload",
                "created_at": now,
                "updated_at": now,
            })

        lead_ids = await self.context.run(lambda backend: backend.leads.create_many(documents))
        await self._invalidate_stats()
        logger.info("📥 Carga masiva: %s leads (%s)", len(lead_ids), request.distribution.value)
        return lead_ids

    # ------------------------------------------
    # Leer
    # ------------------------------------------

    async def get_lead(self, lead_id: str) -> Lead:
        """Obtiene un lead por id. LeadNotFoundError si no existe."""
        return await self.context.run(lambda backend: backend.leads.get(lead_id))

    async def get_all_leads(self) -> list[Lead]:
        return await self.context.run(lambda backend: backend.leads.list_all())

    async def get_unassigned_leads(self) -> list[Lead]:
        return await self.context.run(lambda backend: backend.leads.query("assigned_to", None))

    async def get_leads_by_executive(self, executive_id: str) -> list[Lead]:
        """
        Leads del ejecutivo: los asignados y los que transfirió
        (sigue viéndolos como dueño anterior). Más nuevos primero.
        """
        async def _query(backend: StorageBackend) -> list[Lead]:
            assigned = await backend.leads.query("assigned_to", executive_id)
            transferred = await backend.leads.query("previous_owner", executive_id)
            return assigned + transferred

        leads = await self.context.run(_query)
        unique = list({lead["id"]: lead for lead in leads}.values())
        logger.debug("Ejecutivo %s: %s leads", executive_id, len(unique))
        return _newest_first(unique, "created_at")

    async def get_leads_by_closer(self, closer_id: str) -> list[Lead]:
        """Leads con cita asignada al closer, la más próxima primero."""
        leads = await self.context.run(
            lambda backend: backend.leads.query("closer_assigned_to", closer_id)
        )

        def appointment_key(lead: Lead) -> tuple[bool, str]:
            date = (lead.get("appointment") or {}).get("date")
            return (date is None, date or "")

        return sorted(leads, key=appointment_key)

    async def get_leads_reviewed_by(self, user_id: str, role: UserRole) -> list[Lead]:
        """Leads revisados por un usuario legal o comercial."""
        if role is UserRole.LEGAL:
            field = "legal_reviewed_by"
        elif role is UserRole.COMMERCIAL:
            field = "commercial_reviewed_by"
        else:
            raise ValueError(f"Rol sin revisiones: {role.value}")
        return await self.context.run(lambda backend: backend.leads.query(field, user_id))

    async def get_leads_for_appraisal_manager(self) -> list[Lead]:
        """Leads con la tasación pagada, el pago más reciente primero."""
        leads = await self.context.run(
            lambda backend: backend.leads.query("closer_follow_up.paid_appraisal", True)
        )
        return sorted(
            leads,
            key=lambda lead: (lead.get("closer_follow_up") or {}).get("payment_date") or "",
            reverse=True,
        )

    # ------------------------------------------
    # Estadísticas
    # ------------------------------------------

    async def get_leads_stats(self) -> LeadsStats:
        leads = await self.get_all_leads()
        pending = sum(1 for lead in leads if lead.get("status") == LeadStatus.NUEVO.value)
        return LeadsStats(
            total_leads=len(leads),
            pending_leads=pending,
            contacted_leads=len(leads) - pending,
        )

    async def get_leads_by_assignee_count(self) -> list[AssigneeCount]:
        leads = await self.get_all_leads()
        counts = Counter(lead["assigned_to"] for lead in leads if lead.get("assigned_to"))
        return [AssigneeCount(assignee_id=uid, count=count) for uid, count in counts.items()]

    async def get_global_stats(self) -> GlobalStats:
        """Agregados para el dashboard del supervisor (cacheados en Redis)."""
        if self.cache:
            cached = await self.cache.get_stats("global")
            if cached:
                logger.info("♻️ Estadísticas globales desde caché")
                return GlobalStats.model_validate(cached)

        leads = await self.get_all_leads()
        by_status: Counter[str] = Counter()
        by_substatus: Counter[str] = Counter()
        by_type = {LeadType.LOAN.value: 0, LeadType.INVESTMENT.value: 0}
        legal = ReviewCounts()
        commercial = ReviewCounts()
        by_assignee: Counter[str] = Counter()

        for lead in leads:
            status = lead.get("status") or "unknown"
            by_status[status] += 1
            if lead.get("substatus"):
                by_substatus[f"{status}__{lead['substatus']}"] += 1
            if lead.get("lead_type") in by_type:
                by_type[lead["lead_type"]] += 1
            _count_review(legal, lead.get("legal_status"))
            _count_review(commercial, lead.get("commercial_status"))
            if lead.get("assigned_to"):
                by_assignee[lead["assigned_to"]] += 1

        stats = GlobalStats(
            total_leads=len(leads),
            by_status=dict(by_status),
            by_substatus=dict(by_substatus),
            by_type=by_type,
            legal_stats=legal,
            commercial_stats=commercial,
            by_assignee=dict(by_assignee),
        )
        if self.cache:
            await self.cache.set_stats("global", stats.model_dump())
        return stats

    async def get_executive_stats(self, executive_id: str) -> ExecutiveStats:
        leads = await self.get_leads_by_executive(executive_id)
        return ExecutiveStats(
            total=len(leads),
            new_leads=sum(1 for lead in leads if lead.get("status") == LeadStatus.NUEVO.value),
            appointments=sum(1 for lead in leads if lead.get("substatus") == Substatus.CITA.value),
            pending_legal=sum(
                1 for lead in leads if lead.get("legal_status") == ReviewStatus.PENDING_REVIEW.value
            ),
            pending_commercial=sum(
                1 for lead in leads if lead.get("commercial_status") == ReviewStatus.PENDING_REVIEW.value
            ),
        )

    # ------------------------------------------
    # Documentos
    # ------------------------------------------

    async def upload_document(
        self, lead_id: str, content: bytes, document_type: DocumentType,
    ) -> dict[str, str]:
        """
        Sube un PDF del lead y guarda su URL en documents.<tipo>.

        El informe de tasación no se guarda aquí: su URL va en
        la tasación cuando el gestor la registra.
        """
        await self.get_lead(lead_id)

        filename = f"{document_type.value}-{uuid.uuid4()}.pdf"
        file_url = await self.blob_store.put(f"leads/{lead_id}/{filename}", content)

        if document_type is not DocumentType.TASACION:
            await self.engine.apply_update(lead_id, {"documents": {document_type.value: file_url}})
        return {"filename": filename, "file_url": file_url}

    async def delete_document(self, lead_id: str, filename: str) -> None:
        """Borra el archivo y limpia la referencia si era la vigente."""
        lead = await self.get_lead(lead_id)
        await self.blob_store.delete(f"leads/{lead_id}/{filename}")

        stale = {
            doc_type: None
            for doc_type, url in (lead.get("documents") or {}).items()
            if url and url.endswith(filename)
        }
        if stale:
            await self.engine.apply_update(lead_id, {"documents": stale})

    # ------------------------------------------
    # Administración
    # ------------------------------------------

    async def delete_all_leads(self) -> int:
        """Vacía la colección entera. Devuelve cuántos leads se borraron."""
        async def _reset(backend: StorageBackend) -> int:
            leads = await backend.leads.list_all()
            await backend.leads.batch_delete([lead["id"] for lead in leads])
            return len(leads)

        deleted = await self.context.run(_reset)
        await self._invalidate_stats()
        logger.warning("🗑️ Colección de leads vaciada: %s eliminados", deleted)
        return deleted


def _count_review(counts: ReviewCounts, status: str | None) -> None:
    if status == ReviewStatus.PENDING_REVIEW.value:
        counts.pending += 1
    elif status == ReviewStatus.APPROVED.value:
        counts.approved += 1
    elif status == ReviewStatus.REJECTED.value:
        counts.rejected += 1
