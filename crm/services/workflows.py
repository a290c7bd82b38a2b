"""
Flujos de revisión y de seguimiento del closer.

Son llamadas finas al motor del ciclo de vida: preparan el cambio
(decisión, asistencia, pérdida, reprogramación, tasación) y el motor
decide el resto.
"""

import logging
from typing import Any

from crm.models.lead import LeadStatus, Substatus
from crm.schemas.lead import (
    AppraisalRequest,
    ClientInfoRequest,
    ReviewDecision,
    ReviewDecisionType,
)
from crm.services.errors import LeadValidationError
from crm.services.lifecycle import LeadLifecycleEngine

logger = logging.getLogger(__name__)


class ReviewStage:
    LEGAL = "legal"
    COMMERCIAL = "commercial"


class LeadWorkflows:
    """Acciones de revisores, closers y gestores de tasación."""

    def __init__(self, engine: LeadLifecycleEngine) -> None:
        self.engine = engine

    # ------------------------------------------
    # Revisiones
    # ------------------------------------------

    async def review(self, lead_id: str, stage: str, decision: ReviewDecision) -> dict[str, Any]:
        """Aplica la decisión del revisor legal o comercial."""
        approve = decision.decision is ReviewDecisionType.APPROVE
        if stage == ReviewStage.LEGAL:
            operation = self.engine.approve_legal if approve else self.engine.reject_legal
        elif stage == ReviewStage.COMMERCIAL:
            operation = self.engine.approve_commercial if approve else self.engine.reject_commercial
        else:
            raise LeadValidationError(f"Etapa de revisión desconocida: {stage}")
        return await operation(lead_id, decision.comments, decision.reviewer_id)

    # ------------------------------------------
    # Seguimiento del closer
    # ------------------------------------------

    async def record_attendance(self, lead_id: str, attended: bool, closer_id: str) -> dict[str, Any]:
        """Registra si el cliente asistió a la cita."""
        patch = {
            "closer_follow_up": {
                "client_attended": attended,
                "attendance_recorded_at": self.engine.timestamp(),
                "attendance_recorded_by": closer_id,
            }
        }
        lead = await self.engine.apply_update(lead_id, patch, actor=closer_id)
        logger.info("Asistencia registrada en lead %s: %s", lead_id, attended)
        return lead

    async def mark_as_lost(
        self,
        lead_id: str,
        reason: str,
        closer_id: str,
        due_to_non_payment: bool = False,
    ) -> dict[str, Any]:
        """
        Marca el lead como perdido y lo rechaza.

        Si se pierde por no pagar la tasación el cliente sí asistió:
        client_attended queda en True.
        """
        reason = (reason or "").strip()
        if not reason:
            raise LeadValidationError("El motivo de pérdida es obligatorio")

        follow_up: dict[str, Any] = {
            "marked_as_lost": True,
            "lost_reason": reason,
            "lost_due_to_non_payment": due_to_non_payment,
        }
        if due_to_non_payment:
            follow_up["client_attended"] = True
        else:
            follow_up.update(
                client_attended=False,
                attendance_recorded_at=self.engine.timestamp(),
                attendance_recorded_by=closer_id,
            )

        lead = await self.engine.apply_update(
            lead_id,
            {"status": LeadStatus.RECHAZADO.value, "closer_follow_up": follow_up},
            actor=closer_id,
        )
        logger.info("❌ Lead %s marcado como perdido: %s", lead_id, reason)
        return lead

    async def request_reschedule(self, lead_id: str, closer_id: str) -> dict[str, Any]:
        """Devuelve el lead al ejecutivo y desbloquea la cita para agendar otra."""
        current = await self.engine.context.run(lambda backend: backend.leads.get(lead_id))
        patch = {
            "status": LeadStatus.CONTACTADO.value,
            "substatus": Substatus.REPROGRAMAR.value,
            "assigned_to": current.get("previous_owner") or current.get("assigned_to"),
            "appointment_locked": False,
            "closer_follow_up": {
                "client_attended": False,
                "marked_as_lost": False,
                "rescheduled_at": self.engine.timestamp(),
                "rescheduled_by": closer_id,
            },
        }
        lead = await self.engine.apply_update(lead_id, patch, actor=closer_id)
        logger.info("🔁 Reprogramación solicitada para lead %s, vuelve a %s", lead_id, lead.get("assigned_to"))
        return lead

    async def save_client_info(self, lead_id: str, info: ClientInfoRequest) -> dict[str, Any]:
        """
        Guarda los datos que el closer recoge tras una cita atendida.

        Sin pago de tasación hace falta fecha de compromiso, salvo que
        el lead ya se perdiera por impago.
        """
        current = await self.engine.context.run(lambda backend: backend.leads.get(lead_id))
        follow_up = current.get("closer_follow_up") or {}
        lost_for_payment = bool(follow_up.get("lost_due_to_non_payment"))

        if not info.paid_appraisal and not info.payment_commitment_date and not lost_for_payment:
            raise LeadValidationError("Indica la fecha de compromiso de pago de la tasación")

        patch: dict[str, Any] = {
            "client_attended": True,
            "attendance_recorded_at": follow_up.get("attendance_recorded_at") or self.engine.timestamp(),
            "attendance_recorded_by": follow_up.get("attendance_recorded_by") or info.closer_id,
            "accepts_terms": info.accepts_terms,
            "client_income": info.client_income,
            "loan_reason": info.loan_reason,
            "agreed_quota": info.agreed_quota,
            "payment_plan": info.payment_plan,
            "paid_appraisal": info.paid_appraisal,
            "payment_commitment_date": None if info.paid_appraisal else info.payment_commitment_date,
        }
        if info.paid_appraisal and not follow_up.get("payment_date"):
            patch["payment_date"] = self.engine.timestamp()

        return await self.engine.apply_update(
            lead_id, {"closer_follow_up": patch}, actor=info.closer_id
        )

    # ------------------------------------------
    # Tasación
    # ------------------------------------------

    async def record_appraisal(self, lead_id: str, data: AppraisalRequest) -> dict[str, Any]:
        """Registra o edita la tasación. El historial lo lleva el motor."""
        values = data.model_dump(mode="json", exclude={"manager_id"})
        lead = await self.engine.apply_update(lead_id, {"appraisal": values}, actor=data.manager_id)
        logger.info("🏠 Tasación guardada en lead %s por %s", lead_id, data.manager_id)
        return lead
