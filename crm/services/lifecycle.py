"""
Motor del ciclo de vida de un lead.

Dado el estado guardado de un lead y un cambio parcial, decide el
estado final: fusiona el cambio, aplica las transferencias automáticas
(ejecutivo → legal → comercial → closer), fuerza los estados que
correspondan y lleva la contabilidad (fechas, historial de tasación).
Todo se escribe en una sola operación del almacén.

Las revisiones legal y comercial (aprobar / rechazar) también viven
aquí porque mueven la propiedad del lead igual que las reglas.
"""

import copy
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any, TypeVar

from crm.models.lead import (
    NESTED_FIELDS,
    LeadStatus,
    LeadType,
    ReviewStatus,
    Substatus,
)
from crm.models.user import UserRole
from crm.services.cache import CacheService
from crm.services.errors import LeadValidationError
from crm.services.selection import RandomSelection, SelectionStrategy
from crm.services.store.base import apply_field_paths
from crm.services.store.context import PersistenceContext, StorageBackend

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
T = TypeVar("T")

# Estado del seguimiento al empezar un ciclo de cita nuevo
FOLLOW_UP_RESET: dict[str, Any] = {
    "client_attended": None,
    "marked_as_lost": False,
    "lost_reason": None,
    "lost_due_to_non_payment": False,
    "attendance_recorded_at": None,
    "attendance_recorded_by": None,
}

# Campos de la tasación que se guardan en cada entrada del historial
APPRAISAL_VALUE_FIELDS = (
    "price", "garage_price", "situation", "area",
    "usage", "report_url", "investor_name", "investor_phone",
)

# Campos de la tasación que solo escribe el motor
_APPRAISAL_BOOKKEEPING = ("history", "completed_at", "completed_by")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ------------------------------------------
# Funciones puras
# ------------------------------------------


def merge_patch(current: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """
    Fusiona un cambio sobre el estado actual.

    Los campos de primer nivel se sustituyen. Los sub-registros
    (cita, seguimiento, tasación, documentos) se fusionan clave a clave.
    """
    merged = copy.deepcopy(dict(current))
    for key, value in patch.items():
        existing = merged.get(key)
        if key in NESTED_FIELDS and isinstance(value, dict) and isinstance(existing, dict):
            merged[key] = {**existing, **copy.deepcopy(value)}
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def flatten_for_write(updates: Mapping[str, Any]) -> dict[str, Any]:
    """
    Convierte los sub-registros en rutas con puntos.

    Así el almacén solo toca las hojas cambiadas y el resto
    del sub-registro se conserva.
    """
    fields: dict[str, Any] = {}
    for key, value in updates.items():
        if key in NESTED_FIELDS and isinstance(value, dict):
            for nested_key, nested_value in value.items():
                fields[f"{key}.{nested_key}"] = nested_value
        else:
            fields[key] = value
    return fields


def is_appointment_complete(appointment: Mapping[str, Any] | None) -> bool:
    """La cita está completa cuando tiene fecha, hora y tipo."""
    if not appointment:
        return False
    return all(appointment.get(key) for key in ("date", "time", "type"))


def is_editable(lead: Mapping[str, Any]) -> bool:
    """
    Indica si un ejecutivo puede editar el lead.

    No es editable si está en revisión (legal o comercial) sin estar
    aprobado en ambas, salvo los leads de inversión, o si la cita
    está bloqueada.
    """
    legal = lead.get("legal_status")
    commercial = lead.get("commercial_status")
    in_review = ReviewStatus.PENDING_REVIEW.value in (legal, commercial)
    fully_approved = (
        legal == ReviewStatus.APPROVED.value
        and commercial == ReviewStatus.APPROVED.value
    )
    is_investment = lead.get("lead_type") == LeadType.INVESTMENT.value
    gated = in_review and not fully_approved and not is_investment
    return not (gated or bool(lead.get("appointment_locked")))


def _enters_legal_review(current: Mapping[str, Any], merged: Mapping[str, Any]) -> bool:
    """El cambio lleva el lead a contactado / en_validacion por primera vez."""

    def in_validation(lead: Mapping[str, Any]) -> bool:
        return (
            lead.get("status") == LeadStatus.CONTACTADO.value
            and lead.get("substatus") == Substatus.EN_VALIDACION.value
        )

    return in_validation(merged) and not in_validation(current)


def _changes_appointment(current: Mapping[str, Any], patch: Mapping[str, Any]) -> bool:
    """El cambio modifica algún dato de la cita ya guardada."""
    appointment_patch = patch.get("appointment")
    if not isinstance(appointment_patch, Mapping):
        return False
    stored = current.get("appointment") or {}
    return any(stored.get(key) != value for key, value in appointment_patch.items())


def _needs_closer(
    current: Mapping[str, Any],
    patch: Mapping[str, Any],
    merged: Mapping[str, Any],
) -> bool:
    """Condiciones para asignar (o reasignar) un closer."""
    if not is_appointment_complete(merged.get("appointment")):
        return False

    if merged.get("lead_type") != LeadType.INVESTMENT.value:
        approved = (
            merged.get("legal_status") == ReviewStatus.APPROVED.value
            and merged.get("commercial_status") == ReviewStatus.APPROVED.value
        )
        if not approved:
            return False

    return (
        not current.get("closer_assigned_to")
        or current.get("substatus") == Substatus.REPROGRAMAR.value
        or patch.get("substatus") == Substatus.CITA.value
    )


# ------------------------------------------
# Motor
# ------------------------------------------


class LeadLifecycleEngine:
    """Aplica cambios y revisiones sobre leads respetando las reglas de traspaso."""

    def __init__(
        self,
        context: PersistenceContext,
        selector: SelectionStrategy | None = None,
        clock: Clock = utc_now,
        cache: CacheService | None = None,
    ) -> None:
        self.context = context
        self.selector = selector or RandomSelection()
        self.clock = clock
        self.cache = cache

    def timestamp(self) -> str:
        return self.clock().isoformat()

    async def _write(self, operation: Callable[[StorageBackend], Awaitable[T]]) -> T:
        """Ejecuta una escritura y descarta las estadísticas cacheadas."""
        result = await self.context.run(operation)
        if self.cache:
            await self.cache.invalidate_stats("global")
        return result

    # ------------------------------------------
    # Actualización genérica
    # ------------------------------------------

    async def apply_update(
        self,
        lead_id: str,
        patch: Mapping[str, Any],
        actor: str | None = None,
    ) -> dict[str, Any]:
        """
        Aplica un cambio parcial y devuelve el lead resultante.

        1. Carga el lead (LeadNotFoundError si no existe)
        2. Fusiona el cambio (sub-registros clave a clave)
        3. Sella contacted_at en el primer contacto
        4. Historial / fechas de la tasación
        5. Transferencia a legal al entrar en validación
        6. Asignación de closer cuando la cita está lista
        7. Escribe todo en una sola operación
        """
        return await self._write(
            lambda backend: self._apply_update(backend, lead_id, dict(patch), actor)
        )

    async def _apply_update(
        self,
        backend: StorageBackend,
        lead_id: str,
        patch: dict[str, Any],
        actor: str | None,
    ) -> dict[str, Any]:
        current = await backend.leads.get(lead_id)
        now = self.timestamp()

        patch.pop("id", None)
        if "lead_type" in patch and patch["lead_type"] != current.get("lead_type"):
            raise LeadValidationError("El tipo de lead no se puede cambiar")
        if current.get("appointment_locked") and _changes_appointment(current, patch):
            raise LeadValidationError("La cita está bloqueada: solo se cambia reprogramando")

        updates = copy.deepcopy(patch)
        updates["updated_at"] = now

        self._stamp_first_contact(current, patch, updates, now)
        self._track_appraisal(current, updates, now, actor)

        merged = merge_patch(current, updates)
        if _enters_legal_review(current, merged):
            await self._transfer_to_legal(backend, lead_id, current, updates, now)

        merged = merge_patch(current, updates)
        if _needs_closer(current, patch, merged):
            await self._assign_closer(backend, lead_id, current, updates, now)

        fields = flatten_for_write(updates)
        await backend.leads.write(lead_id, fields)
        logger.info("Lead actualizado: %s (campos: %s)", lead_id, sorted(fields))
        return apply_field_paths(current, fields)

    @staticmethod
    def _stamp_first_contact(
        current: Mapping[str, Any],
        patch: Mapping[str, Any],
        updates: dict[str, Any],
        now: str,
    ) -> None:
        status = patch.get("status")
        if (
            status
            and status != LeadStatus.NUEVO.value
            and current.get("status") == LeadStatus.NUEVO.value
            and not current.get("contacted_at")
        ):
            updates["contacted_at"] = now

    @staticmethod
    def _track_appraisal(
        current: Mapping[str, Any],
        updates: dict[str, Any],
        now: str,
        actor: str | None,
    ) -> None:
        """
        La primera tasación sella completed_at/by. Cada edición posterior
        añade una entrada al historial con los valores anteriores.
        """
        appraisal_patch = updates.get("appraisal")
        if not isinstance(appraisal_patch, dict):
            return

        values = {
            key: value for key, value in appraisal_patch.items()
            if key not in _APPRAISAL_BOOKKEEPING
        }
        if not values:
            updates.pop("appraisal")
            return

        previous = current.get("appraisal") or {}
        if previous.get("completed_at"):
            entry = {
                "updated_at": now,
                "updated_by": actor,
                "previous_values": {field: previous.get(field) for field in APPRAISAL_VALUE_FIELDS},
            }
            values["history"] = [*copy.deepcopy(previous.get("history") or []), entry]
        else:
            values["completed_at"] = now
            values["completed_by"] = actor
        updates["appraisal"] = values

    async def _transfer_to_legal(
        self,
        backend: StorageBackend,
        lead_id: str,
        current: Mapping[str, Any],
        updates: dict[str, Any],
        now: str,
    ) -> None:
        legal_users = await backend.users.query_by_role(UserRole.LEGAL)
        if not legal_users:
            logger.warning("⚠️ No hay usuarios legales. Transferencia omitida para lead %s", lead_id)
            return

        chosen = self.selector.pick_one(legal_users)
        updates.update(
            transferred_to=UserRole.LEGAL.value,
            transferred_at=now,
            previous_owner=current.get("assigned_to"),
            assigned_to=chosen.uid,
            legal_status=ReviewStatus.PENDING_REVIEW.value,
        )
        logger.info("🔄 Lead %s transferido a legal: %s (%s)", lead_id, chosen.display_name, chosen.uid)

    async def _assign_closer(
        self,
        backend: StorageBackend,
        lead_id: str,
        current: Mapping[str, Any],
        updates: dict[str, Any],
        now: str,
    ) -> None:
        closers = await backend.users.query_by_role(UserRole.CLOSER)
        if not closers:
            logger.warning("⚠️ No hay closers. Asignación omitida para lead %s", lead_id)
            return

        # Se prefiere el closer que ya llevaba el lead
        selected = next(
            (c for c in closers if c.uid == current.get("closer_assigned_to")),
            None,
        ) or self.selector.pick_one(closers)

        appointment = dict(updates.get("appointment") or {})
        appointment.update(scheduled_at=now, scheduled_by=current.get("assigned_to"))

        # Ciclo de cita nuevo: se descarta el seguimiento anterior
        follow_up = dict(updates.get("closer_follow_up") or {})
        follow_up.update(FOLLOW_UP_RESET)

        updates.update(
            appointment_locked=True,
            closer_assigned_to=selected.uid,
            closer_assigned_at=now,
            previous_owner=current.get("assigned_to"),
            assigned_to=selected.uid,
            appointment=appointment,
            substatus=Substatus.CITA.value,
            closer_follow_up=follow_up,
        )
        logger.info("🎯 Closer asignado al lead %s: %s (%s)", lead_id, selected.display_name, selected.uid)

    # ------------------------------------------
    # Revisión legal
    # ------------------------------------------

    async def approve_legal(self, lead_id: str, comments: str, reviewer_id: str) -> dict[str, Any]:
        """Aprueba en legal y transfiere el lead a un comercial al azar."""
        return await self._write(
            lambda backend: self._approve_legal(backend, lead_id, comments, reviewer_id)
        )

    async def _approve_legal(
        self, backend: StorageBackend, lead_id: str, comments: str, reviewer_id: str,
    ) -> dict[str, Any]:
        current = await backend.leads.get(lead_id)
        now = self.timestamp()
        updates = self._review_fields("legal", ReviewStatus.APPROVED, comments, reviewer_id, now)

        commercial_users = await backend.users.query_by_role(UserRole.COMMERCIAL)
        if commercial_users:
            chosen = self.selector.pick_one(commercial_users)
            updates.update(
                transferred_to=UserRole.COMMERCIAL.value,
                transferred_at=now,
                assigned_to=chosen.uid,
                commercial_status=ReviewStatus.PENDING_REVIEW.value,
            )
            # Se conserva el ejecutivo original a lo largo de la cadena
            if not current.get("previous_owner"):
                updates["previous_owner"] = current.get("assigned_to")
            logger.info("🔄 Lead %s transferido a comercial: %s (%s)", lead_id, chosen.display_name, chosen.uid)
        else:
            logger.warning("⚠️ No hay usuarios comerciales. Transferencia omitida para lead %s", lead_id)

        await backend.leads.write(lead_id, updates)
        logger.info("✅ Lead %s aprobado por legal (%s)", lead_id, reviewer_id)
        return apply_field_paths(current, updates)

    async def reject_legal(self, lead_id: str, comments: str, reviewer_id: str) -> dict[str, Any]:
        """Rechaza en legal y devuelve el lead a su dueño anterior."""
        return await self._write(
            lambda backend: self._reject(backend, "legal", lead_id, comments, reviewer_id)
        )

    # ------------------------------------------
    # Revisión comercial
    # ------------------------------------------

    async def approve_commercial(self, lead_id: str, comments: str, reviewer_id: str) -> dict[str, Any]:
        """Aprueba en comercial: el lead vuelve al ejecutivo listo para agendar."""
        return await self._write(
            lambda backend: self._approve_commercial(backend, lead_id, comments, reviewer_id)
        )

    async def _approve_commercial(
        self, backend: StorageBackend, lead_id: str, comments: str, reviewer_id: str,
    ) -> dict[str, Any]:
        current = await backend.leads.get(lead_id)
        now = self.timestamp()
        updates = self._review_fields("commercial", ReviewStatus.APPROVED, comments, reviewer_id, now)
        updates.update(
            status=LeadStatus.CONTACTADO.value,
            substatus=Substatus.APROBADO.value,
            assigned_to=current.get("previous_owner") or current.get("assigned_to"),
        )

        await backend.leads.write(lead_id, updates)
        logger.info("✅ Lead %s aprobado por comercial (%s)", lead_id, reviewer_id)
        return apply_field_paths(current, updates)

    async def reject_commercial(self, lead_id: str, comments: str, reviewer_id: str) -> dict[str, Any]:
        """Rechaza en comercial y devuelve el lead a su dueño anterior."""
        return await self._write(
            lambda backend: self._reject(backend, "commercial", lead_id, comments, reviewer_id)
        )

    # ------------------------------------------
    # Helpers privados
    # ------------------------------------------

    async def _reject(
        self,
        backend: StorageBackend,
        stage: str,
        lead_id: str,
        comments: str,
        reviewer_id: str,
    ) -> dict[str, Any]:
        current = await backend.leads.get(lead_id)
        now = self.timestamp()
        updates = self._review_fields(stage, ReviewStatus.REJECTED, comments, reviewer_id, now)
        updates.update(status=LeadStatus.RECHAZADO.value, transferred_to=None)
        # Vuelve siempre al dueño anterior, aunque sea None (sin asignar)
        updates["assigned_to"] = current.get("previous_owner")

        await backend.leads.write(lead_id, updates)
        logger.info("❌ Lead %s rechazado por %s (%s)", lead_id, stage, reviewer_id)
        return apply_field_paths(current, updates)

    @staticmethod
    def _review_fields(
        stage: str,
        status: ReviewStatus,
        comments: str,
        reviewer_id: str,
        now: str,
    ) -> dict[str, Any]:
        return {
            f"{stage}_status": status.value,
            f"{stage}_comments": comments,
            f"{stage}_reviewed_at": now,
            f"{stage}_reviewed_by": reviewer_id,
            "updated_at": now,
        }
