"""
Schemas Pydantic para leads.

Definen qué datos acepta la API (input) y qué devuelve (output).
Los documentos se guardan como JSON: las fechas viajan como
cadenas ISO-8601 y Pydantic las convierte al leerlas.
"""

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from crm.models.lead import (
    SUBSTATUSES_BY_STATUS,
    AppointmentType,
    LeadStatus,
    LeadType,
    ReviewStatus,
    Substatus,
)
from crm.services.lifecycle import is_editable

# ============================================
# Sub-registros
# ============================================


class Appointment(BaseModel):
    """Cita con el cliente. Completa cuando tiene fecha, hora y tipo."""
    date: str | None = Field(None, examples=["2026-10-20"])
    time: str | None = Field(None, examples=["10:30"])
    type: AppointmentType | None = None
    appraisal_cost: float | None = Field(None, ge=0)
    scheduled_at: datetime | None = None
    scheduled_by: str | None = None


class AppointmentPatch(BaseModel):
    """Cambios parciales de la cita."""
    date: str | None = None
    time: str | None = None
    type: AppointmentType | None = None
    appraisal_cost: float | None = Field(None, ge=0)

    model_config = {"extra": "forbid"}


class CloserFollowUp(BaseModel):
    """Seguimiento del closer después de la cita."""
    client_attended: bool | None = None
    attendance_recorded_at: datetime | None = None
    attendance_recorded_by: str | None = None
    rescheduled_at: datetime | None = None
    rescheduled_by: str | None = None

    # Pérdida
    marked_as_lost: bool = False
    lost_reason: str | None = None
    lost_due_to_non_payment: bool = False

    # Datos del cliente tras la cita
    accepts_terms: bool | None = None
    client_income: float | None = None
    loan_reason: str | None = None
    agreed_quota: float | None = None
    payment_plan: str | None = None
    paid_appraisal: bool | None = None
    payment_commitment_date: str | None = None
    payment_date: datetime | None = None


class CloserFollowUpPatch(BaseModel):
    """Cambios parciales del seguimiento del closer."""
    client_attended: bool | None = None
    marked_as_lost: bool | None = None
    lost_reason: str | None = None
    lost_due_to_non_payment: bool | None = None
    accepts_terms: bool | None = None
    client_income: float | None = None
    loan_reason: str | None = None
    agreed_quota: float | None = None
    payment_plan: str | None = None
    paid_appraisal: bool | None = None
    payment_commitment_date: str | None = None

    model_config = {"extra": "forbid"}


class AppraisalValues(BaseModel):
    """Valores editables de una tasación."""
    price: float | None = None
    garage_price: float | None = None
    situation: str | None = None
    area: float | None = None
    usage: str | None = None
    report_url: str | None = None
    investor_name: str | None = None
    investor_phone: str | None = None


class AppraisalHistoryEntry(BaseModel):
    """Foto de los valores previos a una edición."""
    updated_at: datetime
    updated_by: str | None = None
    previous_values: AppraisalValues


class Appraisal(AppraisalValues):
    """Tasación del inmueble."""
    completed_at: datetime | None = None
    completed_by: str | None = None
    history: list[AppraisalHistoryEntry] = Field(default_factory=list)


class AppraisalPatch(AppraisalValues):
    """Cambios de tasación. El historial lo gestiona el motor."""
    model_config = {"extra": "forbid"}


# ============================================
# Lead
# ============================================


class LeadBase(BaseModel):
    """Campos de contacto y ubicación comunes."""
    name: str = Field(..., min_length=1, max_length=255, examples=["María Quispe"])
    phone: str = Field(..., min_length=1, max_length=50, examples=["+51 987 654 321"])
    email: EmailStr | None = Field(None, examples=["maria@example.com"])
    amount: float = Field(0, ge=0, examples=[25000])
    notes: str | None = None

    department: str | None = None
    province: str | None = None
    district: str | None = None
    address: str | None = None
    identity_document: str | None = None
    interest_rate: float | None = None
    meets_requirements: bool | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        """Normaliza el email a minúsculas."""
        if v is not None:
            return v.lower().strip()
        return v

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        """Limpia espacios extra del nombre."""
        return " ".join(v.split()).strip()


class CreateDistribution(str, enum.Enum):
    """Cómo se asigna un lead creado a mano."""
    EQUITABLE = "equitable"      # Se respeta assigned_to
    RANDOM = "random"            # Ejecutivo al azar según el tipo


class LeadCreate(LeadBase):
    """Datos para crear un lead a mano. Siempre nace en 'nuevo'."""
    lead_type: LeadType = LeadType.LOAN
    assigned_to: str | None = None
    source: str = Field("manual", max_length=100)


class UploadDistribution(str, enum.Enum):
    """Cómo se reparten los leads de una carga masiva."""
    MANUAL = "manual"
    ROUND_ROBIN = "round_robin"


class LeadUploadRow(BaseModel):
    """Una fila ya parseada de la hoja de cálculo."""
    name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=50)
    email: str | None = None
    amount: float = 0
    assigned_to: str | None = None


class LeadUploadRequest(BaseModel):
    """Carga masiva de leads."""
    rows: list[LeadUploadRow] = Field(..., min_length=1)
    distribution: UploadDistribution = UploadDistribution.MANUAL
    executive_ids: list[str] = Field(default_factory=list)
    lead_type: LeadType = LeadType.LOAN


class LeadUploadResponse(BaseModel):
    """Resultado de la carga: ids creados o tarea encolada."""
    created: int
    lead_ids: list[str] = Field(default_factory=list)
    queued: bool = False


class LeadUpdate(BaseModel):
    """
    Cambio parcial de un lead. Todos los campos opcionales.

    Se aplica con model_dump(exclude_unset=True): solo lo enviado
    llega al motor del ciclo de vida.
    """
    name: str | None = Field(None, min_length=1, max_length=255)
    phone: str | None = Field(None, min_length=1, max_length=50)
    email: EmailStr | None = None
    amount: float | None = Field(None, ge=0)
    notes: str | None = None
    status: LeadStatus | None = None
    substatus: Substatus | None = None
    assigned_to: str | None = None

    department: str | None = None
    province: str | None = None
    district: str | None = None
    address: str | None = None
    identity_document: str | None = None
    interest_rate: float | None = None
    meets_requirements: bool | None = None

    appointment: AppointmentPatch | None = None
    closer_follow_up: CloserFollowUpPatch | None = None
    appraisal: AppraisalPatch | None = None

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_substatus_matches_status(self) -> "LeadUpdate":
        """Si llegan estado y subestado juntos, deben ser compatibles."""
        if self.status is not None and self.substatus is not None:
            if self.substatus not in SUBSTATUSES_BY_STATUS[self.status]:
                raise ValueError(
                    f"Subestado '{self.substatus.value}' no válido para "
                    f"estado '{self.status.value}'"
                )
        return self

    def to_patch(self) -> dict[str, Any]:
        """Patch listo para el motor: solo campos enviados, en formato JSON."""
        return self.model_dump(exclude_unset=True, mode="json")


class LeadResponse(LeadBase):
    """Lo que la API devuelve al consultar un lead."""
    id: str
    lead_type: LeadType = LeadType.LOAN
    status: LeadStatus
    substatus: Substatus | None = None
    source: str | None = None
    assigned_to: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    contacted_at: datetime | None = None

    # Transferencias
    transferred_to: str | None = None
    transferred_at: datetime | None = None
    previous_owner: str | None = None

    # Revisión legal
    legal_status: ReviewStatus | None = None
    legal_comments: str | None = None
    legal_reviewed_at: datetime | None = None
    legal_reviewed_by: str | None = None

    # Revisión comercial
    commercial_status: ReviewStatus | None = None
    commercial_comments: str | None = None
    commercial_reviewed_at: datetime | None = None
    commercial_reviewed_by: str | None = None

    # Cita y closer
    appointment: Appointment | None = None
    appointment_locked: bool = False
    closer_assigned_to: str | None = None
    closer_assigned_at: datetime | None = None
    closer_follow_up: CloserFollowUp | None = None

    appraisal: Appraisal | None = None
    documents: dict[str, str | None] = Field(default_factory=dict)

    editable: bool = True

    # Los documentos antiguos pueden traer emails no normalizados
    email: str | None = None

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "LeadResponse":
        """Construye la respuesta añadiendo el flag de editabilidad."""
        return cls.model_validate({**document, "editable": is_editable(document)})


# ============================================
# Flujos de revisión y seguimiento
# ============================================


class ReviewDecisionType(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ReviewDecision(BaseModel):
    """Decisión de un revisor legal o comercial."""
    decision: ReviewDecisionType
    comments: str = ""
    reviewer_id: str = Field(..., min_length=1)


class AttendanceRequest(BaseModel):
    attended: bool
    closer_id: str = Field(..., min_length=1)


class LostRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    closer_id: str = Field(..., min_length=1)
    due_to_non_payment: bool = False


class RescheduleRequest(BaseModel):
    closer_id: str = Field(..., min_length=1)


class ClientInfoRequest(BaseModel):
    """Datos que el closer recoge cuando el cliente asiste."""
    accepts_terms: bool
    client_income: float = Field(..., gt=0)
    loan_reason: str = Field(..., min_length=1)
    agreed_quota: float = Field(..., gt=0)
    payment_plan: str = Field(..., min_length=1)
    paid_appraisal: bool | None = None
    payment_commitment_date: str | None = None
    closer_id: str = Field(..., min_length=1)

    @field_validator("loan_reason", "payment_plan")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class AppraisalRequest(BaseModel):
    """Registro o edición de una tasación."""
    price: float = Field(..., gt=0)
    garage_price: float | None = Field(None, ge=0)
    situation: str = Field(..., min_length=1)
    area: float = Field(..., gt=0)
    usage: str = Field(..., min_length=1)
    report_url: str | None = None
    investor_name: str | None = None
    investor_phone: str | None = None
    manager_id: str = Field(..., min_length=1)


class DocumentUploadResponse(BaseModel):
    filename: str
    file_url: str


# ============================================
# Estadísticas
# ============================================


class LeadsStats(BaseModel):
    total_leads: int
    pending_leads: int
    contacted_leads: int


class AssigneeCount(BaseModel):
    assignee_id: str
    count: int


class ReviewCounts(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class GlobalStats(BaseModel):
    total_leads: int
    by_status: dict[str, int]
    by_substatus: dict[str, int]
    by_type: dict[str, int]
    legal_stats: ReviewCounts
    commercial_stats: ReviewCounts
    by_assignee: dict[str, int]


class ExecutiveStats(BaseModel):
    total: int
    new_leads: int
    appointments: int
    pending_legal: int
    pending_commercial: int
