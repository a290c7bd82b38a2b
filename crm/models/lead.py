"""
Modelo de datos de leads.

Cada lead se guarda como un documento JSON (JSONB en PostgreSQL)
dentro de la tabla lead_documents. Los sub-registros (cita,
seguimiento del closer, tasación, documentos) viven anidados
en el mismo documento.
"""

import enum
from typing import Any

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from crm.models.base import BaseModel

# --- ENUMS ---


class LeadType(str, enum.Enum):
    """Tipo de lead. No cambia después de crearlo."""
    LOAN = "loan"                # Préstamo: pasa por revisión legal y comercial
    INVESTMENT = "investment"    # Inversión: sin revisiones


class LeadStatus(str, enum.Enum):
    """Estado principal del ciclo de vida de un lead."""
    NUEVO = "nuevo"
    CONTACTADO = "contactado"
    CONTACTO_NO_EFECTIVO = "contacto_no_efectivo"
    NO_CONTACTADO = "no_contactado"
    RECHAZADO = "rechazado"


class Substatus(str, enum.Enum):
    """Refinamiento del estado principal."""
    # contactado
    INTERESADO = "interesado"
    GESTION_WHATSAPP = "gestion_whatsapp"
    INVERSIONISTA = "inversionista"
    AGENDADO_POTENCIAL = "agendado_potencial"
    CITA = "cita"
    SEGUIMIENTO = "seguimiento"
    EN_VALIDACION = "en_validacion"
    APROBADO = "aprobado"
    REPROGRAMAR = "reprogramar"
    # contacto_no_efectivo
    NO_CALIFICA = "no_califica"
    PRESTAMO_MENOS_15000 = "prestamo_menos_15000"
    CONSIGUIO_PRESTAMO = "consiguio_prestamo"
    NO_INTERESADO = "no_interesado"
    LLAMADO_MUDA = "llamado_muda"
    GESTIONADO_OTRO_AGENTE = "gestionado_otro_agente"
    CONTACTO_TERCEROS = "contacto_terceros"
    FALLECIO = "fallecio"
    NUMERO_EQUIVOCADO = "numero_equivocado"
    NO_DEJO_DATOS = "no_dejo_datos"
    CORTA_LLAMADA = "corta_llamada"
    VOLVER_LLAMAR = "volver_llamar"
    # no_contactado
    TELEFONO_NO_EXISTE = "telefono_no_existe"
    NUMERO_SUSPENDIDO = "numero_suspendido"
    NO_CONTESTA = "no_contesta"
    APAGADO = "apagado"


# Subestados válidos por estado. Lo valida la capa de formularios
# (schemas), no el motor del ciclo de vida.
SUBSTATUSES_BY_STATUS: dict[LeadStatus, frozenset[Substatus]] = {
    LeadStatus.CONTACTADO: frozenset({
        Substatus.INTERESADO, Substatus.GESTION_WHATSAPP, Substatus.INVERSIONISTA,
        Substatus.AGENDADO_POTENCIAL, Substatus.CITA, Substatus.SEGUIMIENTO,
        Substatus.EN_VALIDACION, Substatus.APROBADO, Substatus.REPROGRAMAR,
    }),
    LeadStatus.CONTACTO_NO_EFECTIVO: frozenset({
        Substatus.NO_CALIFICA, Substatus.PRESTAMO_MENOS_15000,
        Substatus.CONSIGUIO_PRESTAMO, Substatus.NO_INTERESADO,
        Substatus.LLAMADO_MUDA, Substatus.GESTIONADO_OTRO_AGENTE,
        Substatus.CONTACTO_TERCEROS, Substatus.FALLECIO,
        Substatus.NUMERO_EQUIVOCADO, Substatus.NO_DEJO_DATOS,
        Substatus.CORTA_LLAMADA, Substatus.VOLVER_LLAMAR,
    }),
    LeadStatus.NO_CONTACTADO: frozenset({
        Substatus.TELEFONO_NO_EXISTE, Substatus.NUMERO_SUSPENDIDO,
        Substatus.NO_CONTESTA, Substatus.APAGADO,
    }),
    LeadStatus.NUEVO: frozenset(),
    LeadStatus.RECHAZADO: frozenset(),
}


class ReviewStatus(str, enum.Enum):
    """Estado de una revisión legal o comercial."""
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class AppointmentType(str, enum.Enum):
    """Modalidad de la cita con el cliente."""
    PRESENCIAL = "presencial"
    VIRTUAL = "virtual"


class DocumentType(str, enum.Enum):
    """Documentos que se pueden adjuntar a un lead."""
    DNI = "dni"
    PUHR = "puhr"
    COPIA_LITERAL = "copia_literal"
    CASA = "casa"
    TASACION = "tasacion"        # Informe de tasación, va en appraisal.report_url


# Claves de sub-registros que se fusionan campo a campo
NESTED_FIELDS = ("appointment", "closer_follow_up", "appraisal", "documents")


# --- MODELS ---


class LeadDocument(BaseModel):
    """
    Lead almacenado como documento.

    El contenido completo (estado, asignación, revisiones, cita...)
    va en `data`. Las consultas por campo usan rutas JSON.
    """

    __tablename__ = "lead_documents"

    data: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return f"<LeadDocument {self.id} ({self.data.get('status')})>"
