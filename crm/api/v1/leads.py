"""
Endpoints de leads.

Cada endpoint recibe HTTP, delega al servicio o a los flujos,
y devuelve HTTP. Los errores de negocio los traduce main.py.
"""

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from crm.api.dependencies import get_lead_service, get_workflows, require_api_key
from crm.config import get_settings
from crm.models.lead import DocumentType
from crm.models.user import UserRole
from crm.schemas.lead import (
    AppraisalRequest,
    AssigneeCount,
    AttendanceRequest,
    ClientInfoRequest,
    CreateDistribution,
    DocumentUploadResponse,
    ExecutiveStats,
    GlobalStats,
    LeadCreate,
    LeadResponse,
    LeadsStats,
    LeadUpdate,
    LeadUploadRequest,
    LeadUploadResponse,
    LostRequest,
    RescheduleRequest,
    ReviewDecision,
)
from crm.services.lead_service import LeadService
from crm.services.workflows import LeadWorkflows, ReviewStage
from crm.tasks.lead_tasks import import_leads

router = APIRouter()
settings = get_settings()


def _responses(leads: list[dict]) -> list[LeadResponse]:
    return [LeadResponse.from_document(lead) for lead in leads]


# --- Alta ---


@router.post(
    "",
    response_model=LeadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crear un lead nuevo",
    dependencies=[Depends(require_api_key)],
)
async def create_lead(
    data: LeadCreate,
    distribution: CreateDistribution = Query(CreateDistribution.EQUITABLE),
    service: LeadService = Depends(get_lead_service),
) -> LeadResponse:
    """Crea el lead en estado 'nuevo'. Con random lo asigna a un ejecutivo al azar."""
    lead = await service.create_lead(data, distribution)
    return LeadResponse.from_document(lead)


@router.post(
    "/upload",
    response_model=LeadUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Carga masiva de leads",
    dependencies=[Depends(require_api_key)],
)
async def upload_leads(
    request: LeadUploadRequest,
    service: LeadService = Depends(get_lead_service),
) -> LeadUploadResponse:
    """
    Importa filas ya parseadas de la hoja de cálculo.

    Por encima de IMPORT_ASYNC_THRESHOLD filas la carga se encola
    en Celery y la respuesta solo confirma el encolado.
    """
    if len(request.rows) > settings.IMPORT_ASYNC_THRESHOLD:
        import_leads.delay(request.model_dump(mode="json"))
        return LeadUploadResponse(created=0, queued=True)

    lead_ids = await service.upload_leads(request)
    return LeadUploadResponse(created=len(lead_ids), lead_ids=lead_ids)


# --- Dashboards ---


@router.get("", response_model=list[LeadResponse], summary="Listar todos los leads")
async def list_leads(
    service: LeadService = Depends(get_lead_service),
) -> list[LeadResponse]:
    return _responses(await service.get_all_leads())


@router.delete(
    "",
    summary="Eliminar todos los leads",
    dependencies=[Depends(require_api_key)],
)
async def delete_all_leads(
    service: LeadService = Depends(get_lead_service),
) -> dict[str, int]:
    return {"deleted": await service.delete_all_leads()}


@router.get("/unassigned", response_model=list[LeadResponse], summary="Leads sin asignar")
async def list_unassigned_leads(
    service: LeadService = Depends(get_lead_service),
) -> list[LeadResponse]:
    return _responses(await service.get_unassigned_leads())


@router.get(
    "/by-executive/{executive_id}",
    response_model=list[LeadResponse],
    summary="Leads de un ejecutivo (asignados y transferidos)",
)
async def list_leads_by_executive(
    executive_id: str,
    service: LeadService = Depends(get_lead_service),
) -> list[LeadResponse]:
    return _responses(await service.get_leads_by_executive(executive_id))


@router.get(
    "/by-closer/{closer_id}",
    response_model=list[LeadResponse],
    summary="Leads con cita de un closer",
)
async def list_leads_by_closer(
    closer_id: str,
    service: LeadService = Depends(get_lead_service),
) -> list[LeadResponse]:
    return _responses(await service.get_leads_by_closer(closer_id))


@router.get(
    "/reviewed-by/{user_id}",
    response_model=list[LeadResponse],
    summary="Leads revisados por un usuario legal o comercial",
)
async def list_leads_reviewed_by(
    user_id: str,
    role: UserRole = Query(..., description="legal o commercial"),
    service: LeadService = Depends(get_lead_service),
) -> list[LeadResponse]:
    return _responses(await service.get_leads_reviewed_by(user_id, role))


@router.get(
    "/appraisal",
    response_model=list[LeadResponse],
    summary="Leads con tasación pagada",
)
async def list_leads_for_appraisal(
    service: LeadService = Depends(get_lead_service),
) -> list[LeadResponse]:
    return _responses(await service.get_leads_for_appraisal_manager())


# --- Estadísticas ---


@router.get("/stats", response_model=LeadsStats, summary="Totales de leads")
async def leads_stats(service: LeadService = Depends(get_lead_service)) -> LeadsStats:
    return await service.get_leads_stats()


@router.get(
    "/stats/by-assignee",
    response_model=list[AssigneeCount],
    summary="Número de leads por asignado",
)
async def leads_by_assignee(
    service: LeadService = Depends(get_lead_service),
) -> list[AssigneeCount]:
    return await service.get_leads_by_assignee_count()


@router.get("/stats/global", response_model=GlobalStats, summary="Estadísticas del supervisor")
async def global_stats(service: LeadService = Depends(get_lead_service)) -> GlobalStats:
    return await service.get_global_stats()


@router.get(
    "/stats/executive/{executive_id}",
    response_model=ExecutiveStats,
    summary="Estadísticas de un ejecutivo",
)
async def executive_stats(
    executive_id: str,
    service: LeadService = Depends(get_lead_service),
) -> ExecutiveStats:
    return await service.get_executive_stats(executive_id)


# --- Lead individual ---


@router.get("/{lead_id}", response_model=LeadResponse, summary="Obtener un lead por ID")
async def get_lead(
    lead_id: str,
    service: LeadService = Depends(get_lead_service),
) -> LeadResponse:
    return LeadResponse.from_document(await service.get_lead(lead_id))


@router.patch(
    "/{lead_id}",
    response_model=LeadResponse,
    summary="Actualizar un lead",
    dependencies=[Depends(require_api_key)],
)
async def update_lead(
    lead_id: str,
    data: LeadUpdate,
    actor_id: str | None = Query(None, description="Usuario que hace el cambio"),
    workflows: LeadWorkflows = Depends(get_workflows),
) -> LeadResponse:
    """
    Actualiza solo los campos enviados.

    El motor aplica las transferencias automáticas: a legal al
    pasar a en_validacion y a un closer cuando la cita está lista.
    """
    lead = await workflows.engine.apply_update(lead_id, data.to_patch(), actor=actor_id)
    return LeadResponse.from_document(lead)


# --- Revisiones ---


@router.post(
    "/{lead_id}/legal-review",
    response_model=LeadResponse,
    summary="Decisión de la revisión legal",
    dependencies=[Depends(require_api_key)],
)
async def legal_review(
    lead_id: str,
    decision: ReviewDecision,
    workflows: LeadWorkflows = Depends(get_workflows),
) -> LeadResponse:
    lead = await workflows.review(lead_id, ReviewStage.LEGAL, decision)
    return LeadResponse.from_document(lead)


@router.post(
    "/{lead_id}/commercial-review",
    response_model=LeadResponse,
    summary="Decisión de la revisión comercial",
    dependencies=[Depends(require_api_key)],
)
async def commercial_review(
    lead_id: str,
    decision: ReviewDecision,
    workflows: LeadWorkflows = Depends(get_workflows),
) -> LeadResponse:
    lead = await workflows.review(lead_id, ReviewStage.COMMERCIAL, decision)
    return LeadResponse.from_document(lead)


# --- Seguimiento del closer ---


@router.post(
    "/{lead_id}/attendance",
    response_model=LeadResponse,
    summary="Registrar asistencia a la cita",
    dependencies=[Depends(require_api_key)],
)
async def record_attendance(
    lead_id: str,
    data: AttendanceRequest,
    workflows: LeadWorkflows = Depends(get_workflows),
) -> LeadResponse:
    lead = await workflows.record_attendance(lead_id, data.attended, data.closer_id)
    return LeadResponse.from_document(lead)


@router.post(
    "/{lead_id}/lost",
    response_model=LeadResponse,
    summary="Marcar lead como perdido",
    dependencies=[Depends(require_api_key)],
)
async def mark_as_lost(
    lead_id: str,
    data: LostRequest,
    workflows: LeadWorkflows = Depends(get_workflows),
) -> LeadResponse:
    lead = await workflows.mark_as_lost(
        lead_id, data.reason, data.closer_id, due_to_non_payment=data.due_to_non_payment,
    )
    return LeadResponse.from_document(lead)


@router.post(
    "/{lead_id}/reschedule",
    response_model=LeadResponse,
    summary="Solicitar reprogramación",
    dependencies=[Depends(require_api_key)],
)
async def request_reschedule(
    lead_id: str,
    data: RescheduleRequest,
    workflows: LeadWorkflows = Depends(get_workflows),
) -> LeadResponse:
    lead = await workflows.request_reschedule(lead_id, data.closer_id)
    return LeadResponse.from_document(lead)


@router.post(
    "/{lead_id}/client-info",
    response_model=LeadResponse,
    summary="Guardar datos del cliente tras la cita",
    dependencies=[Depends(require_api_key)],
)
async def save_client_info(
    lead_id: str,
    data: ClientInfoRequest,
    workflows: LeadWorkflows = Depends(get_workflows),
) -> LeadResponse:
    lead = await workflows.save_client_info(lead_id, data)
    return LeadResponse.from_document(lead)


@router.post(
    "/{lead_id}/appraisal",
    response_model=LeadResponse,
    summary="Registrar o editar la tasación",
    dependencies=[Depends(require_api_key)],
)
async def record_appraisal(
    lead_id: str,
    data: AppraisalRequest,
    workflows: LeadWorkflows = Depends(get_workflows),
) -> LeadResponse:
    lead = await workflows.record_appraisal(lead_id, data)
    return LeadResponse.from_document(lead)


# --- Documentos ---


@router.post(
    "/{lead_id}/documents",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Subir un documento PDF del lead",
    dependencies=[Depends(require_api_key)],
)
async def upload_document(
    lead_id: str,
    document_type: DocumentType = Form(...),
    file: UploadFile = File(...),
    service: LeadService = Depends(get_lead_service),
) -> DocumentUploadResponse:
    content = await file.read()
    result = await service.upload_document(lead_id, content, document_type)
    return DocumentUploadResponse(**result)


@router.delete(
    "/{lead_id}/documents/{filename}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Eliminar un documento del lead",
    dependencies=[Depends(require_api_key)],
)
async def delete_document(
    lead_id: str,
    filename: str,
    service: LeadService = Depends(get_lead_service),
) -> None:
    await service.delete_document(lead_id, filename)
