from fastapi import APIRouter, Depends

from ...api.deps import get_patient_service, get_queue_service, get_broadcaster
from ...services.broadcaster import EventBroadcaster, QueueEvent
from ...services.patient_service import PatientService
from ...services.queue_service import QueueService
from ...schemas.patient import PatientCreate, PatientResponse, PatientRegistrationResponse
from ...schemas.queue import QueueEntryResponse

router = APIRouter(prefix="/patients", tags=["Patients"])

@router.post("", response_model=PatientRegistrationResponse)
async def register_patient(
    patient_data: PatientCreate,
    patient_service: PatientService = Depends(get_patient_service),
    queue_service: QueueService = Depends(get_queue_service),
    events: EventBroadcaster = Depends(get_broadcaster)
):
    """Register a patient at the front desk and, by default, issue a ticket."""
    patient = patient_service.register_patient(patient_data)

    if not patient_data.issue_ticket:
        return PatientRegistrationResponse(
            patient=PatientResponse.model_validate(patient),
            message="Patient registered"
        )

    entry = queue_service.register_entry(patient.id)
    await events.announce(QueueEvent.ENTRY_CREATED, entry, queue_service.get_status())

    return PatientRegistrationResponse(
        patient=PatientResponse.model_validate(patient),
        entry=QueueEntryResponse.model_validate(entry),
        message=f"Patient registered with ticket {entry.ticket_number}"
    )

@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: int,
    patient_service: PatientService = Depends(get_patient_service)
):
    return PatientResponse.model_validate(patient_service.get_patient(patient_id))
