from fastapi import Depends
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..services.broadcaster import broadcaster, EventBroadcaster
from ..services.patient_service import PatientService
from ..services.queue_service import QueueService

def get_queue_service(db: Session = Depends(get_db)) -> QueueService:
    """Queue core bound to the request's database session."""
    return QueueService(db)

def get_patient_service(db: Session = Depends(get_db)) -> PatientService:
    return PatientService(db)

def get_broadcaster() -> EventBroadcaster:
    """Process-wide event broadcaster."""
    return broadcaster
