from sqlalchemy.orm import Session
import logging

from ..core.errors import NotFoundError
from ..models.patient import Patient
from ..schemas.patient import PatientCreate

logger = logging.getLogger(__name__)

class PatientService:
    """Minimal patient registry backing ticket display names."""

    def __init__(self, db: Session):
        self.db = db

    def register_patient(self, patient_data: PatientCreate) -> Patient:
        patient = Patient(
            first_name=patient_data.first_name.strip(),
            last_name=patient_data.last_name.strip(),
            date_of_birth=patient_data.date_of_birth,
            gender=patient_data.gender,
            phone_number=patient_data.phone_number,
        )

        self.db.add(patient)
        self.db.commit()
        self.db.refresh(patient)

        logger.info(f"Registered patient {patient.id}")
        return patient

    def get_patient(self, patient_id: int) -> Patient:
        patient = self.db.query(Patient).filter(Patient.id == patient_id).first()
        if not patient:
            raise NotFoundError(f"Patient {patient_id} not found")
        return patient
