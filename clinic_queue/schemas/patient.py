from pydantic import Field
from typing import Optional
from datetime import datetime

from .base import CamelModel
from .queue import QueueEntryResponse

class PatientCreate(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: Optional[datetime] = None
    gender: Optional[str] = Field(None, max_length=20)
    phone_number: Optional[str] = Field(None, max_length=20)
    issue_ticket: bool = True

class PatientResponse(CamelModel):
    id: int
    first_name: str
    last_name: str
    display_name: str
    date_of_birth: Optional[datetime] = None
    gender: Optional[str] = None
    phone_number: Optional[str] = None
    created_at: Optional[datetime] = None

class PatientRegistrationResponse(CamelModel):
    patient: PatientResponse
    entry: Optional[QueueEntryResponse] = None
    message: str
