from pydantic import Field
from typing import Optional, Dict, Any
from datetime import datetime

from .base import CamelModel
from ..models.queue_entry import QueueStatus

class QueueEntryCreate(CamelModel):
    # Optional here so a missing reference surfaces as a queue ValidationError
    patient_ref: Optional[int] = None

class CallNextRequest(CamelModel):
    server_ref: str = Field(..., min_length=1, max_length=100)

class QueueEntryResponse(CamelModel):
    id: str
    patient_ref: int
    patient_display_name: Optional[str] = None
    ticket_number: int
    status: QueueStatus
    assigned_server_ref: Optional[str] = None
    created_at: datetime
    called_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

class TicketView(CamelModel):
    ticket_number: int
    patient_display_name: Optional[str] = None

class StatusSnapshot(CamelModel):
    current: Optional[TicketView] = None
    next: Optional[TicketView] = None
    waiting_count: int = 0

class QueueEventMessage(CamelModel):
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
