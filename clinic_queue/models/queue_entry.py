from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, Enum as SQLEnum, text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
import uuid

from ..core.database import Base

class QueueStatus(str, enum.Enum):
    WAITING = "WAITING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

def _new_entry_id() -> str:
    return str(uuid.uuid4())

class QueueEntry(Base):
    __tablename__ = "queue_entries"
    
    id = Column(String(36), primary_key=True, default=_new_entry_id)
    
    # Relationships
    patient_ref = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    
    # Queue position
    ticket_number = Column(Integer, nullable=False, unique=True)
    status = Column(SQLEnum(QueueStatus), nullable=False, default=QueueStatus.WAITING, index=True)
    assigned_server_ref = Column(String(100), nullable=True)
    
    # Tracking
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    called_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    
    # Relationships
    patient = relationship("Patient", back_populates="queue_entries")
    
    __table_args__ = (
        # At most one row may be IN_PROGRESS, whichever process writes it
        Index(
            "uq_queue_entries_single_in_progress",
            "status",
            unique=True,
            sqlite_where=text("status = 'IN_PROGRESS'"),
            postgresql_where=text("status = 'IN_PROGRESS'"),
        ),
    )
    
    @property
    def patient_display_name(self):
        return self.patient.display_name if self.patient else None
    
    def __repr__(self):
        return f"<QueueEntry(id={self.id}, ticket_number={self.ticket_number}, status='{self.status}')>"
