from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Patient(Base):
    __tablename__ = "patients"
    
    id = Column(Integer, primary_key=True, index=True)
    
    # Personal information
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(DateTime, nullable=True)
    gender = Column(String(20), nullable=True)
    
    # Contact information
    phone_number = Column(String(20), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    
    # Relationships
    queue_entries = relationship("QueueEntry", back_populates="patient")
    
    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
    
    def __repr__(self):
        return f"<Patient(id={self.id}, name='{self.display_name}')>"
