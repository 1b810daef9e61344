from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, OperationalError, InterfaceError
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional
import logging
import threading

from ..core.config import settings
from ..core.errors import (
    ValidationError, AlreadyServingError, StoreUnavailableError
)
from ..models.patient import Patient
from ..models.queue_entry import QueueEntry, QueueStatus
from ..schemas.queue import StatusSnapshot
from . import state_machine
from .queue_store import QueueStore
from .sequencer import TicketSequencer
from .projector import StatusProjector

logger = logging.getLogger(__name__)

# Serializes ticket issuance and every check-and-transition in this process.
# Across processes the UNIQUE ticket number, the single IN_PROGRESS index and
# the conditional status updates in QueueStore keep the same guarantees.
queue_lock = threading.RLock()

class QueueService:
    def __init__(self, db: Session):
        self.db = db
        self.store = QueueStore(db)
        self.sequencer = TicketSequencer(self.store)
        self.projector = StatusProjector(self.store)

    @contextmanager
    def _unit_of_work(self):
        """Commit on success; roll back and map storage outages to 503."""
        try:
            yield
            self.db.commit()
        except (OperationalError, InterfaceError) as e:
            self.db.rollback()
            logger.error(f"Queue storage unavailable: {str(e)}")
            raise StoreUnavailableError() from e
        except Exception:
            self.db.rollback()
            raise

    def register_entry(self, patient_ref: Optional[int]) -> QueueEntry:
        """Issue the next ticket for a patient visit."""
        if patient_ref is None:
            raise ValidationError("Patient reference is required")

        if not self.db.get(Patient, patient_ref):
            raise ValidationError(f"Unknown patient reference {patient_ref}")

        attempts = max(settings.TICKET_ALLOCATION_ATTEMPTS, 1)
        for attempt in range(1, attempts + 1):
            try:
                with queue_lock, self._unit_of_work():
                    entry = QueueEntry(
                        patient_ref=patient_ref,
                        ticket_number=self.sequencer.next_ticket_number(),
                        created_at=datetime.utcnow(),
                    )
                    self.store.insert(entry)
            except IntegrityError:
                # Another process took the same number; nothing was committed
                logger.warning(
                    f"Ticket number collision for patient {patient_ref} "
                    f"(attempt {attempt}/{attempts})"
                )
                continue

            logger.info(
                f"Issued ticket {entry.ticket_number} to patient {patient_ref} (entry {entry.id})"
            )
            return entry

        raise StoreUnavailableError("Could not allocate a ticket number; re-check queue status")

    def call_next(self, server_ref: str) -> QueueEntry:
        """Start serving the oldest waiting entry."""
        if not server_ref:
            raise ValidationError("Server reference is required")

        try:
            with queue_lock, self._unit_of_work():
                entry = state_machine.call_next(self.store, server_ref)
        except IntegrityError as e:
            # Another process moved a different entry to IN_PROGRESS first
            raise AlreadyServingError() from e

        logger.info(f"Ticket {entry.ticket_number} called by {server_ref} (entry {entry.id})")
        return entry

    def complete_entry(self, entry_id: str) -> QueueEntry:
        with queue_lock, self._unit_of_work():
            entry = state_machine.complete(self.store, entry_id)

        logger.info(f"Ticket {entry.ticket_number} completed (entry {entry.id})")
        return entry

    def cancel_entry(self, entry_id: str) -> QueueEntry:
        with queue_lock, self._unit_of_work():
            entry = state_machine.cancel(self.store, entry_id)

        logger.info(f"Ticket {entry.ticket_number} cancelled (entry {entry.id})")
        return entry

    def get_entry(self, entry_id: str) -> QueueEntry:
        return self.store.get(entry_id)

    def list_waiting(self) -> List[QueueEntry]:
        return self.store.list_waiting()

    def list_entries(
        self,
        status: Optional[QueueStatus] = None,
        server_ref: Optional[str] = None,
    ) -> List[QueueEntry]:
        return self.store.list_entries(status=status, server_ref=server_ref)

    def get_status(self) -> StatusSnapshot:
        return self.projector.project_status()
