from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload
from typing import List, Optional, Tuple

from ..models.patient import Patient  # noqa: F401  (resolves QueueEntry.patient)
from ..models.queue_entry import QueueEntry, QueueStatus
from ..core.errors import ValidationError, NotFoundError, InvalidTransitionError
from .state_machine import Transition, check_transition

class QueueStore:
    """All status-based selection of queue entries lives here."""

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(QueueEntry).options(joinedload(QueueEntry.patient))

    def max_ticket_number(self) -> int:
        highest = self.db.query(func.max(QueueEntry.ticket_number)).scalar()
        return highest or 0

    def insert(self, entry: QueueEntry) -> QueueEntry:
        """Add a new WAITING entry."""
        if entry.patient_ref is None:
            raise ValidationError("Patient reference is required")
        if entry.ticket_number is None or entry.ticket_number <= self.max_ticket_number():
            raise ValidationError(
                f"Ticket number {entry.ticket_number} is not greater than all issued tickets"
            )

        entry.status = QueueStatus.WAITING
        entry.assigned_server_ref = None
        entry.completed_at = None
        self.db.add(entry)
        self.db.flush()
        return entry

    def get(self, entry_id: str) -> QueueEntry:
        entry = self._query().filter(QueueEntry.id == entry_id).first()
        if not entry:
            raise NotFoundError(f"Queue entry {entry_id} not found")
        return entry

    def find_oldest_waiting(self) -> Optional[QueueEntry]:
        return self._query().filter(
            QueueEntry.status == QueueStatus.WAITING
        ).order_by(QueueEntry.ticket_number.asc()).first()

    def find_current_in_progress(self) -> Optional[QueueEntry]:
        return self._query().filter(
            QueueEntry.status == QueueStatus.IN_PROGRESS
        ).order_by(QueueEntry.ticket_number.asc()).first()

    def list_waiting(self) -> List[QueueEntry]:
        return self._query().filter(
            QueueEntry.status == QueueStatus.WAITING
        ).order_by(QueueEntry.ticket_number.asc()).all()

    def list_entries(
        self,
        status: Optional[QueueStatus] = None,
        server_ref: Optional[str] = None,
    ) -> List[QueueEntry]:
        """Queue history in ticket order, optionally narrowed by status or server."""
        query = self._query()
        if status is not None:
            query = query.filter(QueueEntry.status == status)
        if server_ref is not None:
            query = query.filter(QueueEntry.assigned_server_ref == server_ref)
        return query.order_by(QueueEntry.ticket_number.asc()).all()

    def count_waiting(self) -> int:
        return self.db.query(func.count(QueueEntry.id)).filter(
            QueueEntry.status == QueueStatus.WAITING
        ).scalar()

    def active_entries(self) -> Tuple[Optional[QueueEntry], List[QueueEntry]]:
        """Current IN_PROGRESS entry and WAITING entries, read in one statement."""
        entries = self._query().filter(
            QueueEntry.status.in_([QueueStatus.WAITING, QueueStatus.IN_PROGRESS])
        ).order_by(QueueEntry.ticket_number.asc()).all()

        current = next((e for e in entries if e.status == QueueStatus.IN_PROGRESS), None)
        waiting = [e for e in entries if e.status == QueueStatus.WAITING]
        return current, waiting

    def update(self, entry_id: str, transition: Transition, **changes) -> QueueEntry:
        """Apply ``transition`` to an entry as a conditional update.

        The row only changes if it still holds the status the transition
        starts from; a concurrent writer that got there first turns this
        into an InvalidTransitionError instead of a lost update.
        """
        entry = self.get(entry_id)
        expected = entry.status
        target = check_transition(entry, transition)

        values = {"status": target}
        values.update(changes)
        updated = self.db.query(QueueEntry).filter(
            QueueEntry.id == entry_id,
            QueueEntry.status == expected,
        ).update(values, synchronize_session=False)

        if updated != 1:
            self.db.refresh(entry)
            raise InvalidTransitionError(
                f"Cannot {transition.value} ticket {entry.ticket_number}: another request "
                f"moved it from {expected.value} to {entry.status.value}"
            )

        self.db.refresh(entry)
        return entry
