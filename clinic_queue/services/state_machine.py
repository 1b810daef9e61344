"""Queue entry lifecycle.

    WAITING -> IN_PROGRESS -> COMPLETED
    WAITING -> CANCELLED

COMPLETED and CANCELLED are terminal. ``call_next`` and ``complete`` are the
check-and-transition steps; they must run inside the queue lock held by
``QueueService`` so no other mutation interleaves between the check and the
write.
"""
from datetime import datetime
from enum import Enum
import logging

from ..models.queue_entry import QueueEntry, QueueStatus
from ..core.errors import AlreadyServingError, EmptyQueueError, InvalidTransitionError

logger = logging.getLogger(__name__)

class Transition(str, Enum):
    CALL = "call"
    COMPLETE = "complete"
    CANCEL = "cancel"

# transition -> (required current status, resulting status)
TRANSITIONS = {
    Transition.CALL: (QueueStatus.WAITING, QueueStatus.IN_PROGRESS),
    Transition.COMPLETE: (QueueStatus.IN_PROGRESS, QueueStatus.COMPLETED),
    Transition.CANCEL: (QueueStatus.WAITING, QueueStatus.CANCELLED),
}

TERMINAL_STATUSES = frozenset([QueueStatus.COMPLETED, QueueStatus.CANCELLED])

def check_transition(entry: QueueEntry, transition: Transition) -> QueueStatus:
    """Return the status ``transition`` leads to, or raise if it is illegal."""
    source, target = TRANSITIONS[transition]

    if entry.status in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f"Ticket {entry.ticket_number} is {entry.status.value} and can no longer change"
        )
    if entry.status != source:
        raise InvalidTransitionError(
            f"Cannot {transition.value} ticket {entry.ticket_number}: "
            f"status is {entry.status.value}, expected {source.value}"
        )
    return target

def call_next(store, server_ref: str) -> QueueEntry:
    """Move the oldest WAITING entry to IN_PROGRESS for ``server_ref``."""
    current = store.find_current_in_progress()
    if current is not None:
        logger.info(
            f"Call-next by {server_ref} rejected: ticket {current.ticket_number} still in progress"
        )
        raise AlreadyServingError(
            f"Ticket {current.ticket_number} is already in progress; complete it first"
        )

    oldest = store.find_oldest_waiting()
    if oldest is None:
        raise EmptyQueueError()

    try:
        return store.update(
            oldest.id,
            Transition.CALL,
            assigned_server_ref=server_ref,
            called_at=datetime.utcnow(),
        )
    except InvalidTransitionError:
        # Another worker called a patient between the check and the update
        current = store.find_current_in_progress()
        if current is None:
            raise
        logger.info(
            f"Call-next by {server_ref} lost to ticket {current.ticket_number} "
            f"called by {current.assigned_server_ref}"
        )
        raise AlreadyServingError(
            f"Ticket {current.ticket_number} is already in progress; complete it first"
        )

def complete(store, entry_id: str) -> QueueEntry:
    """Move an IN_PROGRESS entry to COMPLETED."""
    return store.update(entry_id, Transition.COMPLETE, completed_at=datetime.utcnow())

def cancel(store, entry_id: str) -> QueueEntry:
    """Withdraw a WAITING entry from the queue."""
    return store.update(entry_id, Transition.CANCEL)
