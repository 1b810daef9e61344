from typing import Optional

from ..models.queue_entry import QueueEntry
from ..schemas.queue import StatusSnapshot, TicketView
from .queue_store import QueueStore

# Transport headers for the display snapshot; a cached snapshot shows the wrong ticket
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

def _ticket_view(entry: Optional[QueueEntry]) -> Optional[TicketView]:
    if entry is None:
        return None
    return TicketView(
        ticket_number=entry.ticket_number,
        patient_display_name=entry.patient_display_name,
    )

class StatusProjector:
    """Read-only view of the queue for display screens and dashboards."""

    def __init__(self, store: QueueStore):
        self.store = store

    def project_status(self) -> StatusSnapshot:
        current, waiting = self.store.active_entries()
        return StatusSnapshot(
            current=_ticket_view(current),
            next=_ticket_view(waiting[0] if waiting else None),
            waiting_count=len(waiting),
        )
