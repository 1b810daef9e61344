from .queue_store import QueueStore

class TicketSequencer:
    """Issues ticket numbers from the full history of queue entries.

    Numbers are derived from every entry ever stored, not only the waiting
    ones, so completed or cancelled tickets are never handed out again.
    Callers must hold the queue lock across ``next_ticket_number`` and the
    insert that consumes it.
    """

    def __init__(self, store: QueueStore):
        self.store = store

    def next_ticket_number(self) -> int:
        """Return 1 for an empty store, otherwise the highest issued number + 1."""
        return self.store.max_ticket_number() + 1
