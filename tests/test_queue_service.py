import pytest
import threading

from clinic_queue.core.errors import (
    ValidationError, NotFoundError, EmptyQueueError,
    AlreadyServingError, InvalidTransitionError
)
from clinic_queue.models.queue_entry import QueueEntry, QueueStatus
from clinic_queue.services.queue_service import QueueService
from clinic_queue.services.queue_store import QueueStore
from clinic_queue.services.state_machine import Transition

from .conftest import TestingSessionLocal

class TestTicketSequencer:

    def test_first_ticket_is_one(self, db):
        """An empty store starts numbering at 1."""
        assert QueueService(db).sequencer.next_ticket_number() == 1

    def test_numbers_follow_registration_order(self, db, make_patients):
        """Scenario A: P1, P2, P3 get tickets 1, 2, 3."""
        service = QueueService(db)
        p1, p2, p3 = make_patients("Ada Lovelace", "Alan Turing", "Grace Hopper")

        tickets = [service.register_entry(ref).ticket_number for ref in (p1, p2, p3)]

        assert tickets == [1, 2, 3]
        assert service.get_status().waiting_count == 3

    def test_numbers_not_reused_after_cancel_or_complete(self, db, make_patients):
        """Finished and cancelled tickets still count towards the maximum."""
        service = QueueService(db)
        p1, p2 = make_patients("Ada Lovelace", "Alan Turing")

        first = service.register_entry(p1)
        second = service.register_entry(p2)
        service.call_next("dr-house")
        service.complete_entry(first.id)
        service.cancel_entry(second.id)

        assert service.register_entry(p1).ticket_number == 3

    def test_returning_patient_gets_new_ticket(self, db, make_patients):
        """Duplicate active entries per patient are allowed."""
        service = QueueService(db)
        (patient,) = make_patients("Ada Lovelace")

        first = service.register_entry(patient)
        second = service.register_entry(patient)

        assert first.id != second.id
        assert second.ticket_number == first.ticket_number + 1

class TestQueueStore:

    def test_insert_requires_patient_ref(self, db):
        store = QueueService(db).store
        with pytest.raises(ValidationError):
            store.insert(QueueEntry(patient_ref=None, ticket_number=1))

    def test_insert_rejects_non_increasing_ticket(self, db, make_patients):
        service = QueueService(db)
        (patient,) = make_patients("Ada Lovelace")
        service.register_entry(patient)
        service.register_entry(patient)

        with pytest.raises(ValidationError):
            service.store.insert(QueueEntry(patient_ref=patient, ticket_number=2))
        db.rollback()

    def test_register_rejects_missing_and_unknown_patient(self, db):
        service = QueueService(db)
        with pytest.raises(ValidationError):
            service.register_entry(None)
        with pytest.raises(ValidationError):
            service.register_entry(999)
        assert service.store.max_ticket_number() == 0

    def test_find_oldest_waiting_and_current(self, db, make_patients):
        service = QueueService(db)
        p1, p2 = make_patients("Ada Lovelace", "Alan Turing")
        service.register_entry(p1)
        service.register_entry(p2)

        assert service.store.find_current_in_progress() is None
        assert service.store.find_oldest_waiting().ticket_number == 1

        service.call_next("dr-house")

        assert service.store.find_current_in_progress().ticket_number == 1
        assert service.store.find_oldest_waiting().ticket_number == 2

    def test_update_unknown_entry(self, db):
        store = QueueService(db).store
        with pytest.raises(NotFoundError):
            store.update("does-not-exist", Transition.COMPLETE)

    def test_update_illegal_transition(self, db, make_patients):
        service = QueueService(db)
        (patient,) = make_patients("Ada Lovelace")
        entry = service.register_entry(patient)

        with pytest.raises(InvalidTransitionError):
            service.store.update(entry.id, Transition.COMPLETE)

    def test_new_entry_starts_waiting(self, db, make_patients):
        service = QueueService(db)
        (patient,) = make_patients("Ada Lovelace")
        entry = service.register_entry(patient)

        assert entry.status == QueueStatus.WAITING
        assert entry.assigned_server_ref is None
        assert entry.completed_at is None
        assert entry.created_at is not None

    def test_list_entries_filters(self, db, make_patients):
        service = QueueService(db)
        for ref in make_patients("Ada Lovelace", "Alan Turing", "Grace Hopper"):
            service.register_entry(ref)
        first = service.call_next("dr-house")
        service.complete_entry(first.id)
        second = service.call_next("dr-grey")

        assert [e.ticket_number for e in service.list_entries()] == [1, 2, 3]
        assert [e.id for e in service.list_entries(status=QueueStatus.COMPLETED)] == [first.id]
        assert [e.id for e in service.list_entries(server_ref="dr-grey")] == [second.id]
        assert service.list_entries(status=QueueStatus.COMPLETED, server_ref="dr-grey") == []
        assert [e.ticket_number for e in service.list_entries(status=QueueStatus.WAITING)] == [3]

class TestQueueStateMachine:

    @pytest.fixture
    def service(self, db, make_patients):
        service = QueueService(db)
        for ref in make_patients("Ada Lovelace", "Alan Turing", "Grace Hopper"):
            service.register_entry(ref)
        return service

    def test_call_next_takes_oldest(self, service):
        """Scenario B."""
        entry = service.call_next("dr-house")

        assert entry.ticket_number == 1
        assert entry.status == QueueStatus.IN_PROGRESS
        assert entry.assigned_server_ref == "dr-house"
        assert entry.called_at is not None

        status = service.get_status()
        assert status.current.ticket_number == 1
        assert status.next.ticket_number == 2
        assert status.waiting_count == 2

    def test_call_next_while_serving(self, service):
        """Scenario C: second call fails and changes nothing."""
        service.call_next("dr-house")
        before = service.get_status()

        with pytest.raises(AlreadyServingError):
            service.call_next("dr-grey")

        assert service.get_status() == before
        in_progress = service.db.query(QueueEntry).filter(
            QueueEntry.status == QueueStatus.IN_PROGRESS
        ).count()
        assert in_progress == 1

    def test_complete_in_progress(self, service):
        """Scenario D."""
        called = service.call_next("dr-house")
        entry = service.complete_entry(called.id)

        assert entry.status == QueueStatus.COMPLETED
        assert entry.completed_at is not None
        assert service.get_status().current is None

    def test_call_next_on_empty_queue(self, db):
        """Scenario E."""
        with pytest.raises(EmptyQueueError):
            QueueService(db).call_next("dr-house")

    def test_queue_drains_in_ticket_order(self, service):
        served = []
        for _ in range(3):
            entry = service.call_next("dr-house")
            served.append(entry.ticket_number)
            service.complete_entry(entry.id)

        assert served == [1, 2, 3]
        with pytest.raises(EmptyQueueError):
            service.call_next("dr-house")

    def test_cancelled_entries_are_skipped(self, service):
        waiting = service.list_waiting()
        service.cancel_entry(waiting[0].id)

        assert service.call_next("dr-house").ticket_number == 2

    def test_completed_entry_is_terminal(self, service):
        called = service.call_next("dr-house")
        done = service.complete_entry(called.id)
        completed_at = done.completed_at

        with pytest.raises(InvalidTransitionError):
            service.complete_entry(called.id)
        with pytest.raises(InvalidTransitionError):
            service.cancel_entry(called.id)

        entry = service.get_entry(called.id)
        assert entry.status == QueueStatus.COMPLETED
        assert entry.completed_at == completed_at
        assert entry.assigned_server_ref == "dr-house"

    def test_cancelled_entry_is_terminal(self, service):
        entry = service.list_waiting()[0]
        service.cancel_entry(entry.id)

        with pytest.raises(InvalidTransitionError):
            service.cancel_entry(entry.id)
        with pytest.raises(InvalidTransitionError):
            service.complete_entry(entry.id)
        assert service.get_entry(entry.id).completed_at is None

    def test_complete_waiting_entry_fails(self, service):
        entry = service.list_waiting()[0]
        with pytest.raises(InvalidTransitionError):
            service.complete_entry(entry.id)

    def test_in_progress_cannot_be_cancelled(self, service):
        called = service.call_next("dr-house")
        with pytest.raises(InvalidTransitionError):
            service.cancel_entry(called.id)

    def test_complete_unknown_entry(self, service):
        with pytest.raises(NotFoundError):
            service.complete_entry("missing")

class TestStatusProjector:

    def test_empty_snapshot(self, db):
        status = QueueService(db).get_status()
        assert status.current is None
        assert status.next is None
        assert status.waiting_count == 0

    def test_display_names(self, db, make_patients):
        service = QueueService(db)
        for ref in make_patients("Ada Lovelace", "Alan Turing"):
            service.register_entry(ref)
        service.call_next("dr-house")

        status = service.get_status()
        assert status.current.patient_display_name == "Ada Lovelace"
        assert status.next.patient_display_name == "Alan Turing"

    def test_waiting_count_matches_store(self, db, make_patients):
        service = QueueService(db)
        refs = make_patients("Ada Lovelace", "Alan Turing", "Grace Hopper", "Edsger Dijkstra")

        def check():
            assert service.get_status().waiting_count == service.store.count_waiting()

        for ref in refs:
            service.register_entry(ref)
            check()
        called = service.call_next("dr-house")
        check()
        service.cancel_entry(service.list_waiting()[-1].id)
        check()
        service.complete_entry(called.id)
        check()
        assert service.get_status().waiting_count == 2

def _run_concurrently(count, action):
    """Run ``action(service)`` in ``count`` threads released together."""
    barrier = threading.Barrier(count)
    results, errors = [], []
    guard = threading.Lock()

    def worker():
        session = TestingSessionLocal()
        try:
            barrier.wait()
            outcome = action(QueueService(session))
            with guard:
                results.append(outcome)
        except Exception as e:
            with guard:
                errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors

class TestConcurrency:

    def test_two_racing_registrations(self, db, make_patients):
        """Scenario F: both succeed with consecutive, distinct numbers."""
        (patient,) = make_patients("Ada Lovelace")

        results, errors = _run_concurrently(
            2, lambda service: service.register_entry(patient).ticket_number
        )

        assert errors == []
        assert sorted(results) == [1, 2]

    def test_many_registrations_have_no_gaps(self, db, make_patients):
        (patient,) = make_patients("Ada Lovelace")

        results, errors = _run_concurrently(
            8, lambda service: service.register_entry(patient).ticket_number
        )

        assert errors == []
        assert sorted(results) == list(range(1, 9))

    def test_racing_call_next_serves_one(self, db, make_patients):
        service = QueueService(db)
        for ref in make_patients("Ada Lovelace", "Alan Turing", "Grace Hopper"):
            service.register_entry(ref)

        results, errors = _run_concurrently(
            5, lambda worker: worker.call_next("dr-house").ticket_number
        )

        assert results == [1]
        assert len(errors) == 4
        assert all(isinstance(e, AlreadyServingError) for e in errors)

        db.expire_all()
        assert service.store.find_current_in_progress().ticket_number == 1
        assert service.get_status().waiting_count == 2

    def test_call_next_lost_to_another_worker(self, db, make_patients):
        """A call that loses the race after picking its entry reports who is serving."""
        for ref in make_patients("Ada Lovelace", "Alan Turing"):
            QueueService(db).register_entry(ref)

        class InterleavedStore(QueueStore):
            def find_oldest_waiting(self):
                oldest = super().find_oldest_waiting()
                # A second worker commits its call before our update runs
                other = TestingSessionLocal()
                try:
                    QueueService(other).call_next("dr-grey")
                finally:
                    other.close()
                return oldest

        service = QueueService(db)
        service.store = InterleavedStore(db)

        with pytest.raises(AlreadyServingError):
            service.call_next("dr-house")

        db.expire_all()
        current = service.store.find_current_in_progress()
        assert current.ticket_number == 1
        assert current.assigned_server_ref == "dr-grey"
        assert service.get_status().waiting_count == 1
