from fastapi import APIRouter, Depends, Query, Response
from typing import List, Optional

from ...api.deps import get_queue_service, get_broadcaster
from ...services.broadcaster import EventBroadcaster, QueueEvent
from ...services.projector import NO_CACHE_HEADERS
from ...services.queue_service import QueueService
from ...models.queue_entry import QueueStatus
from ...schemas.queue import (
    QueueEntryCreate, CallNextRequest, QueueEntryResponse, StatusSnapshot
)

router = APIRouter(prefix="/queue", tags=["Queue"])

@router.post("/entries", response_model=QueueEntryResponse)
async def register_queue_entry(
    entry_data: QueueEntryCreate,
    queue_service: QueueService = Depends(get_queue_service),
    events: EventBroadcaster = Depends(get_broadcaster)
):
    """Issue the next ticket for a patient visit."""
    entry = queue_service.register_entry(entry_data.patient_ref)
    await events.announce(QueueEvent.ENTRY_CREATED, entry, queue_service.get_status())
    return QueueEntryResponse.model_validate(entry)

@router.post("/call-next", response_model=QueueEntryResponse)
async def call_next(
    call_data: CallNextRequest,
    queue_service: QueueService = Depends(get_queue_service),
    events: EventBroadcaster = Depends(get_broadcaster)
):
    """Call the oldest waiting patient."""
    entry = queue_service.call_next(call_data.server_ref)
    await events.announce(QueueEvent.ENTRY_CALLED, entry, queue_service.get_status())
    return QueueEntryResponse.model_validate(entry)

@router.post("/entries/{entry_id}/complete", response_model=QueueEntryResponse)
async def complete_entry(
    entry_id: str,
    queue_service: QueueService = Depends(get_queue_service),
    events: EventBroadcaster = Depends(get_broadcaster)
):
    """Finish serving the in-progress entry."""
    entry = queue_service.complete_entry(entry_id)
    await events.announce(QueueEvent.ENTRY_COMPLETED, entry, queue_service.get_status())
    return QueueEntryResponse.model_validate(entry)

@router.post("/entries/{entry_id}/cancel", response_model=QueueEntryResponse)
async def cancel_entry(
    entry_id: str,
    queue_service: QueueService = Depends(get_queue_service),
    events: EventBroadcaster = Depends(get_broadcaster)
):
    """Withdraw a waiting entry."""
    entry = queue_service.cancel_entry(entry_id)
    await events.announce(QueueEvent.ENTRY_CANCELLED, entry, queue_service.get_status())
    return QueueEntryResponse.model_validate(entry)

@router.get("/status", response_model=StatusSnapshot)
async def get_queue_status(
    response: Response,
    queue_service: QueueService = Depends(get_queue_service)
):
    """Current and next ticket plus waiting count for display screens."""
    response.headers.update(NO_CACHE_HEADERS)
    return queue_service.get_status()

@router.get("/waiting", response_model=List[QueueEntryResponse])
async def list_waiting(
    response: Response,
    queue_service: QueueService = Depends(get_queue_service)
):
    """Waiting entries in ticket order."""
    response.headers.update(NO_CACHE_HEADERS)
    return [QueueEntryResponse.model_validate(e) for e in queue_service.list_waiting()]

@router.get("/entries", response_model=List[QueueEntryResponse])
async def list_queue_entries(
    status: Optional[QueueStatus] = None,
    server_ref: Optional[str] = Query(None, alias="serverRef"),
    queue_service: QueueService = Depends(get_queue_service)
):
    """Queue history in ticket order, filtered by status and/or serving staff."""
    entries = queue_service.list_entries(status=status, server_ref=server_ref)
    return [QueueEntryResponse.model_validate(e) for e in entries]

@router.get("/entries/{entry_id}", response_model=QueueEntryResponse)
async def get_queue_entry(
    entry_id: str,
    queue_service: QueueService = Depends(get_queue_service)
):
    return QueueEntryResponse.model_validate(queue_service.get_entry(entry_id))
