from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..services.broadcaster import broadcaster
from ..services.queue_service import QueueService

router = APIRouter(tags=["Live updates"])

@router.websocket("/ws/queue")
async def queue_updates(websocket: WebSocket, db: Session = Depends(get_db)):
    """Push queue change events; clients re-fetch /api/v1/queue/status on each."""
    await broadcaster.connect(websocket)
    try:
        snapshot = QueueService(db).get_status()
        db.close()
        await websocket.send_json({
            "event": "queue-snapshot",
            "data": snapshot.model_dump(mode="json", by_alias=True),
        })
        # Inbound messages are ignored; receiving only detects disconnects
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)
