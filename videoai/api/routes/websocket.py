"""WebSocket endpoint streaming an owner's video library.

Each connection runs its own status reconciler: the change feed pushes
refreshes, and polling advances thumbnails still pending or processing.
Every refresh sends the full list to the client.
"""

import json

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from videoai.api.deps import ServicesDep
from videoai.core.logger import get_logger
from videoai.models import VideoRecord
from videoai.services.reconciler import POLL

logger = get_logger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/videos/ws")
async def video_library_stream(
    websocket: WebSocket,
    services: ServicesDep,
    user_id: str = Query(..., min_length=1, description="Owner id"),
):
    """
    Stream library snapshots for one owner.

    Connect with: ws://host/api/v1/videos/ws?user_id=<owner_id>

    Client messages:
    - {"type": "ping"} -> {"type": "pong"}
    - {"type": "refresh"} -> queues a refresh that also advances thumbnails
    """
    await websocket.accept()

    async def send_library(records: list[VideoRecord]) -> None:
        data = [
            (await services.videos.to_public(r)).model_dump(mode="json")
            for r in records
        ]
        await websocket.send_json({"type": "library", "data": data, "count": len(data)})

    reconciler = services.reconciler_for(user_id, on_change=send_library)
    await reconciler.start()

    await websocket.send_json({
        "type": "connected",
        "user_id": user_id,
        "push": reconciler.push_active,
    })
    logger.info(f"Library stream opened for {user_id} (push={reconciler.push_active})")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue

            msg_type = message.get("type") if isinstance(message, dict) else None
            if msg_type == "ping":
                await websocket.send_json({"type": "pong"})
            elif msg_type == "refresh":
                reconciler.enqueue(POLL)
    except WebSocketDisconnect:
        pass
    finally:
        await reconciler.stop()
        logger.info(f"Library stream closed for {user_id}")
