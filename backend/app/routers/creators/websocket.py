# app/routers/creators/websocket.py
from datetime import datetime, timezone
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.websocket_manager import manager


logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/launch/{launch_id}")
async def websocket_endpoint(websocket: WebSocket, launch_id: str):
    await manager.connect(websocket, launch_id)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                continue

            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_text(
                    json.dumps({"type": "pong", "timestamp": datetime.now(timezone.utc).isoformat()})
                )

    except WebSocketDisconnect:
        manager.disconnect(websocket, launch_id)
    except Exception as e:
        logger.error(f"WebSocket error for launch {launch_id}: {e}")
        manager.disconnect(websocket, launch_id)
