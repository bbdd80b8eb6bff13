# app/services/websocket_manager.py
import json
import logging
from typing import Dict, List

from fastapi import WebSocket

from app.schemas.creators.tokencreate import LaunchProgress

logger = logging.getLogger(__name__)


class ConnectionManager:
    """WebSocket subscribers grouped by launch id"""

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, launch_id: str):
        await websocket.accept()
        self.active_connections.setdefault(launch_id, []).append(websocket)
        logger.info(f"WebSocket connected for launch {launch_id}")

    def disconnect(self, websocket: WebSocket, launch_id: str):
        connections = self.active_connections.get(launch_id)
        if connections and websocket in connections:
            connections.remove(websocket)
            if not connections:
                del self.active_connections[launch_id]
        logger.info(f"WebSocket disconnected for launch {launch_id}")

    def subscriber_count(self, launch_id: str) -> int:
        return len(self.active_connections.get(launch_id, []))

    async def send_to_launch(self, message: str, launch_id: str):
        # Copy: a failing socket may be dropped while we iterate
        for connection in list(self.active_connections.get(launch_id, [])):
            try:
                await connection.send_text(message)
            except Exception as e:
                logger.error(f"Failed to send message to launch {launch_id}: {e}")
                self.disconnect(connection, launch_id)

    async def send_status(self, progress: LaunchProgress):
        message = {
            "type": "status_update",
            **progress.model_dump(mode="json"),
        }
        await self.send_to_launch(json.dumps(message), progress.launch_id)


manager = ConnectionManager()
