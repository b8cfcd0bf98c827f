# app/services/websockets/manager.py
from typing import List
from fastapi import WebSocket
import json
import logging

from app.schemas.notification import Event

logger = logging.getLogger(__name__)

class ConnectionManager:
    """Pushes every relay event to connected websocket clients."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("WebSocket connected. Total connections: %d", len(self.active_connections))

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        logger.info("WebSocket disconnected. Total connections: %d", len(self.active_connections))

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients"""
        json_message = json.dumps(message)
        disconnected = []

        for connection in list(self.active_connections):
            try:
                await connection.send_text(json_message)
            except Exception as e:
                logger.error("Error sending to WebSocket: %s", e)
                disconnected.append(connection)

        # Clean up disconnected clients
        for connection in disconnected:
            self.disconnect(connection)

    async def handle_event(self, event: Event):
        await self.broadcast(event.model_dump(mode="json"))
