"""
Live simulation over WebSocket.

Each connection owns one engine worker. Clients send JSON commands
(init, start, pause, step, injectRequest, setSpeed, setLoadFactor,
updateNodes, reset) and receive tick and trace frames. Bad commands get
an ``error`` reply and the session stays open.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from api.dependencies import get_simulation_service
from trafficsim.application.services import SimulationService
from trafficsim.core import EngineStateError, EngineUnavailable, ProtocolError, ValidationError
from trafficsim.simulation.messages import error_message
from trafficsim.simulation.worker import LiveSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/live", tags=["live"])

POLL_SECONDS = 0.1


class ConnectionManager:
    """Track open live WebSocket connections."""

    def __init__(self):
        self.connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self.connections.append(ws)
        logger.info("Live WebSocket connected: total=%d", len(self.connections))

    def disconnect(self, ws: WebSocket):
        if ws in self.connections:
            self.connections.remove(ws)
        logger.info("Live WebSocket disconnected: total=%d", len(self.connections))

    @property
    def active_count(self) -> int:
        return len(self.connections)


manager = ConnectionManager()


async def _forward_frames(websocket: WebSocket, session: LiveSession) -> None:
    """Relay engine messages of the current engine to the client."""
    loop = asyncio.get_running_loop()
    while True:
        message = await loop.run_in_executor(None, session.next_message, POLL_SECONDS)
        if message is None:
            continue
        await websocket.send_json(message.to_dict())
        if message.type == "engineUnavailable":
            return


@router.websocket("/ws")
async def live_ws(websocket: WebSocket, service: SimulationService = Depends(get_simulation_service)):
    await manager.connect(websocket)
    try:
        session = service.open_live_session()
    except EngineUnavailable as e:
        logger.error(f"Live engine unavailable: {e}")
        await websocket.send_json({"type": "engineUnavailable", "reason": str(e)})
        await websocket.close()
        manager.disconnect(websocket)
        return

    await websocket.send_json({"type": "ready", "engineId": session.engine_id})
    forwarder = asyncio.create_task(_forward_frames(websocket, session))
    try:
        while True:
            text = await websocket.receive_text()
            try:
                payload = json.loads(text)
                if isinstance(payload, dict) and payload.get("type") == "reset":
                    loop = asyncio.get_running_loop()
                    engine_id = await loop.run_in_executor(None, session.restart)
                    await websocket.send_json({"type": "ready", "engineId": engine_id})
                    continue
                session.send(payload)
            except json.JSONDecodeError as e:
                await websocket.send_json(error_message(ProtocolError(f"Invalid JSON: {e}")))
            except (ValidationError, ProtocolError, EngineStateError) as e:
                await websocket.send_json(error_message(e))
            except EngineUnavailable as e:
                await websocket.send_json({"type": "engineUnavailable", "reason": str(e)})
    except WebSocketDisconnect:
        logger.info(f"Live client disconnected from engine {session.engine_id}")
    finally:
        forwarder.cancel()
        await asyncio.get_running_loop().run_in_executor(None, session.close)
        manager.disconnect(websocket)
