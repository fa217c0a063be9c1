"""WebSocket endpoint with JWT authentication and channel multiplexing."""

import json
import uuid

import jwt as pyjwt
import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from lq.auth.jwt import verify_token
from lq.config import get_settings
from lq.ws.manager import manager

logger = structlog.get_logger()

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """Single WebSocket endpoint.

    Protocol:
        Client -> Server:
            {"action": "subscribe", "channel": "ledger"}
            {"action": "unsubscribe", "channel": "ledger"}
            {"action": "ping"}

        Server -> Client:
            {"channel": "streak:update", "data": {...}}
            {"type": "pong"}
            {"type": "error", "message": "..."}
            {"type": "subscribed", "channel": "ledger"}
            {"type": "unsubscribed", "channel": "ledger"}
    """
    try:
        payload = verify_token(token, expected_type="access")
        user_id = int(payload["sub"])
        email = payload["email"]
    except (pyjwt.InvalidTokenError, KeyError, ValueError) as e:
        await websocket.close(code=4001, reason=f"Authentication failed: {e}")
        return

    if manager.user_connection_count(user_id) >= get_settings().ws_max_connections_per_user:
        await websocket.close(code=4008, reason="Too many connections")
        return

    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, conn_id, user_id, email)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await websocket.send_json({"type": "error", "message": "Invalid message"})
                continue

            action = msg.get("action")

            if action == "subscribe":
                channel = msg.get("channel", "")
                if await manager.subscribe(conn_id, channel):
                    await websocket.send_json({"type": "subscribed", "channel": channel})
                else:
                    await websocket.send_json({"type": "error", "message": f"Invalid channel: {channel}"})

            elif action == "unsubscribe":
                channel = msg.get("channel", "")
                if await manager.unsubscribe(conn_id, channel):
                    await websocket.send_json({"type": "unsubscribed", "channel": channel})
                else:
                    await websocket.send_json({"type": "error", "message": f"Invalid channel: {channel}"})

            elif action == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                await websocket.send_json({"type": "error", "message": f"Unknown action: {action}"})

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
