"""
WebSocket route: live alert feed.

    WS /ws/alerts[?token=<bearer>]

Server → client:
    {"event": "connected",    "data": {"subscription": id, "user": id|null}}
    {"event": "alertUpdate",  "kind": "created"|"updated", "data": Alert}
    {"event": "alertDeleted", "kind": "deleted", "data": Alert}
    {"event": "error",        "data": {"message", "error"}}   (this socket only)
    {"event": "pong"}

Client → server:
    {"event": "newAlert", "data": {...}}   create through the lifecycle manager
                                           as the socket's user; the result
                                           arrives as a normal alertUpdate
    {"event": "ping"}

The ``connected`` message is sent once the socket is subscribed; any
alert change committed after it is delivered.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError

from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.core.errors import DisasterAPIError, ServerError, ValidationError, error_body
from backend.app.core.logging_config import set_request_context
from backend.app.core.security import Actor, verify_token
from backend.app.realtime.bus import FanOutBus, Subscription
from backend.app.realtime.events import AlertEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class AlertSocket:
    """One connected client: its bus subscription and serialised sends."""

    def __init__(
        self,
        websocket: WebSocket,
        manager: AlertLifecycleManager,
        bus: FanOutBus,
        actor: Optional[Actor],
    ):
        self.websocket = websocket
        self.manager = manager
        self.bus = bus
        self.actor = actor
        self.subscription: Optional[Subscription] = None
        self._send_lock = asyncio.Lock()

    @property
    def label(self) -> str:
        return f"ws:{self.actor.id if self.actor else 'anonymous'}"

    async def send(self, message: Dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json(message)

    async def deliver(self, event: AlertEvent) -> None:
        await self.send(event.to_message())

    async def close_dropped(self, sub: Subscription) -> None:
        try:
            await self.websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        except RuntimeError:
            # already closed by the client
            pass

    async def open(self) -> None:
        await self.websocket.accept()
        async with self._send_lock:
            self.subscription = self.bus.subscribe(
                self.deliver, label=self.label, on_drop=self.close_dropped,
            )
            await self.websocket.send_json({
                "event": "connected",
                "data": {
                    "subscription": self.subscription.id,
                    "user": self.actor.id if self.actor else None,
                },
            })

    def close(self) -> None:
        if self.subscription is not None:
            self.bus.unsubscribe(self.subscription)

    async def reply_error(self, exc: DisasterAPIError) -> None:
        await self.send({
            "event": "error",
            "data": error_body(exc.status_code, exc.error_code, exc.message, exc.details),
        })

    async def handle(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            await self.reply_error(ValidationError("Message must be valid JSON"))
            return
        if not isinstance(message, dict):
            await self.reply_error(ValidationError("Message must be a JSON object"))
            return

        event = message.get("event")
        if event == "ping":
            await self.send({"event": "pong"})
        elif event == "newAlert":
            await self._create(message.get("data"))
        else:
            await self.reply_error(
                ValidationError(f"Unknown event {event!r}", field="event")
            )

    async def _create(self, payload: Any) -> None:
        try:
            await self.manager.create(payload, self.actor)
        except DisasterAPIError as exc:
            logger.info("Socket newAlert rejected: %s", exc.message)
            await self.reply_error(exc)
        except SQLAlchemyError as exc:
            logger.error("Store failure on socket newAlert: %s", exc, exc_info=exc)
            await self.reply_error(ServerError())


@router.websocket("/ws/alerts")
async def alerts_socket(websocket: WebSocket, token: Optional[str] = Query(None)):
    client_ip = websocket.client.host if websocket.client else "unknown"
    set_request_context(endpoint="/ws/alerts", client_ip=client_ip)

    actor: Optional[Actor] = None
    if token:
        try:
            actor = verify_token(token)
        except DisasterAPIError as exc:
            logger.warning("Socket connection refused: %s", exc.message)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    state = websocket.app.state
    socket = AlertSocket(websocket, state.alert_manager, state.bus, actor)
    await socket.open()
    try:
        while True:
            raw = await websocket.receive_text()
            await socket.handle(raw)
    except WebSocketDisconnect:
        pass
    except RuntimeError as exc:
        # socket closed from this side after the subscriber was dropped
        logger.debug("Socket receive ended: %s", exc)
    finally:
        socket.close()
