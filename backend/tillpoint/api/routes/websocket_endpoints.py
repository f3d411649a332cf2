"""
WebSocket push channel for order lifecycle events.

Auth: either pass ``?token=<jwt>`` or send ``{"event":"auth","token":"..."}``
as the first message. The token must belong to an active staff account;
otherwise the socket is closed with code 4001.

Each connection is one NotificationBus subscription for every event. The
bus delivers from its own thread, so frames are handed to the event loop
and a send that takes longer than ``push_send_timeout`` drops the
subscriber. The socket is then closed with code 1011.
"""
import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from tillpoint.api.deps import Bus, get_session_factory
from tillpoint.core.config import settings
from tillpoint.core.security import staff_id_from_token
from tillpoint.models.staff import StaffUser
from tillpoint.services.notification_service import ALL_EVENTS, EventType, Message

logger = logging.getLogger(__name__)

router = APIRouter()

# Timeout (seconds) for the client to send the first-message auth event.
_AUTH_TIMEOUT = 5.0


async def authenticate_ws(websocket: WebSocket, query_token: Optional[str] = None) -> Optional[int]:
    """Accept the socket and return the staff id from its token.

    Returns None after closing the socket with 4001 when auth fails.
    """
    await websocket.accept()

    if query_token:
        staff_id = staff_id_from_token(query_token)
        if staff_id is None:
            await websocket.close(code=4001, reason="Invalid token")
        return staff_id

    try:
        raw = await asyncio.wait_for(websocket.receive_text(), timeout=_AUTH_TIMEOUT)
        message = json.loads(raw)
    except asyncio.TimeoutError:
        await websocket.close(code=4001, reason="Authentication timeout")
        return None
    except (json.JSONDecodeError, WebSocketDisconnect):
        try:
            await websocket.close(code=4001, reason="Invalid auth message")
        except RuntimeError as e:
            logger.debug(f"WebSocket close failed: {e}")
        return None

    if not isinstance(message, dict) or message.get("event") != "auth" or not message.get("token"):
        await websocket.close(code=4001, reason="First message must be {\"event\":\"auth\",\"token\":\"...\"}")
        return None

    staff_id = staff_id_from_token(message["token"])
    if staff_id is None:
        await websocket.close(code=4001, reason="Invalid token")
    return staff_id


def _is_active_staff(session_factory, staff_id: int) -> bool:
    db = session_factory()
    try:
        staff = db.get(StaffUser, staff_id)
        return staff is not None and staff.is_active
    finally:
        db.close()


@router.websocket("/orders")
async def orders_websocket(
    websocket: WebSocket,
    bus: Bus,
    session_factory=Depends(get_session_factory),
    token: Optional[str] = Query(None, description="Auth token (or send a first auth message)"),
):
    """Stream order_created, order_status_updated and payment_processed events."""
    staff_id = await authenticate_ws(websocket, query_token=token)
    if staff_id is None:
        return
    if not await run_in_threadpool(_is_active_staff, session_factory, staff_id):
        await websocket.close(code=4001, reason="Staff account not found or inactive")
        return

    loop = asyncio.get_running_loop()
    dropped = asyncio.Event()

    def deliver(message: Message) -> None:
        # Runs on the bus delivery thread; raising drops this subscriber
        future = asyncio.run_coroutine_threadsafe(websocket.send_json(message.to_dict()), loop)
        try:
            future.result(timeout=settings.push_send_timeout)
        except Exception:
            future.cancel()
            loop.call_soon_threadsafe(dropped.set)
            raise

    subscription = bus.subscribe(ALL_EVENTS, deliver)
    logger.info(f"Staff {staff_id} connected to order events (subscriber {subscription.id})")
    dropped_wait = asyncio.ensure_future(dropped.wait())
    try:
        await websocket.send_json(
            Message(event=EventType.CONNECTED.value, data={"staff_id": staff_id}).to_dict()
        )
        while True:
            receive = asyncio.ensure_future(websocket.receive_text())
            await asyncio.wait({receive, dropped_wait}, return_when=asyncio.FIRST_COMPLETED)
            if not receive.done():
                # Subscriber dropped by the bus
                receive.cancel()
                logger.warning(f"Order event delivery to staff {staff_id} failed, closing socket")
                await websocket.close(code=1011, reason="Event delivery failed")
                break
            raw = receive.result()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(message, dict) and message.get("event") == "ping":
                await websocket.send_json(
                    Message(event="pong", data={"timestamp": message.get("timestamp")}).to_dict()
                )
    except WebSocketDisconnect as e:
        logger.debug(f"Order events socket for staff {staff_id} disconnected: code {e.code}")
    finally:
        dropped_wait.cancel()
        bus.unsubscribe(subscription)
        logger.info(f"Staff {staff_id} disconnected from order events")
