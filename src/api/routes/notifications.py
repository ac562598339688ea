"""Live order event stream over WebSocket."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from src.api.deps import is_admin
from src.api.middleware.auth import AuthError, decode_jwt
from src.services.notification_service import (
    ADMIN_CHANNEL,
    Subscription,
    get_notification_hub,
)
from src.services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


async def resolve_channels(token: str | None, session_token: str | None) -> set[str] | None:
    """Channels a caller may listen on, or None if the credentials are invalid.

    Browsers cannot set headers on WebSocket requests, so credentials come
    as query parameters.
    """
    if token:
        try:
            user = decode_jwt(token).to_user_context()
        except AuthError as e:
            logger.info("Rejected notification stream: %s", e.message)
            return None
        channels = {f"user-{user.user_id}"}
        if is_admin(user):
            channels.add(ADMIN_CHANNEL)
        return channels

    if session_token:
        session = await SessionService().get_valid_session(session_token)
        if session:
            return {f"session-{session['id']}"}

    return None


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.get()
        await websocket.send_json(event)


async def stop_forwarder(forwarder: asyncio.Task) -> None:
    """Cancel the event forwarder and collect its result.

    A send that failed because the client went away is logged, not raised.
    """
    forwarder.cancel()
    try:
        await forwarder
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug("Notification forwarder stopped after a send error: %s", e)


@router.websocket("/ws")
async def order_events(
    websocket: WebSocket,
    token: str | None = None,
    session_token: str | None = None,
) -> None:
    """Stream order events for the caller until the client disconnects.

    Customers receive events for their own orders, admins also receive
    every order event. Messages sent by the client are ignored.
    """
    channels = await resolve_channels(token, session_token)
    if channels is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    hub = get_notification_hub()
    subscription = hub.subscribe(channels)
    forwarder: asyncio.Task | None = None

    try:
        await websocket.send_json({"event": "connected", "channels": sorted(channels)})
        forwarder = asyncio.create_task(_forward_events(websocket, subscription))
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Notification stream closed for %s", sorted(channels))
    finally:
        hub.unsubscribe(subscription)
        if forwarder is not None:
            await stop_forwarder(forwarder)
