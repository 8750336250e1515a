"""Portal WebSocket router.

Pushes family events (a co-parent linked, a third-party member joined)
to signed-in clients instead of having them poll.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coparent.core.dependencies import identity_from_token
from coparent.database import get_db
from coparent.models.profile import Profile
from coparent.services.connection_manager import connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portal", tags=["Portal WebSocket"])


@router.websocket("/ws")
async def portal_websocket(
    websocket: WebSocket,
    db: AsyncSession = Depends(get_db),
):
    """WebSocket endpoint for family notifications.

    Protocol:
    1. Client connects and sends its access token as the first text message
    2. Server validates the token and looks up the caller's profile
    3. On success: sends auth_ok and registers the connection
    4. Server pushes events such as ``{"type": "family.third_party_added", ...}``
    5. Client can send "ping" and the server replies "pong"
    """
    await websocket.accept()
    profile_id = None

    try:
        token = await websocket.receive_text()

        try:
            identity = identity_from_token(token)
        except HTTPException:
            await websocket.send_json({"type": "auth_error", "detail": "Invalid token"})
            await websocket.close(code=4001)
            return

        result = await db.execute(
            select(Profile.id).where(Profile.auth_user_id == identity.auth_user_id)
        )
        profile_id = result.scalar_one_or_none()
        if profile_id is None:
            await websocket.send_json({"type": "auth_error", "detail": "Profile not found"})
            await websocket.close(code=4003)
            return

        await websocket.send_json({"type": "auth_ok", "profile_id": str(profile_id)})
        await connection_manager.connect(profile_id, websocket)

        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_json({
                    "type": "pong",
                    "server_time": datetime.now(timezone.utc).isoformat(),
                })

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Portal WebSocket error for profile %s", profile_id)
        try:
            await websocket.close(code=1011)
        except RuntimeError:
            pass
    finally:
        if profile_id is not None:
            await connection_manager.disconnect(profile_id, websocket)
