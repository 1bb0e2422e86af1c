"""
WebSocket router.
- /ws/marketplace  : live bid and request events for one business or retailer
"""
import json
import uuid

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bidmarket.database import AsyncSessionLocal
from bidmarket.dependencies import decode_ws_token
from bidmarket.models.bid_request import BidRequest, BidRequestStatus
from bidmarket.models.retailer_bid import RetailerBid
from bidmarket.services.actor import BUSINESS, RETAILER
from bidmarket.ws.manager import business_channel, manager, retailer_channel

router = APIRouter(tags=["websockets"])


async def state_snapshot(db: AsyncSession, role: str, user_id: uuid.UUID) -> dict:
    """
    Current DB state for a (re)connecting client, so it can reconcile
    anything it missed while disconnected without a separate REST call.
    """
    if role == BUSINESS:
        rows = (
            await db.execute(
                select(BidRequest.id, BidRequest.status)
                .where(
                    BidRequest.business_id == user_id,
                    BidRequest.status == BidRequestStatus.OPEN,
                )
                .order_by(BidRequest.created_at.desc())
            )
        ).all()
        return {
            "type": "STATE_SYNC",
            "open_requests": [
                {"request_id": str(rid), "status": status.value} for rid, status in rows
            ],
        }

    rows = (
        await db.execute(
            select(RetailerBid.id, RetailerBid.bid_request_id, RetailerBid.status)
            .where(RetailerBid.retailer_id == user_id)
            .order_by(RetailerBid.submitted_at.desc())
        )
    ).all()
    return {
        "type": "STATE_SYNC",
        "bids": [
            {"bid_id": str(bid_id), "request_id": str(request_id), "status": status.value}
            for bid_id, request_id, status in rows
        ],
    }


@router.websocket("/ws/marketplace")
async def marketplace_websocket(
    websocket: WebSocket,
    token: str = Query(...),
):
    """
    A business receives every event on its requests; a retailer receives
    events for its own bids.
    Sends CONNECTED then STATE_SYNC. Supports client PING → PONG keepalive.
    """
    try:
        user_id, role = decode_ws_token(token)
    except Exception:
        await websocket.close(code=4001, reason="Unauthorized")
        return

    if role == BUSINESS:
        channel = business_channel(user_id)
    elif role == RETAILER:
        channel = retailer_channel(user_id)
    else:
        await websocket.close(code=4003, reason="Forbidden: unknown role")
        return

    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, channel, conn_id)
    try:
        await manager.send_personal(
            websocket,
            {
                "type": "CONNECTED",
                "channel": channel,
                "role": role,
                "user_id": str(user_id),
            }
        )

        async with AsyncSessionLocal() as sync_db:
            await manager.send_personal(websocket, await state_snapshot(sync_db, role, user_id))

        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                continue
            if isinstance(message, dict) and message.get("type") == "PING":
                await manager.send_personal(websocket, {"type": "PONG"})
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(channel, conn_id)
