import asyncio
import json
from collections import defaultdict

from fastapi import WebSocket


def business_channel(business_id) -> str:
    return f"business:{business_id}"


def retailer_channel(retailer_id) -> str:
    return f"retailer:{retailer_id}"


class ConnectionManager:
    """
    Manages WebSocket connections grouped by channel.
    A channel is one account: "business:{id}" or "retailer:{id}"; an account
    may hold several sessions (tabs, devices) at once.
    Thread-safe via asyncio.Lock.
    """

    def __init__(self) -> None:
        # { channel: { connection_id: WebSocket } }
        self._channels: dict[str, dict[str, WebSocket]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, channel: str, connection_id: str) -> None:
        await websocket.accept()
        async with self._lock:
            self._channels[channel][connection_id] = websocket

    async def disconnect(self, channel: str, connection_id: str) -> None:
        async with self._lock:
            self._channels[channel].pop(connection_id, None)
            if not self._channels.get(channel):
                self._channels.pop(channel, None)

    def connection_count(self, channel: str) -> int:
        return len(self._channels.get(channel, {}))

    async def send_personal(self, websocket: WebSocket, message: dict) -> None:
        await websocket.send_text(json.dumps(message, default=str))

    async def broadcast(self, channel: str, message: dict) -> int:
        """Best-effort, at most once per session. Returns the number of sessions reached."""
        payload = json.dumps(message, default=str)
        dead: list[str] = []

        async with self._lock:
            sessions = dict(self._channels.get(channel, {}))

        delivered = 0
        for conn_id, ws in sessions.items():
            try:
                await ws.send_text(payload)
                delivered += 1
            except Exception:
                dead.append(conn_id)

        if dead:
            async with self._lock:
                for conn_id in dead:
                    self._channels[channel].pop(conn_id, None)
                if not self._channels.get(channel):
                    self._channels.pop(channel, None)
        return delivered


# Singleton used by all routers and services
manager = ConnectionManager()
