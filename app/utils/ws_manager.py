from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Set

from fastapi import WebSocket

from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

ALERT_DISPATCHED = "crisis.alert_dispatched"


class AlertWSManager:
    """Live crisis-alert channel for the user's own open app sessions."""

    def __init__(self) -> None:
        self._subs: Dict[int, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: int) -> None:
        await websocket.accept()
        async with self._lock:
            self._subs.setdefault(int(user_id), set()).add(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            for user_id in list(self._subs):
                ws_set = self._subs[user_id]
                ws_set.discard(websocket)
                if not ws_set:
                    del self._subs[user_id]

    async def broadcast_alert(self, user_id: int, event: Dict[str, Any]) -> None:
        payload = {
            "type": ALERT_DISPATCHED,
            "user_id": int(user_id),
            **event,
            "server_timestamp": utcnow().isoformat() + "Z",
        }
        await self._broadcast(int(user_id), payload)

    async def _broadcast(self, user_id: int, event: dict) -> None:
        # Copy subscribers snapshot to avoid holding the lock while sending
        async with self._lock:
            targets = list(self._subs.get(user_id, set()))
        if not targets:
            return
        payload = json.dumps(event, default=str, separators=(",", ":"))
        for ws in targets:
            try:
                await ws.send_text(payload)
            except Exception as exc:
                logger.debug("[alerts] dropping broken websocket for user %s: %s", user_id, exc)
                await self.disconnect(ws)
