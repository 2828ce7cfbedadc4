"""Session channel plumbing: turns orchestrator output into WebSocket messages."""
import asyncio
import json
from typing import Any, Dict, Mapping, Optional

from fastapi import WebSocket

from .shield.navigation import NavigationStrategy
from .shield.orchestrator import SessionUpdate


class ChannelNavigator:
    """Navigator that tells the visitor's runtime where to go and how."""

    def __init__(self, outbox: asyncio.Queue) -> None:
        self._outbox = outbox

    def execute(self, strategy: NavigationStrategy, url: str) -> None:
        self._outbox.put_nowait({"type": "navigate", "strategy": strategy.value, "location": url})


def update_message(update: SessionUpdate) -> Dict[str, Any]:
    # the verdict stays server-side
    return {"type": update.kind, "state": update.state.value, "remaining": update.remaining_seconds}


def visit_context(headers: Mapping[str, str]) -> Dict[str, Optional[str]]:
    return {
        "user_agent": headers.get("user-agent"),
        "referer": headers.get("referer"),
        "country": headers.get("x-vercel-ip-country"),
    }


async def receive_message(websocket: WebSocket) -> Any:
    """Next JSON message, or None when the frame is not valid JSON."""
    text = await websocket.receive_text()
    try:
        return json.loads(text)
    except ValueError:
        return None


async def pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


async def flush(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while not outbox.empty():
        await websocket.send_json(outbox.get_nowait())
