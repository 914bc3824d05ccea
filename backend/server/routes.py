"""
Route registration for the voice agent control API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Translate requests into AgentSession calls
- Stream agent state and conversation log entries to UI clients
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from context.conversation_log import ConversationLogEntry, Subscription
from observability.logger import log_event
from orchestrator.enums.state import AgentState
from services.notifications import Notification
from session.agent_session import AgentSession


class TextInput(BaseModel):
    text: str


class NotificationIn(BaseModel):
    app: str
    sender: str
    text: str
    conversation_title: str = ""


def _status(session: AgentSession) -> dict[str, Any]:
    agent = session.agent
    return {
        "session_id": session.session_id,
        "state": session.state.value,
        "active": session.is_active,
        "paused": bool(agent is not None and agent.is_paused),
    }


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def session() -> AgentSession:
        return app.state.session

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/state")
    async def state() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _status(session())

    @app.get("/log")
    async def conversation_log() -> list[dict[str, object]]: # pyright: ignore[reportUnusedFunction]
        return [entry.to_dict() for entry in session().log.snapshot()]

    # ------------------------------------------------------------------
    # Agent control
    # ------------------------------------------------------------------

    @app.post("/agent/start")
    async def start_agent() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        started = await session().start()
        return {"ok": started, **_status(session())}

    @app.post("/agent/stop")
    async def stop_agent() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        stopped = await session().stop()
        return {"ok": stopped, **_status(session())}

    @app.post("/agent/pause")
    async def pause_agent() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return {"ok": session().pause(), **_status(session())}

    @app.post("/agent/resume")
    async def resume_agent() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return {"ok": session().resume(), **_status(session())}

    @app.post("/input")
    async def text_input(body: TextInput) -> dict[str, bool]: # pyright: ignore[reportUnusedFunction]
        return {"accepted": session().submit_text(body.text)}

    @app.post("/notifications")
    async def push_notification(body: NotificationIn) -> dict[str, bool]: # pyright: ignore[reportUnusedFunction]
        session().push_notification(Notification(
            app=body.app,
            sender=body.sender,
            text=body.text,
            conversation_title=body.conversation_title,
        ))
        return {"accepted": True}

    # ------------------------------------------------------------------
    # Live feed
    # ------------------------------------------------------------------

    @app.websocket("/ws/log")
    async def log_feed(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        current = session()
        log_sub = current.log.subscribe()
        state_sub = current.states.subscribe()

        # The task group owns the pumps: a client disconnect or a server-side
        # cancellation ends both before the subscriptions are detached.
        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(_pump_log(ws, log_sub))
                tg.create_task(_pump_states(ws, state_sub))
                await _wait_for_disconnect(ws)
                raise _FeedClosed()
        except* (_FeedClosed, WebSocketDisconnect):
            pass
        except* Exception as group:
            for exc in group.exceptions:
                log_event({
                    "event_type": "ws_log_feed_error",
                    "level": "WARNING",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
        finally:
            log_sub.close()
            state_sub.close()


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

class _FeedClosed(Exception):
    """Raised inside the feed task group once the client has gone."""


async def _pump_log(ws: WebSocket, sub: Subscription[ConversationLogEntry]) -> None:
    async for entry in sub:
        await ws.send_json({"type": "log", **entry.to_dict()})


async def _pump_states(ws: WebSocket, sub: Subscription[AgentState]) -> None:
    async for agent_state in sub:
        await ws.send_json({"type": "state", "state": agent_state.value})


async def _wait_for_disconnect(ws: WebSocket) -> None:
    # Clients only listen; anything they send is ignored.
    while True:
        msg = await ws.receive()
        if msg["type"] == "websocket.disconnect":
            return
