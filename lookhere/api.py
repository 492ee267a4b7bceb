"""Operator API router for the LookHere monitor.

Each mutating endpoint becomes one command on the monitor's dispatcher queue
and waits for its result.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from lookhere.errors import (
    InvalidNoticeError,
    NoActiveSessionError,
    OperatorError,
    UnknownSessionError,
)
from lookhere.monitor import Monitor
from lookhere.monitor.commands import (
    Command,
    SelectAgent,
    SendNotice,
    Shutdown,
    ToggleStream,
)
from lookhere.monitor.display import FrameBuffer
from lookhere.monitor.notices import NoticeLog

router = APIRouter(prefix="/monitor", tags=["monitor"])

_monitor: Monitor | None = None


def set_monitor(monitor: Monitor | None) -> None:
    global _monitor
    _monitor = monitor


def get_monitor() -> Monitor:
    if _monitor is None:
        raise HTTPException(status_code=503, detail="Monitor not running")
    return _monitor


async def _run(monitor: Monitor, command: Command):
    future = monitor.dispatcher.submit(command)
    try:
        return await asyncio.wrap_future(future)
    except UnknownSessionError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NoActiveSessionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidNoticeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OperatorError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ── Models ────────────────────────────────────────────────────────

class NoticeRequest(BaseModel):
    text: str = Field(default="", description="Text shown on the agent's screen")


# ── Queries ───────────────────────────────────────────────────────

@router.get("/sessions")
async def list_sessions(monitor: Monitor = Depends(get_monitor)):
    return {"sessions": monitor.manager.list_sessions()}


@router.get("/status")
async def status(monitor: Monitor = Depends(get_monitor)):
    manager = monitor.manager
    active = manager.active
    streaming = manager.streaming
    return {
        "running": monitor.running,
        "port": monitor.port,
        "sessions": len(manager.registry),
        "capacity": manager.registry.capacity,
        "active": active.id if active else None,
        "streaming": streaming.id if streaming else None,
    }


@router.get("/frame")
async def latest_frame(monitor: Monitor = Depends(get_monitor)):
    display = monitor.display
    frame = display.latest() if isinstance(display, FrameBuffer) else None
    if frame is None:
        return Response(status_code=204)
    return Response(content=frame, media_type="image/jpeg")


@router.get("/notices")
async def notices(monitor: Monitor = Depends(get_monitor)):
    notifier = monitor.notifier
    recent = notifier.recent() if isinstance(notifier, NoticeLog) else []
    return {"notices": recent}


# ── Commands ──────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/select")
async def select_session(session_id: str, monitor: Monitor = Depends(get_monitor)):
    session = await _run(monitor, SelectAgent(session_id))
    return {"selected": session}


@router.post("/stream/toggle")
async def toggle_stream(monitor: Monitor = Depends(get_monitor)):
    streaming = await _run(monitor, ToggleStream())
    return {"streaming": streaming}


@router.post("/notice")
async def send_notice(req: NoticeRequest, monitor: Monitor = Depends(get_monitor)):
    await _run(monitor, SendNotice(req.text))
    return {"sent": True}


@router.post("/shutdown")
async def shutdown(monitor: Monitor = Depends(get_monitor)):
    removed = await _run(monitor, Shutdown())
    return {"removed": removed}
