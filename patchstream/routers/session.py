"""Workspace session API endpoints"""

from __future__ import annotations

import asyncio
from pathlib import Path

from fastapi import APIRouter, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from patchstream.models.session import (
    ApplyResponseRequest,
    ApplyResponseResult,
    CreateSessionRequest,
    CreateSessionResponse,
    RunRequest,
    StatusSnapshot,
    StreamEvent,
)
from patchstream.services.config_manager import ConfigManager
from patchstream.services.session import QueueProjector, SessionRegistry, WorkspaceSession

router = APIRouter()


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_session(request: Request, session_id: str) -> WorkspaceSession:
    try:
        return get_registry(request).get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")


@router.post("", response_model=CreateSessionResponse)
async def create_session(body: CreateSessionRequest, request: Request) -> CreateSessionResponse:
    """Open a session on a project directory"""
    settings = ConfigManager.get_instance().get_engine_settings()
    root = Path(body.workspace_root or settings.workspace_root).expanduser()
    if not root.is_dir():
        raise HTTPException(status_code=400, detail=f"Workspace root is not a directory: {root}")

    session = get_registry(request).create(root, settings)
    return CreateSessionResponse(session_id=session.session_id, workspace_root=str(root.resolve()))


@router.get("/{session_id}/status", response_model=StatusSnapshot)
async def session_status(session_id: str, request: Request) -> StatusSnapshot:
    """Partial state of the response currently being applied"""
    return get_session(request, session_id).status()


@router.post("/{session_id}/run")
async def run_session(session_id: str, body: RunRequest, request: Request):
    """Send a request to the model and stream progress and outcomes (SSE)"""
    session = get_session(request, session_id)

    async def event_generator():
        projector = QueueProjector()
        session.set_projector(projector)
        task = asyncio.create_task(session.run(body.prompt))

        try:
            while True:
                getter = asyncio.create_task(projector.queue.get())
                done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield {"event": "message", "data": getter.result().model_dump_json()}
                    continue
                getter.cancel()
                break

            while not projector.queue.empty():
                yield {"event": "message", "data": projector.queue.get_nowait().model_dump_json()}

            if task.cancelled():
                event = StreamEvent(type="error", error="Cancelled")
                yield {"event": "message", "data": event.model_dump_json()}
                return

            result = task.result()
            event = StreamEvent(
                type="done",
                done=True,
                metadata={
                    "session_id": session_id,
                    "ok": result.ok,
                    "responses": result.responses,
                    "repairs": len(result.repairs),
                    "outcomes": [outcome.model_dump(mode="json") for outcome in result.outcomes],
                },
            )
            yield {"event": "message", "data": event.model_dump_json()}

        except Exception as e:
            event = StreamEvent(type="error", error=str(e))
            yield {"event": "message", "data": event.model_dump_json()}
        finally:
            if not task.done():
                task.cancel()
            session.set_projector(None)

    return EventSourceResponse(event_generator())


@router.post("/{session_id}/responses", response_model=ApplyResponseResult)
async def apply_response(session_id: str, body: ApplyResponseRequest, request: Request) -> ApplyResponseResult:
    """Apply a complete response text without calling the model"""
    session = get_session(request, session_id)
    outcomes = await session.apply_text(body.text)
    return ApplyResponseResult(
        session_id=session_id,
        blocks=session.parser.blocks(),
        outcomes=outcomes,
        pending_repairs=session.pending_repairs(outcomes),
    )


@router.post("/{session_id}/cancel")
async def cancel_session(session_id: str, request: Request) -> dict:
    """Abort the running request and any shell command it started"""
    await get_session(request, session_id).cancel()
    return {"status": "cancelled", "session_id": session_id}


@router.post("/{session_id}/reset")
async def reset_session(session_id: str, request: Request) -> dict:
    """Discard all parser, dispatcher and repair state of the session"""
    await get_session(request, session_id).reset()
    return {"status": "reset", "session_id": session_id}


@router.delete("/{session_id}")
async def delete_session(session_id: str, request: Request) -> dict:
    get_session(request, session_id)
    await get_registry(request).remove(session_id)
    return {"status": "deleted", "session_id": session_id}
