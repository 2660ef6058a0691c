from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .exceptions import AlreadyRunningError, SessionClosedError, SessionConflictError
from .session import CopilotSession, SessionManager, session_manager

# HTTP status per error code; handler errors use the code of their cause
STATUS_BY_ERROR_CODE = {
    "unknown_action": 404,
    "validation_error": 422,
    "index_out_of_range": 409,
    "invariant_violation": 409,
    "already_running": 409,
    "session_closed": 409,
    "session_conflict": 409,
    "research_failure": 502,
    "composition_error": 502,
}


def status_code_for(error: Dict[str, Any]) -> int:
    code = error.get("code")
    if code == "handler_error":
        code = (error.get("cause") or {}).get("code")
    return STATUS_BY_ERROR_CODE.get(code, 500)


class CreateSessionRequest(BaseModel):
    session_id: Optional[str] = None
    presentation_topic: Optional[str] = None


class InvokeActionRequest(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class GenerateRequest(BaseModel):
    topic: Optional[str] = None


def get_router(manager: Optional[SessionManager] = None) -> APIRouter:
    manager = manager or session_manager
    router = APIRouter(prefix="/copilot", tags=["slide_copilot"])

    def _session(session_id: str) -> CopilotSession:
        try:
            return manager.get(session_id)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")

    @router.post("/sessions")
    async def create_session(req: CreateSessionRequest):
        created = not (req.session_id and req.session_id in manager)
        try:
            session = manager.ensure(req.session_id, presentation_topic=req.presentation_topic)
        except SessionConflictError as e:
            raise HTTPException(status_code=409, detail=e.to_dict())
        return {
            "sessionId": session.session_id,
            "created": created,
            "presentationTopic": session.presentation_topic,
            "currentIndex": session.document.current_index,
            "context": session.context.snapshot(),
        }

    @router.delete("/sessions/{session_id}")
    async def close_session(session_id: str):
        _session(session_id)
        await manager.close(session_id)
        return {"sessionId": session_id, "closed": True}

    @router.get("/sessions/{session_id}/context")
    async def get_context(session_id: str):
        session = _session(session_id)
        return {"sessionId": session_id, "context": session.context.snapshot()}

    @router.get("/sessions/{session_id}/actions")
    async def list_actions(session_id: str):
        return {"actions": _session(session_id).registry.describe()}

    @router.post("/sessions/{session_id}/actions")
    async def invoke_action(session_id: str, req: InvokeActionRequest):
        result = await _session(session_id).call(req.name, req.arguments)
        payload = jsonable_encoder(asdict(result))
        if not result.ok:
            return JSONResponse(status_code=status_code_for(result.error or {}), content=payload)
        return payload

    @router.post("/sessions/{session_id}/generate")
    async def start_generation(session_id: str, req: Optional[GenerateRequest] = None):
        session = _session(session_id)
        try:
            session.runner.start(req.topic if req else None)
        except (AlreadyRunningError, SessionClosedError) as e:
            raise HTTPException(status_code=409, detail=e.to_dict())
        return session.runner.status.model_dump(mode="json")

    @router.get("/sessions/{session_id}/generate")
    async def generation_status(session_id: str):
        return _session(session_id).runner.status.model_dump(mode="json")

    @router.post("/sessions/{session_id}/generate/ack")
    async def acknowledge_generation(session_id: str):
        return _session(session_id).runner.acknowledge().model_dump(mode="json")

    return router
