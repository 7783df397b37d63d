"""FastAPI application exposing session commands and projections."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config.settings import ServiceConfig, load_service_config
from ..core.errors import (
    AccessDenied,
    AlreadyMember,
    GameError,
    GameInProgress,
    InvalidPhase,
    NotAuthenticated,
    NotMember,
    SessionFull,
    SessionNotFound,
    StorageError,
)
from ..core.roles import Role
from .commands import SessionService

ERROR_STATUS: Dict[type, int] = {
    NotAuthenticated: 401,
    AccessDenied: 403,
    SessionNotFound: 404,
    AlreadyMember: 409,
    NotMember: 409,
    GameInProgress: 409,
    SessionFull: 409,
    InvalidPhase: 409,
}


class SessionCreate(BaseModel):
    """Payload for creating a new session."""

    name: str = Field(..., min_length=1, max_length=100)


class StartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset: bool = False
    additional_roles: List[Role] = Field(default_factory=list, alias="additionalRoles")

    @field_validator("additional_roles", mode="before")
    @classmethod
    def _accept_role_codes(cls, value: Any) -> Any:
        # Older clients send the signed integer codes.
        if isinstance(value, list):
            return [Role.from_code(item) if isinstance(item, int) else item for item in value]
        return value


class MembersSelect(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    member_indices: List[int] = Field(..., alias="memberIndices")


class ApprovalSubmit(BaseModel):
    approval: bool


class VoteSubmit(BaseModel):
    success: bool


class GuessSubmit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_index: int = Field(..., alias="targetIndex")


class MessageSubmit(BaseModel):
    text: str


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _status_for(exc: GameError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 422


def get_service(request: Request) -> SessionService:
    return request.app.state.service


def caller_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> Optional[str]:
    return x_user_id


def create_app(service: Optional[SessionService] = None, config: Optional[ServiceConfig] = None) -> FastAPI:
    """Build the API around ``service`` (a fresh in-memory service by default)."""

    config = config or (service.config if service is not None else load_service_config())
    service = service or SessionService(config=config)

    app = FastAPI(title="Roundtable Web API", version="0.1.0")
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GameError)
    async def _game_error(_request: Request, exc: GameError) -> JSONResponse:
        return JSONResponse(status_code=_status_for(exc), content=exc.to_dict())

    @app.exception_handler(StorageError)
    async def _storage_error(_request: Request, exc: StorageError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"code": "storage.error", "message": str(exc)})

    @app.post("/api/sessions")
    async def create_session(
        payload: SessionCreate,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        """Found a new session owned by the caller."""
        session = await svc.create_session(user_id, payload.name)
        return {"sessionId": session.id}

    @app.get("/api/sessions")
    async def list_sessions(svc: SessionService = Depends(get_service)) -> List[Dict[str, Any]]:
        return [_dump(item) for item in await svc.list_sessions()]

    @app.get("/api/sessions/{session_id}")
    async def get_session(
        session_id: str,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        return _dump(await svc.get_session(session_id, user_id))

    @app.get("/api/sessions/{session_id}/view")
    async def get_view(
        session_id: str,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        """Board as seen by the caller."""
        return _dump(await svc.view(session_id, user_id))

    @app.post("/api/sessions/{session_id}/join")
    async def join(
        session_id: str,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        session = await svc.join(user_id, session_id)
        return {"status": "ok", "version": session.version}

    @app.post("/api/sessions/{session_id}/leave")
    async def leave(
        session_id: str,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        session = await svc.leave(user_id, session_id)
        if session is None:
            return {"status": "removed"}
        return {"status": "ok", "version": session.version}

    @app.post("/api/sessions/{session_id}/start")
    async def start(
        session_id: str,
        payload: StartRequest,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        session = await svc.start(user_id, session_id, reset=payload.reset, additional_roles=payload.additional_roles)
        return {"status": "ok", "version": session.version}

    @app.post("/api/sessions/{session_id}/members")
    async def select_members(
        session_id: str,
        payload: MembersSelect,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        session = await svc.select_members(user_id, session_id, payload.member_indices)
        return {"status": "ok", "version": session.version}

    @app.post("/api/sessions/{session_id}/approvals")
    async def approve(
        session_id: str,
        payload: ApprovalSubmit,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        session = await svc.approve(user_id, session_id, payload.approval)
        return {"status": "ok", "version": session.version}

    @app.post("/api/sessions/{session_id}/votes")
    async def vote(
        session_id: str,
        payload: VoteSubmit,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        session = await svc.vote(user_id, session_id, payload.success)
        return {"status": "ok", "version": session.version}

    @app.post("/api/sessions/{session_id}/guess")
    async def guess(
        session_id: str,
        payload: GuessSubmit,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        session = await svc.guess_merlin(user_id, session_id, payload.target_index)
        return {"status": "ok", "version": session.version}

    @app.post("/api/sessions/{session_id}/messages")
    async def send_message(
        session_id: str,
        payload: MessageSubmit,
        user_id: Optional[str] = Depends(caller_id),
        svc: SessionService = Depends(get_service),
    ) -> Dict[str, Any]:
        session = await svc.send_message(user_id, session_id, payload.text)
        return {"status": "ok", "version": session.version}

    return app
