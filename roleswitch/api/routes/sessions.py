"""Session engine endpoints: lifecycle operations and state queries."""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from roleswitch.api.deps import get_engine, get_storage
from roleswitch.schemas import LockState, Session, SystemState, TimerState, TransitionState
from roleswitch.services.session_engine import SessionEngine
from roleswitch.services.storage import StorageService

router = APIRouter()


class StartSessionRequest(BaseModel):
    """Start session request."""

    role_id: str = Field(..., max_length=64)
    note: str | None = Field(default=None, max_length=1000)


class SwitchRoleRequest(BaseModel):
    """Switch role request."""

    role_id: str = Field(..., max_length=64)
    note: str | None = Field(default=None, max_length=1000)


class EndSessionRequest(BaseModel):
    note: str | None = Field(default=None, max_length=1000)


class ForceEndRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=255)


class NoteRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=1000)


class SessionStatusResponse(BaseModel):
    """Everything a client needs to render the current status."""

    session: Session | None
    state: SystemState
    lock: LockState
    transition: TransitionState
    timer: TimerState


@router.get("", response_model=SessionStatusResponse)
async def get_status(engine: SessionEngine = Depends(get_engine)) -> SessionStatusResponse:
    return SessionStatusResponse(
        session=engine.get_current_session(),
        state=engine.get_state(),
        lock=engine.get_lock_state(),
        transition=engine.get_transition_state(),
        timer=engine.get_timer_state(),
    )


@router.get("/current", response_model=Session | None)
async def get_current_session(engine: SessionEngine = Depends(get_engine)) -> Session | None:
    return engine.get_current_session()


@router.get("/state", response_model=SystemState)
async def get_state(engine: SessionEngine = Depends(get_engine)) -> SystemState:
    return engine.get_state()


@router.get("/lock", response_model=LockState)
async def get_lock_state(engine: SessionEngine = Depends(get_engine)) -> LockState:
    return engine.get_lock_state()


@router.get("/transition", response_model=TransitionState)
async def get_transition_state(engine: SessionEngine = Depends(get_engine)) -> TransitionState:
    return engine.get_transition_state()


@router.get("/timer", response_model=TimerState)
async def get_timer_state(engine: SessionEngine = Depends(get_engine)) -> TimerState:
    return engine.get_timer_state()


@router.post("/start", response_model=Session)
async def start_session(
    request: StartSessionRequest,
    engine: SessionEngine = Depends(get_engine),
) -> Session:
    return await engine.start_session(request.role_id, request.note)


@router.post("/end", response_model=Session)
async def end_session(
    request: EndSessionRequest | None = None,
    engine: SessionEngine = Depends(get_engine),
) -> Session:
    """End the active session. Fails with 423 while the minimum-duration lock holds."""
    return await engine.end_session(request.note if request else None)


@router.post("/switch", response_model=Session)
async def switch_role(
    request: SwitchRoleRequest,
    engine: SessionEngine = Depends(get_engine),
) -> Session:
    """
    Switch to another role.

    With a transition window configured the response is the unchanged
    current session; poll ``/transition`` or listen on the WebSocket for
    the switch itself.
    """
    return await engine.switch_role(request.role_id, request.note)


@router.post("/cancel-transition", response_model=Session | None)
async def cancel_transition(engine: SessionEngine = Depends(get_engine)) -> Session | None:
    return await engine.cancel_transition()


@router.post("/notes", response_model=Session)
async def add_note(
    request: NoteRequest,
    engine: SessionEngine = Depends(get_engine),
) -> Session:
    return await engine.add_session_note(request.note)


@router.post("/force-end", response_model=Session | None)
async def force_end_session(
    request: ForceEndRequest | None = None,
    engine: SessionEngine = Depends(get_engine),
) -> Session | None:
    """End the active session even if locked. Returns null if nothing was running."""
    return await engine.force_end_session(request.reason if request else None)


@router.get("/history", response_model=list[Session])
async def get_history(
    limit: int = Query(default=50, ge=1, le=500, description="Maximum sessions to return"),
    offset: int = Query(default=0, ge=0),
    storage: StorageService = Depends(get_storage),
) -> list[Session]:
    """Recent sessions, newest first (includes the active one)."""
    return await storage.get_recent_sessions(limit=limit, offset=offset)
