"""
HistoQuest - Server
===================

Entry point. Exposes the game engine through a FastAPI REST API and pushes
session events to clients in real time with Socket.IO.

The engine itself is synchronous and knows nothing about HTTP: every
request drives one transition of a SessionStateMachine, and the events it
emits are forwarded to the Socket.IO room of that session.

To run:
    uvicorn histoquest.main:socket_app --reload --host 0.0.0.0 --port 8000
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

import socketio
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import config
from .content import ContentPool
from .errors import InvalidTransition
from .models import GameState, GameType, LeaderboardWindow, PlayerProfile
from .modes import mode_for
from .persistence import SQLiteScoreStore
from .selector import RoundSelector
from .service import GameService
from .session import SessionStateMachine
from .timers import AsyncioTimer, SystemClock

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# =============================================================================
# SERVER SETUP
# =============================================================================

app = FastAPI(
    title="HistoQuest",
    description="Trivia Race and Timeline Quest game engine",
    version="1.0.0"
)

sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins='*',
    logger=False,
    engineio_logger=False
)

# FastAPI + Socket.IO on a single ASGI application
socket_app = socketio.ASGIApp(sio, app)


# =============================================================================
# SESSIONS AND DEPENDENCIES
# =============================================================================

class SessionRegistry:
    """
    Live sessions of this server process, by session id.

    Players may leave without closing or completing a session. Every lookup
    refreshes a session; the ones left untouched for longer than `ttl_s`
    are dropped on the next add (closing those still in play).
    """

    def __init__(self, ttl_s: float = config.SESSION_TTL_SEC, clock=None):
        self.ttl_s = ttl_s
        self.clock = clock or SystemClock()
        self._sessions: Dict[str, Tuple[SessionStateMachine, PlayerProfile]] = {}
        self._touched: Dict[str, int] = {}

    def add(self, machine: SessionStateMachine, player: PlayerProfile):
        self.sweep()
        self._sessions[machine.session_id] = (machine, player)
        self._touched[machine.session_id] = self.clock.monotonic_ms()

    def get(self, session_id: str) -> Tuple[SessionStateMachine, PlayerProfile]:
        try:
            entry = self._sessions[session_id]
        except KeyError:
            raise HTTPException(status_code=404, detail="Session not found") from None
        self._touched[session_id] = self.clock.monotonic_ms()
        return entry

    def remove(self, session_id: str):
        self._sessions.pop(session_id, None)
        self._touched.pop(session_id, None)

    def sweep(self) -> int:
        """Drops idle sessions. Returns how many were dropped."""
        cutoff = self.clock.monotonic_ms() - int(self.ttl_s * 1000)
        stale = [session_id for session_id, touched in self._touched.items() if touched < cutoff]
        for session_id in stale:
            machine, _ = self._sessions[session_id]
            if machine.state in (GameState.ACTIVE, GameState.EVALUATING):
                machine.close()
            self.remove(session_id)
            logger.info(f"Session {session_id} expired after {self.ttl_s:.0f}s idle")
        return len(stale)

    def __len__(self):
        return len(self._sessions)


registry = SessionRegistry()

_service: Optional[GameService] = None
_content: Optional[ContentPool] = None
_clock = SystemClock()
_background_tasks: Set[asyncio.Task] = set()


def get_service() -> GameService:
    global _service
    if _service is None:
        store = SQLiteScoreStore(config.DB_PATH, fetch_limit=config.LEADERBOARD_FETCH_LIMIT)
        _service = GameService(
            store,
            clock=_clock,
            top_n=config.LEADERBOARD_TOP_N,
            timeout_s=config.LEADERBOARD_TIMEOUT_SEC,
        )
    return _service


def get_content_pool() -> ContentPool:
    global _content
    if _content is None:
        _content = ContentPool(config.CONTENT_DIR)
    return _content


def get_clock():
    return _clock


def get_timer():
    return AsyncioTimer()


def get_registry() -> SessionRegistry:
    return registry


def _forward_events(session_id: str):
    """Builds the event callback that relays a session's events to its room."""

    def forward(event: str, data: dict):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No event loop, dropping '{event}' for session {session_id}")
            return
        task = loop.create_task(sio.emit(event, data, room=session_id))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

    return forward


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    logger.warning(f"Rejected transition: {exc}")
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning(f"Invalid request: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# =============================================================================
# REQUEST BODIES
# =============================================================================

class StartSessionRequest(BaseModel):
    game_type: str
    player_id: str
    display_name: Optional[str] = None
    avatar_ref: Optional[str] = None
    groups: Optional[List[str]] = None
    surprise: bool = False
    seed: Optional[int] = None


class AnswerRequest(BaseModel):
    chosen_index: int


class OrderRequest(BaseModel):
    order: List[str]


class PowerUpRequest(BaseModel):
    kind: str
    current_order: Optional[List[str]] = None


class CompleteRequest(BaseModel):
    window: str = LeaderboardWindow.ALL_TIME.value


# =============================================================================
# SOCKET.IO EVENTS
# =============================================================================

@sio.event
async def connect(sid, environ):
    logger.info(f"Client connected: {sid}")


@sio.event
async def disconnect(sid):
    logger.info(f"Client disconnected: {sid}")


@sio.event
async def watch(sid, data):
    """
    Subscribes a client to the events of one session.

    Expected payload: { "session_id": "..." }
    """
    session_id = (data or {}).get("session_id", "")
    try:
        machine, _ = registry.get(session_id)
    except HTTPException:
        await sio.emit("error", {"message": "Session not found"}, room=sid)
        return

    await sio.enter_room(sid, session_id)
    await sio.emit("state", machine.snapshot(), room=sid)


# =============================================================================
# REST ROUTES
# =============================================================================

@app.post("/api/sessions")
async def start_session(
    body: StartSessionRequest,
    content: ContentPool = Depends(get_content_pool),
    sessions: SessionRegistry = Depends(get_registry),
    clock=Depends(get_clock),
    timer=Depends(get_timer),
):
    """Creates a session for a player and shows the first item."""
    game_type = GameType(body.game_type.lower())
    player = PlayerProfile(
        player_id=body.player_id,
        display_name=body.display_name or "User",
        avatar_ref=body.avatar_ref,
    )

    selector = RoundSelector(seed=body.seed)
    groups = body.groups
    if body.surprise:
        groups = selector.surprise_groups(content.groups(game_type))

    machine = SessionStateMachine(mode_for(game_type), clock=clock, timer=timer, selector=selector)
    machine.set_event_callback(_forward_events(machine.session_id))
    machine.start(content.items_for(game_type), group_filter=groups)

    sessions.add(machine, player)
    return machine.snapshot()


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    machine, _ = sessions.get(session_id)
    return machine.snapshot()


@app.post("/api/sessions/{session_id}/answer")
async def answer_question(
    session_id: str,
    body: AnswerRequest,
    sessions: SessionRegistry = Depends(get_registry),
):
    machine, _ = sessions.get(session_id)
    result = machine.answer(body.chosen_index)
    return {"result": result.to_dict(), "state": machine.snapshot()}


@app.post("/api/sessions/{session_id}/order")
async def submit_order(
    session_id: str,
    body: OrderRequest,
    sessions: SessionRegistry = Depends(get_registry),
):
    machine, _ = sessions.get(session_id)
    result = machine.submit_order(body.order)
    return {"result": result.to_dict(), "state": machine.snapshot()}


@app.post("/api/sessions/{session_id}/advance")
async def advance_session(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    machine, _ = sessions.get(session_id)
    machine.advance()
    return machine.snapshot()


@app.post("/api/sessions/{session_id}/power-ups")
async def use_power_up(
    session_id: str,
    body: PowerUpRequest,
    sessions: SessionRegistry = Depends(get_registry),
):
    machine, _ = sessions.get(session_id)
    outcome = machine.use_power_up(body.kind, current_order=body.current_order)
    return {"outcome": outcome.to_dict(), "state": machine.snapshot()}


@app.delete("/api/sessions/{session_id}")
async def close_session(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    """Abandons a session. Nothing is saved."""
    machine, _ = sessions.get(session_id)
    machine.close()
    sessions.remove(session_id)
    return {"status": "ok"}


@app.post("/api/sessions/{session_id}/complete")
async def complete_session(
    session_id: str,
    body: CompleteRequest,
    sessions: SessionRegistry = Depends(get_registry),
    service: GameService = Depends(get_service),
):
    """Saves a completed session and returns its summary and rank."""
    machine, player = sessions.get(session_id)
    result = await service.complete_session(machine, player, LeaderboardWindow(body.window))
    # Kept after a failed save so the client can retry
    if result.saved:
        sessions.remove(session_id)
    return result.to_dict()


@app.get("/api/leaderboard/{game_type}")
async def get_leaderboard(
    game_type: str,
    window: str = LeaderboardWindow.ALL_TIME.value,
    limit: Optional[int] = None,
    service: GameService = Depends(get_service),
):
    result = await service.leaderboard(GameType(game_type.lower()), LeaderboardWindow(window), limit)
    return result.to_dict()


@app.get("/api/content/{game_type}/groups")
async def get_groups(game_type: str, content: ContentPool = Depends(get_content_pool)):
    """Topics (trivia) or eras (timeline) a session can be filtered by."""
    return {"groups": content.groups(GameType(game_type.lower()))}


# =============================================================================
# ENTRY POINT
# =============================================================================

def create_app():
    """Factory for the ASGI application"""
    return socket_app


if __name__ == "__main__":
    uvicorn.run(
        "histoquest.main:socket_app",
        host="0.0.0.0",
        port=config.PORT,
        reload=True
    )
