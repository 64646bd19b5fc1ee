"""Client-side session state machine driven by channel events."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Union

import structlog

from .protocol import BoardSnapshot

if TYPE_CHECKING:
    from .connection import Channel

logger = structlog.get_logger(__name__)


class Phase(str, Enum):
    LOBBY = "Lobby"
    WAITING = "Waiting"
    PLAYING = "Playing"
    FINISHED = "Finished"


# ---------- Channel events ----------


@dataclass(frozen=True)
class ChannelOpened:
    generation: int


@dataclass(frozen=True)
class MatchStarted:
    generation: int
    room_id: str
    opponent: str = ""
    seat: Optional[int] = None


@dataclass(frozen=True)
class StateUpdated:
    generation: int
    snapshot: BoardSnapshot


@dataclass(frozen=True)
class ChannelClosed:
    generation: int
    reason: str = ""


ChannelEvent = Union[ChannelOpened, MatchStarted, StateUpdated, ChannelClosed]


@dataclass(frozen=True)
class WinEvent:
    """Signal raised when a finished game reports a winner."""

    winner: int
    seat: Optional[int] = None

    @property
    def is_local(self) -> bool:
        return self.seat is not None and self.winner == self.seat


# ---------- Session ----------


@dataclass
class Session:
    """The client's end of one game attempt, from join until the channel closes."""

    identity: str
    generation: int
    phase: Phase = Phase.LOBBY
    room_id: Optional[str] = None
    opponent: Optional[str] = None
    seat: Optional[int] = None
    snapshot: Optional[BoardSnapshot] = None
    channel: Optional["Channel"] = field(default=None, repr=False)

    @property
    def awaiting_open(self) -> bool:
        return self.phase is Phase.LOBBY


def next_phase(phase: Phase, event: ChannelEvent) -> Optional[Phase]:
    """Phase reached from ``phase`` on ``event``; ``None`` if the event does not apply."""

    if isinstance(event, ChannelClosed):
        return Phase.LOBBY
    if isinstance(event, ChannelOpened):
        return Phase.WAITING if phase is Phase.LOBBY else None
    if isinstance(event, MatchStarted):
        return Phase.PLAYING if phase is Phase.WAITING else None
    if isinstance(event, StateUpdated):
        if phase is not Phase.PLAYING:
            return None
        return Phase.FINISHED if event.snapshot.is_finished else Phase.PLAYING
    return None


class SessionMachine:
    """Owns the current :class:`Session` and applies channel events to it.

    ``dispatch`` is the single mutation entry point for channel events;
    ``begin`` and ``reset`` handle the user's join and restart intents.
    """

    def __init__(self, on_win: Optional[Callable[[WinEvent], None]] = None) -> None:
        self.session: Optional[Session] = None
        self._on_win = on_win
        self._generations = itertools.count(1)

    @property
    def phase(self) -> Phase:
        return self.session.phase if self.session else Phase.LOBBY

    # ---- user intents ----

    def begin(self, identity: str) -> Optional[Session]:
        """Create a session for ``identity``; no-op for blank names or a live session."""

        name = identity.strip() if identity else ""
        if not name:
            logger.debug("Ignoring join with blank identity")
            return None
        if self.session is not None:
            logger.debug(
                "Ignoring join while a session is active",
                generation=self.session.generation,
            )
            return None
        self.session = Session(identity=name, generation=next(self._generations))
        logger.info("Session created", identity=name, generation=self.session.generation)
        return self.session

    def reset(self) -> None:
        if self.session is not None:
            logger.info("Session reset", generation=self.session.generation)
        self.session = None

    # ---- channel events ----

    def dispatch(self, event: ChannelEvent) -> bool:
        """Apply ``event`` to the current session; return whether anything changed."""

        session = self.session
        if session is None or event.generation != session.generation:
            logger.debug(
                "Ignoring event from stale channel",
                kind=type(event).__name__,
                generation=event.generation,
            )
            return False

        phase = next_phase(session.phase, event)
        if phase is None:
            logger.warning(
                "Ignoring event not valid in current phase",
                kind=type(event).__name__,
                phase=session.phase.value,
            )
            return False

        if isinstance(event, ChannelClosed):
            logger.info(
                "Channel closed, returning to lobby",
                generation=session.generation,
                reason=event.reason,
            )
            self.session = None
            return True

        if isinstance(event, MatchStarted):
            session.room_id = event.room_id
            session.opponent = event.opponent
            session.seat = event.seat
            session.snapshot = None
            logger.info("Match started", room_id=event.room_id, opponent=event.opponent)
        elif isinstance(event, StateUpdated):
            session.snapshot = event.snapshot
        session.phase = phase

        if isinstance(event, StateUpdated) and phase is Phase.FINISHED:
            snapshot = event.snapshot
            logger.info(
                "Game finished", draw=snapshot.is_draw, winner=snapshot.winner
            )
            if snapshot.winner > 0 and self._on_win is not None:
                self._on_win(WinEvent(winner=snapshot.winner, seat=session.seat))
        return True
