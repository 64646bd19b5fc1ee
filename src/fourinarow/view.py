"""Read-only projection of client state for whatever renders it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .protocol import BoardSnapshot, LeaderboardEntry
from .session import Phase, Session

PLAYER_COLORS = {1: "Red", 2: "Yellow"}


@dataclass(frozen=True)
class ClientView:
    phase: Phase
    identity: Optional[str] = None
    opponent: Optional[str] = None
    room_id: Optional[str] = None
    snapshot: Optional[BoardSnapshot] = None
    standings: Tuple[Tuple[int, LeaderboardEntry], ...] = ()
    status: str = ""


def status_line(session: Optional[Session]) -> str:
    """Short status text matching the board's colours (player one is red)."""

    if session is None:
        return ""
    snapshot = session.snapshot
    if session.awaiting_open:
        return "Connecting..."
    if session.phase is Phase.WAITING:
        return "Finding Opponent..."
    if session.phase is Phase.PLAYING:
        if snapshot is None:
            return ""
        return f"{PLAYER_COLORS[snapshot.current_player]}'s Turn"
    if session.phase is Phase.FINISHED and snapshot is not None:
        if snapshot.is_draw or snapshot.winner == 0:
            return "It's a Draw!"
        return f"{PLAYER_COLORS[snapshot.winner]} Wins!"
    return ""


def build_view(
    session: Optional[Session], standings: Tuple[Tuple[int, LeaderboardEntry], ...]
) -> ClientView:
    if session is None:
        return ClientView(phase=Phase.LOBBY, standings=standings)
    return ClientView(
        phase=session.phase,
        identity=session.identity,
        opponent=session.opponent,
        room_id=session.room_id,
        snapshot=session.snapshot,
        standings=standings,
        status=status_line(session),
    )
