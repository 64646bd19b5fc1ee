"""Move gate: decides whether a column click may be sent to the peer."""

from __future__ import annotations

from typing import Optional

import structlog
from pydantic import ValidationError

from .protocol import Move
from .session import Phase, Session

logger = structlog.get_logger(__name__)


def check_move(
    session: Optional[Session], column: int, strict_turns: bool = False
) -> Optional[Move]:
    """Return the :class:`Move` to transmit, or ``None`` when the click is dropped.

    The peer remains the authority on legality; this only checks that a match
    is in progress over an open channel. With ``strict_turns`` the click must
    also come from the seat whose turn the latest snapshot reports.
    """

    if session is None or session.phase is not Phase.PLAYING:
        logger.debug("Move dropped, no game in progress", column=column)
        return None

    channel = session.channel
    if channel is None or not channel.is_open:
        logger.debug("Move dropped, channel not open", column=column)
        return None

    if strict_turns:
        snapshot = session.snapshot
        if (
            session.seat is None
            or snapshot is None
            or snapshot.current_player != session.seat
        ):
            logger.debug("Move dropped, not this player's turn", column=column)
            return None

    try:
        return Move(column=column, room_id=session.room_id)
    except ValidationError as exc:
        logger.debug("Move dropped, invalid move", column=column, error=str(exc))
        return None
