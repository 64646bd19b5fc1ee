"""Wire format for the 4 in a Row real-time channel and leaderboard endpoint."""

from __future__ import annotations

import json
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

logger = structlog.get_logger(__name__)

TAG_KEY = "type"


class Cell(IntEnum):
    EMPTY = 0
    PLAYER_ONE = 1
    PLAYER_TWO = 2


class FrameKind(str, Enum):
    MATCH_START = "MATCH_START"
    STATE_UPDATE = "STATE_UPDATE"
    MOVE = "MOVE"


# The service tags frames GAME_START / GAME_STATE; the protocol names are accepted too.
INBOUND_KINDS: Dict[str, FrameKind] = {
    "GAME_START": FrameKind.MATCH_START,
    "MATCH_START": FrameKind.MATCH_START,
    "GAME_STATE": FrameKind.STATE_UPDATE,
    "STATE_UPDATE": FrameKind.STATE_UPDATE,
}


class FrameError(ValueError):
    """Raised when an inbound frame cannot be interpreted."""


# ---------- Models ----------


class BoardSnapshot(BaseModel):
    """Authoritative board state pushed by the peer after every move."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    grid: Tuple[Tuple[Cell, ...], ...] = Field(alias="board")
    current_player: int = Field(alias="currentPlayer", ge=1, le=2)
    is_finished: bool = Field(default=False, alias="isFinished")
    is_draw: bool = Field(default=False, alias="isDraw")
    winner: int = Field(default=0, ge=0, le=2)

    @field_validator("grid")
    @classmethod
    def ensure_rectangular(
        cls, value: Tuple[Tuple[Cell, ...], ...]
    ) -> Tuple[Tuple[Cell, ...], ...]:
        if not value or not value[0]:
            raise ValueError("Board must have at least one row and column")
        width = len(value[0])
        if any(len(row) != width for row in value):
            raise ValueError("Board rows must all have the same length")
        return value

    @property
    def rows(self) -> int:
        return len(self.grid)

    @property
    def columns(self) -> int:
        return len(self.grid[0])


class MatchStart(BaseModel):
    """Room assignment sent once the peer has paired the player."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    room_id: str = Field(alias="roomId", min_length=1)
    opponent: str = ""
    seat: Optional[int] = Field(default=None, alias="player", ge=1, le=2)

    @field_validator("opponent", mode="before")
    @classmethod
    def unknown_opponent(cls, value: Any) -> Any:
        # The peer may not know the opponent's name yet.
        return "" if value is None else value


class Move(BaseModel):
    """Request to drop a disc into ``column`` of the current room."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    column: int = Field(ge=0)
    room_id: str = Field(alias="roomId", min_length=1)


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    wins: int = Field(default=0, ge=0)


_LEADERBOARD = TypeAdapter(Tuple[LeaderboardEntry, ...])


# ---------- Inbound ----------


InboundMessage = Union[MatchStart, BoardSnapshot]


def parse_frame(raw: Union[str, bytes]) -> InboundMessage:
    """Parse one inbound frame, raising :class:`FrameError` when it is unusable."""

    try:
        data = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as exc:
        raise FrameError(f"Frame is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise FrameError("Frame must be a JSON object")

    tag = data.get(TAG_KEY, data.get("kind"))
    kind = INBOUND_KINDS.get(tag) if isinstance(tag, str) else None
    if kind is None:
        raise FrameError(f"Unrecognized frame kind {tag!r}")

    payload = data.get("payload")
    try:
        if kind is FrameKind.MATCH_START:
            # Room details may sit at the top level or inside the payload.
            fields: Dict[str, Any] = dict(data)
            if isinstance(payload, dict):
                fields.update(payload)
            return MatchStart.model_validate(fields)
        if not isinstance(payload, dict):
            raise FrameError("State frame is missing its payload")
        return BoardSnapshot.model_validate(payload)
    except ValidationError as exc:
        raise FrameError(f"Invalid {kind.value} frame: {exc}") from exc


def decode_frame(raw: Union[str, bytes]) -> Optional[InboundMessage]:
    """Like :func:`parse_frame` but logs and returns ``None`` for bad frames."""

    try:
        return parse_frame(raw)
    except FrameError as exc:
        logger.warning("Dropping malformed frame", error=str(exc))
        return None


# ---------- Outbound ----------


def encode_move(move: Move) -> str:
    return json.dumps(
        {TAG_KEY: FrameKind.MOVE.value, "payload": move.model_dump(by_alias=True)}
    )


def parse_leaderboard(data: Any) -> Tuple[LeaderboardEntry, ...]:
    """Validate a ``GET /leaderboard`` body; raises ``ValidationError``."""

    return _LEADERBOARD.validate_python(data)
