"""Shared fixtures: a scripted in-memory game peer and frame builders."""

from __future__ import annotations

import asyncio
import json
from typing import Callable, List, Optional

import pytest

_HANG_UP = object()


class FakeSocket:
    """Stands in for a websocket connection; frames are queued by the test."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.sent: List[dict] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    def push(self, frame) -> None:
        self._inbox.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def hang_up(self) -> None:
        self._inbox.put_nowait(_HANG_UP)

    def break_with(self, exc: BaseException) -> None:
        self._inbox.put_nowait(exc)

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket is closed")
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_HANG_UP)

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _HANG_UP:
            self.closed = True
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self.closed = True
            raise item
        return item


class FakePeer:
    """Connector handed to the client; records every socket it opens."""

    def __init__(self) -> None:
        self.sockets: List[FakeSocket] = []
        self.urls: List[str] = []
        self.refuse = False
        self.stall = False

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.refuse:
            raise ConnectionRefusedError("peer unavailable")
        if self.stall:
            await asyncio.Event().wait()
        socket = FakeSocket(url)
        self.sockets.append(socket)
        return socket

    @property
    def socket(self) -> Optional[FakeSocket]:
        return self.sockets[-1] if self.sockets else None

    @staticmethod
    async def until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        async def poll() -> None:
            while not predicate():
                await asyncio.sleep(0.001)

        await asyncio.wait_for(poll(), timeout)


class Frames:
    """Builders for frames in the service's wire format."""

    @staticmethod
    def board(moves=()) -> List[List[int]]:
        grid = [[0] * 7 for _ in range(6)]
        for row, column, player in moves:
            grid[row][column] = player
        return grid

    @staticmethod
    def match_start(room_id: str = "r1", opponent: str = "bob", **extra) -> dict:
        return {"type": "GAME_START", "roomId": room_id, "opponent": opponent, **extra}

    @classmethod
    def state(
        cls,
        current_player: int = 1,
        finished: bool = False,
        draw: bool = False,
        winner: int = 0,
        moves=(),
    ) -> dict:
        return {
            "type": "GAME_STATE",
            "payload": {
                "board": cls.board(moves),
                "currentPlayer": current_player,
                "isFinished": finished,
                "isDraw": draw,
                "winner": winner,
            },
        }


@pytest.fixture
def peer() -> FakePeer:
    return FakePeer()


@pytest.fixture
def frames() -> type:
    return Frames
