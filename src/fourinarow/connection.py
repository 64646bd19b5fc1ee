"""Real-time channel lifecycle: connect, read frames, send moves, close."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Set
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .protocol import MatchStart, Move, decode_frame, encode_move
from .session import (
    ChannelClosed,
    ChannelEvent,
    ChannelOpened,
    MatchStarted,
    StateUpdated,
)

logger = structlog.get_logger(__name__)

Connector = Callable[[str], Awaitable[Any]]
Dispatch = Callable[[ChannelEvent], Any]


async def websocket_connector(url: str) -> Any:
    return await websockets.connect(url)


def build_socket_url(base_url: str, identity: str) -> str:
    """Append ``identity`` as the ``username`` query parameter of ``base_url``."""

    parts = urlsplit(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k != "username"]
    query.append(("username", identity))
    return urlunsplit(parts._replace(query=urlencode(query)))


class Channel:
    """Handle for one connection attempt, tagged with the generation that opened it."""

    def __init__(self, generation: int, url: str) -> None:
        self.generation = generation
        self.url = url
        self.closed = False
        self._websocket: Optional[Any] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self._websocket is not None and not self.closed

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open" if self.is_open else "connecting"
        return f"<Channel generation={self.generation} {state}>"


class ConnectionManager:
    """Owns at most one :class:`Channel` and turns its traffic into channel events."""

    def __init__(
        self,
        socket_url: str,
        dispatch: Dispatch,
        connector: Optional[Connector] = None,
    ) -> None:
        self.socket_url = socket_url
        self.channel: Optional[Channel] = None
        self._dispatch = dispatch
        self._connector = connector or websocket_connector
        self._closing: Set[asyncio.Task] = set()

    # ---- public API ----

    def open(self, identity: str, generation: int) -> Channel:
        """Start connecting in the background and return the new channel handle."""

        previous = self.channel
        if previous is not None and not previous.closed:
            logger.warning(
                "Replacing live channel", generation=previous.generation
            )
            self._terminate(previous, "replaced")
            closing = asyncio.get_running_loop().create_task(self._shutdown(previous))
            self._closing.add(closing)
            closing.add_done_callback(self._closing.discard)

        channel = Channel(generation, build_socket_url(self.socket_url, identity))
        self.channel = channel
        channel._task = asyncio.get_running_loop().create_task(self._run(channel))
        logger.info("Opening channel", generation=generation, url=channel.url)
        return channel

    async def send(self, move: Move) -> bool:
        channel = self.channel
        if channel is None or not channel.is_open:
            logger.warning("Dropping outbound move, no open channel", column=move.column)
            return False
        try:
            await channel._websocket.send(encode_move(move))
        except (ConnectionClosed, OSError) as exc:
            logger.warning("Failed to send move", column=move.column, error=str(exc))
            return False
        logger.debug("Move sent", column=move.column, room_id=move.room_id)
        return True

    async def close(self) -> None:
        """Close the current channel; a no-op when nothing is open."""

        channel = self.channel
        if channel is None or channel.closed:
            return
        self._terminate(channel, "closed locally")
        await self._shutdown(channel)

    # ---- internals ----

    async def _shutdown(self, channel: Channel) -> None:
        websocket = channel._websocket
        if websocket is not None:
            try:
                await websocket.close()
            except (ConnectionClosed, OSError) as exc:
                logger.debug("Error while closing channel", error=str(exc))
        task = channel._task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self, channel: Channel) -> None:
        reason = "closed by peer"
        try:
            try:
                websocket = await self._connector(channel.url)
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                logger.warning(
                    "Failed to open channel", generation=channel.generation, error=str(exc)
                )
                reason = f"connect failed: {exc}"
                return

            channel._websocket = websocket
            if channel.closed:
                await websocket.close()
                return
            self._emit(channel, ChannelOpened(channel.generation))

            try:
                async for raw in websocket:
                    if channel.closed:
                        break
                    message = decode_frame(raw)
                    if message is None:
                        continue
                    if isinstance(message, MatchStart):
                        event: ChannelEvent = MatchStarted(
                            channel.generation,
                            room_id=message.room_id,
                            opponent=message.opponent,
                            seat=message.seat,
                        )
                    else:
                        event = StateUpdated(channel.generation, snapshot=message)
                    self._emit(channel, event)
            except ConnectionClosed as exc:
                reason = f"connection lost: {exc}"
            except OSError as exc:
                logger.warning(
                    "Channel transport error", generation=channel.generation, error=str(exc)
                )
                reason = f"transport error: {exc}"
        finally:
            self._terminate(channel, reason)

    def _emit(self, channel: Channel, event: ChannelEvent) -> None:
        if channel.closed:
            return
        self._dispatch(event)

    def _terminate(self, channel: Channel, reason: str) -> None:
        if channel.closed:
            return
        channel.closed = True
        if self.channel is channel:
            self.channel = None
        logger.info("Channel terminated", generation=channel.generation, reason=reason)
        self._dispatch(ChannelClosed(channel.generation, reason=reason))
