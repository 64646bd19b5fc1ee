"""High-level client tying the session, channel and leaderboard together."""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

import httpx
import structlog

from .config import ClientSettings
from .connection import ConnectionManager, Connector
from .gate import check_move
from .leaderboard import Entries, LeaderboardPoller, PollHandle
from .session import ChannelEvent, Phase, SessionMachine, WinEvent
from .view import ClientView, build_view

logger = structlog.get_logger(__name__)

ViewListener = Callable[[ClientView], None]
WinListener = Callable[[WinEvent], None]


class GameClient:
    """Hosting context for one player's connection to the game service.

    Use as an async context manager: entering starts leaderboard polling,
    leaving closes the channel and stops the poller.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        connector: Optional[Connector] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or ClientSettings.from_env()
        self.machine = SessionMachine(on_win=self._handle_win)
        self.connection = ConnectionManager(
            self.settings.socket_url, self._dispatch, connector=connector
        )
        self.leaderboard = LeaderboardPoller(
            self.settings.api_url,
            interval=self.settings.poll_interval,
            client=http_client,
            timeout=self.settings.http_timeout,
            on_update=self._handle_leaderboard,
        )
        self.last_win: Optional[WinEvent] = None
        self._poll: Optional[PollHandle] = None
        self._view_listeners: List[ViewListener] = []
        self._win_listeners: List[WinListener] = []

    async def __aenter__(self) -> "GameClient":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def phase(self) -> Phase:
        return self.machine.phase

    def start(self) -> None:
        if self._poll is None:
            self._poll = self.leaderboard.start()

    async def aclose(self) -> None:
        await self.connection.close()
        if self._poll is not None:
            await self._poll.stop()
        await self.leaderboard.aclose()

    # ---- listeners ----

    def subscribe(self, listener: ViewListener) -> None:
        self._view_listeners.append(listener)

    def on_win(self, listener: WinListener) -> None:
        self._win_listeners.append(listener)

    def view(self) -> ClientView:
        return build_view(self.machine.session, tuple(self.leaderboard.standings()))

    # ---- user intents ----

    async def join(self, identity: str) -> bool:
        session = self.machine.begin(identity)
        if session is None:
            return False
        session.channel = self.connection.open(session.identity, session.generation)
        self._notify()
        return True

    async def click_column(self, column: int) -> bool:
        """Send a move for ``column`` if the move gate allows it."""

        move = check_move(
            self.machine.session, column, strict_turns=self.settings.strict_turns
        )
        if move is None:
            return False
        return await self.connection.send(move)

    async def disconnect(self) -> None:
        await self.connection.close()

    async def restart(self) -> bool:
        """Leave a finished game and start over from the lobby."""

        if self.phase is not Phase.FINISHED:
            return False
        await self.connection.close()
        self.machine.reset()
        self.last_win = None
        self._notify()
        await self.leaderboard.refresh()
        return True

    # ---- event handling ----

    def _dispatch(self, event: ChannelEvent) -> None:
        if self.machine.dispatch(event):
            self._notify()

    def _handle_win(self, win: WinEvent) -> None:
        self.last_win = win
        asyncio.get_running_loop().call_soon(self._fire_win, win)

    def _fire_win(self, win: WinEvent) -> None:
        for listener in list(self._win_listeners):
            try:
                listener(win)
            except Exception:
                logger.exception("Win listener failed", winner=win.winner)

    def _handle_leaderboard(self, entries: Entries) -> None:
        self._notify()

    def _notify(self) -> None:
        if not self._view_listeners:
            return
        view = self.view()
        for listener in list(self._view_listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("View listener failed", phase=view.phase.value)
