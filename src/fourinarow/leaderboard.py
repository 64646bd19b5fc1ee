"""Periodic leaderboard polling, independent of any game session."""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Tuple

import httpx
import structlog

from .protocol import LeaderboardEntry, parse_leaderboard

logger = structlog.get_logger(__name__)

LEADERBOARD_PATH = "/leaderboard"
DEFAULT_POLL_INTERVAL = 10.0

Entries = Tuple[LeaderboardEntry, ...]


class PollHandle:
    """Returned by :meth:`LeaderboardPoller.start`; ``stop`` cancels the schedule."""

    def __init__(self, task: asyncio.Task) -> None:
        self._task = task
        self._stopped = False

    @property
    def active(self) -> bool:
        return not self._stopped and not self._task.done()

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        logger.debug("Leaderboard polling stopped")


class LeaderboardPoller:
    """Keeps a best-effort copy of the ranked player list.

    ``entries`` is replaced wholesale after each successful fetch and left
    untouched when a fetch fails.
    """

    def __init__(
        self,
        api_url: str,
        interval: float = DEFAULT_POLL_INTERVAL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
        on_update: Optional[Callable[[Entries], None]] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.interval = interval
        self.timeout = timeout
        self.entries: Entries = ()
        self._client = client
        self._owns_client = client is None
        self._on_update = on_update
        self._handle: Optional[PollHandle] = None
        self._closed = False

    def standings(self) -> List[Tuple[int, LeaderboardEntry]]:
        return list(enumerate(self.entries, start=1))

    def start(self) -> PollHandle:
        """Fetch now and then every ``interval`` seconds until the handle is stopped."""

        if self._closed:
            raise RuntimeError("Leaderboard poller is closed")
        if self._handle is not None and self._handle.active:
            return self._handle
        task = asyncio.get_running_loop().create_task(self._poll())
        self._handle = PollHandle(task)
        return self._handle

    async def refresh(self) -> bool:
        if self._closed:
            logger.debug("Leaderboard poller is closed, skipping fetch")
            return False
        client = self._ensure_client()
        try:
            response = await client.get(f"{self.api_url}{LEADERBOARD_PATH}")
            response.raise_for_status()
            entries = parse_leaderboard(response.json())
        except (httpx.HTTPError, ValueError, RecursionError) as exc:
            # Validation and JSON decoding errors are both ValueErrors.
            logger.warning("Failed to fetch leaderboard", error=str(exc))
            return False

        self.entries = entries
        logger.debug("Leaderboard updated", players=len(entries))
        if self._on_update is not None:
            self._on_update(entries)
        return True

    async def aclose(self) -> None:
        """Stop polling and release the HTTP client; later refreshes do nothing."""

        self._closed = True
        if self._handle is not None:
            await self._handle.stop()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ---- internals ----

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _poll(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)
