"""Supervisor: keeps a relay session alive by reconnecting forever."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from .config.settings import Ntfy2ClipSettings
from .errors import SessionError
from .session import Session, Submit

logger = logging.getLogger(__name__)

RECONNECT_COOLDOWN_SECONDS = 5.0

SessionFactory = Callable[[Ntfy2ClipSettings, Submit], Awaitable[Session]]


class Supervisor:
    """
    Runs one session at a time and restarts it whenever it ends.

    Every failure (including a failed connect) is logged and followed by
    a fixed cooldown. A clean close by the relay restarts immediately.
    There is no retry limit and no backoff.
    """

    def __init__(
        self,
        settings: Ntfy2ClipSettings,
        submit: Submit,
        session_factory: SessionFactory = Session.connect,
        cooldown_seconds: float = RECONNECT_COOLDOWN_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self.submit = submit
        self.session_factory = session_factory
        self.cooldown_seconds = cooldown_seconds
        self._sleep = sleep

        self.session: Optional[Session] = None
        self._running = False

        self.stats = {
            'connection_attempts': 0,
            'sessions_started': 0,
            'failures': 0,
            'clean_closes': 0,
            'last_error': None,
            'last_error_time': None,
        }

    async def run_forever(self) -> None:
        """Connect, run, and repeat until ``stop`` is called."""
        self._running = True
        logger.info(f"Subscribing to {self.settings.ws_url}")

        while self._running:
            self.stats['connection_attempts'] += 1
            try:
                self.session = await self.session_factory(self.settings, self.submit)
                self.stats['sessions_started'] += 1
                await self.session.run()
            except SessionError as e:
                self._record_failure(e)
                logger.error(f"Connection error: {e}. Reconnecting in {self.cooldown_seconds:g}s...")
                await self._cooldown()
            except Exception as e:
                self._record_failure(e)
                logger.exception(f"Unexpected session failure: {e}. Reconnecting in {self.cooldown_seconds:g}s...")
                await self._cooldown()
            else:
                self.stats['clean_closes'] += 1
                logger.info("Connection closed cleanly")
            finally:
                self.session = None

        logger.info("Supervisor stopped")

    def stop(self) -> None:
        """Stop after the current iteration."""
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def _cooldown(self) -> None:
        if self._running:
            await self._sleep(self.cooldown_seconds)

    def _record_failure(self, error: Exception) -> None:
        self.stats['failures'] += 1
        self.stats['last_error'] = f"{type(error).__name__}: {error}"
        self.stats['last_error_time'] = datetime.now(timezone.utc).isoformat()

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self.stats)
        stats['running'] = self._running
        stats['session'] = self.session.get_stats() if self.session else None
        return stats
