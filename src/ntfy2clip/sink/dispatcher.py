"""Fire-and-forget delivery of notifications to a clipboard sink."""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from ..errors import SinkError
from .base import ClipboardSink

logger = logging.getLogger(__name__)


class SinkDispatcher:
    """
    Runs each delivery as its own task.

    ``submit`` returns immediately; deliveries may overlap and finish in
    any order. Failures are logged and counted, never raised to the caller.
    Tasks outlive the session that submitted them.
    """

    def __init__(self, sink: ClipboardSink):
        self.sink = sink
        self._pending: Set[asyncio.Task] = set()
        self.stats = {
            'submitted': 0,
            'delivered': 0,
            'failed': 0,
        }

    def submit(self, text: str) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self.stats['submitted'] += 1

    async def _deliver(self, text: str) -> None:
        try:
            await self.sink.deliver(text)
        except SinkError as e:
            self.stats['failed'] += 1
            logger.error(f"Failed to set clipboard: {e}")
        except Exception as e:
            self.stats['failed'] += 1
            logger.error(f"Unexpected clipboard failure: {e}", exc_info=True)
        else:
            self.stats['delivered'] += 1

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries, cancelling any still running after ``timeout``."""
        if not self._pending:
            return

        tasks = list(self._pending)
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} clipboard deliveries at shutdown")
            await asyncio.gather(*still_running, return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, 'pending': self.pending}
