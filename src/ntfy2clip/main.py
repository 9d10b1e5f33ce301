"""ntfy2clip service - copy ntfy notifications to the clipboard."""

import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from typing import Optional

from .config.settings import Ntfy2ClipSettings, load_settings
from .errors import ConfigError
from .sink import ClipboardSink, SinkDispatcher, create_clipboard_sink
from .supervisor import Supervisor
from .utils.logging import setup_logging


logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 5.0


class Ntfy2ClipService:
    """Main service: owns the supervisor and the clipboard dispatcher."""

    def __init__(self, settings: Ntfy2ClipSettings, sink: Optional[ClipboardSink] = None):
        self.settings = settings
        self.dispatcher = SinkDispatcher(sink if sink is not None else create_clipboard_sink())
        self.supervisor = Supervisor(settings, self.dispatcher.submit)
        self._shutdown_event = asyncio.Event()
        self._started_at: Optional[datetime] = None

    async def start(self):
        """Run until a shutdown signal arrives."""
        logger.info(f"Starting ntfy2clip for topic={self.settings.topic} on {self.settings.server}")
        self._started_at = datetime.now(timezone.utc)

        self._setup_signal_handlers()

        supervisor_task = asyncio.create_task(self.supervisor.run_forever())
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())

        await asyncio.wait({supervisor_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)

        logger.info("Shutting down ntfy2clip")
        self.supervisor.stop()
        for task in (supervisor_task, shutdown_task):
            task.cancel()
        try:
            await supervisor_task
        except asyncio.CancelledError:
            pass

        await self.dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        self._remove_signal_handlers()
        logger.info("ntfy2clip stopped")

    def shutdown(self):
        self._shutdown_event.set()

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows loops and non-main threads cannot install handlers
                logger.debug(f"Signal handler for {signum} not installed")

    def _remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(signum)
            except (NotImplementedError, RuntimeError, ValueError):
                pass

    def _on_signal(self, signum):
        logger.info(f"Received signal {signum}, initiating shutdown")
        self.shutdown()

    async def health_check(self) -> dict:
        """Report service status and counters."""
        supervisor_stats = self.supervisor.get_stats()
        session_stats = supervisor_stats.get('session')

        if session_stats and session_stats.get('is_connected'):
            status = "healthy"
        elif self.supervisor.running:
            status = "degraded"
        else:
            status = "unhealthy"

        return {
            "service": "ntfy2clip",
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "components": {
                "supervisor": supervisor_stats,
                "clipboard": self.dispatcher.get_stats(),
            },
        }


async def main(settings: Ntfy2ClipSettings):
    """Main entry point."""
    service = Ntfy2ClipService(settings)

    try:
        await service.start()
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        sys.exit(1)


def cli():
    """Console script: resolve configuration once, then run forever."""
    try:
        settings = load_settings(os.getenv("CONFIG_FILE"))
    except ConfigError as e:
        sys.exit(f"Configuration error: {e}")

    setup_logging(settings.logging, level=settings.log_level)

    try:
        asyncio.run(main(settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
