"""Relay session: one authenticated WebSocket subscription with an idle watchdog."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .clients.relay_ws import AiohttpRelayTransport, RelayTransport
from .config.settings import Ntfy2ClipSettings
from .errors import DecodeError, IdleTimeoutError, ProtocolError
from .models import FrameKind, InboundEvent, decode_envelope

logger = logging.getLogger(__name__)

Submit = Callable[[str], None]
TransportFactory = Callable[[str, Dict[str, str]], Awaitable[RelayTransport]]


class Session:
    """
    A single live subscription to one topic.

    ``run`` races the pending receive against the idle watchdog. Each
    inbound frame refreshes ``last_traffic_at``; the watchdog fires every
    ``idle_timeout`` seconds and ends the session when nothing at all has
    arrived for longer than that. The watchdog never sends pings, it only
    audits traffic that the relay (or its keepalives) already produce.

    Matching notifications are handed to ``submit`` and never awaited, so
    a slow clipboard cannot stall the protocol loop.
    """

    def __init__(
        self,
        transport: RelayTransport,
        topic: str,
        idle_timeout: float,
        submit: Submit,
        clock: Callable[[], float] = time.monotonic,
    ):
        if idle_timeout <= 0:
            raise ValueError("idle_timeout must be positive")

        self.transport = transport
        self.topic = topic
        self.idle_timeout = idle_timeout
        self.submit = submit
        self._clock = clock

        self.last_traffic_at = clock()
        self._closed = False

        self.stats = {
            'frames_received': 0,
            'messages_dispatched': 0,
            'messages_ignored': 0,
            'decode_errors': 0,
            'pings_answered': 0,
        }

    @classmethod
    async def connect(
        cls,
        settings: Ntfy2ClipSettings,
        submit: Submit,
        transport_factory: TransportFactory = AiohttpRelayTransport.open,
        clock: Callable[[], float] = time.monotonic,
    ) -> "Session":
        """
        Open the relay connection for ``settings.topic``.

        Raises:
            ConnectError: If the handshake fails. Retrying is up to the caller.
        """
        logger.debug(f"Connecting to {settings.ws_url}")
        transport = await transport_factory(settings.ws_url, settings.auth_headers)
        logger.info(
            f"Connected to {settings.server} with topic={settings.topic} "
            f"and timeout={settings.timeout}s"
        )
        return cls(transport, settings.topic, float(settings.timeout), submit, clock=clock)

    async def run(self) -> None:
        """
        Drive the session until it ends.

        Returns normally when the peer closes the connection.

        Raises:
            TransportError: Receive or pong failed.
            ProtocolError: The peer sent a malformed frame.
            IdleTimeoutError: No traffic within the idle timeout.
        """
        receive_task: Optional[asyncio.Future] = None
        next_tick = self._clock() + self.idle_timeout

        try:
            while True:
                if receive_task is None:
                    receive_task = asyncio.ensure_future(self.transport.receive())

                delay = max(0.0, next_tick - self._clock())
                done, _ = await asyncio.wait({receive_task}, timeout=delay)

                if receive_task in done:
                    event = receive_task.result()
                    receive_task = None
                    if await self._handle_event(event):
                        logger.info("Relay closed the connection")
                        return
                    continue

                next_tick = self._clock() + self.idle_timeout
                self._check_idle()
        finally:
            if receive_task is not None and not receive_task.done():
                receive_task.cancel()
                try:
                    await receive_task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.debug(f"Pending receive ended with {e!r}")
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.transport.close()

    def _check_idle(self) -> None:
        idle_for = self._clock() - self.last_traffic_at
        if idle_for > self.idle_timeout:
            raise IdleTimeoutError(f"No traffic in the last {self.idle_timeout:g}s")
        logger.debug(f"Watchdog: last traffic {idle_for:.1f}s ago")

    async def _handle_event(self, event: InboundEvent) -> bool:
        """Handle one frame. Returns True when the peer closed the session."""
        self.last_traffic_at = self._clock()
        self.stats['frames_received'] += 1

        if event.kind == FrameKind.TEXT:
            self._route_text(event.data)
        elif event.kind == FrameKind.PING:
            await self.transport.pong(event.data or b"")
            self.stats['pings_answered'] += 1
            logger.debug("WS received ping and sent pong")
        elif event.kind == FrameKind.PONG:
            logger.debug("WS received pong")
        elif event.kind == FrameKind.BINARY:
            logger.debug("WS received binary frame, ignoring")
        elif event.kind == FrameKind.CLOSE:
            return True
        elif event.kind == FrameKind.PROTOCOL_ERROR:
            raise ProtocolError(f"Malformed frame: {event.error}") from event.error

        return False

    def _route_text(self, raw) -> None:
        try:
            envelope = decode_envelope(raw)
        except DecodeError as e:
            self.stats['decode_errors'] += 1
            logger.warning(f"Discarding malformed notification: {e}")
            return

        if not envelope.is_dispatchable_for(self.topic):
            self.stats['messages_ignored'] += 1
            logger.debug(f"Ignoring event={envelope.event} topic={envelope.topic}")
            return

        logger.debug(f"WS received message: event={envelope.event}, topic={envelope.topic}")
        self.submit(envelope.message)
        self.stats['messages_dispatched'] += 1

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'topic': self.topic,
            'idle_timeout_seconds': self.idle_timeout,
            'last_traffic_age_seconds': self._clock() - self.last_traffic_at,
            'is_connected': not self._closed,
        }
