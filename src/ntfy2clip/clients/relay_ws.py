"""WebSocket transport to the ntfy relay."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import aiohttp
from aiohttp import WSMsgType

from .. import __version__
from ..errors import ConnectError, TransportError
from ..models import FrameKind, InboundEvent

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 15.0
CLOSE_TIMEOUT_SECONDS = 10.0
USER_AGENT = f"ntfy2clip/{__version__}"


class RelayTransport(ABC):
    """
    One open WebSocket connection as seen by a session.

    ``receive`` yields every frame, control frames included, so the
    session can track traffic recency and answer pings itself.
    Transport-level failures are raised as TransportError; malformed
    frames come back as PROTOCOL_ERROR events.
    """

    @abstractmethod
    async def receive(self) -> InboundEvent:
        """Wait for the next inbound frame."""

    @abstractmethod
    async def pong(self, payload: bytes) -> None:
        """Send a pong frame carrying ``payload``."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""


class AiohttpRelayTransport(RelayTransport):
    """RelayTransport backed by an aiohttp client WebSocket with autoping disabled."""

    def __init__(self, http_session: aiohttp.ClientSession, websocket: aiohttp.ClientWebSocketResponse):
        self.http_session = http_session
        self.websocket = websocket

    @classmethod
    async def open(
        cls,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
    ) -> "AiohttpRelayTransport":
        """
        Perform the WebSocket handshake.

        Proxy settings are taken from the environment (HTTP_PROXY,
        HTTPS_PROXY, NO_PROXY).

        Raises:
            ConnectError: On DNS, TCP, TLS or upgrade failure, or when the
                handshake does not finish within ``connect_timeout``.
        """
        request_headers = {'User-Agent': USER_AGENT}
        request_headers.update(headers or {})

        http_session = aiohttp.ClientSession(
            trust_env=True,
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout),
        )

        try:
            websocket = await asyncio.wait_for(
                http_session.ws_connect(
                    url,
                    headers=request_headers,
                    autoping=False,
                    autoclose=True,
                    heartbeat=None,
                ),
                timeout=connect_timeout,
            )
        except asyncio.TimeoutError as e:
            await http_session.close()
            raise ConnectError(f"Timed out connecting to {url} after {connect_timeout:g}s") from e
        except aiohttp.WSServerHandshakeError as e:
            await http_session.close()
            raise ConnectError(f"Handshake with {url} rejected: HTTP {e.status} {e.message}") from e
        except (aiohttp.ClientError, OSError, ValueError) as e:
            await http_session.close()
            raise ConnectError(f"Failed to connect to {url}: {e}") from e

        return cls(http_session, websocket)

    @property
    def closed(self) -> bool:
        return self.websocket.closed

    async def receive(self) -> InboundEvent:
        try:
            msg = await self.websocket.receive()
        except (aiohttp.ClientError, ConnectionError) as e:
            raise TransportError(f"Receive failed: {e}") from e

        if msg.type == WSMsgType.TEXT:
            return InboundEvent.text(msg.data)
        if msg.type == WSMsgType.BINARY:
            return InboundEvent(FrameKind.BINARY, msg.data)
        if msg.type == WSMsgType.PING:
            return InboundEvent.ping(msg.data)
        if msg.type == WSMsgType.PONG:
            return InboundEvent.pong(msg.data)
        if msg.type == WSMsgType.CLOSE:
            logger.debug(f"Close frame received: code={msg.data} reason={msg.extra!r}")
            return InboundEvent.close()
        if msg.type == WSMsgType.ERROR:
            error = msg.data
            if isinstance(error, aiohttp.WebSocketError):
                return InboundEvent.protocol_error(error)
            if isinstance(error, BaseException):
                raise TransportError(f"Receive failed: {error}") from error
            raise TransportError(f"Receive failed: {error!r}")
        if msg.type in (WSMsgType.CLOSING, WSMsgType.CLOSED):
            raise TransportError("Connection lost without a close frame")

        return InboundEvent.protocol_error(ValueError(f"Unexpected frame type {msg.type!r}"))

    async def pong(self, payload: bytes) -> None:
        try:
            await self.websocket.pong(payload)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportError(f"Failed to send pong: {e}") from e

    async def close(self) -> None:
        try:
            if not self.websocket.closed:
                await asyncio.wait_for(self.websocket.close(), timeout=CLOSE_TIMEOUT_SECONDS)
        except (aiohttp.ClientError, ConnectionError, asyncio.TimeoutError) as e:
            logger.debug(f"Error while closing WebSocket: {e}")
        finally:
            await self.http_session.close()
