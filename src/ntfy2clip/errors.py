"""Exception hierarchy for ntfy2clip."""


class Ntfy2ClipError(Exception):
    """Base class for all ntfy2clip errors."""


class ConfigError(Ntfy2ClipError):
    """Missing or invalid configuration. Fatal at startup."""


class SessionError(Ntfy2ClipError):
    """A relay session ended with a failure. The supervisor retries these."""


class ConnectError(SessionError):
    """WebSocket handshake failed (DNS, TCP, TLS, upgrade rejected, timeout)."""


class TransportError(SessionError):
    """Send or receive failed on an established connection."""


class IdleTimeoutError(SessionError):
    """No traffic of any kind was seen within the idle timeout."""


class ProtocolError(SessionError):
    """The peer sent a frame that violates the WebSocket protocol."""


class DecodeError(Ntfy2ClipError):
    """An inbound text frame is not a valid notification envelope."""


class SinkError(Ntfy2ClipError):
    """Writing to the clipboard failed."""
