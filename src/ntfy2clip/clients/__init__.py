"""Network clients for ntfy2clip."""

from .relay_ws import AiohttpRelayTransport, RelayTransport

__all__ = ["AiohttpRelayTransport", "RelayTransport"]
