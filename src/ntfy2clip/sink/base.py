"""Sink contract: put text on the local clipboard."""

from abc import ABC, abstractmethod


class ClipboardSink(ABC):
    """Contract for clipboard writers."""

    @abstractmethod
    async def deliver(self, text: str) -> None:
        """Make ``text`` the clipboard content.

        Must be callable many times per process without leaking OS
        resources.

        Raises:
            SinkError: If the clipboard could not be written.
        """
        ...
