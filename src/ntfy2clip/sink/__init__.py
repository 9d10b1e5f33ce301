"""Clipboard sinks and the fire-and-forget dispatcher."""

from .base import ClipboardSink
from .clipboard import (
    ClipboardCommand,
    CommandClipboardSink,
    UnavailableClipboardSink,
    create_clipboard_sink,
    resolve_clipboard_command,
)
from .dispatcher import SinkDispatcher

__all__ = [
    "ClipboardSink",
    "ClipboardCommand",
    "CommandClipboardSink",
    "UnavailableClipboardSink",
    "create_clipboard_sink",
    "resolve_clipboard_command",
    "SinkDispatcher",
]
