"""Clipboard sinks backed by the platform's copy command."""

import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from ..errors import SinkError
from .base import ClipboardSink

logger = logging.getLogger(__name__)

COPY_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class ClipboardCommand:
    """Copy command that reads the new clipboard content from stdin."""
    argv: Tuple[str, ...]
    environment: str

    @property
    def program(self) -> str:
        return self.argv[0]


def resolve_clipboard_command(
    platform: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ClipboardCommand:
    """
    Pick the copy command for the running platform.

    On Linux the session type is detected from the environment, in order:
    WSL (``WSL_DISTRO_NAME``), Wayland (``WAYLAND_DISPLAY``), X11 (``DISPLAY``).

    Raises:
        SinkError: If no supported clipboard mechanism is available.
    """
    platform = platform if platform is not None else sys.platform
    environ = environ if environ is not None else os.environ

    if platform == "darwin":
        return ClipboardCommand(("/usr/bin/pbcopy",), "macOS")
    if platform in ("win32", "cygwin"):
        return ClipboardCommand(("clip.exe",), "Windows")
    if platform.startswith("linux") or platform.startswith("freebsd") or platform.startswith("openbsd"):
        if environ.get("WSL_DISTRO_NAME"):
            return ClipboardCommand(("/mnt/c/Windows/System32/clip.exe",), "WSL")
        if environ.get("WAYLAND_DISPLAY"):
            return ClipboardCommand(("/usr/bin/wl-copy",), "Wayland")
        if environ.get("DISPLAY"):
            return ClipboardCommand(("/usr/bin/xclip", "-sel", "clip", "-r", "-in"), "Xorg")
        raise SinkError("Unsupported Unix environment (no WSL_DISTRO_NAME, WAYLAND_DISPLAY or DISPLAY)")

    raise SinkError(f"Unsupported operating system: {platform}")


class CommandClipboardSink(ClipboardSink):
    """Writes the clipboard by piping text into a copy command."""

    def __init__(self, command: ClipboardCommand, timeout: float = COPY_TIMEOUT_SECONDS):
        self.command = command
        self.timeout = timeout

    async def deliver(self, text: str) -> None:
        logger.info(f"Setting clipboard ({len(text)} chars)")
        logger.debug(f"Running under {self.command.environment}, using copy command {self.command.program}")

        try:
            process = await asyncio.create_subprocess_exec(
                *self.command.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SinkError(f"Cannot run {self.command.program}: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(text.encode("utf-8")),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise SinkError(f"{self.command.program} did not finish within {self.timeout:g}s") from e
        except (BrokenPipeError, ConnectionResetError) as e:
            await process.wait()
            raise SinkError(f"{self.command.program} closed its input early: {e}") from e

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() if stderr else ""
            raise SinkError(
                f"{self.command.program} exited with status {process.returncode}"
                + (f": {detail}" if detail else "")
            )


class UnavailableClipboardSink(ClipboardSink):
    """Bound when no clipboard mechanism exists; every delivery fails."""

    def __init__(self, reason: str):
        self.reason = reason

    async def deliver(self, text: str) -> None:
        raise SinkError(self.reason)


def create_clipboard_sink(
    platform: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ClipboardSink:
    """Bind the clipboard sink for this platform at startup."""
    try:
        command = resolve_clipboard_command(platform, environ)
    except SinkError as e:
        logger.warning(f"Clipboard unavailable, notifications will not be copied: {e}")
        return UnavailableClipboardSink(str(e))

    logger.info(f"Clipboard: running under {command.environment}, using {command.program}")
    return CommandClipboardSink(command)
