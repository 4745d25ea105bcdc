"""
Keypress-driven quit trigger.

Watches the controlling terminal for a single key and calls back when it is
the quit key. The terminal is put into cbreak mode so keys arrive without
Enter while log output keeps its normal line handling.

POSIX only: on Windows, or when stdin is not a terminal, the watcher stays
inactive and the relay is stopped with Ctrl+C instead.
"""

import asyncio
import os
import sys
from typing import Callable, TextIO

from replrelay.utils.logger import get_logger

logger = get_logger(__name__)

IS_WINDOWS = sys.platform == "win32"

if not IS_WINDOWS:
    import termios
    import tty


class QuitKeyWatcher:
    """Calls ``on_quit`` when the quit key is pressed."""

    def __init__(
        self,
        on_quit: Callable[[], None],
        quit_key: str = "q",
        stream: TextIO | None = None,
    ):
        """
        Initialize watcher.

        Args:
            on_quit: Callback run on the event loop when the key is pressed.
            quit_key: Key that triggers the callback (case-insensitive).
            stream: Terminal to watch, defaults to stdin.
        """
        self.on_quit = on_quit
        self.quit_key = quit_key
        self.stream = stream if stream is not None else sys.stdin
        self.active = False
        self.triggered = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._fd: int | None = None
        self._old_settings = None

    def start(self) -> bool:
        """
        Start watching the terminal.

        Returns:
            True if the watcher is active, False if input can't be watched.
        """
        if self.active:
            return True
        if IS_WINDOWS:
            logger.debug("Quit key disabled: not supported on Windows.")
            return False
        try:
            is_tty = self.stream.isatty()
        except ValueError:
            # Closed stream
            is_tty = False
        if not is_tty:
            logger.debug("Quit key disabled: stdin is not a terminal.")
            return False

        self._loop = asyncio.get_running_loop()
        self._fd = self.stream.fileno()
        self._old_settings = termios.tcgetattr(self._fd)
        tty.setcbreak(self._fd)
        self._loop.add_reader(self._fd, self._on_readable)
        self.active = True
        return True

    def stop(self) -> None:
        """Stop watching and restore the terminal settings."""
        if not self.active:
            return
        self.active = False
        self._loop.remove_reader(self._fd)
        if self._old_settings is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._old_settings)

    def _on_readable(self) -> None:
        try:
            data = os.read(self._fd, 1)
        except OSError as e:
            logger.debug(f"Stopped reading keys: {e}")
            data = b""
        if not data:
            # stdin closed
            self.stop()
            return
        self.handle_key(data.decode("utf-8", errors="ignore"))

    def handle_key(self, key: str) -> bool:
        """
        Process one keypress.

        Returns:
            True if the key triggered the quit callback.
        """
        if not key or key.lower() != self.quit_key.lower():
            return False
        logger.info(f"'{key}' pressed, quitting.")
        self.triggered = True
        self.on_quit()
        return True
