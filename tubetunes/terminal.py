"""
Raw terminal handling: keys with a timeout, blocking prompts, output.
"""
import os
import select
import shutil
import sys
import termios
import tty
from typing import Optional, TextIO

from tubetunes.logging_config import get_logger

logger = get_logger('terminal')

ESCAPE_SEQUENCES = {
    "[A": "up",
    "[B": "down",
    "[C": "right",
    "[D": "left",
    "[H": "home",
    "[F": "end",
    "[5~": "pgup",
    "[6~": "pgdn",
}

# Follow-up bytes of an escape sequence arrive together with the ESC
ESCAPE_WAIT: float = 0.02


class Terminal:
    """cbreak-mode terminal for the duration of a ``with`` block."""

    def __init__(self, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout):
        self.stdin = stdin
        self.stdout = stdout
        self.fd = stdin.fileno()
        self._saved = None

    def __enter__(self) -> "Terminal":
        self._saved = termios.tcgetattr(self.fd)
        tty.setcbreak(self.fd)
        # Hide cursor for clean UI display
        self.write("\033[?25l")
        return self

    def __exit__(self, *exc_info) -> None:
        self.restore()

    def restore(self) -> None:
        if self._saved is None:
            return
        self.write("\033[?25h\033[2J\033[H")
        termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved)
        self._saved = None

    def size(self) -> tuple:
        """Return ``(rows, cols)``."""
        cols, rows = shutil.get_terminal_size((80, 24))
        return rows, cols

    def write(self, text: str) -> None:
        self.stdout.write(text)
        self.stdout.flush()

    def _read_char(self) -> str:
        data = os.read(self.fd, 1)
        return data.decode("utf-8", errors="replace")

    def _ready(self, timeout: Optional[float]) -> bool:
        try:
            return bool(select.select([self.fd], [], [], timeout)[0])
        except InterruptedError:
            return False

    def read_key(self, timeout: float) -> Optional[str]:
        """Wait up to ``timeout`` seconds for one key.

        Returns:
            The key, a name such as ``"up"`` for escape sequences,
            ``"esc"`` for a lone escape, or None on timeout
        """
        if not self._ready(timeout):
            return None
        ch = self._read_char()
        if ch != "\033":
            return ch

        seq = ""
        while self._ready(ESCAPE_WAIT) and len(seq) < 4:
            seq += self._read_char()
            if seq in ESCAPE_SEQUENCES:
                return ESCAPE_SEQUENCES[seq]
        if seq:
            logger.debug(f"Unknown escape sequence: {seq!r}")
            return None
        return "esc"

    def prompt(self, text: str) -> str:
        """Read a line with echo, blocking until Enter.

        Nothing else runs while the prompt is open.
        """
        rows, _ = self.size()
        self.write(f"\033[{rows};1H\033[2K\033[1m{text}\033[0m\033[?25h")

        if self._saved is not None:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved)
        try:
            line = input()
        except (EOFError, KeyboardInterrupt):
            line = ""
        finally:
            if self._saved is not None:
                tty.setcbreak(self.fd)
            self.write("\033[?25l")
        return line.strip()
