"""
mpv JSON IPC messages.

Commands are single JSON objects, one per line. Events arrive the same
way, interleaved with replies to our commands; only ``end-file`` with
reason ``eof`` matters here.
"""
import json
from dataclasses import dataclass
from typing import Any, List, Optional

EOF_OBSERVER_ID: int = 1
MAX_PENDING_BYTES: int = 64 * 1024


def _command(*args: Any) -> str:
    return json.dumps({"command": list(args)}, separators=(",", ":"))


def observe_eof() -> str:
    return _command("observe_property", EOF_OBSERVER_ID, "eof-reached")


def cycle_pause() -> str:
    return _command("cycle", "pause")


def stop_playback() -> str:
    return _command("stop")


def loadfile(url: str) -> str:
    """Replace whatever is playing with ``url``."""
    return _command("loadfile", url, "replace")


def quit_player() -> str:
    return _command("quit")


@dataclass(frozen=True)
class PlayerEvent:
    """An asynchronous notification from the player."""

    name: str
    reason: Optional[str] = None


def decode_event(line: str) -> Optional[PlayerEvent]:
    """Decode one protocol line.

    Returns None for anything that is not an event object: command replies,
    malformed JSON, non-string ``event`` fields.
    """
    try:
        message = json.loads(line)
    except ValueError:
        return None
    if not isinstance(message, dict):
        return None
    name = message.get("event")
    if not isinstance(name, str):
        return None
    reason = message.get("reason")
    if not isinstance(reason, str):
        reason = None
    return PlayerEvent(name, reason)


def is_track_completion(event: Optional[PlayerEvent]) -> bool:
    """True only for a track that played to its natural end.

    ``stop`` (explicit stop or replaced by loadfile) and ``error`` (failed
    load) do not count.
    """
    return event is not None and event.name == "end-file" and event.reason == "eof"


class LineBuffer:
    """Split a byte stream into text lines, carrying partial lines over."""

    def __init__(self, max_pending: int = MAX_PENDING_BYTES):
        self._pending = b""
        self._max_pending = max_pending

    def feed(self, data: bytes) -> List[str]:
        self._pending += data
        *lines, self._pending = self._pending.split(b"\n")
        if len(self._pending) > self._max_pending:
            # A line this long is not a protocol message
            self._pending = b""
        return [
            line.decode("utf-8", errors="replace").strip()
            for line in lines
            if line.strip()
        ]

    def clear(self) -> None:
        self._pending = b""

