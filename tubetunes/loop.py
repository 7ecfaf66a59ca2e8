"""
The tick-driven scheduler that interleaves keys with player events.

Each tick checks for a finished track once, then waits a short, bounded
time for a key and dispatches it. There is one thread; a blocking prompt
opened by a key handler simply delays the next completion check.
"""
from typing import Callable, Optional, Protocol

from tubetunes.logging_config import get_logger, TubeTunesError
from tubetunes.models import Track
from tubetunes.state import PlaybackController

logger = get_logger('loop')

INPUT_TIMEOUT: float = 0.1


class KeySource(Protocol):
    def read_key(self, timeout: float) -> Optional[str]:
        ...


KeyHandler = Callable[[str], bool]


class EventLoop:
    """Runs ticks until a key handler asks to stop.

    Args:
        controller: Playback state machine; its session is polled
        keys: Anything with ``read_key(timeout)``
        handle_key: Called with each key; returning False ends the loop
        render: Called after a tick that changed something visible
        input_timeout: Upper bound on each wait for a key
        on_advance: Called with the new track after an auto-advance
    """

    def __init__(
        self,
        controller: PlaybackController,
        keys: KeySource,
        handle_key: KeyHandler,
        render: Optional[Callable[[], None]] = None,
        input_timeout: float = INPUT_TIMEOUT,
        on_advance: Optional[Callable[[Track], None]] = None,
    ):
        self.controller = controller
        self.keys = keys
        self.handle_key = handle_key
        self.render = render
        self.input_timeout = input_timeout
        self.on_advance = on_advance
        self.status: str = ""
        self.dirty: bool = True
        self.running: bool = False

    def set_status(self, text: str) -> None:
        self.status = text
        self.dirty = True

    def check_player(self) -> None:
        """Poll for a finished track, or drain during the grace window."""
        controller = self.controller
        session = controller.session
        if controller.status.target is None or not session.connected:
            return

        if controller.in_grace_window():
            # Events from the previous track may still be arriving
            session.drain()
            return

        if not session.poll_track_ended():
            return

        track = controller.on_track_finished()
        if track is not None:
            self.set_status(f"Auto-playing: {track.title}")
            if self.on_advance is not None:
                self.on_advance(track)
        else:
            self.set_status("Playback finished")

    def tick(self) -> bool:
        """Run one scheduler step.

        Returns:
            False once the loop should stop
        """
        self.check_player()

        key = self.keys.read_key(self.input_timeout)
        if key is None:
            return True

        self.dirty = True
        try:
            return self.handle_key(key)
        except TubeTunesError as e:
            logger.warning(f"Key {key!r} failed: {e}")
            self.set_status(str(e))
            return True

    def run(self) -> None:
        self.running = True
        try:
            while self.running:
                if self.dirty and self.render is not None:
                    self.render()
                    self.dirty = False
                if not self.tick():
                    self.running = False
        finally:
            self.running = False
            logger.info("Event loop stopped")
