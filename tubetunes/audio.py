"""
Player session for tubetunes.

Owns the external ``mpv`` process and its JSON IPC control socket.
"""
import os
import socket
import subprocess
import time
from typing import List, Optional

from tubetunes import protocol
from tubetunes.logging_config import get_logger, PlayerSessionError

logger = get_logger('audio')

# =============================================================================
# Constants
# =============================================================================
DEFAULT_SOCKET_PATH: str = "/tmp/tubetunes_mpv.sock"
START_TIMEOUT: float = 5.0
START_POLL_INTERVAL: float = 0.05
QUIT_GRACE: float = 0.1
ONESHOT_TIMEOUT: float = 1.0
GRACE_PERIOD: float = 3.0
READ_SIZE: int = 4096
MAX_READS_PER_POLL: int = 64


class PlayerSession:
    """A single mpv process and its control socket.

    The session is created idle. :meth:`ensure_started` attaches to a player
    already listening on ``socket_path`` or spawns one, :meth:`quit` tears
    everything down and may be called any number of times.
    """

    def __init__(
        self,
        socket_path: str = DEFAULT_SOCKET_PATH,
        mpv_binary: str = "mpv",
        start_timeout: float = START_TIMEOUT,
        poll_interval: float = START_POLL_INTERVAL,
        quit_grace: float = QUIT_GRACE,
    ):
        self.socket_path = socket_path
        self.mpv_binary = mpv_binary
        self.start_timeout = start_timeout
        self.poll_interval = poll_interval
        self.quit_grace = quit_grace
        self.process: Optional[subprocess.Popen] = None
        self.sock: Optional[socket.socket] = None
        self._lines = protocol.LineBuffer()

    def __enter__(self) -> "PlayerSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.quit()

    @property
    def connected(self) -> bool:
        return self.sock is not None

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------
    def _connect(self) -> bool:
        """Open the persistent connection and subscribe to end-of-file."""
        if self.sock is not None:
            return True
        if not os.path.exists(self.socket_path):
            return False

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(self.socket_path)
            sock.setblocking(False)
        except OSError as e:
            logger.debug(f"Connect to {self.socket_path} failed: {e}")
            sock.close()
            return False

        self.sock = sock
        self._lines.clear()
        logger.info(f"Connected to player at {self.socket_path}")
        self.send(protocol.observe_eof())
        return self.sock is not None

    def disconnect(self) -> None:
        """Close the persistent connection. Safe to call repeatedly."""
        if self.sock is None:
            return
        try:
            self.sock.close()
        except OSError as e:
            logger.warning(f"Error closing control socket: {e}")
        finally:
            self.sock = None
            self._lines.clear()
            logger.info("Control socket closed")

    def _remove_endpoint(self) -> None:
        try:
            os.remove(self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove {self.socket_path}: {e}")

    def _spawn(self) -> None:
        cmd = [
            self.mpv_binary,
            "--no-video",
            "--idle=yes",
            "--force-window=no",
            "--really-quiet",
            f"--input-ipc-server={self.socket_path}",
        ]
        try:
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                preexec_fn=os.setsid,
            )
        except (subprocess.SubprocessError, OSError) as e:
            logger.error(f"Failed to start {self.mpv_binary}: {e}")
            raise PlayerSessionError(f"Failed to start player: {e}")
        logger.info(f"Started player process: {self.process.pid}")

    def ensure_started(self) -> bool:
        """Make sure a player is running and connected.

        An endpoint that accepts connections is reused as is, so a player
        left running by an earlier front-end keeps playing.

        Returns:
            True if the persistent connection is up, False otherwise
        """
        if self.sock is not None:
            return True
        if os.path.exists(self.socket_path) and self._connect():
            logger.info("Reusing running player")
            return True

        self._remove_endpoint()
        self.disconnect()
        try:
            self._spawn()
        except PlayerSessionError:
            return False

        deadline = time.monotonic() + self.start_timeout
        while time.monotonic() < deadline:
            if os.path.exists(self.socket_path):
                # The file shows up before mpv starts accepting
                time.sleep(self.poll_interval)
                return self._connect()
            time.sleep(self.poll_interval)

        logger.warning(f"Player socket did not appear within {self.start_timeout}s")
        return False

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------
    def _send_oneshot(self, payload: bytes) -> bool:
        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.settimeout(ONESHOT_TIMEOUT)
                sock.connect(self.socket_path)
                sock.sendall(payload)
            return True
        except OSError as e:
            logger.debug(f"One-shot command failed: {e}")
            return False

    def send(self, command: str) -> bool:
        """Send one command line.

        Uses the persistent connection when there is one. Otherwise the
        command goes over a throwaway connection; the persistent channel is
        left for :meth:`ensure_started` to rebuild.

        Returns:
            True if the command was written
        """
        payload = (command + "\n").encode("utf-8")
        if self.sock is not None:
            try:
                self.sock.sendall(payload)
                return True
            except BlockingIOError:
                logger.warning("Control socket busy, command dropped")
                return False
            except OSError as e:
                logger.warning(f"Lost connection to player: {e}")
                self.disconnect()
        return self._send_oneshot(payload)

    def toggle_pause(self) -> bool:
        return self.send(protocol.cycle_pause())

    def stop(self) -> bool:
        return self.send(protocol.stop_playback())

    def load(self, url: str) -> bool:
        logger.info(f"Loading {url}")
        return self.send(protocol.loadfile(url))

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------
    def _read_available(self) -> List[bytes]:
        """Read whatever is buffered without blocking.

        A closed peer or a real read error tears the connection down.
        """
        chunks: List[bytes] = []
        for _ in range(MAX_READS_PER_POLL):
            if self.sock is None:
                break
            try:
                data = self.sock.recv(READ_SIZE)
            except BlockingIOError:
                break
            except OSError as e:
                logger.warning(f"Player connection error: {e}")
                self.disconnect()
                break
            if not data:
                logger.info("Player closed the control connection")
                self.disconnect()
                break
            chunks.append(data)
        return chunks

    def poll_track_ended(self) -> bool:
        """Check, without blocking, whether the current track played out.

        Only an ``end-file`` event with reason ``eof`` counts.
        """
        if self.sock is None:
            return False
        ended = False
        for chunk in self._read_available():
            for line in self._lines.feed(chunk):
                event = protocol.decode_event(line)
                if event is not None:
                    logger.debug(f"Player event: {event.name} ({event.reason})")
                if protocol.is_track_completion(event):
                    ended = True
        return ended

    def drain(self) -> int:
        """Discard pending input. Returns the number of bytes dropped."""
        if self.sock is None:
            return 0
        dropped = sum(len(chunk) for chunk in self._read_available())
        self._lines.clear()
        return dropped

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------
    def quit(self) -> None:
        """Ask the player to exit, then make sure it is gone.

        Safe when the player was never started, already disconnected or
        already exited.
        """
        if self.sock is not None or os.path.exists(self.socket_path):
            self.send(protocol.quit_player())
            time.sleep(self.quit_grace)

        self.disconnect()

        if self.process is not None:
            try:
                self.process.terminate()
                logger.info(f"Terminated player process: {self.process.pid}")
            except (ProcessLookupError, PermissionError, OSError) as e:
                logger.warning(f"Process termination error: {e}")
            # Non-blocking reap; the process may still be exiting
            self.process.poll()
            self.process = None

        self._remove_endpoint()
