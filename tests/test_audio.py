import json
import os
import socket
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))
from tubetunes import audio
from tubetunes.audio import PlayerSession


class FakePlayer:
    """A listening control socket standing in for mpv."""

    def __init__(self, path):
        self.path = path
        self.server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.server.bind(path)
        self.server.listen(4)
        self.server.settimeout(2)

    def accept(self):
        conn, _ = self.server.accept()
        conn.settimeout(2)
        return conn

    def close(self):
        self.server.close()


class FakeProcess:
    def __init__(self):
        self.pid = 4242
        self.terminated = False

    def poll(self):
        return 0 if self.terminated else None

    def terminate(self):
        self.terminated = True


def read_commands(conn, count):
    """Read ``count`` newline-terminated commands from a connection."""
    data = b""
    while data.count(b"\n") < count:
        chunk = conn.recv(4096)
        if not chunk:
            break
        data += chunk
    return [json.loads(line)["command"] for line in data.decode().splitlines() if line]


@pytest.fixture
def socket_path(short_socket_dir):
    return os.path.join(short_socket_dir, "mpv.sock")


@pytest.fixture
def player(socket_path):
    fake = FakePlayer(socket_path)
    yield fake
    fake.close()


@pytest.fixture
def session(socket_path):
    session = PlayerSession(socket_path, poll_interval=0.01, quit_grace=0, start_timeout=1)
    yield session
    session.disconnect()


@pytest.fixture
def connected(session, player):
    """A session attached to the fake player, plus the player's end."""
    assert session.ensure_started()
    conn = player.accept()
    assert read_commands(conn, 1) == [["observe_property", 1, "eof-reached"]]
    yield session, conn
    conn.close()


class TestStartup:
    """Tests for attaching to or spawning the player."""

    def test_reuses_listening_player(self, session, player):
        """Test that an existing endpoint is reused without spawning."""
        assert session.ensure_started()
        assert session.connected
        assert session.process is None

    def test_already_connected_is_noop(self, connected):
        """Test that a second ensure_started keeps the same connection."""
        session, _ = connected
        sock = session.sock
        assert session.ensure_started()
        assert session.sock is sock

    def test_spawn_failure(self, session, monkeypatch):
        """Test that a missing binary reports failure instead of raising."""
        def boom(*args, **kwargs):
            raise FileNotFoundError("mpv")

        monkeypatch.setattr(audio.subprocess, "Popen", boom)
        assert session.ensure_started() is False
        assert not session.connected

    def test_spawns_when_endpoint_missing(self, session, socket_path, monkeypatch):
        """Test spawning mpv with an IPC server at the socket path."""
        launched = []

        def fake_popen(cmd, **kwargs):
            launched.append(cmd)
            launched.append(FakePlayer(socket_path))
            return FakeProcess()

        monkeypatch.setattr(audio.subprocess, "Popen", fake_popen)
        try:
            assert session.ensure_started()
            assert f"--input-ipc-server={socket_path}" in launched[0]
            assert "--no-video" in launched[0]
            assert "--idle=yes" in launched[0]
            assert session.process is not None
        finally:
            launched[1].close()

    def test_stale_endpoint_replaced(self, session, socket_path, monkeypatch):
        """Test that a dead endpoint file is removed before spawning."""
        Path(socket_path).write_text("stale")
        servers = []

        def fake_popen(cmd, **kwargs):
            servers.append(FakePlayer(socket_path))
            return FakeProcess()

        monkeypatch.setattr(audio.subprocess, "Popen", fake_popen)
        try:
            assert session.ensure_started()
        finally:
            for server in servers:
                server.close()

    def test_socket_never_appears(self, session, monkeypatch):
        """Test the start timeout when mpv never listens."""
        session.start_timeout = 0.05
        monkeypatch.setattr(audio.subprocess, "Popen", lambda cmd, **kwargs: FakeProcess())
        assert session.ensure_started() is False


class TestCommands:
    """Tests for sending commands."""

    def test_persistent_send(self, connected):
        """Test commands travel over the persistent connection."""
        session, conn = connected
        assert session.load("https://www.youtube.com/watch?v=abc12345")
        assert session.toggle_pause()
        assert session.stop()
        assert read_commands(conn, 3) == [
            ["loadfile", "https://www.youtube.com/watch?v=abc12345", "replace"],
            ["cycle", "pause"],
            ["stop"],
        ]

    def test_oneshot_fallback(self, session, player):
        """Test that without a persistent connection a throwaway one is used."""
        assert not session.connected
        assert session.toggle_pause()
        conn = player.accept()
        try:
            assert read_commands(conn, 1) == [["cycle", "pause"]]
        finally:
            conn.close()
        assert not session.connected

    def test_send_without_player(self, session):
        """Test that sending to nothing fails quietly."""
        assert session.stop() is False


class TestEvents:
    """Tests for reading player events."""

    def test_eof_ends_track(self, connected):
        """Test that end-file with reason eof is a completion."""
        session, conn = connected
        conn.sendall(b'{"event":"end-file","reason":"eof"}\n')
        assert session.poll_track_ended()
        assert not session.poll_track_ended()

    def test_stop_and_error_do_not_end_track(self, connected):
        """Test that explicit stops and failed loads are ignored."""
        session, conn = connected
        conn.sendall(b'{"event":"end-file","reason":"stop"}\n'
                     b'{"event":"end-file","reason":"error"}\n'
                     b'{"request_id":0,"error":"success"}\n')
        assert not session.poll_track_ended()

    def test_partial_line(self, connected):
        """Test that an event split across reads is still seen once."""
        session, conn = connected
        conn.sendall(b'{"event":"end-file",')
        assert not session.poll_track_ended()
        conn.sendall(b'"reason":"eof"}\n')
        assert session.poll_track_ended()

    def test_drain_discards(self, connected):
        """Test that drained events are never reported."""
        session, conn = connected
        conn.sendall(b'{"event":"end-file","reason":"eof"}\n{"event":"end-')
        assert session.drain() > 0
        conn.sendall(b'file","reason":"eof"}\n')
        assert not session.poll_track_ended()

    def test_nothing_pending(self, connected):
        """Test polling an idle connection returns at once."""
        session, _ = connected
        assert not session.poll_track_ended()
        assert session.drain() == 0

    def test_peer_close_disconnects(self, connected):
        """Test that a closed player drops the persistent connection."""
        session, conn = connected
        conn.close()
        assert not session.poll_track_ended()
        assert not session.connected

    def test_poll_when_disconnected(self, session):
        """Test polling without a connection."""
        assert not session.poll_track_ended()
        assert session.drain() == 0


class TestQuit:
    """Tests for shutting the player down."""

    def test_quit_never_started(self, session, socket_path):
        """Test quit is harmless when nothing was started."""
        session.quit()
        session.quit()
        assert not session.connected
        assert not os.path.exists(socket_path)

    def test_quit_sends_command_and_cleans_up(self, connected, socket_path):
        """Test quit tells the player to exit and removes the endpoint."""
        session, conn = connected
        session.process = process = FakeProcess()
        session.quit()
        assert read_commands(conn, 1) == [["quit"]]
        assert process.terminated
        assert session.process is None
        assert not session.connected
        assert not os.path.exists(socket_path)

    def test_context_manager_quits(self, socket_path):
        """Test leaving the with-block shuts the session down."""
        with PlayerSession(socket_path, quit_grace=0) as session:
            assert not session.connected
        assert not os.path.exists(socket_path)
