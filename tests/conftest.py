import sys
import shutil
import tempfile
import pytest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from tubetunes.models import Track
from tubetunes.playlists import PlaylistStore
from tubetunes.state import PlaybackController


class FakeSession:
    """Records what the controller asks of the player."""

    def __init__(self):
        self.commands = []
        self.connected = True
        self.started = 0
        self.ended = []
        self.drained = 0
        self.delivers = True

    def ensure_started(self):
        self.started += 1
        return True

    def load(self, url):
        self.commands.append(("load", url))
        return True

    def toggle_pause(self):
        self.commands.append(("pause",))
        return self.delivers

    def stop(self):
        self.commands.append(("stop",))
        return True

    def poll_track_ended(self):
        return self.ended.pop(0) if self.ended else False

    def drain(self):
        self.drained += 1
        return 0


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def temp_data_dir():
    """Create a temporary playlist data directory."""
    tmpdir = tempfile.mkdtemp()
    data_dir = Path(tmpdir) / "tubetunes"
    yield data_dir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def store(temp_data_dir):
    store = PlaylistStore(temp_data_dir)
    assert store.init_storage()
    store.load_index()
    return store


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def controller(fake_session, store, clock):
    return PlaybackController(fake_session, store, clock=clock)


@pytest.fixture
def sample_tracks():
    return [
        Track("Song A", "abc12345"),
        Track("Song B", "def67890"),
        Track("Song C", "ghi13579"),
    ]


@pytest.fixture
def short_socket_dir():
    """A short directory path; AF_UNIX paths are limited to ~100 bytes."""
    tmpdir = tempfile.mkdtemp(prefix="tt", dir="/tmp")
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)
