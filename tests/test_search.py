import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))
from yt_dlp.utils import DownloadError

from tubetunes import search
from tubetunes.logging_config import SearchError
from tubetunes.models import Track


class FakeYoutubeDL:
    """Stands in for ``yt_dlp.YoutubeDL``, answering from ``result``."""

    calls = []
    result = None
    error = None

    def __init__(self, options):
        self.options = options

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def extract_info(self, url, download=True):
        FakeYoutubeDL.calls.append((url, download, self.options))
        if FakeYoutubeDL.error is not None:
            raise FakeYoutubeDL.error
        return FakeYoutubeDL.result


@pytest.fixture
def ydl(monkeypatch):
    FakeYoutubeDL.calls = []
    FakeYoutubeDL.result = {"entries": []}
    FakeYoutubeDL.error = None
    monkeypatch.setattr(search.yt_dlp, "YoutubeDL", FakeYoutubeDL)
    return FakeYoutubeDL


class TestSearch:
    """Tests for searching through yt-dlp."""

    def test_results_become_tracks(self, ydl):
        """Test mapping of result entries to tracks."""
        ydl.result = {"entries": [
            {"id": "abc12345", "title": "Song A", "duration": 215.0},
            {"id": "def67890", "title": "Song B"},
        ]}
        tracks = search.search_tracks("lofi beats", limit=5)
        assert tracks == [Track("Song A", "abc12345", 215), Track("Song B", "def67890", 0)]
        url, download, options = ydl.calls[0]
        assert url == "ytsearch5:lofi beats"
        assert download is False
        assert options["extract_flat"]

    def test_blank_query(self, ydl):
        """Test that an empty query does not search."""
        assert search.search_tracks("   ") == []
        assert ydl.calls == []

    def test_limit_capped(self, ydl):
        """Test that the limit never exceeds the maximum."""
        search.search_tracks("x", limit=500)
        assert ydl.calls[0][0] == "ytsearch50:x"

    def test_implausible_ids_dropped(self, ydl):
        """Test that entries with too short or too long ids are skipped."""
        ydl.result = {"entries": [
            {"id": "abc", "title": "Short"},
            {"id": "x" * 21, "title": "Long"},
            None,
            {"id": "ok12345", "title": None},
        ]}
        assert search.search_tracks("x") == [Track("Unknown", "ok12345")]

    def test_no_entries(self, ydl):
        """Test a search with no results."""
        ydl.result = None
        assert search.search_tracks("nothing") == []

    def test_download_error(self, ydl):
        """Test that yt-dlp failures become SearchError."""
        ydl.error = DownloadError("network down")
        with pytest.raises(SearchError):
            search.search_tracks("x")
