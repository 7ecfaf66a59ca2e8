"""
Playback state management for tubetunes.
"""
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from tubetunes.audio import GRACE_PERIOD, PlayerSession
from tubetunes.logging_config import get_logger
from tubetunes.models import Track
from tubetunes.playlists import PlaylistStore

logger = get_logger('state')

SOURCE_SEARCH = "search"
SOURCE_PLAYLIST = "playlist"

FORWARD = 1
BACKWARD = -1


@dataclass(frozen=True)
class Target:
    """The track loaded in the player, tagged by the list it came from."""

    source: str
    index: int
    playlist_key: Optional[str] = None

    @classmethod
    def search(cls, index: int) -> "Target":
        return cls(SOURCE_SEARCH, index)

    @classmethod
    def playlist(cls, playlist_key: str, index: int) -> "Target":
        return cls(SOURCE_PLAYLIST, index, playlist_key)

    def moved(self, index: int) -> "Target":
        return Target(self.source, index, self.playlist_key)


@dataclass
class PlaybackStatus:
    """Playback-related state."""
    target: Optional[Target] = None
    paused: bool = False
    started_at: float = 0.0


@dataclass
class SearchResults:
    """Most recent search and its results."""
    query: str = ""
    tracks: List[Track] = field(default_factory=list)


class PlaybackController:
    """Idle / Playing / Paused state machine over a :class:`PlayerSession`.

    Targets point into either the current search results or a playlist of
    ``store``; they are kept valid as those lists change.
    """

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"

    def __init__(
        self,
        session: PlayerSession,
        store: PlaylistStore,
        clock: Callable[[], float] = time.monotonic,
        grace_period: float = GRACE_PERIOD,
    ):
        self.session = session
        self.store = store
        self.clock = clock
        self.grace_period = grace_period
        self.status = PlaybackStatus()
        self.search = SearchResults()

    @property
    def mode(self) -> str:
        if self.status.target is None:
            return self.IDLE
        return self.PAUSED if self.status.paused else self.PLAYING

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------
    def _source_tracks(self, target: Target) -> List[Track]:
        if target.source == SOURCE_PLAYLIST:
            if target.playlist_key is None or self.store.get(target.playlist_key) is None:
                return []
            return self.store.tracks(target.playlist_key)
        return self.search.tracks

    def resolve(self, target: Target) -> Optional[Track]:
        tracks = self._source_tracks(target)
        if 0 <= target.index < len(tracks):
            return tracks[target.index]
        return None

    def current_track(self) -> Optional[Track]:
        if self.status.target is None:
            return None
        return self.resolve(self.status.target)

    def in_grace_window(self) -> bool:
        """Whether a recent load may still produce stale end-of-file events."""
        return self.clock() - self.status.started_at < self.grace_period

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------
    def play(self, target: Target) -> Optional[Track]:
        """Load and start the track at ``target``.

        Returns:
            The track now playing, or None if ``target`` does not resolve
        """
        track = self.resolve(target)
        if track is None:
            logger.warning(f"Cannot play {target}: no such track")
            return None

        if not self.session.ensure_started():
            logger.warning("Player not connected, trying to load anyway")
        self.session.load(track.playable_url)

        self.status.target = target
        self.status.paused = False
        self.status.started_at = self.clock()
        logger.info(f"Playing '{track.title}' from {target.source}")
        return track

    def play_search_result(self, index: int) -> Optional[Track]:
        return self.play(Target.search(index))

    def play_playlist_track(self, playlist_key: str, index: int) -> Optional[Track]:
        return self.play(Target.playlist(playlist_key, index))

    def toggle_pause(self) -> bool:
        """Flip between Playing and Paused. Does nothing when Idle.

        Returns:
            True if a pause toggle was sent to the player
        """
        if self.status.target is None:
            return False
        if not self.session.toggle_pause():
            logger.warning("Pause toggle not delivered, state unchanged")
            return False
        self.status.paused = not self.status.paused
        logger.debug(f"Paused: {self.status.paused}")
        return True

    def stop(self) -> None:
        self.session.stop()
        self.status.target = None
        self.status.paused = False
        logger.info("Playback stopped")

    def advance(self, direction: int = FORWARD) -> Optional[Track]:
        """Play the neighbouring track in the current source.

        Past either end this is a no-op: target and pause state stay as
        they are.

        Returns:
            The newly playing track, or None if nothing changed
        """
        target = self.status.target
        if target is None:
            return None
        new_index = target.index + direction
        if not 0 <= new_index < len(self._source_tracks(target)):
            logger.debug(f"No track at {new_index} in {target.source}")
            return None
        return self.play(target.moved(new_index))

    def next(self) -> Optional[Track]:
        return self.advance(FORWARD)

    def previous(self) -> Optional[Track]:
        return self.advance(BACKWARD)

    def on_track_finished(self) -> Optional[Track]:
        """Auto-advance after the player reported a natural end of file.

        When the source is exhausted the machine goes Idle: the finished
        track is no longer playing, so it is not kept as the target.
        """
        track = self.advance(FORWARD)
        if track is None and self.status.target is not None:
            logger.info("Reached end of source, playback finished")
            self.status.target = None
            self.status.paused = False
        return track

    # -------------------------------------------------------------------------
    # Keeping targets valid
    # -------------------------------------------------------------------------
    def set_search_results(self, query: str, tracks: List[Track]) -> None:
        """Replace the search results.

        A search target pointed into the old list, so it is dropped. The
        player is left alone; the user can keep listening.
        """
        self.search = SearchResults(query, list(tracks))
        target = self.status.target
        if target is not None and target.source == SOURCE_SEARCH:
            self.status.target = None
            self.status.paused = False

    def track_removed(self, playlist_key: str, index: int) -> None:
        """Re-point the target after ``store.remove_track(playlist_key, index)``."""
        target = self.status.target
        if target is None or target.source != SOURCE_PLAYLIST or target.playlist_key != playlist_key:
            return
        if index < target.index:
            self.status.target = target.moved(target.index - 1)
        elif index == target.index:
            self.stop()

    def playlist_deleted(self, playlist_key: str) -> None:
        target = self.status.target
        if target is not None and target.source == SOURCE_PLAYLIST and target.playlist_key == playlist_key:
            self.stop()
