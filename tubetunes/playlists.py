"""
Playlist storage for tubetunes.

Playlists live in a data directory::

    <data_dir>/playlists.json          index, in display order
    <data_dir>/playlists/<key>.json    one document per playlist

Every mutation rewrites the affected file in full. The store is the only
writer, so there is no locking.
"""
import re
from pathlib import Path
from typing import List, Optional, Union

from tubetunes.logging_config import (
    get_logger,
    DuplicateNameError,
    DuplicateTrackError,
    InvalidInputError,
    InvalidSelectionError,
    PlaylistLimitError,
    StorageError,
)
from tubetunes.models import Playlist, PlaylistEntry, Track
from tubetunes.records import decode_index, decode_playlist, encode_index, encode_playlist

logger = get_logger('playlists')

# =============================================================================
# Constants
# =============================================================================
MAX_PLAYLISTS: int = 50
MAX_PLAYLIST_ITEMS: int = 500
MAX_DOCUMENT_SIZE: int = 1024 * 1024
INDEX_FILENAME: str = "playlists.json"
PLAYLISTS_DIRNAME: str = "playlists"
STORAGE_EXTENSION: str = ".json"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]")
# Keys this store can produce, collision prefix included
_VALID_KEY = re.compile(r"[a-z0-9_-]+\.json")


def storage_key_for(name: str) -> str:
    """Derive a filename from a playlist name.

    Lower-cases, turns spaces into underscores and drops anything outside
    ``[a-z0-9_-]``.

    >>> storage_key_for("Road Trip")
    'road_trip.json'
    """
    stem = _UNSAFE_CHARS.sub("", name.lower().replace(" ", "_"))
    return f"{stem or 'playlist'}{STORAGE_EXTENSION}"


class PlaylistStore:
    """Durable CRUD for playlists and the playlist index.

    Playlists are addressed by their storage key, which stays stable when
    other playlists are created or deleted.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir).expanduser()
        self.index_path = self.data_dir / INDEX_FILENAME
        self.playlists_dir = self.data_dir / PLAYLISTS_DIRNAME
        self._playlists: List[Playlist] = []

    # -------------------------------------------------------------------------
    # Storage helpers
    # -------------------------------------------------------------------------
    def init_storage(self) -> bool:
        """Create the data directories and an empty index if missing.

        Returns:
            True if the storage is usable, False otherwise
        """
        try:
            self.playlists_dir.mkdir(parents=True, exist_ok=True)
            if not self.index_path.exists():
                self.index_path.write_text(encode_index([]), encoding="utf-8")
                logger.info(f"Created empty playlist index at {self.index_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to initialize playlist storage: {e}")
            return False

    def _path_for(self, storage_key: str) -> Path:
        return self.playlists_dir / storage_key

    def _read_document(self, path: Path) -> Optional[str]:
        """Read a whole document, or None when missing, empty or oversized."""
        try:
            size = path.stat().st_size
            if size <= 0 or size > MAX_DOCUMENT_SIZE:
                logger.warning(f"Ignoring {path}: size {size} out of range")
                return None
            return path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            logger.debug(f"No document at {path}")
            return None
        except OSError as e:
            logger.warning(f"Failed to read {path}: {e}")
            return None

    def _save_index(self) -> bool:
        try:
            self.index_path.write_text(
                encode_index([pl.entry() for pl in self._playlists]), encoding="utf-8"
            )
            return True
        except OSError as e:
            logger.error(f"Failed to save playlist index: {e}")
            return False

    def _save_playlist(self, playlist: Playlist) -> bool:
        try:
            self._path_for(playlist.storage_key).write_text(
                encode_playlist(playlist.name, playlist.tracks), encoding="utf-8"
            )
            return True
        except OSError as e:
            logger.error(f"Failed to save playlist '{playlist.name}': {e}")
            return False

    def _require(self, storage_key: str) -> Playlist:
        playlist = self.get(storage_key)
        if playlist is None:
            raise InvalidSelectionError(f"No playlist with key {storage_key!r}")
        return playlist

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------
    @property
    def playlists(self) -> List[Playlist]:
        """Playlists in index order. Do not mutate."""
        return self._playlists

    def get(self, storage_key: str) -> Optional[Playlist]:
        for playlist in self._playlists:
            if playlist.storage_key == storage_key:
                return playlist
        return None

    def find_by_name(self, name: str) -> Optional[Playlist]:
        """Case-insensitive lookup by display name."""
        wanted = name.strip().casefold()
        for playlist in self._playlists:
            if playlist.name.casefold() == wanted:
                return playlist
        return None

    def tracks(self, storage_key: str) -> List[Track]:
        """Return a playlist's tracks, loading them on first access."""
        playlist = self._require(storage_key)
        if not playlist.loaded:
            self.load_tracks(storage_key)
        return playlist.tracks

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------
    def load_index(self) -> List[PlaylistEntry]:
        """Replace the in-memory playlists with the index on disk.

        A missing or unreadable index yields no playlists. Entries whose
        filename this store could not have written, or that repeat an
        earlier filename, are skipped.
        """
        text = self._read_document(self.index_path)
        entries: List[PlaylistEntry] = []
        seen = set()
        for entry in decode_index(text, MAX_PLAYLISTS) if text else []:
            if not _VALID_KEY.fullmatch(entry.storage_key):
                logger.warning(f"Skipping playlist '{entry.name}' with bad filename {entry.storage_key!r}")
                continue
            if entry.storage_key in seen:
                logger.warning(f"Skipping duplicate playlist file {entry.storage_key!r}")
                continue
            seen.add(entry.storage_key)
            entries.append(entry)
        self._playlists = [Playlist(entry.name, entry.storage_key) for entry in entries]
        logger.info(f"Loaded {len(entries)} playlists from index")
        return entries

    def load_tracks(self, storage_key: str) -> List[Track]:
        """Re-read a playlist's tracks from its file."""
        playlist = self._require(storage_key)
        text = self._read_document(self._path_for(storage_key))
        tracks: List[Track] = []
        if text:
            _, tracks = decode_playlist(text, MAX_PLAYLIST_ITEMS)
        playlist.tracks = tracks
        playlist.loaded = True
        logger.debug(f"Loaded {len(tracks)} tracks for '{playlist.name}'")
        return tracks

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------
    def create(self, name: str) -> str:
        """Create an empty playlist.

        Args:
            name: Display name, unique ignoring case

        Returns:
            The new playlist's storage key

        Raises:
            InvalidInputError: name is blank
            PlaylistLimitError: too many playlists
            DuplicateNameError: a playlist with this name exists
            StorageError: the index or the playlist file could not be written
        """
        name = name.strip()
        if not name:
            raise InvalidInputError("Playlist name must not be empty")
        if len(self._playlists) >= MAX_PLAYLISTS:
            raise PlaylistLimitError(f"Cannot have more than {MAX_PLAYLISTS} playlists")
        if self.find_by_name(name) is not None:
            raise DuplicateNameError(f"Playlist already exists: {name}")

        base_key = storage_key_for(name)
        storage_key = base_key
        counter = 1
        while self.get(storage_key) is not None:
            storage_key = f"{counter}_{base_key}"
            counter += 1

        playlist = Playlist(name, storage_key, loaded=True)
        self._playlists.append(playlist)
        if not (self._save_index() and self._save_playlist(playlist)):
            self._playlists.remove(playlist)
            # Best effort: put the index back the way it was
            self._save_index()
            raise StorageError(f"Failed to create playlist: {name}")

        logger.info(f"Created playlist '{name}' ({storage_key})")
        return storage_key

    def delete(self, storage_key: str) -> bool:
        """Delete a playlist and its file.

        Callers holding a playback target into this playlist must drop it.

        Returns:
            True if deleted and the index was rewritten, False otherwise
        """
        playlist = self.get(storage_key)
        if playlist is None:
            return False

        try:
            self._path_for(storage_key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove {storage_key}: {e}")

        self._playlists.remove(playlist)
        playlist.tracks = []
        logger.info(f"Deleted playlist '{playlist.name}'")
        return self._save_index()

    def add_track(self, storage_key: str, track: Track) -> bool:
        """Append a track and rewrite the playlist file.

        Raises:
            InvalidSelectionError: unknown playlist
            DuplicateTrackError: a track with the same identifier is present
            PlaylistLimitError: the playlist is full

        Returns:
            True if saved, False if the file could not be written
        """
        if not track.identifier:
            raise InvalidInputError("Track has no identifier")
        playlist = self._require(storage_key)
        tracks = self.tracks(storage_key)
        if playlist.contains(track.identifier):
            raise DuplicateTrackError(f"Already in '{playlist.name}': {track.title}")
        if len(tracks) >= MAX_PLAYLIST_ITEMS:
            raise PlaylistLimitError(f"Playlist '{playlist.name}' is full")

        tracks.append(track)
        logger.debug(f"Added {track.identifier} to '{playlist.name}'")
        return self._save_playlist(playlist)

    def remove_track(self, storage_key: str, index: int) -> bool:
        """Remove the track at ``index`` and rewrite the playlist file.

        Raises:
            InvalidSelectionError: unknown playlist or index out of range

        Returns:
            True if saved, False if the file could not be written
        """
        playlist = self._require(storage_key)
        tracks = self.tracks(storage_key)
        if not 0 <= index < len(tracks):
            raise InvalidSelectionError(f"No track at position {index}")

        removed = tracks.pop(index)
        logger.debug(f"Removed {removed.identifier} from '{playlist.name}'")
        return self._save_playlist(playlist)
