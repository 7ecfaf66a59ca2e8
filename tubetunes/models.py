"""
Data model shared by the playlist store and the playback controller.
"""
from dataclasses import dataclass, field
from typing import List

URL_TEMPLATE: str = "https://www.youtube.com/watch?v={identifier}"

# Identifiers outside this length range are not real video ids
MIN_IDENTIFIER_LENGTH: int = 5
MAX_IDENTIFIER_LENGTH: int = 20


def is_valid_identifier(identifier: str) -> bool:
    """Check that an identifier has a plausible length."""
    return bool(identifier) and MIN_IDENTIFIER_LENGTH <= len(identifier) <= MAX_IDENTIFIER_LENGTH


@dataclass(frozen=True)
class Track:
    """A playable track.

    Attributes:
        title: Display title
        identifier: Video id the playable URL is built from
        duration_seconds: Length in seconds, 0 when unknown
    """

    title: str
    identifier: str
    duration_seconds: int = 0

    @property
    def playable_url(self) -> str:
        # Always derived, never stored
        return URL_TEMPLATE.format(identifier=self.identifier)


@dataclass(frozen=True)
class PlaylistEntry:
    """One row of the playlist index."""

    name: str
    storage_key: str


@dataclass
class Playlist:
    """A named, ordered list of tracks backed by one file.

    ``tracks`` stays empty until the store loads it, ``loaded`` records
    whether that has happened.
    """

    name: str
    storage_key: str
    tracks: List[Track] = field(default_factory=list)
    loaded: bool = False

    def entry(self) -> PlaylistEntry:
        return PlaylistEntry(self.name, self.storage_key)

    def contains(self, identifier: str) -> bool:
        return any(track.identifier == identifier for track in self.tracks)
