"""
tubetunes - Terminal front-end for searching, collecting and playing tracks.
"""

__version__ = "0.3.0"
__description__ = "A terminal music player that searches with yt-dlp and plays through mpv."

from . import logging_config
from . import config
from . import models
from . import playlists
from . import audio
from . import state

from .audio import PlayerSession
from .config import AppConfig, ConfigManager, load_config
from .models import Playlist, PlaylistEntry, Track
from .playlists import PlaylistStore
from .state import PlaybackController, PlaybackStatus, Target

__all__ = [
    # Player
    'PlayerSession',

    # Playback state
    'PlaybackController',
    'PlaybackStatus',
    'Target',

    # Playlists
    'PlaylistStore',
    'Playlist',
    'PlaylistEntry',
    'Track',

    # Config
    'load_config',
    'AppConfig',
    'ConfigManager',
]
