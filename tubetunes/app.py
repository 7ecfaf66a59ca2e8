"""
tubetunes - search, collect and play tracks from the terminal.

Views:
- search results (default)
- playlists
- songs of one playlist
- "add to playlist" picker

Playback goes through an external mpv process; search through yt-dlp.
"""
import argparse
import shutil
import signal
import sys
import unicodedata
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

from tubetunes import __version__, __description__
from tubetunes.audio import PlayerSession
from tubetunes.config import load_config
from tubetunes.logging_config import (
    get_logger,
    setup_logging,
    DuplicateNameError,
    DuplicateTrackError,
    InvalidInputError,
    PlaylistLimitError,
    SearchError,
    StorageError,
)
from tubetunes.loop import EventLoop, KeySource
from tubetunes.models import Track
from tubetunes.playlists import PlaylistStore
from tubetunes.search import MAX_RESULTS, search_tracks
from tubetunes.state import SOURCE_PLAYLIST, SOURCE_SEARCH, PlaybackController
from tubetunes.terminal import Terminal

logger = get_logger('main')

# =============================================================================
# Constants
# =============================================================================
VIEW_SEARCH = "search"
VIEW_PLAYLISTS = "playlists"
VIEW_PLAYLIST_SONGS = "playlist_songs"
VIEW_ADD_TO_PLAYLIST = "add_to_playlist"

HEADER_ROWS: int = 5
FOOTER_ROWS: int = 2

REQUIRED_COMMANDS = {
    "yt-dlp": "yt-dlp not found! Install with: pip install yt-dlp",
    "mpv": "mpv not found! Install with: apt install mpv",
}

HELP_LINES = [
    "GLOBAL CONTROLS:",
    "  /           Search",
    "  Enter       Play selected / Open playlist",
    "  Space       Pause/Resume playback",
    "  n / p       Next / previous track",
    "  x           Stop playback",
    "  Up/Down/j/k Navigate list",
    "  PgUp/PgDn   Page up/down",
    "  g/G         Go to start/end",
    "  h or ?      Show this help",
    "  q           Quit",
    "",
    "PLAYLIST CONTROLS:",
    "  f           Open playlists menu",
    "  a           Add song to playlist",
    "  c           Create new playlist",
    "  d           Remove song / delete playlist",
    "  Esc         Go back",
]

# External command cache
_command_cache: Dict[str, Optional[str]] = {}


def _find_command(cmd: str) -> Optional[str]:
    """Find an external command in PATH with caching."""
    if cmd not in _command_cache:
        _command_cache[cmd] = shutil.which(cmd)
    return _command_cache[cmd]


def check_dependencies(mpv_binary: str = "mpv") -> Optional[str]:
    """Return an error message for the first missing external tool."""
    commands = {"yt-dlp": REQUIRED_COMMANDS["yt-dlp"], mpv_binary: REQUIRED_COMMANDS["mpv"]}
    for cmd, message in commands.items():
        if not _find_command(cmd):
            logger.error(message)
            return message
    return None


# =============================================================================
# Text helpers
# =============================================================================
def _format_duration(seconds: int) -> str:
    if seconds <= 0:
        return "--:--"
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _char_display_width(ch: str) -> int:
    if unicodedata.combining(ch):
        return 0
    return 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1


def _truncate_to_width(text: str, max_width: int, ellipsis: str = "...") -> str:
    """Truncate text to a terminal display width."""
    if max_width <= 0:
        return ""
    width = sum(_char_display_width(ch) for ch in text)
    if width <= max_width:
        return text
    out, used = [], 0
    limit = max(0, max_width - len(ellipsis))
    for ch in text:
        w = _char_display_width(ch)
        if used + w > limit:
            break
        out.append(ch)
        used += w
    return "".join(out) + ellipsis[:max_width]


def _navigate_bounded(current: int, direction: int, max_items: int) -> int:
    """Navigate with bounds checking."""
    if max_items <= 0:
        return 0
    return max(0, min(max_items - 1, current + direction))


class Screen(KeySource, Protocol):
    """What the application needs from a terminal."""

    def size(self) -> tuple:
        ...

    def write(self, text: str) -> None:
        ...

    def prompt(self, text: str) -> str:
        ...


# =============================================================================
# Application
# =============================================================================
class App:
    """Views and key handling on top of the playback controller."""

    def __init__(
        self,
        controller: PlaybackController,
        store: PlaylistStore,
        screen: Screen,
        search: Callable[[str, int], List[Track]] = search_tracks,
        search_limit: int = MAX_RESULTS,
        input_timeout: float = 0.1,
    ):
        self.controller = controller
        self.store = store
        self.screen = screen
        self.search = search
        self.search_limit = search_limit

        self.view = VIEW_SEARCH
        self.show_help = False
        self.search_cursor = 0
        self.playlist_cursor = 0
        self.song_cursor = 0
        self.add_cursor = 0
        self.open_playlist: Optional[str] = None
        self.track_to_add: Optional[Track] = None

        self.loop = EventLoop(controller, screen, self.handle_key, self.render,
                              input_timeout, on_advance=self._follow_target)

    @property
    def status(self) -> str:
        return self.loop.status

    def set_status(self, text: str) -> None:
        self.loop.set_status(text)

    def run(self) -> None:
        self.set_status("Press / to search, f for playlists, h for help.")
        self.loop.run()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------
    def _list_height(self) -> int:
        rows, _ = self.screen.size()
        return max(1, rows - HEADER_ROWS - FOOTER_ROWS)

    def _open_tracks(self) -> List[Track]:
        if self.open_playlist is None or self.store.get(self.open_playlist) is None:
            return []
        return self.store.tracks(self.open_playlist)

    def _move(self, cursor: int, key: str, count: int) -> Optional[int]:
        """Apply a movement key to a cursor, or None if ``key`` is not one."""
        page = self._list_height()
        moves = {
            "up": -1, "k": -1,
            "down": 1, "j": 1,
            "pgup": -page, "pgdn": page,
        }
        if key in moves:
            return _navigate_bounded(cursor, moves[key], count)
        if key in ("g", "home"):
            return 0
        if key in ("G", "end"):
            return max(0, count - 1)
        return None

    def _create_playlist(self) -> Optional[str]:
        name = self.screen.prompt("New playlist name: ")
        if not name:
            self.set_status("Cancelled")
            return None
        try:
            key = self.store.create(name)
        except DuplicateNameError:
            self.set_status(f"Playlist already exists: {name}")
            return None
        except (PlaylistLimitError, StorageError) as e:
            self.set_status(str(e))
            return None
        self.set_status(f"Created playlist: {name}")
        return key

    def _follow_target(self, track: Optional[Track] = None) -> None:
        """Move the cursor of the list being played onto the playing track."""
        target = self.controller.status.target
        if target is None:
            return
        if target.source == SOURCE_SEARCH:
            self.search_cursor = target.index
        elif target.playlist_key == self.open_playlist:
            self.song_cursor = target.index

    def _stop(self) -> None:
        if self.controller.status.target is not None:
            self.controller.stop()
            self.set_status("Playback stopped")

    # -------------------------------------------------------------------------
    # Key dispatch
    # -------------------------------------------------------------------------
    def handle_key(self, key: str) -> bool:
        """Handle one key. Returns False when the user quits."""
        if self.show_help:
            self.show_help = False
            return True

        if key == "q":
            return False
        if key in ("h", "?"):
            self.show_help = True
            return True
        if key == " ":
            if self.controller.toggle_pause():
                self.set_status("Paused" if self.controller.status.paused else "Playing")
            elif self.controller.status.target is not None:
                self.set_status("Player not responding")
            return True
        if key in ("n", "p"):
            track = self.controller.next() if key == "n" else self.controller.previous()
            if track is not None:
                label = "Next track" if key == "n" else "Previous track"
                self.set_status(f"{label}: {track.title}")
                self._follow_target(track)
            return True
        if key == "esc":
            self._go_back()
            return True

        handlers = {
            VIEW_SEARCH: self._handle_search_view,
            VIEW_PLAYLISTS: self._handle_playlists_view,
            VIEW_PLAYLIST_SONGS: self._handle_songs_view,
            VIEW_ADD_TO_PLAYLIST: self._handle_add_view,
        }
        handlers[self.view](key)
        return True

    def _go_back(self) -> None:
        if self.view == VIEW_PLAYLIST_SONGS:
            self.view = VIEW_PLAYLISTS
            self.set_status("")
        elif self.view == VIEW_PLAYLISTS:
            self.view = VIEW_SEARCH
            self.set_status("")
        elif self.view == VIEW_ADD_TO_PLAYLIST:
            self.track_to_add = None
            self.view = VIEW_SEARCH
            self.set_status("Cancelled")

    def _handle_search_view(self, key: str) -> None:
        results = self.controller.search.tracks
        moved = self._move(self.search_cursor, key, len(results))
        if moved is not None:
            self.search_cursor = moved
        elif key in ("\n", "\r"):
            track = self.controller.play_search_result(self.search_cursor)
            if track is not None:
                self.set_status(f"Playing: {track.title}")
        elif key in ("/", "s"):
            self._run_search()
        elif key == "x":
            self._stop()
        elif key == "f":
            self.view = VIEW_PLAYLISTS
            self.playlist_cursor = min(self.playlist_cursor, max(0, len(self.store.playlists) - 1))
            self.set_status("Playlists")
        elif key == "a":
            if 0 <= self.search_cursor < len(results):
                self.track_to_add = results[self.search_cursor]
                self.add_cursor = 0
                self.view = VIEW_ADD_TO_PLAYLIST
                self.set_status("Select playlist")
            else:
                self.set_status("No song selected")
        elif key == "c":
            self._create_playlist()

    def _run_search(self) -> None:
        query = self.screen.prompt("Search: ")
        if not query:
            self.set_status("Search cancelled")
            return
        self.set_status(f"Searching: {query} ...")
        self.render()
        try:
            tracks = self.search(query, self.search_limit)
        except SearchError:
            self.set_status("Search error!")
            return
        self.controller.set_search_results(query, tracks)
        self.search_cursor = 0
        if tracks:
            self.set_status(f"Found {len(tracks)} results for: {query}")
        else:
            self.set_status(f"No results for: {query}")

    def _handle_playlists_view(self, key: str) -> None:
        playlists = self.store.playlists
        moved = self._move(self.playlist_cursor, key, len(playlists))
        if moved is not None:
            self.playlist_cursor = moved
        elif key in ("\n", "\r"):
            if playlists:
                playlist = playlists[self.playlist_cursor]
                self.store.load_tracks(playlist.storage_key)
                self.open_playlist = playlist.storage_key
                self.song_cursor = 0
                self.view = VIEW_PLAYLIST_SONGS
                self.set_status(f"Opened: {playlist.name}")
        elif key == "c":
            self._create_playlist()
        elif key in ("x", "d"):
            self._delete_selected_playlist()

    def _delete_selected_playlist(self) -> None:
        playlists = self.store.playlists
        if not playlists:
            return
        playlist = playlists[self.playlist_cursor]
        answer = self.screen.prompt(f"Delete '{playlist.name}'? (y/n): ")
        if answer[:1].lower() != "y":
            self.set_status("Cancelled")
            return
        self.controller.playlist_deleted(playlist.storage_key)
        if self.store.delete(playlist.storage_key):
            self.set_status("Deleted playlist")
        else:
            self.set_status("Failed to delete")
        if self.open_playlist == playlist.storage_key:
            self.open_playlist = None
        self.playlist_cursor = min(self.playlist_cursor, max(0, len(self.store.playlists) - 1))

    def _handle_songs_view(self, key: str) -> None:
        tracks = self._open_tracks()
        moved = self._move(self.song_cursor, key, len(tracks))
        if moved is not None:
            self.song_cursor = moved
        elif key in ("\n", "\r"):
            if tracks and self.open_playlist is not None:
                track = self.controller.play_playlist_track(self.open_playlist, self.song_cursor)
                if track is not None:
                    self.set_status(f"Playing: {track.title}")
        elif key == "d":
            if tracks and self.open_playlist is not None:
                title = tracks[self.song_cursor].title
                saved = self.store.remove_track(self.open_playlist, self.song_cursor)
                self.controller.track_removed(self.open_playlist, self.song_cursor)
                self.set_status(f"Removed: {title}" if saved else "Failed to remove")
                self.song_cursor = min(self.song_cursor, max(0, len(tracks) - 1))
        elif key == "x":
            self._stop()

    def _handle_add_view(self, key: str) -> None:
        playlists = self.store.playlists
        moved = self._move(self.add_cursor, key, len(playlists))
        if moved is not None:
            self.add_cursor = moved
        elif key in ("\n", "\r"):
            if playlists and self.track_to_add is not None:
                self._add_to(playlists[self.add_cursor].storage_key)
        elif key == "c":
            new_key = self._create_playlist()
            if new_key is not None and self.track_to_add is not None:
                name = self.store.get(new_key).name
                if self._add_to(new_key):
                    self.set_status(f"Created '{name}' and added song")

    def _add_to(self, storage_key: str) -> bool:
        playlist = self.store.get(storage_key)
        try:
            saved = self.store.add_track(storage_key, self.track_to_add)
        except DuplicateTrackError:
            self.set_status(f"Already in playlist: {playlist.name}")
            saved = False
        except InvalidInputError as e:
            self.set_status(str(e))
            saved = False
        else:
            self.set_status(f"Added to: {playlist.name}" if saved else "Failed to save playlist")
        self.track_to_add = None
        self.view = VIEW_SEARCH
        return saved

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------
    def _now_playing(self, cols: int) -> str:
        controller = self.controller
        track = controller.current_track()
        if track is None:
            return "  Idle"
        state = "Paused" if controller.status.paused else "Playing"
        source = controller.status.target.source
        where = "search"
        if source == SOURCE_PLAYLIST:
            playlist = self.store.get(controller.status.target.playlist_key)
            where = playlist.name if playlist else "?"
        return _truncate_to_width(f"  {state}: {track.title} [{where}]", cols)

    def _list_lines(self, cols: int) -> List[str]:
        height = self._list_height()
        if self.view == VIEW_SEARCH:
            title = f"Results for: {self.controller.search.query}" if self.controller.search.query else "Search"
            items = [
                f"{_format_duration(t.duration_seconds):>8}  {t.title}"
                for t in self.controller.search.tracks
            ]
            cursor = self.search_cursor
            playing = self._playing_index(SOURCE_SEARCH, None)
        elif self.view == VIEW_PLAYLIST_SONGS:
            playlist = self.store.get(self.open_playlist) if self.open_playlist else None
            title = f"Playlist: {playlist.name}" if playlist else "Playlist"
            items = [t.title for t in self._open_tracks()]
            cursor = self.song_cursor
            playing = self._playing_index(SOURCE_PLAYLIST, self.open_playlist)
        else:
            title = "Playlists" if self.view == VIEW_PLAYLISTS else "Add to playlist (c: new)"
            items = [p.name for p in self.store.playlists]
            cursor = self.playlist_cursor if self.view == VIEW_PLAYLISTS else self.add_cursor
            playing = None

        lines = [f"\033[1m  {title}\033[0m", ""]
        offset = max(0, min(cursor - height + 1, len(items) - height)) if cursor >= height else 0
        for i, item in enumerate(items[offset:offset + height], start=offset):
            marker = ">" if i == playing else " "
            text = _truncate_to_width(f" {marker} {item}", cols - 1)
            lines.append(f"\033[7m{text}\033[0m" if i == cursor else text)
        if not items:
            lines.append("  (empty)")
        return lines

    def _playing_index(self, source: str, playlist_key: Optional[str]) -> Optional[int]:
        target = self.controller.status.target
        if target is None or target.source != source or target.playlist_key != playlist_key:
            return None
        return target.index

    def render(self) -> None:
        rows, cols = self.screen.size()
        out = ["\033[2J\033[H"]
        if self.show_help:
            out.append(f"\n  \033[1mtubetunes {__version__} | Help\033[0m\n\n")
            out.extend(f"    {line}\n" for line in HELP_LINES)
            out.append("\n  \033[7m Press any key to continue... \033[0m")
            self.screen.write("".join(out))
            return

        out.append(f"\033[1m  tubetunes\033[0m  [{self.view.replace('_', ' ')}]\n")
        out.append(self._now_playing(cols) + "\n\n")
        out.extend(line + "\n" for line in self._list_lines(cols))
        out.append(f"\033[{rows};1H\033[2K{_truncate_to_width(' ' + self.status, cols - 1)}")
        self.screen.write("".join(out))


# =============================================================================
# Main Function
# =============================================================================
def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tubetunes", description=__description__)
    parser.add_argument("--version", action="version", version=f"tubetunes {__version__}")
    parser.add_argument("--config", type=Path, help="path to config.json")
    parser.add_argument("--debug", action="store_true", help="log at DEBUG level")
    return parser.parse_args(argv)


def _exit_now(signum: Optional[int] = None, frame=None) -> None:
    """Turn termination signals into a normal exit so cleanup runs."""
    sys.exit(0)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the player."""
    args = _parse_args(argv)
    manager = load_config(args.config)
    config_ok = manager.validate_config(repair=True)
    config = manager.config

    setup_logging("DEBUG" if args.debug else config.log_level,
                  manager.get_log_file_path(), console=False)
    logger.info(f"tubetunes {__version__} starting")
    if not config_ok:
        print(f"Warning: invalid settings in {manager.config_path} replaced with defaults")

    error = check_dependencies(config.mpv_binary)
    if error:
        print(f"Error: {error}")
        return 1

    if not sys.stdin.isatty():
        print("Error: Must run in interactive terminal")
        return 1

    store = PlaylistStore(manager.get_data_directory_path())
    if not store.init_storage():
        print("Failed to initialize config directory")
        return 1
    store.load_index()

    for signum in (signal.SIGTERM, signal.SIGHUP):
        signal.signal(signum, _exit_now)

    session = PlayerSession(config.socket_path, config.mpv_binary, config.start_timeout)
    controller = PlaybackController(session, store, grace_period=config.grace_period)

    with session, Terminal() as terminal:
        app = App(controller, store, terminal,
                  search_limit=config.search_limit, input_timeout=config.input_timeout)
        try:
            app.run()
        except KeyboardInterrupt:
            logger.info("Interrupted")

    print("\n  Bye!")
    return 0
