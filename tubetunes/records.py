"""
Reader and writer for the two document shapes tubetunes persists.

The index file::

    {"playlists": [{"name": "Road Trip", "filename": "road_trip.json"}]}

and one file per playlist::

    {"name": "Road Trip", "songs": [{"title": "Song A", "video_id": "abc12345"}]}

Only these shapes are understood. Records are flat objects of string
fields; a record that cannot be read is skipped and reading carries on
with the next one. A truncated document yields the records completed
before the cut.
"""
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from tubetunes.models import PlaylistEntry, Track

INDEX_ARRAY_KEY = "playlists"
PLAYLIST_ARRAY_KEY = "songs"

_ESCAPES = {
    '"': '\\"',
    '\\': '\\\\',
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
}
_UNESCAPES = {'n': '\n', 'r': '\r', 't': '\t'}


def escape_string(value: str) -> str:
    """Escape quote, backslash, newline, carriage return and tab."""
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def unescape_string(value: str) -> str:
    """Reverse :func:`escape_string`.

    Unknown escapes keep the escaped character and drop the backslash.
    A trailing lone backslash is kept as is.
    """
    out = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == '\\' and i + 1 < len(value):
            i += 1
            out.append(_UNESCAPES.get(value[i], value[i]))
        else:
            out.append(ch)
        i += 1
    return "".join(out)


# =============================================================================
# Writing
# =============================================================================
def encode_index(entries: List[PlaylistEntry]) -> str:
    lines = ['{', f'  "{INDEX_ARRAY_KEY}": [']
    for i, entry in enumerate(entries):
        comma = "," if i < len(entries) - 1 else ""
        lines.append(
            f'    {{"name": "{escape_string(entry.name)}", '
            f'"filename": "{escape_string(entry.storage_key)}"}}{comma}'
        )
    lines.append('  ]')
    lines.append('}')
    return "\n".join(lines) + "\n"


def encode_playlist(name: str, tracks: List[Track]) -> str:
    """Serialize a playlist. The playable URL is deliberately left out."""
    lines = ['{', f'  "name": "{escape_string(name)}",', f'  "{PLAYLIST_ARRAY_KEY}": [']
    for i, track in enumerate(tracks):
        comma = "," if i < len(tracks) - 1 else ""
        lines.append(
            f'    {{"title": "{escape_string(track.title)}", '
            f'"video_id": "{escape_string(track.identifier)}"}}{comma}'
        )
    lines.append('  ]')
    lines.append('}')
    return "\n".join(lines) + "\n"


# =============================================================================
# Reading
# =============================================================================
class _Truncated(Exception):
    pass


class _Malformed(Exception):
    pass


class _Scanner:
    """Cursor over a document with just enough grammar for our records."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def peek(self) -> str:
        self.skip_ws()
        if self.pos >= len(self.text):
            raise _Truncated()
        return self.text[self.pos]

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in " \t\r\n":
            self.pos += 1

    def expect(self, ch: str) -> None:
        if self.peek() != ch:
            raise _Malformed(f"expected {ch!r} at {self.pos}")
        self.pos += 1

    def read_string(self) -> str:
        self.expect('"')
        start = self.pos
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == '\\':
                self.pos += 2
                continue
            if ch == '"':
                raw = self.text[start:self.pos]
                self.pos += 1
                return unescape_string(raw)
            self.pos += 1
        raise _Truncated()

    def skip_value(self) -> None:
        """Skip any value, nested containers included."""
        ch = self.peek()
        if ch == '"':
            self.read_string()
            return
        if ch in "{[":
            depth = 0
            while self.pos < len(self.text):
                ch = self.text[self.pos]
                if ch == '"':
                    self.read_string()
                    continue
                if ch in "{[":
                    depth += 1
                elif ch in "}]":
                    depth -= 1
                    if depth == 0:
                        self.pos += 1
                        return
                self.pos += 1
            raise _Truncated()
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in ",}] \t\r\n":
            self.pos += 1
        if self.pos == start:
            raise _Malformed(f"unexpected {ch!r} at {self.pos}")
        if self.pos >= len(self.text):
            raise _Truncated()

    def read_record(self) -> Dict[str, Optional[str]]:
        """Read a flat object. Non-string values are recorded as None."""
        self.expect('{')
        fields: Dict[str, Optional[str]] = {}
        if self.peek() == '}':
            self.pos += 1
            return fields
        while True:
            key = self.read_string()
            self.expect(':')
            if self.peek() == '"':
                fields[key] = self.read_string()
            else:
                self.skip_value()
                fields[key] = None
            ch = self.peek()
            self.pos += 1
            if ch == '}':
                return fields
            if ch != ',':
                raise _Malformed(f"expected ',' or '}}' at {self.pos - 1}")

    def skip_past_record(self, start: int) -> None:
        """Resynchronise after a malformed record that began at ``start``.

        Strings are stepped over whole, so a brace inside a title does not
        end the record early.
        """
        self.pos = start
        self.skip_value()


_Record = Dict[str, Optional[str]]


def _read_document(text: str, array_key: str, limit: int,
                   accept: Callable[[_Record], bool]) -> Tuple[Dict[str, str], List[_Record]]:
    """Read the top-level string fields and up to ``limit`` accepted records."""
    scanner = _Scanner(text)
    scalars: Dict[str, str] = {}
    records: List[_Record] = []
    try:
        scanner.expect('{')
        if scanner.peek() == '}':
            return scalars, records
        while True:
            key = scanner.read_string()
            scanner.expect(':')
            if key == array_key and scanner.peek() == '[':
                _read_array(scanner, records, limit, accept)
            elif scanner.peek() == '"':
                scalars[key] = scanner.read_string()
            else:
                scanner.skip_value()
            ch = scanner.peek()
            scanner.pos += 1
            if ch != ',':
                break
    except (_Truncated, _Malformed):
        pass
    return scalars, records


def _read_array(scanner: _Scanner, records: List[_Record], limit: int,
                accept: Callable[[_Record], bool]) -> None:
    scanner.expect('[')
    if scanner.peek() == ']':
        scanner.pos += 1
        return
    while True:
        if scanner.peek() == '{':
            start = scanner.pos
            try:
                record = scanner.read_record()
            except _Malformed:
                scanner.skip_past_record(start)
            else:
                # Keep scanning past the cap so the document stays in sync
                if len(records) < limit and accept(record):
                    records.append(record)
        else:
            scanner.skip_value()
        ch = scanner.peek()
        scanner.pos += 1
        if ch == ']':
            return
        if ch != ',':
            raise _Malformed(f"expected ',' or ']' at {scanner.pos - 1}")


def _is_index_record(record: _Record) -> bool:
    return bool(record.get("name")) and bool(record.get("filename"))


def _is_track_record(record: _Record) -> bool:
    return bool(record.get("video_id"))


def decode_index(text: str, limit: int) -> List[PlaylistEntry]:
    """Read playlist index entries, skipping any without name or filename."""
    _, records = _read_document(text, INDEX_ARRAY_KEY, limit, _is_index_record)
    return [PlaylistEntry(record["name"], record["filename"]) for record in records]


def iter_tracks(records: List[_Record]) -> Iterator[Track]:
    for record in records:
        title = record.get("title")
        yield Track(title if title is not None else "Unknown", record["video_id"])


def decode_playlist(text: str, limit: int) -> Tuple[Optional[str], List[Track]]:
    """Read a playlist document into ``(name, tracks)``.

    Records without a non-empty ``video_id`` are dropped; at most ``limit``
    tracks are returned.
    """
    scalars, records = _read_document(text, PLAYLIST_ARRAY_KEY, limit, _is_track_record)
    return scalars.get("name"), list(iter_tracks(records))
