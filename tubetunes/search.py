"""
Track search through yt-dlp.
"""
from typing import Any, Dict, List

import yt_dlp
from yt_dlp.utils import DownloadError

from tubetunes.logging_config import get_logger, SearchError
from tubetunes.models import Track, is_valid_identifier

logger = get_logger('search')

MAX_RESULTS: int = 50

YDL_OPTIONS: Dict[str, Any] = {
    'quiet': True,
    'no_warnings': True,
    'extract_flat': True,
    'skip_download': True,
}


def _duration(entry: Dict[str, Any]) -> int:
    value = entry.get('duration')
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    return 0


def search_tracks(query: str, limit: int = MAX_RESULTS) -> List[Track]:
    """Search for tracks.

    Args:
        query: Free-text query
        limit: Maximum number of results (capped at MAX_RESULTS)

    Returns:
        Tracks in result order; entries with implausible ids are dropped

    Raises:
        SearchError: yt-dlp failed
    """
    query = query.strip()
    if not query:
        return []
    limit = max(1, min(limit, MAX_RESULTS))

    try:
        with yt_dlp.YoutubeDL(YDL_OPTIONS) as ydl:
            info = ydl.extract_info(f"ytsearch{limit}:{query}", download=False)
    except DownloadError as e:
        logger.error(f"Search failed for {query!r}: {e}")
        raise SearchError(f"Search failed: {e}")

    tracks: List[Track] = []
    for entry in (info or {}).get('entries') or []:
        if not entry:
            continue
        identifier = str(entry.get('id') or '')
        if not is_valid_identifier(identifier):
            logger.debug(f"Discarding result with id {identifier!r}")
            continue
        title = entry.get('title') or 'Unknown'
        tracks.append(Track(title, identifier, _duration(entry)))
        if len(tracks) >= limit:
            break

    logger.info(f"Search {query!r}: {len(tracks)} results")
    return tracks
