"""Search query strategies for resolving a source track in the target catalog."""

import re
from typing import List

from spotify2tidal.models import SearchQuery, Track


# "(feat. X)", "[ft. X & Y]"
FEAT_BRACKETED_PATTERN = re.compile(
    r'\s*[\(\[][^\)\]]*\b(?:feat|ft|featuring)\b\.?[^\)\]]*[\)\]]',
    re.IGNORECASE
)
# "Song feat. X"
FEAT_INLINE_PATTERN = re.compile(
    r'\s+(?:feat|ft|featuring)\b\.?\s+.*$',
    re.IGNORECASE
)
# "(Radio Edit)", "[2011 Remaster]", "(Explicit)"
VERSION_BRACKETED_PATTERN = re.compile(
    r'\s*[\(\[][^\)\]]*\b(?:remix|version|edit|mix|remaster(?:ed)?|explicit)\b[^\)\]]*[\)\]]',
    re.IGNORECASE
)
# "Song - 2011 Remaster", "Song - Radio Edit"
VERSION_DASH_PATTERN = re.compile(
    r'\s+-\s+[^-]*\b(?:remix|version|edit|mix|remaster(?:ed)?|explicit|live)\b.*$',
    re.IGNORECASE
)
BRACKETED_PATTERN = re.compile(r'\s*[\(\[][^\)\]]*[\)\]]')
WHITESPACE = re.compile(r'\s+')

ARTIST_SEPARATOR = ' '


def clean_title(title: str) -> str:
    """
    Strip collaboration credits and version annotations from a title.

    Args:
        title: Raw track title

    Returns:
        Cleaned title, or the raw title when cleaning would leave nothing
    """
    cleaned = FEAT_BRACKETED_PATTERN.sub('', title)
    cleaned = FEAT_INLINE_PATTERN.sub('', cleaned)
    cleaned = VERSION_BRACKETED_PATTERN.sub('', cleaned)
    cleaned = VERSION_DASH_PATTERN.sub('', cleaned)
    cleaned = BRACKETED_PATTERN.sub('', cleaned)
    cleaned = WHITESPACE.sub(' ', cleaned).strip()
    return cleaned or title.strip()


def generate_queries(track: Track) -> List[SearchQuery]:
    """
    Build the ordered list of search strategies for a track.

    Strategy order (most to least specific):
    1. Primary artist + title + album
    2. Primary artist + title
    3. Primary artist + cleaned title
    4. All artists + title (multi-artist tracks only)
    5. Each featured artist + title (multi-artist tracks only)

    The album is kept on the query for diagnostics and scoring; catalog
    searches only ever send artist and title.
    """
    primary_artist = track.primary_artist.name
    title = track.title
    album = track.album.name
    cleaned = clean_title(title)

    queries = [
        SearchQuery(
            artist=primary_artist,
            title=title,
            album=album,
            description=f'Full search: "{primary_artist}" - "{title}" from album "{album}"'
        ),
        SearchQuery(
            artist=primary_artist,
            title=title,
            description=f'Artist + title: "{primary_artist}" - "{title}"'
        ),
        SearchQuery(
            artist=primary_artist,
            title=cleaned,
            description=f'Cleaned title: "{primary_artist}" - "{cleaned}"'
        ),
    ]

    if len(track.artists) > 1:
        all_artists = ARTIST_SEPARATOR.join(track.artist_names)
        queries.append(SearchQuery(
            artist=all_artists,
            title=title,
            description=f'All artists: "{all_artists}" - "{title}"'
        ))
        for artist in track.artists[1:]:
            queries.append(SearchQuery(
                artist=artist.name,
                title=title,
                description=f'Alternate artist: "{artist.name}" - "{title}"'
            ))

    return queries
