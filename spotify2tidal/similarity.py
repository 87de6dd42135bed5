"""Similarity scoring between a source track and a target catalog candidate."""

import re
from typing import Iterable

from rapidfuzz.distance import Levenshtein

from spotify2tidal.models import Artist, Track


# Minimum composite score accepted as a match
MATCH_THRESHOLD = 0.7
# Composite score at which the resolver stops trying further strategies
HIGH_CONFIDENCE_THRESHOLD = 0.9

WEIGHTS = {
    'title': 0.40,
    'artist': 0.40,
    'album': 0.15,
    'duration': 0.05,
}

UNKNOWN_SCORE = 0.5

NON_WORD_CHARS = re.compile(r'[^\w\s]')
WHITESPACE = re.compile(r'\s+')


def normalize_string(s: str) -> str:
    """
    Normalize string for comparison.

    Lowercases, turns punctuation into spaces and collapses whitespace.

    Args:
        s: Input string

    Returns:
        Normalized string
    """
    if not s:
        return ""
    s = NON_WORD_CHARS.sub(' ', s.lower())
    return WHITESPACE.sub(' ', s).strip()


def string_similarity(a: str, b: str) -> float:
    """
    Levenshtein based similarity of two already normalized strings.

    Returns:
        1.0 for equal strings, 0.0 when only one side is empty,
        otherwise 1 - distance / longest length
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    distance = Levenshtein.distance(a, b)
    return 1.0 - distance / max(len(a), len(b))


def artist_similarity(source_artists: Iterable[Artist], candidate_artists: Iterable[Artist]) -> float:
    """
    Best pairwise similarity between the two artist lists.

    Reordered credits and featured artists on only one side don't lower the
    score as long as one pair lines up.
    """
    source_names = [normalize_string(artist.name) for artist in source_artists]
    candidate_names = [normalize_string(artist.name) for artist in candidate_artists]
    if not source_names or not candidate_names:
        return 0.0

    best = 0.0
    for source_name in source_names:
        for candidate_name in candidate_names:
            best = max(best, string_similarity(source_name, candidate_name))
    return best


def album_similarity(source_album: str, candidate_album: str) -> float:
    """
    Album name similarity.

    A title made only of symbols (e.g. "÷") normalizes to nothing; when that
    happens on one side only the album is treated as unknown.
    """
    a = normalize_string(source_album)
    b = normalize_string(candidate_album)
    if bool(a) != bool(b):
        return UNKNOWN_SCORE
    return string_similarity(a, b)


def duration_similarity(duration1_ms: int, duration2_ms: int) -> float:
    """
    Step-wise duration similarity, both durations in milliseconds.

    Unknown (zero) durations return a neutral score so missing data doesn't
    disqualify a candidate.
    """
    if not duration1_ms or not duration2_ms:
        return UNKNOWN_SCORE

    difference = abs(duration1_ms - duration2_ms)
    average = (duration1_ms + duration2_ms) / 2
    percentage_difference = difference / average

    if percentage_difference <= 0.1:
        return 1.0
    if percentage_difference <= 0.2:
        return 0.8
    if percentage_difference <= 0.3:
        return 0.6
    return 0.3


def score(source: Track, candidate: Track) -> float:
    """
    Composite confidence that ``candidate`` is the same recording as ``source``.

    Args:
        source: Track from the source catalog
        candidate: Track returned by the target catalog search

    Returns:
        Weighted title/artist/album/duration similarity clamped to [0, 1]
    """
    title = string_similarity(normalize_string(source.title), normalize_string(candidate.title))
    artist = artist_similarity(source.artists, candidate.artists)
    album = album_similarity(source.album.name, candidate.album.name)
    duration = duration_similarity(source.duration_ms, candidate.duration_ms)

    total = (
        title * WEIGHTS['title'] +
        artist * WEIGHTS['artist'] +
        album * WEIGHTS['album'] +
        duration * WEIGHTS['duration']
    )
    return min(1.0, max(0.0, total))
