"""Data models shared by the matcher, the planner and the sync executor."""

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Artist:
    """An artist credit on a track."""
    id: str
    name: str


@dataclass(frozen=True)
class Album:
    """The album a track belongs to."""
    id: str
    name: str
    release_date: Optional[str] = None


@dataclass(frozen=True)
class Track:
    """
    A track as seen by either catalog.

    Durations are always milliseconds; each catalog client converts its own
    unit at the parse boundary. ``available`` is only known for target
    catalog tracks (None means "not checked").
    """
    id: str
    title: str
    artists: Tuple[Artist, ...]
    album: Album
    duration_ms: int = 0
    isrc: Optional[str] = None
    explicit: Optional[bool] = None
    popularity: Optional[float] = None
    available: Optional[bool] = None

    def __post_init__(self):
        object.__setattr__(self, 'artists', tuple(self.artists))
        if not self.artists:
            raise ValueError(f"Track {self.id!r} has no artists")
        if self.duration_ms is None or self.duration_ms < 0:
            raise ValueError(f"Track {self.id!r} has an invalid duration: {self.duration_ms}")

    @property
    def primary_artist(self) -> Artist:
        return self.artists[0]

    @property
    def artist_names(self) -> List[str]:
        return [artist.name for artist in self.artists]

    def display_name(self) -> str:
        """Human readable "Artist - Title" label used in logs and reports."""
        return f"{self.primary_artist.name} - {self.title}"


@dataclass
class Playlist:
    """A playlist in the source catalog."""
    id: str
    name: str
    description: str = ""
    total_tracks: int = 0
    tracks: List[Track] = field(default_factory=list)
    owner: Optional[str] = None

    @property
    def track_count(self) -> int:
        if self.total_tracks:
            return self.total_tracks
        return len(self.tracks)


@dataclass(frozen=True)
class TargetPlaylist:
    """A playlist that already exists in the target catalog."""
    id: str
    name: str
    number_of_tracks: int = 0
    description: str = ""


@dataclass(frozen=True)
class SearchQuery:
    """One search strategy for a source track."""
    artist: str
    title: str
    album: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class MatchResult:
    """Outcome of resolving one source track against the target catalog."""
    track: Optional[Track]
    confidence: float
    attempted_queries: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'confidence', min(1.0, max(0.0, float(self.confidence))))
        object.__setattr__(self, 'attempted_queries', tuple(self.attempted_queries))

    @property
    def found(self) -> bool:
        return self.track is not None

    def __repr__(self) -> str:
        target = self.track.id if self.track else None
        return f"MatchResult(track={target}, confidence={self.confidence:.2f})"


class SyncAction(str, Enum):
    """What the planner decided to do with a source playlist."""
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


class SyncOutcome(str, Enum):
    """What actually happened to a source playlist."""
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PlaylistComparison:
    """Planner decision for one source playlist."""
    source_playlist: Playlist
    action: SyncAction
    reason: str
    target_playlist: Optional[TargetPlaylist] = None


@dataclass
class SyncResult:
    """Per-playlist result, filled in while the playlist is processed."""
    playlist_name: str
    action: SyncOutcome
    total_tracks: int = 0
    successful_tracks: int = 0
    failed_tracks: int = 0
    target_playlist_id: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'playlist_name': self.playlist_name,
            'action': self.action.value,
            'total_tracks': self.total_tracks,
            'successful_tracks': self.successful_tracks,
            'failed_tracks': self.failed_tracks,
            'target_playlist_id': self.target_playlist_id,
            'errors': list(self.errors),
        }


class SyncSummary:
    """Aggregate of every SyncResult produced by one run."""

    def __init__(self):
        """Initialize empty summary."""
        self.start_time = datetime.now()
        self.end_time = None
        self.results: List[SyncResult] = []
        self.missing_tracks: List[Dict] = []
        self.cancelled = False
        self._lock = threading.Lock()

    def add_result(self, result: SyncResult):
        """Append a finished playlist result."""
        with self._lock:
            self.results.append(result)

    def add_missing_track(self, playlist_name: str, track: Track, attempted_queries, reason: str):
        """Record a source track that could not be written to the target."""
        with self._lock:
            self.missing_tracks.append({
                'playlist': playlist_name,
                'source_id': track.id,
                'title': track.title,
                'artist': track.primary_artist.name,
                'album': track.album.name,
                'reason': reason,
                'attempted_queries': list(attempted_queries),
            })

    def _count(self, outcome: SyncOutcome) -> int:
        return sum(1 for result in self.results if result.action == outcome)

    @property
    def total_playlists(self) -> int:
        return len(self.results)

    @property
    def playlists_created(self) -> int:
        return self._count(SyncOutcome.CREATED)

    @property
    def playlists_updated(self) -> int:
        return self._count(SyncOutcome.UPDATED)

    @property
    def playlists_skipped(self) -> int:
        return self._count(SyncOutcome.SKIPPED)

    @property
    def total_tracks_processed(self) -> int:
        return sum(result.total_tracks for result in self.results)

    @property
    def total_tracks_successful(self) -> int:
        return sum(result.successful_tracks for result in self.results)

    @property
    def total_tracks_failed(self) -> int:
        return sum(result.failed_tracks for result in self.results)

    @property
    def match_rate(self) -> float:
        attempted = self.total_tracks_successful + self.total_tracks_failed
        if attempted == 0:
            return 0.0
        return self.total_tracks_successful / attempted * 100

    def finalize(self):
        """Mark sync as complete."""
        self.end_time = datetime.now()

    def to_dict(self) -> Dict:
        """Convert summary to dictionary."""
        duration = None
        if self.end_time:
            duration = (self.end_time - self.start_time).total_seconds()

        return {
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration_seconds': duration,
            'cancelled': self.cancelled,
            'total_playlists': self.total_playlists,
            'playlists_created': self.playlists_created,
            'playlists_updated': self.playlists_updated,
            'playlists_skipped': self.playlists_skipped,
            'total_tracks_processed': self.total_tracks_processed,
            'total_tracks_successful': self.total_tracks_successful,
            'total_tracks_failed': self.total_tracks_failed,
            'match_rate': f"{self.match_rate:.2f}%",
            'results': [result.to_dict() for result in self.results],
            'missing_tracks': list(self.missing_tracks),
        }

    def save_to_file(self, filepath: str):
        """Save summary to JSON file."""
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
