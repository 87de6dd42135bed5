"""Spotify API client for retrieving playlists and tracks."""

from typing import Dict, List, Optional
import requests
import spotipy
from spotipy.oauth2 import SpotifyOAuth
from spotify2tidal.models import Album, Artist, Playlist, Track
from spotify2tidal.utils.logger import get_logger


logger = get_logger()

TRACK_FIELDS = (
    'items(track(id,name,type,artists(id,name),album(id,name,release_date),'
    'duration_ms,external_ids,explicit,popularity)),next'
)


class SpotifyClient:
    """
    Client for interacting with Spotify Web API.

    Spotify reports durations in milliseconds, so tracks are passed through
    without conversion. API errors surface as raw spotipy.SpotifyException
    so the retry layer can read the HTTP status and headers.
    """

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str):
        """
        Initialize Spotify client.

        Args:
            client_id: Spotify application client ID
            client_secret: Spotify application client secret
            redirect_uri: OAuth redirect URI
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.sp: Optional[spotipy.Spotify] = None

    def authenticate_user(self) -> None:
        """
        Authenticate user with Spotify using OAuth.

        Raises:
            Exception: If authentication fails
        """
        try:
            scope = "playlist-read-private playlist-read-collaborative"
            auth_manager = SpotifyOAuth(
                client_id=self.client_id,
                client_secret=self.client_secret,
                redirect_uri=self.redirect_uri,
                scope=scope,
                open_browser=True
            )
            # A plain session mounts no urllib3 Retry, so 429s keep their Retry-After header
            self.sp = spotipy.Spotify(auth_manager=auth_manager, requests_session=requests.Session())

            user = self.sp.current_user()
            logger.info(f"Authenticated as Spotify user: {user['display_name']}")

        except Exception as e:
            logger.error(f"Spotify authentication failed: {e}")
            raise

    def _require_auth(self):
        if not self.sp:
            raise Exception("Not authenticated. Call authenticate_user() first.")

    def list_playlists(self) -> List[Playlist]:
        """
        List all playlists for the authenticated user.

        Returns:
            Playlists with total_tracks set and no tracks loaded

        Raises:
            Exception: If not authenticated or API call fails
        """
        self._require_auth()

        playlists = []
        offset = 0
        limit = 50

        while True:
            results = self.sp.current_user_playlists(limit=limit, offset=offset)

            for item in results['items']:
                if not item:
                    continue
                playlist = Playlist(
                    id=item['id'],
                    name=item['name'],
                    description=item.get('description') or "",
                    total_tracks=(item.get('tracks') or {}).get('total', 0),
                    owner=(item.get('owner') or {}).get('display_name')
                )
                playlists.append(playlist)
                logger.debug(f"Found playlist: {playlist.name} ({playlist.total_tracks} tracks)")

            if not results['next']:
                break

            offset += limit

        logger.info(f"Retrieved {len(playlists)} playlists from Spotify")
        return playlists

    def list_tracks(self, playlist_id: str) -> List[Track]:
        """
        List all tracks in a playlist.

        Args:
            playlist_id: Spotify playlist ID

        Returns:
            Tracks in playlist order; podcast episodes and removed tracks are skipped

        Raises:
            Exception: If not authenticated or API call fails
        """
        self._require_auth()

        tracks = []
        offset = 0
        limit = 100

        while True:
            results = self.sp.playlist_items(
                playlist_id,
                offset=offset,
                limit=limit,
                fields=TRACK_FIELDS,
                additional_types=('track',)
            )

            for item in results['items']:
                track_data = item.get('track')
                if not track_data or track_data.get('type', 'track') != 'track':
                    continue
                tracks.append(self._to_track(track_data))

            if not results['next']:
                break

            offset += limit

        logger.info(f"Retrieved {len(tracks)} tracks from playlist {playlist_id}")
        return tracks

    @staticmethod
    def _to_track(track_data: Dict) -> Track:
        """Convert a Spotify track object into a Track."""
        isrc = None
        external_ids = track_data.get('external_ids') or {}
        if 'isrc' in external_ids:
            isrc = external_ids['isrc']

        artists = [
            Artist(id=artist.get('id') or "", name=artist.get('name') or "Unknown Artist")
            for artist in track_data.get('artists') or []
        ]
        if not artists:
            artists = [Artist(id="", name="Unknown Artist")]

        album_data = track_data.get('album') or {}

        return Track(
            id=track_data.get('id') or "",
            title=track_data['name'],
            artists=tuple(artists),
            album=Album(
                id=album_data.get('id') or "",
                name=album_data.get('name') or "",
                release_date=album_data.get('release_date')
            ),
            duration_ms=track_data.get('duration_ms') or 0,
            isrc=isrc,
            explicit=track_data.get('explicit'),
            popularity=track_data.get('popularity')
        )
