"""
Tidal API client using the OpenAPI v2 (JSON:API) endpoints.

Authentication is a bearer token taken from credentials.md; this client never
refreshes it. HTTP failures are raised as requests.HTTPError with the raw
response attached so the retry layer can classify them.
"""

import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote
import requests
from spotify2tidal.errors import PayloadShapeError
from spotify2tidal.models import Album, Artist, TargetPlaylist, Track
from spotify2tidal.utils.logger import get_logger


logger = get_logger()

JSON_API = "application/vnd.api+json"
DEFAULT_COUNTRY_CODE = "US"

ISO8601_DURATION = re.compile(
    r'^P(?:(?P<days>\d+)D)?'
    r'(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$'
)


def parse_iso8601_duration(value) -> int:
    """
    Convert a Tidal duration to milliseconds.

    Tidal v2 sends ISO-8601 strings such as "PT3M54S"; bare numbers are seconds.

    Raises:
        PayloadShapeError: If the value isn't a recognizable duration
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        raise PayloadShapeError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise PayloadShapeError(f"Negative duration: {value!r}")
        return int(round(value * 1000))
    if not isinstance(value, str):
        raise PayloadShapeError(f"Invalid duration: {value!r}")

    match = ISO8601_DURATION.match(value.strip())
    if not match or value.strip() in ('P', 'PT'):
        raise PayloadShapeError(f"Invalid ISO-8601 duration: {value!r}")

    parts = match.groupdict()
    seconds = (
        int(parts['days'] or 0) * 86400
        + int(parts['hours'] or 0) * 3600
        + int(parts['minutes'] or 0) * 60
        + float(parts['seconds'] or 0)
    )
    return int(round(seconds * 1000))


def _document(payload) -> Dict:
    if not isinstance(payload, dict):
        raise PayloadShapeError(f"Expected a JSON:API document, got {type(payload).__name__}")
    return payload


def _included(document: Dict, resource_type: str) -> List[Dict]:
    included = document.get('included') or []
    if not isinstance(included, list):
        raise PayloadShapeError("'included' must be a list")
    return [item for item in included if isinstance(item, dict) and item.get('type') == resource_type]


def _relationship_ids(resource: Dict, name: str) -> List[str]:
    data = ((resource.get('relationships') or {}).get(name) or {}).get('data')
    if not isinstance(data, list):
        return []
    return [str(item['id']) for item in data if isinstance(item, dict) and 'id' in item]


def parse_user(payload) -> Tuple[str, str]:
    """Return (user_id, country_code) from a /users/me document."""
    data = _document(payload).get('data')
    if not isinstance(data, dict) or 'id' not in data:
        raise PayloadShapeError("User document has no data.id")
    attributes = data.get('attributes') or {}
    return str(data['id']), attributes.get('country') or DEFAULT_COUNTRY_CODE


def parse_resource_ids(payload) -> List[str]:
    """Return the ids of a relationship document's data array, in order."""
    data = _document(payload).get('data')
    if data is None:
        return []
    if not isinstance(data, list):
        raise PayloadShapeError("Relationship document 'data' must be a list")
    ids = []
    for item in data:
        if not isinstance(item, dict) or 'id' not in item:
            raise PayloadShapeError(f"Resource identifier without id: {item!r}")
        ids.append(str(item['id']))
    return ids


def parse_track(payload) -> Track:
    """
    Build a Track from a /tracks/{id}?include=artists,albums document.

    Artists keep the order of the track's artists relationship when present.

    Raises:
        PayloadShapeError: If the document isn't a track resource
    """
    document = _document(payload)
    data = document.get('data')
    if not isinstance(data, dict) or 'id' not in data:
        raise PayloadShapeError("Track document has no data.id")
    attributes = data.get('attributes')
    if not isinstance(attributes, dict) or 'title' not in attributes:
        raise PayloadShapeError(f"Track {data['id']} has no title")

    artists_by_id = {str(item['id']): item for item in _included(document, 'artists') if 'id' in item}
    order = [artist_id for artist_id in _relationship_ids(data, 'artists') if artist_id in artists_by_id]
    if not order:
        order = list(artists_by_id)
    artists = tuple(
        Artist(id=artist_id, name=(artists_by_id[artist_id].get('attributes') or {}).get('name') or 'Unknown Artist')
        for artist_id in order
    )
    if not artists:
        artists = (Artist(id="", name='Unknown Artist'),)

    albums = _included(document, 'albums')
    album_ids = _relationship_ids(data, 'albums')
    album_data = next((a for a in albums if str(a.get('id')) in album_ids), albums[0] if albums else None)
    if album_data:
        album_attributes = album_data.get('attributes') or {}
        album = Album(
            id=str(album_data.get('id', '')),
            name=album_attributes.get('title') or 'Unknown Album',
            release_date=album_attributes.get('releaseDate')
        )
    else:
        album = Album(id="", name='Unknown Album')

    availability = attributes.get('availability')
    available = None
    if isinstance(availability, list):
        available = 'STREAM' in availability

    return Track(
        id=str(data['id']),
        title=attributes['title'],
        artists=artists,
        album=album,
        duration_ms=parse_iso8601_duration(attributes.get('duration')),
        isrc=attributes.get('isrc'),
        explicit=attributes.get('explicit'),
        popularity=attributes.get('popularity'),
        available=available
    )


def parse_playlists(payload) -> List[TargetPlaylist]:
    """Playlists included in a userCollections playlists document."""
    playlists = []
    for item in _included(_document(payload), 'playlists'):
        attributes = item.get('attributes') or {}
        if 'id' not in item or 'name' not in attributes:
            raise PayloadShapeError(f"Playlist resource without id or name: {item!r}")
        playlists.append(TargetPlaylist(
            id=str(item['id']),
            name=attributes['name'],
            number_of_tracks=attributes.get('numberOfItems') or 0,
            description=attributes.get('description') or ""
        ))
    return playlists


def next_link(payload) -> Optional[str]:
    links = _document(payload).get('links') or {}
    return links.get('next') if isinstance(links, dict) else None


def build_search_query(artist: str, title: str) -> str:
    """Artist and title only, stripped of characters the search endpoint chokes on."""
    query = f"{artist} {title}"
    query = re.sub(r"[^\w\s\-'.?+]", ' ', query)
    return re.sub(r'\s+', ' ', query).strip()


class TidalClient:
    """
    Client for interacting with the Tidal OpenAPI v2.

    Durations arrive as ISO-8601 strings and are converted to milliseconds
    when parsed, so Tracks from both catalogs compare directly.
    """

    BASE_URL = "https://openapi.tidal.com/v2"

    def __init__(self, access_token: str, search_limit: int = 5, timeout: float = 10):
        """
        Initialize Tidal client.

        Args:
            access_token: OAuth bearer token for the Tidal API
            search_limit: How many search hits are expanded into full tracks
            timeout: Per-request timeout in seconds
        """
        self.access_token = access_token
        self.search_limit = search_limit
        self.timeout = timeout
        self.user_id: Optional[str] = None
        self.country_code: Optional[str] = None

        self._session = requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {self.access_token}",
            "Accept": JSON_API,
            "Content-Type": JSON_API,
        })

    def authenticate(self) -> None:
        """
        Validate the token and cache the user id and country code.

        Raises:
            requests.HTTPError: If the token is rejected
        """
        payload = self._make_request("GET", "/users/me")
        self.user_id, self.country_code = parse_user(payload)
        logger.info(f"✅ Authenticated with Tidal (user {self.user_id}, country {self.country_code})")

    def _ensure_user(self) -> None:
        if self.user_id is None:
            self.authenticate()

    def _make_request(
        self,
        method: str,
        path: str,
        params: Dict = None,
        json_body: Dict = None
    ) -> Optional[Dict]:
        """
        Make authenticated request to Tidal API.

        Args:
            method: HTTP method
            path: Endpoint path or an absolute URL (pagination links)
            params: Query parameters
            json_body: JSON:API request document

        Returns:
            Response JSON, or None for empty responses

        Raises:
            requests.HTTPError: For non-2xx responses
            PayloadShapeError: If the body isn't JSON
        """
        if not self.access_token:
            raise Exception("No Tidal access token configured")

        url = path if path.startswith("http") else f"{self.BASE_URL}{path}"
        response = self._session.request(method, url, params=params, json=json_body, timeout=self.timeout)

        if not response.ok:
            logger.debug(f"Tidal {method} {path} failed with {response.status_code}: {response.text[:200]}")
        response.raise_for_status()

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise PayloadShapeError(f"Non-JSON response from Tidal for {path}")

    def _paginate(self, path: str, params: Dict) -> List[Dict]:
        """Follow links.next until exhausted, returning every page."""
        pages = []
        payload = self._make_request("GET", path, params)
        while payload is not None:
            pages.append(payload)
            link = next_link(payload)
            if not link:
                break
            payload = self._make_request("GET", link)
        return pages

    def search_tracks(self, artist: str, title: str) -> List[Track]:
        """
        Search the catalog and expand the first hits into full tracks.

        Args:
            artist: Artist name
            title: Track title

        Returns:
            Up to search_limit tracks in search order
        """
        self._ensure_user()
        query = build_search_query(artist, title)
        if not query:
            return []

        payload = self._make_request(
            "GET",
            f"/searchResults/{quote(query, safe='')}/relationships/tracks",
            params={'countryCode': self.country_code, 'include': 'tracks'}
        )
        track_ids = parse_resource_ids(payload)[:self.search_limit]

        tracks = []
        for track_id in track_ids:
            try:
                tracks.append(self.get_track(track_id))
            except requests.HTTPError as e:
                if e.response is not None and e.response.status_code == 404:
                    logger.debug(f"Search hit {track_id} no longer exists, skipping")
                    continue
                raise

        logger.debug(f"Tidal search '{query}' returned {len(tracks)} tracks")
        return tracks

    def get_track(self, track_id: str) -> Track:
        """Fetch one track with its artists and album."""
        self._ensure_user()
        payload = self._make_request(
            "GET",
            f"/tracks/{track_id}",
            params={'countryCode': self.country_code, 'include': 'artists,albums'}
        )
        return parse_track(payload)

    def verify_track_availability(self, track_id: str) -> bool:
        """
        Check whether a track can be streamed in the user's country.

        Returns:
            False when the track is gone or not streamable
        """
        try:
            track = self.get_track(track_id)
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                return False
            raise
        return track.available is not False

    def create_playlist(self, name: str, description: str = "") -> str:
        """
        Create a new public playlist.

        Returns:
            The new playlist's id
        """
        self._ensure_user()
        body = {
            'data': {
                'type': 'playlists',
                'attributes': {
                    'name': name,
                    'description': description or "",
                    'accessType': 'PUBLIC'
                }
            }
        }
        payload = self._make_request("POST", "/playlists", params={'countryCode': self.country_code}, json_body=body)
        data = _document(payload).get('data')
        if not isinstance(data, dict) or 'id' not in data:
            raise PayloadShapeError("Create playlist response has no data.id")

        playlist_id = str(data['id'])
        logger.info(f"Created Tidal playlist: {name} (ID: {playlist_id})")
        return playlist_id

    def list_playlists(self) -> List[TargetPlaylist]:
        """All playlists in the user's collection."""
        self._ensure_user()
        pages = self._paginate(
            f"/userCollections/{self.user_id}/relationships/playlists",
            {'countryCode': self.country_code, 'include': 'playlists'}
        )
        playlists = []
        for page in pages:
            playlists.extend(parse_playlists(page))

        logger.info(f"Found {len(playlists)} Tidal playlists")
        return playlists

    def list_playlist_track_ids(self, playlist_id: str) -> List[str]:
        """Ids of every item in a playlist, in playlist order."""
        self._ensure_user()
        pages = self._paginate(
            f"/playlists/{playlist_id}/relationships/items",
            {'countryCode': self.country_code}
        )
        track_ids = []
        for page in pages:
            track_ids.extend(parse_resource_ids(page))

        logger.debug(f"Found {len(track_ids)} tracks in playlist {playlist_id}")
        return track_ids

    def add_tracks(self, playlist_id: str, track_ids: List[str]) -> None:
        """Append tracks to a playlist in one request."""
        if not track_ids:
            return
        self._ensure_user()
        body = {'data': [{'id': str(track_id), 'type': 'tracks'} for track_id in track_ids]}
        self._make_request(
            "POST",
            f"/playlists/{playlist_id}/relationships/items",
            params={'countryCode': self.country_code},
            json_body=body
        )
        logger.debug(f"Added {len(track_ids)} tracks to playlist {playlist_id}")

    def remove_tracks(self, playlist_id: str, track_ids: List[str]) -> None:
        """Remove tracks from a playlist in one request."""
        if not track_ids:
            return
        self._ensure_user()
        body = {'data': [{'id': str(track_id), 'type': 'tracks'} for track_id in track_ids]}
        self._make_request(
            "DELETE",
            f"/playlists/{playlist_id}/relationships/items",
            params={'countryCode': self.country_code},
            json_body=body
        )
        logger.debug(f"Removed {len(track_ids)} tracks from playlist {playlist_id}")
