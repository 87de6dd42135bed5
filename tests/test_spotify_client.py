"""Unit tests for Spotify client."""

import json
import pytest
import requests
from unittest.mock import Mock, patch
from spotipy.exceptions import SpotifyException
from spotify2tidal.errors import ErrorKind, classify_error
from spotify2tidal.spotify_client import SpotifyClient


def api_response(status, body, headers=None):
    response = requests.Response()
    response.status_code = status
    response.headers.update(headers or {})
    response._content = json.dumps(body).encode()
    response.url = "https://api.spotify.com/v1/me/playlists"
    return response


def track_item(name, artists=('Artist 1',), duration_ms=180000, isrc=None, track_type='track'):
    return {
        'track': {
            'id': f"id-{name}",
            'name': name,
            'type': track_type,
            'artists': [{'id': f"a-{artist}", 'name': artist} for artist in artists],
            'album': {'id': 'al1', 'name': 'Album 1', 'release_date': '2020-01-01'},
            'duration_ms': duration_ms,
            'external_ids': {'isrc': isrc} if isrc else {},
            'explicit': False,
            'popularity': 55,
        }
    }


@pytest.fixture
def spotify_client():
    """Create a Spotify client instance."""
    return SpotifyClient(
        client_id="test_client_id",
        client_secret="test_client_secret",
        redirect_uri="http://localhost:8888/callback"
    )


@pytest.fixture
def mock_spotify():
    """Create a mock Spotify API object."""
    mock = Mock()
    mock.current_user.return_value = {'display_name': 'Test User'}
    return mock


class TestSpotifyClient:
    """Test cases for SpotifyClient."""

    def test_init(self, spotify_client):
        """Test client initialization."""
        assert spotify_client.client_id == "test_client_id"
        assert spotify_client.client_secret == "test_client_secret"
        assert spotify_client.redirect_uri == "http://localhost:8888/callback"
        assert spotify_client.sp is None

    @patch('spotify2tidal.spotify_client.spotipy.Spotify')
    @patch('spotify2tidal.spotify_client.SpotifyOAuth')
    def test_authenticate_user_success(self, mock_oauth, mock_spotify_class, spotify_client):
        """Test successful user authentication."""
        mock_sp = Mock()
        mock_sp.current_user.return_value = {'display_name': 'Test User'}
        mock_spotify_class.return_value = mock_sp

        spotify_client.authenticate_user()

        assert spotify_client.sp == mock_sp
        mock_oauth.assert_called_once()
        assert "playlist-read-private" in mock_oauth.call_args.kwargs['scope']
        # A plain session: no urllib3 Retry adapter swallowing 429 headers
        session = mock_spotify_class.call_args.kwargs['requests_session']
        assert type(session) is requests.Session
        assert 'retries' not in mock_spotify_class.call_args.kwargs

    @patch('spotify2tidal.spotify_client.spotipy.Spotify')
    @patch('spotify2tidal.spotify_client.SpotifyOAuth')
    def test_authenticate_user_failure(self, mock_oauth, mock_spotify_class, spotify_client):
        """Test authentication failure."""
        mock_spotify_class.side_effect = Exception("Auth failed")

        with pytest.raises(Exception, match="Auth failed"):
            spotify_client.authenticate_user()

    def test_list_playlists_not_authenticated(self, spotify_client):
        """Test listing playlists without authentication."""
        with pytest.raises(Exception, match="Not authenticated"):
            spotify_client.list_playlists()

    def test_list_playlists_single_page(self, spotify_client, mock_spotify):
        """Playlists are returned as Playlist models with their track totals."""
        spotify_client.sp = mock_spotify
        mock_spotify.current_user_playlists.return_value = {
            'items': [
                {'id': 'p1', 'name': 'Playlist 1', 'description': 'Mine', 'tracks': {'total': 10},
                 'owner': {'display_name': 'Test User'}},
                {'id': 'p2', 'name': 'Playlist 2', 'description': None, 'tracks': {'total': 20}},
            ],
            'next': None
        }

        playlists = spotify_client.list_playlists()

        assert [p.id for p in playlists] == ['p1', 'p2']
        assert playlists[0].total_tracks == 10
        assert playlists[0].owner == 'Test User'
        assert playlists[1].description == ""
        assert playlists[1].tracks == []

    def test_list_playlists_multiple_pages(self, spotify_client, mock_spotify):
        """Test listing playlists with pagination."""
        spotify_client.sp = mock_spotify
        mock_spotify.current_user_playlists.side_effect = [
            {'items': [{'id': 'p1', 'name': 'Playlist 1', 'tracks': {'total': 10}}], 'next': 'next_page_url'},
            {'items': [{'id': 'p2', 'name': 'Playlist 2', 'tracks': {'total': 20}}], 'next': None},
        ]

        playlists = spotify_client.list_playlists()

        assert len(playlists) == 2
        assert mock_spotify.current_user_playlists.call_count == 2
        assert mock_spotify.current_user_playlists.call_args_list[1].kwargs['offset'] == 50

    def test_list_tracks_not_authenticated(self, spotify_client):
        """Test listing tracks without authentication."""
        with pytest.raises(Exception, match="Not authenticated"):
            spotify_client.list_tracks('playlist_id')

    def test_list_tracks_full_metadata(self, spotify_client, mock_spotify):
        """Every artist, the album and the ISRC are kept."""
        spotify_client.sp = mock_spotify
        mock_spotify.playlist_items.return_value = {
            'items': [track_item('Track 1', artists=('Artist 1', 'Artist 2'), isrc='USRC17607839')],
            'next': None
        }

        tracks = spotify_client.list_tracks('playlist_id')

        track = tracks[0]
        assert track.title == 'Track 1'
        assert track.artist_names == ['Artist 1', 'Artist 2']
        assert track.album.name == 'Album 1'
        assert track.album.release_date == '2020-01-01'
        assert track.duration_ms == 180000
        assert track.isrc == 'USRC17607839'
        assert track.popularity == 55

    def test_list_tracks_without_isrc(self, spotify_client, mock_spotify):
        """Test listing tracks without ISRC codes."""
        spotify_client.sp = mock_spotify
        mock_spotify.playlist_items.return_value = {'items': [track_item('Track 1')], 'next': None}

        tracks = spotify_client.list_tracks('playlist_id')

        assert tracks[0].isrc is None

    def test_list_tracks_skips_null_tracks_and_episodes(self, spotify_client, mock_spotify):
        """Removed tracks and podcast episodes are skipped."""
        spotify_client.sp = mock_spotify
        mock_spotify.playlist_items.return_value = {
            'items': [
                {'track': None},
                track_item('Episode', track_type='episode'),
                track_item('Track 1'),
            ],
            'next': None
        }

        tracks = spotify_client.list_tracks('playlist_id')

        assert [t.title for t in tracks] == ['Track 1']

    def test_list_tracks_without_artists(self, spotify_client, mock_spotify):
        spotify_client.sp = mock_spotify
        mock_spotify.playlist_items.return_value = {'items': [track_item('Track 1', artists=())], 'next': None}

        tracks = spotify_client.list_tracks('playlist_id')

        assert tracks[0].artist_names == ['Unknown Artist']

    def test_list_tracks_pagination(self, spotify_client, mock_spotify):
        """Test listing tracks with pagination."""
        spotify_client.sp = mock_spotify
        mock_spotify.playlist_items.side_effect = [
            {'items': [track_item('Track 1')], 'next': 'next_page'},
            {'items': [track_item('Track 2', duration_ms=200000)], 'next': None},
        ]

        tracks = spotify_client.list_tracks('playlist_id')

        assert [t.title for t in tracks] == ['Track 1', 'Track 2']
        assert mock_spotify.playlist_items.call_count == 2

    def test_api_errors_propagate_unmodified(self, spotify_client, mock_spotify):
        """SpotifyException reaches the caller so it can be classified."""
        spotify_client.sp = mock_spotify
        error = SpotifyException(429, -1, "rate limited", headers={'Retry-After': '1'})
        mock_spotify.playlist_items.side_effect = error

        with pytest.raises(SpotifyException) as exc_info:
            spotify_client.list_tracks('playlist_id')

        assert exc_info.value is error

    @patch('spotify2tidal.spotify_client.SpotifyOAuth')
    def test_rate_limit_keeps_retry_after(self, mock_oauth, spotify_client):
        """A 429 from the API reaches the caller with the server's Retry-After."""
        mock_oauth.return_value.get_access_token.return_value = "token"
        responses = [
            api_response(200, {'display_name': 'Test User'}),
            api_response(429, {'error': {'status': 429, 'message': 'API rate limit exceeded'}},
                         headers={'Retry-After': '7'}),
        ]

        with patch.object(requests.Session, 'request', side_effect=responses):
            spotify_client.authenticate_user()
            with pytest.raises(SpotifyException) as exc_info:
                spotify_client.list_playlists()

        assert exc_info.value.http_status == 429
        error = classify_error(exc_info.value, "spotify")
        assert error.kind == ErrorKind.RATE_LIMIT
        assert error.retry_after_ms == 7000
