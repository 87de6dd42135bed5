"""Unit tests for error classification."""

import json
import pytest
import requests
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOauthError
from spotify2tidal.errors import (
    ClassifiedError,
    ErrorKind,
    PayloadShapeError,
    RetryExhaustedError,
    classify_error,
    friendly_message,
    parse_retry_after,
)


def http_error(status, headers=None, body=None):
    """Build a requests.HTTPError carrying a real Response."""
    response = requests.Response()
    response.status_code = status
    response.headers.update(headers or {})
    response._content = json.dumps(body).encode() if body is not None else b""
    return requests.HTTPError(f"{status} Error", response=response)


class TestClassifyHttpErrors:
    """Test cases for HTTP status classification."""

    def test_rate_limit_with_retry_after(self):
        error = classify_error(http_error(429, {'Retry-After': '2'}), "tidal")

        assert error.kind == ErrorKind.RATE_LIMIT
        assert error.retryable
        assert error.retry_after_ms == 2000
        assert error.status_code == 429
        assert error.service == "tidal"

    def test_rate_limit_without_retry_after(self):
        error = classify_error(http_error(429))

        assert error.kind == ErrorKind.RATE_LIMIT
        assert error.retry_after_ms is None

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses(self, status):
        error = classify_error(http_error(status))

        assert error.kind == ErrorKind.AUTH
        assert error.is_auth
        assert not error.retryable

    def test_oauth_error_code_on_400_is_auth(self):
        error = classify_error(http_error(400, body={'error': 'invalid_grant', 'error_description': 'Refresh token revoked'}))

        assert error.kind == ErrorKind.AUTH
        assert error.message == 'Refresh token revoked'

    def test_plain_400_is_client_error(self):
        error = classify_error(http_error(400, body={'errors': [{'detail': 'bad id'}]}))

        assert error.kind == ErrorKind.CLIENT_ERROR
        assert not error.retryable

    def test_404_is_client_error(self):
        assert classify_error(http_error(404)).kind == ErrorKind.CLIENT_ERROR

    @pytest.mark.parametrize("status", [500, 502, 503])
    def test_server_errors_are_retryable(self, status):
        error = classify_error(http_error(status))

        assert error.kind == ErrorKind.SERVICE_UNAVAILABLE
        assert error.retryable

    def test_original_error_kept(self):
        raw = http_error(503)
        assert classify_error(raw).original is raw


class TestClassifySpotifyErrors:
    """Test cases for spotipy exceptions."""

    def test_spotify_rate_limit(self):
        raw = SpotifyException(429, -1, "rate limited", headers={'Retry-After': '3'})

        error = classify_error(raw, "spotify")

        assert error.kind == ErrorKind.RATE_LIMIT
        assert error.retry_after_ms == 3000

    def test_spotify_expired_token(self):
        raw = SpotifyException(401, -1, "The access token expired")
        assert classify_error(raw).kind == ErrorKind.AUTH

    def test_spotify_oauth_error(self):
        raw = SpotifyOauthError("invalid_client", error="invalid_client")
        assert classify_error(raw).kind == ErrorKind.AUTH


class TestClassifyOtherErrors:
    """Test cases for non-HTTP failures."""

    def test_requests_connection_error(self):
        assert classify_error(requests.ConnectionError("boom")).kind == ErrorKind.NETWORK

    def test_requests_timeout(self):
        assert classify_error(requests.Timeout("slow")).kind == ErrorKind.NETWORK

    def test_network_code_in_message(self):
        assert classify_error(RuntimeError("socket hang up: ECONNRESET")).kind == ErrorKind.NETWORK

    def test_payload_shape_error(self):
        error = classify_error(PayloadShapeError("no data"), "tidal")

        assert error.kind == ErrorKind.CLIENT_ERROR
        assert not error.retryable

    def test_unknown(self):
        error = classify_error(RuntimeError("weird"))

        assert error.kind == ErrorKind.UNKNOWN
        assert error.message == "weird"
        assert not error.retryable

    def test_already_classified_passes_through(self):
        error = ClassifiedError(ErrorKind.NETWORK, "down")
        assert classify_error(error) is error


class TestRetryExhaustedError:
    """Test cases for RetryExhaustedError."""

    def test_keeps_last_error(self):
        last = ClassifiedError(ErrorKind.SERVICE_UNAVAILABLE, "503 from tidal", service="tidal", status_code=503)

        error = RetryExhaustedError(last, 3, "addTracks")

        assert error.message == "Failed after 3 attempts for addTracks. Last error: 503 from tidal"
        assert error.last_error is last
        assert error.kind == ErrorKind.SERVICE_UNAVAILABLE
        assert error.attempts == 3
        assert not error.retryable


class TestHelpers:
    """Test cases for parse_retry_after and friendly_message."""

    @pytest.mark.parametrize("headers,expected", [
        ({'Retry-After': '5'}, 5000),
        ({'retry-after': '1.5'}, 1500),
        ({'Retry-After': 'soon'}, None),
        ({'Retry-After': '-1'}, None),
        ({}, None),
        (None, None),
    ])
    def test_parse_retry_after(self, headers, expected):
        assert parse_retry_after(headers) == expected

    def test_friendly_auth_message(self):
        error = ClassifiedError(ErrorKind.AUTH, "401", service="tidal")
        assert "Tidal authentication failed" in friendly_message(error)

    def test_friendly_message_falls_back_to_message(self):
        error = ClassifiedError(ErrorKind.CLIENT_ERROR, "Playlist not found")
        assert friendly_message(error) == "Playlist not found"
