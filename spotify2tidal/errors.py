"""Error taxonomy for catalog API failures."""

from enum import Enum
from typing import Any, Dict, Mapping, Optional

import requests
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOauthError


# Fallback wait when a 429 response carries no usable Retry-After header
DEFAULT_RATE_LIMIT_DELAY_MS = 5000

OAUTH_ERROR_CODES = {
    'invalid_client',
    'invalid_request',
    'invalid_grant',
    'unsupported_grant_type',
}

NETWORK_ERROR_CODES = (
    'ECONNRESET',
    'ETIMEDOUT',
    'ENOTFOUND',
    'ECONNREFUSED',
    'EHOSTUNREACH',
    'ENETUNREACH',
    'EAI_AGAIN',
)


class ErrorKind(str, Enum):
    """Classification of a failed remote call."""
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    SERVICE_UNAVAILABLE = "service_unavailable"
    CLIENT_ERROR = "client_error"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = {
    ErrorKind.RATE_LIMIT,
    ErrorKind.NETWORK,
    ErrorKind.SERVICE_UNAVAILABLE,
}


class PayloadShapeError(ValueError):
    """Raised when a catalog response doesn't have the expected envelope."""
    pass


class SyncCancelledError(Exception):
    """Raised inside the executor once a shutdown has been requested."""
    pass


class ClassifiedError(Exception):
    """
    A remote failure mapped onto the error taxonomy.

    Instances come from classify_error(); callers inspect ``kind`` and
    ``retryable`` instead of the underlying transport exception.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        service: str = "catalog",
        retry_after_ms: Optional[int] = None,
        status_code: Optional[int] = None,
        original: Optional[BaseException] = None,
        attempts: int = 1
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.service = service
        self.retry_after_ms = retry_after_ms
        self.status_code = status_code
        self.original = original
        self.attempts = attempts

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def is_auth(self) -> bool:
        return self.kind == ErrorKind.AUTH

    def __repr__(self) -> str:
        return f"ClassifiedError(kind={self.kind.value}, status={self.status_code}, message={self.message!r})"


class RetryExhaustedError(ClassifiedError):
    """The last classified failure of an operation that ran out of attempts."""

    def __init__(self, last_error: ClassifiedError, attempts: int, operation_name: Optional[str] = None):
        target = f" for {operation_name}" if operation_name else ""
        super().__init__(
            kind=last_error.kind,
            message=f"Failed after {attempts} attempts{target}. Last error: {last_error.message}",
            service=last_error.service,
            retry_after_ms=last_error.retry_after_ms,
            status_code=last_error.status_code,
            original=last_error.original,
            attempts=attempts
        )
        self.last_error = last_error

    @property
    def retryable(self) -> bool:
        return False


def classify_error(error: BaseException, service: str = "catalog") -> ClassifiedError:
    """
    Map a raw failure onto the error taxonomy.

    Args:
        error: Exception raised by a catalog client
        service: Name of the catalog, used in messages

    Returns:
        ClassifiedError describing the failure
    """
    if isinstance(error, ClassifiedError):
        return error

    if isinstance(error, PayloadShapeError):
        return ClassifiedError(
            ErrorKind.CLIENT_ERROR,
            f"Unexpected {service} response: {error}",
            service=service,
            original=error
        )

    if isinstance(error, SpotifyOauthError):
        return ClassifiedError(
            ErrorKind.AUTH,
            f"{service} authorization failed: {error}",
            service=service,
            original=error
        )

    status, headers, body = _http_details(error)
    if status is not None:
        return _classify_status(error, status, headers, body, service)

    if _is_network_error(error):
        return ClassifiedError(
            ErrorKind.NETWORK,
            f"Network error: {error}",
            service=service,
            original=error
        )

    return ClassifiedError(
        ErrorKind.UNKNOWN,
        str(error) or error.__class__.__name__,
        service=service,
        original=error
    )


def friendly_message(error: ClassifiedError) -> str:
    """User facing hint for a classified error."""
    service = error.service.capitalize()
    if error.kind == ErrorKind.AUTH:
        return f"{service} authentication failed. Check the credentials in credentials.md and try again."
    if error.kind == ErrorKind.RATE_LIMIT:
        return f"{service} is rate limiting requests. The sync retries automatically after the required delay."
    if error.kind == ErrorKind.NETWORK:
        return "Network connection error. Check your internet connection and try again."
    if error.kind == ErrorKind.SERVICE_UNAVAILABLE:
        return f"{service} is temporarily unavailable. Please try again later."
    return error.message


def parse_retry_after(headers: Optional[Mapping]) -> Optional[int]:
    """Retry-After header (seconds) converted to milliseconds, if present."""
    if not headers:
        return None
    value = None
    for key in headers:
        if str(key).lower() == 'retry-after':
            value = headers[key]
            break
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return int(seconds * 1000)


def _http_details(error: BaseException):
    """Extract (status, headers, body) from requests / spotipy errors."""
    if isinstance(error, SpotifyException):
        status = error.http_status if error.http_status and error.http_status > 0 else None
        body = {'error': error.code, 'error_description': error.msg}
        return status, error.headers or {}, body

    response = getattr(error, 'response', None)
    if isinstance(error, requests.RequestException) and response is not None:
        return response.status_code, response.headers, _response_body(response)

    return None, {}, None


def _response_body(response: requests.Response) -> Optional[Any]:
    try:
        return response.json()
    except ValueError:
        return None


def _classify_status(
    error: BaseException,
    status: int,
    headers: Mapping,
    body: Optional[Any],
    service: str
) -> ClassifiedError:
    details = body if isinstance(body, dict) else {}
    description = details.get('error_description') or details.get('error')
    if not isinstance(description, str):
        description = None

    if status == 429:
        retry_after_ms = parse_retry_after(headers)
        wait = f"{retry_after_ms}ms" if retry_after_ms is not None else "a fallback delay"
        return ClassifiedError(
            ErrorKind.RATE_LIMIT,
            f"Rate limit reached on {service}. Retry after {wait}",
            service=service,
            retry_after_ms=retry_after_ms,
            status_code=status,
            original=error
        )

    if status == 401:
        return ClassifiedError(
            ErrorKind.AUTH,
            description or "Authentication failed - invalid or expired credentials",
            service=service,
            status_code=status,
            original=error
        )

    if status == 403:
        return ClassifiedError(
            ErrorKind.AUTH,
            description or "Access forbidden - insufficient permissions",
            service=service,
            status_code=status,
            original=error
        )

    if status == 400 and details.get('error') in OAUTH_ERROR_CODES:
        return ClassifiedError(
            ErrorKind.AUTH,
            description or "Invalid client credentials",
            service=service,
            status_code=status,
            original=error
        )

    if status >= 500:
        return ClassifiedError(
            ErrorKind.SERVICE_UNAVAILABLE,
            f"{service} unavailable ({status}): {error}",
            service=service,
            status_code=status,
            original=error
        )

    if 400 <= status < 500:
        return ClassifiedError(
            ErrorKind.CLIENT_ERROR,
            description or f"Client error ({status}): {error}",
            service=service,
            status_code=status,
            original=error
        )

    return ClassifiedError(
        ErrorKind.UNKNOWN,
        f"HTTP error ({status}): {error}",
        service=service,
        status_code=status,
        original=error
    )


def _is_network_error(error: BaseException) -> bool:
    if isinstance(error, (requests.ConnectionError, requests.Timeout, ConnectionError, TimeoutError)):
        return True
    message = str(error)
    code = getattr(error, 'code', None)
    return any(name in message or code == name for name in NETWORK_ERROR_CODES)
