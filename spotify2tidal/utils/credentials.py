"""Credentials parser for reading credentials from credentials.md file."""

import os
import re
from typing import Dict


REQUIRED_KEYS = [
    'SPOTIFY_CLIENT_ID',
    'SPOTIFY_CLIENT_SECRET',
    'SPOTIFY_REDIRECT_URI',
    'TIDAL_ACCESS_TOKEN'
]

# Accepts both KEY=value and "KEY = value"
CREDENTIAL_LINE = re.compile(r'^\s*([A-Z][A-Z0-9_]*)\s*=\s*(.+?)\s*$', re.MULTILINE)


class CredentialsError(Exception):
    """Exception raised when credentials cannot be parsed."""
    pass


def parse_credentials(credentials_path: str = "credentials.md") -> Dict[str, str]:
    """
    Parse credentials from credentials.md file.

    Besides the required keys, any other KEY=VALUE line is returned as well so
    optional sync tuning (SYNC_BATCH_SIZE, SYNC_MAX_RETRIES, ...) can live in
    the same file.

    Args:
        credentials_path: Path to the credentials file (default: credentials.md)

    Returns:
        Dictionary containing credentials with keys:
        - SPOTIFY_CLIENT_ID
        - SPOTIFY_CLIENT_SECRET
        - SPOTIFY_REDIRECT_URI
        - TIDAL_ACCESS_TOKEN

    Raises:
        CredentialsError: If file not found or required credentials are missing
    """
    if not os.path.exists(credentials_path):
        raise CredentialsError(f"Credentials file not found: {credentials_path}")

    with open(credentials_path, 'r', encoding='utf-8') as f:
        content = f.read()

    credentials = {}
    for key, value in CREDENTIAL_LINE.findall(content):
        credentials[key] = value.strip()

    missing_keys = [key for key in REQUIRED_KEYS if not credentials.get(key)]
    if missing_keys:
        raise CredentialsError(
            f"Missing required credentials: {', '.join(missing_keys)}"
        )

    return credentials
