"""Sync configuration defaults and overrides from credentials.md."""

from dataclasses import dataclass, field
from typing import Dict

from spotify2tidal.batching import DEFAULT_BATCH_SIZE, DEFAULT_INTER_BATCH_DELAY_MS
from spotify2tidal.retry import DEFAULT_RETRY_POLICY, RetryPolicy


CREDENTIALS_FILE = "credentials.md"
PROGRESS_FILE = ".spotify-tidal-progress/progress.json"
LOG_DIR = "sync_logs"


@dataclass
class SyncConfig:
    """Tuning knobs for a sync run."""
    batch_size: int = DEFAULT_BATCH_SIZE
    inter_batch_delay_ms: int = DEFAULT_INTER_BATCH_DELAY_MS
    remove_batch_delay_ms: int = 500
    resolution_group_size: int = 10
    inter_group_delay_ms: int = 100
    verify_availability: bool = True
    shutdown_grace_seconds: float = 30.0
    resume_window_hours: float = 24.0
    retry_policy: RetryPolicy = field(default_factory=lambda: DEFAULT_RETRY_POLICY)

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.resolution_group_size < 1:
            raise ValueError("resolution_group_size must be at least 1")
        # Parallel lookups never exceed one write batch
        self.resolution_group_size = min(self.resolution_group_size, self.batch_size)

    @classmethod
    def from_credentials(cls, credentials: Dict[str, str]) -> "SyncConfig":
        """
        Build a config from optional SYNC_* keys in the credentials file.

        Recognized keys: SYNC_BATCH_SIZE, SYNC_BATCH_DELAY_MS, SYNC_GROUP_SIZE,
        SYNC_GROUP_DELAY_MS, SYNC_VERIFY_AVAILABILITY, SYNC_MAX_RETRIES,
        SYNC_RETRY_BASE_DELAY_MS, SYNC_RETRY_MAX_DELAY_MS, SYNC_RETRY_JITTER.

        Raises:
            ValueError: If a value can't be parsed
        """
        defaults = cls()
        policy = RetryPolicy(
            max_attempts=_int(credentials, 'SYNC_MAX_RETRIES', defaults.retry_policy.max_attempts),
            base_delay_ms=_int(credentials, 'SYNC_RETRY_BASE_DELAY_MS', defaults.retry_policy.base_delay_ms),
            max_delay_ms=_int(credentials, 'SYNC_RETRY_MAX_DELAY_MS', defaults.retry_policy.max_delay_ms),
            backoff_multiplier=defaults.retry_policy.backoff_multiplier,
            jitter_enabled=_bool(credentials, 'SYNC_RETRY_JITTER', defaults.retry_policy.jitter_enabled),
        )
        return cls(
            batch_size=_int(credentials, 'SYNC_BATCH_SIZE', defaults.batch_size),
            inter_batch_delay_ms=_int(credentials, 'SYNC_BATCH_DELAY_MS', defaults.inter_batch_delay_ms),
            resolution_group_size=_int(credentials, 'SYNC_GROUP_SIZE', defaults.resolution_group_size),
            inter_group_delay_ms=_int(credentials, 'SYNC_GROUP_DELAY_MS', defaults.inter_group_delay_ms),
            verify_availability=_bool(credentials, 'SYNC_VERIFY_AVAILABILITY', defaults.verify_availability),
            retry_policy=policy,
        )


def _int(values: Dict[str, str], key: str, default: int) -> int:
    raw = values.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


def _bool(values: Dict[str, str], key: str, default: bool) -> bool:
    raw = values.get(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')
