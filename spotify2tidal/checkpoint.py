"""Checkpoint stores used to resume an interrupted sync."""

import json
from pathlib import Path
from typing import Dict, Optional, Protocol

from spotify2tidal.utils.logger import get_logger


logger = get_logger()


class CheckpointStore(Protocol):
    """Anything that can persist and restore the sync state."""

    def save(self, state: Dict) -> None: ...

    def load(self) -> Optional[Dict]: ...


class MemoryCheckpointStore:
    """Keeps the last saved state in memory."""

    def __init__(self, state: Optional[Dict] = None):
        self.state = state
        self.saves = 0

    def save(self, state: Dict) -> None:
        self.state = json.loads(json.dumps(state))
        self.saves += 1

    def load(self) -> Optional[Dict]:
        return self.state


class JsonFileCheckpointStore:
    """Stores the sync state as a JSON file."""

    def __init__(self, path: str = ".spotify-tidal-progress/progress.json"):
        self.path = Path(path)

    def save(self, state: Dict) -> None:
        """Write the state; failures are logged, never raised."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(state, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.warning(f"Could not save sync progress to {self.path}: {e}")

    def load(self) -> Optional[Dict]:
        """Read the state, or None when missing or unreadable."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                state = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable sync progress file {self.path}: {e}")
            return None
        return state if isinstance(state, dict) else None
