"""
Local snapshot of the whole domain state.

A single YAML file holds the latest serialized State. It is read once at
startup and rewritten after every change; it is a fallback cache, not the
source of truth when a record store is configured.
"""
import logging
import os

import yaml
from filelock import FileLock

from futsal.models import EMPTY_STATE, State

logger = logging.getLogger(__name__)

STORAGE_KEY = 'futsal-dashboard-state-v1'
REQUIRED_KEYS = ('players', 'teams', 'matches', 'assignments')


class SnapshotStore:
    def __init__(self, path: str, key: str = STORAGE_KEY):
        self.path = path
        self.key = key
        self._lock = FileLock(f'{path}.lock', timeout=10)

    def load(self) -> State:
        """Load the saved state; anything missing or unreadable gives an empty state."""
        if not os.path.exists(self.path):
            return EMPTY_STATE
        try:
            with self._lock:
                with open(self.path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f)
        except Exception as e:
            logger.warning(f'Failed to read snapshot {self.path}: {e}')
            return EMPTY_STATE
        if not isinstance(data, dict):
            return EMPTY_STATE
        payload = data.get(self.key)
        if not isinstance(payload, dict) or any(k not in payload for k in REQUIRED_KEYS):
            return EMPTY_STATE
        try:
            return State.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f'Discarding malformed snapshot {self.path}: {e}')
            return EMPTY_STATE

    def save(self, state: State):
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        with self._lock:
            with open(self.path, 'w', encoding='utf-8') as f:
                yaml.safe_dump({self.key: state.to_dict()}, f, default_flow_style=False)

    def clear(self):
        with self._lock:
            if os.path.exists(self.path):
                os.remove(self.path)
