"""
Integration settings: endpoints, ports and data roots of managed applications.

Values saved at runtime live in ``integrations.json`` under the state
directory and override the configured defaults.
"""

import os
import json
import logging
import threading
from typing import Any, Dict, Optional


logger = logging.getLogger('nas_orchestrator.settings')

SETTINGS_FILE = "integrations.json"


class IntegrationSettings:
    """Key/value store for integration settings."""

    def __init__(self, defaults: Dict[str, Any], state_dir: Optional[str] = None):
        self.defaults = dict(defaults)
        self.state_dir = state_dir
        self.values: Dict[str, Any] = {}
        self.lock = threading.Lock()

        if self.state_dir:
            os.makedirs(self.state_dir, exist_ok=True)
            path = self._path()
            if os.path.exists(path):
                with open(path, 'r') as f:
                    self.values = json.load(f)

    def _path(self) -> str:
        return os.path.join(self.state_dir, SETTINGS_FILE)

    def get_raw(self) -> Dict[str, Any]:
        """All settings, stored values over defaults."""
        with self.lock:
            merged = dict(self.defaults)
            merged.update(self.values)
            return merged

    def get(self, key: str, default: Any = None) -> Any:
        return self.get_raw().get(key, default)

    def save(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Persist known keys from ``updates``.

        Returns:
            Dict[str, Any]: The keys that were written
        """
        with self.lock:
            written = {key: value for key, value in updates.items() if key in self.defaults}
            ignored = set(updates) - set(written)
            if ignored:
                logger.warning(f"Ignoring unknown integration settings: {', '.join(sorted(ignored))}")
            self.values.update(written)

            if self.state_dir and written:
                with open(self._path(), 'w') as f:
                    json.dump(self.values, f, indent=2)
            return written
