"""File-backed persistence of migration settings between invocations."""

import json
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import List, Optional

from ..exceptions import InvalidRunKey, SettingsNotFound
from ..models.migration import MigrationSettings, SETTINGS_TTL_SECONDS

logger = logging.getLogger(__name__)

_VALID_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


class SettingsStore:
    """
    Stores one JSON document per run key under a state directory.

    A document not written for longer than the TTL counts as gone.
    """

    def __init__(self, state_dir: str, ttl: int = SETTINGS_TTL_SECONDS):
        """
        Initialize the store.

        Args:
            state_dir: Directory holding the settings files
            ttl: Seconds after the last save before a run expires
        """
        self.state_dir = Path(state_dir)
        self.ttl = ttl
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, run_key: str) -> Path:
        if not _VALID_KEY.match(run_key):
            raise InvalidRunKey(run_key)
        return self.state_dir / f"{run_key}.json"

    def _expired(self, path: Path, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - path.stat().st_mtime > self.ttl

    def save(self, settings: MigrationSettings) -> None:
        """
        Write the settings of a run.

        The document goes to a temporary file in the state directory first and
        then replaces the previous one, so an interrupted save leaves the last
        complete document in place.
        """
        path = self._path(settings.run_key)
        fd, tmp_path = tempfile.mkstemp(dir=self.state_dir, prefix=f".{settings.run_key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(settings.to_dict(), f, indent=2, default=str)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"Saved settings for run {settings.run_key} at step {settings.step}")

    def load(self, run_key: str) -> MigrationSettings:
        """
        Load the settings of a run.

        Raises:
            SettingsNotFound: If the run does not exist or has expired
        """
        path = self._path(run_key)
        if not path.exists() or self._expired(path):
            raise SettingsNotFound(run_key)
        with open(path) as f:
            return MigrationSettings.from_dict(json.load(f))

    def exists(self, run_key: str) -> bool:
        path = self._path(run_key)
        return path.exists() and not self._expired(path)

    def delete(self, run_key: str) -> bool:
        path = self._path(run_key)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_keys(self) -> List[str]:
        """Keys of all runs that have not expired."""
        return sorted(p.stem for p in self.state_dir.glob("*.json") if not self._expired(p))

    def purge_expired(self) -> List[str]:
        """Delete expired settings files and return their keys."""
        now = time.time()
        purged = []
        for path in self.state_dir.glob("*.json"):
            if self._expired(path, now):
                path.unlink()
                purged.append(path.stem)
        if purged:
            logger.info(f"Purged {len(purged)} expired migration settings")
        return purged
