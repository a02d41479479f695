"""Resolution of unique-index collisions when inserting users."""

import logging
import re
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from ..exceptions import CollisionLimitExceeded
from .database import Database
from .normalizer import normalize_email, normalize_username

logger = logging.getLogger(__name__)

MAX_RENAME_ATTEMPTS = 100

USERNAME_SUFFIX = re.compile(r"^(.+?)\.(\d+)$")
EMAIL_SUFFIX = re.compile(r"^(.+?)(?:\.n(\d+))?(\.local)$")


class CollisionKind(str, Enum):
    """Unique index a failed insert collided with."""
    USERNAME = "username"
    EMAIL = "email"


# Part of a driver message naming the violated index, never the duplicate value
_VIOLATED_KEY = [
    re.compile(r"for key '([^']+)'"),                 # MySQL
    re.compile(r'unique constraint "([^"]+)"'),       # PostgreSQL
    re.compile(r"UNIQUE constraint failed: ([^\n]+)"),  # SQLite
]


def violated_key(error: Exception) -> Optional[str]:
    """Index or column list named by a unique violation, None if the message is not one."""
    message = str(getattr(error, "orig", error))
    for pattern in _VIOLATED_KEY:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


def classify_collision(error: Exception) -> Optional[CollisionKind]:
    """Identify a resolvable collision from a driver integrity error message."""
    key = violated_key(error)
    if key is None:
        return None
    if "username" in key:
        return CollisionKind.USERNAME
    if "email_normal" in key:
        return CollisionKind.EMAIL
    return None


def next_username(username: str) -> str:
    """``name`` becomes ``name.2`` and ``name.N`` becomes ``name.N+1``."""
    match = USERNAME_SUFFIX.match(username)
    if match:
        return f"{match.group(1)}.{int(match.group(2)) + 1}"
    return f"{username}.2"


def next_email(email: str) -> str:
    """``addr`` becomes ``addr.local``, then ``addr.n2.local``, ``addr.n3.local`` and so on."""
    match = EMAIL_SUFFIX.match(email)
    if match:
        number = int(match.group(2)) + 1 if match.group(2) else 2
        return f"{match.group(1)}.n{number}{match.group(3)}"
    return f"{email}.local"


class CollisionResolver:
    """
    Inserts user rows, renaming them until they fit the unique indexes.

    Handles:
    - Username collisions (``username`` / ``username_normal`` indexes)
    - Email collisions (``email_normal`` index)
    - Recording the original -> final username of every renamed row

    Any other integrity error propagates to the caller.
    """

    def __init__(self, renames: Optional[Dict[str, str]] = None, max_attempts: int = MAX_RENAME_ATTEMPTS):
        """
        Initialize the resolver.

        Args:
            renames: Rename map carried over from earlier invocations
            max_attempts: Renames allowed per row before giving up
        """
        self.renames: Dict[str, str] = renames if renames is not None else {}
        self.max_attempts = max_attempts

    def insert_user(self, db: Database, row: Dict[str, Any]) -> Optional[int]:
        """
        Insert a user row into ``users``, resolving collisions.

        Args:
            db: Destination database
            row: Translated user row; renamed in place on collision

        Returns:
            Primary key of the inserted row
        """
        original = row.get("username", "")
        attempts = 0

        while True:
            try:
                new_id = db.insert("users", row)
                break
            except IntegrityError as e:
                kind = classify_collision(e)
                if kind is None:
                    raise
                if attempts >= self.max_attempts:
                    raise CollisionLimitExceeded(row.get("id_old"), attempts) from e
                attempts += 1
                self._rename(row, kind)

        if row.get("username") != original:
            self.renames.setdefault(original, row["username"])
        return new_id

    def _rename(self, row: Dict[str, Any], kind: CollisionKind) -> None:
        if kind == CollisionKind.USERNAME:
            old = row.get("username", "")
            row["username"] = next_username(old)
            row["username_normal"] = normalize_username(row["username"])
            logger.info(f"[{row.get('id_old')}] username: '{old}' >> '{row['username']}'")
        else:
            old = row.get("email", "")
            row["email"] = next_email(old)
            row["email_normal"] = normalize_email(row["email"])
            logger.info(f"[{row.get('id_old')}] email: '{old}' >> '{row['email']}'")

    def rename_of(self, username: str) -> str:
        """Final name of a source username, unchanged if it was never renamed."""
        return self.renames.get(username, username)
