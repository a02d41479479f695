"""Service layer for the forum transformer."""

from .database import Database
from .normalizer import normalize_email, normalize_username
from .collisions import CollisionResolver, MAX_RENAME_ATTEMPTS
from .remap import IdLookup
from .schema_evolver import SchemaEvolver
from .settings_store import SettingsStore

__all__ = [
    "Database",
    "normalize_email",
    "normalize_username",
    "CollisionResolver",
    "MAX_RENAME_ATTEMPTS",
    "IdLookup",
    "SchemaEvolver",
    "SettingsStore",
]
