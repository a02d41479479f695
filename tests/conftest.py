"""
Shared pytest fixtures for the forum transformer tests.

This module provides:
- File-backed SQLite databases for sources and destinations
- Empty ForkBB destination boards
- Migration configs pointing at temporary state directories

File databases are used throughout because every orchestrator invocation
opens and disposes its own engine.
"""

import pytest

from forum_transformer.models.migration import MigrationConfig
from forum_transformer.services import Database

from tests.factories import create_forkbb_board


def sqlite_url(path) -> str:
    return f"sqlite:///{path}"


@pytest.fixture
def source_path(tmp_path):
    return tmp_path / "source.db"


@pytest.fixture
def destination_path(tmp_path):
    return tmp_path / "destination.db"


@pytest.fixture
def source_db(source_path):
    """Empty source database."""
    db = Database(sqlite_url(source_path))
    yield db
    db.dispose()


@pytest.fixture
def destination_db(destination_path):
    """Empty destination database."""
    db = Database(sqlite_url(destination_path))
    yield db
    db.dispose()


@pytest.fixture
def forkbb_destination(destination_db):
    """Destination holding a fresh ForkBB board."""
    return create_forkbb_board(destination_db)


@pytest.fixture
def state_dir(tmp_path):
    return str(tmp_path / "state")


@pytest.fixture
def migration_config(source_path, destination_path, state_dir):
    """Config for a run between the source and destination fixtures."""
    return MigrationConfig(
        source_url=sqlite_url(source_path),
        target_url=sqlite_url(destination_path),
        batch_size=2,
        state_dir=state_dir,
    )
