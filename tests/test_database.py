"""
Tests for the Database wrapper.

Tests cover:
- Table prefix expansion in raw SQL
- List parameters bound to IN clauses
- Inserts, updates and key retrieval
- Transactions pinned to one connection
- Schema changes: columns and indexes
"""

import pytest
from sqlalchemy.exc import IntegrityError

from forum_transformer.models.schema import Column, ColumnType, TableSchema
from forum_transformer.services import Database


@pytest.fixture
def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'board.db'}", prefix="fb_")
    database.create_table(TableSchema(
        "items",
        [
            Column("id", ColumnType.SERIAL),
            Column("name", ColumnType.VARCHAR, length=50, default=""),
            Column("score", ColumnType.INTEGER, default=0),
        ],
        primary_key=["id"],
        unique={"name_idx": ["name"]},
    ))
    database.create_table(TableSchema(
        "links",
        [Column("a", ColumnType.INTEGER, default=0), Column("b", ColumnType.INTEGER, default=0)],
    ))
    yield database
    database.dispose()


class TestQueries:
    """Tests for raw SQL helpers."""

    def test_prefix_expansion(self, db):
        """``::name`` resolves to the prefixed physical table."""
        db.insert("items", {"name": "one"})
        assert db.fetch_value("SELECT COUNT(*) FROM ::items") == 1
        assert db.table_names() == ["items", "links"]

    def test_in_list_parameter(self, db):
        """A list parameter expands into an IN list."""
        for name in ("a", "b", "c"):
            db.insert("items", {"name": name})
        names = db.fetch_column("SELECT name FROM ::items WHERE id IN :ids ORDER BY id", {"ids": [1, 3]})
        assert names == ["a", "c"]

    def test_fetch_pairs_and_one(self, db):
        """Pairs build a dict from the first two columns."""
        db.insert("items", {"name": "x", "score": 7})
        assert db.fetch_pairs("SELECT name, score FROM ::items") == {"x": 7}
        assert db.fetch_one("SELECT * FROM ::items WHERE name = :n", {"n": "x"})["score"] == 7
        assert db.fetch_one("SELECT * FROM ::items WHERE name = :n", {"n": "y"}) is None

    def test_execute_returns_rowcount(self, db):
        """Updates report the number of affected rows."""
        db.insert("items", {"name": "x"})
        db.insert("items", {"name": "y"})
        assert db.execute("UPDATE ::items SET score = 5") == 2


class TestRowWrites:
    """Tests for insert and update."""

    def test_insert_returns_new_key(self, db):
        """Serial keys are returned from insert."""
        assert db.insert("items", {"name": "first"}) == 1
        assert db.insert("items", {"name": "second"}) == 2

    def test_insert_ignores_unknown_columns(self, db):
        """Keys the table does not have are dropped."""
        db.insert("items", {"name": "x", "not_a_column": 1})
        assert db.columns("items") == ["id", "name", "score"]

    def test_insert_without_primary_key(self, db):
        """Tables without a primary key insert and return None."""
        assert db.insert("links", {"a": 1, "b": 2}) is None
        assert db.fetch_value("SELECT b FROM ::links WHERE a = 1") == 2

    def test_unique_violation_raises(self, db):
        """Unique index violations surface as IntegrityError."""
        db.insert("items", {"name": "dup"})
        with pytest.raises(IntegrityError):
            db.insert("items", {"name": "dup"})

    def test_update(self, db):
        """Update matches every where equality."""
        db.insert("items", {"name": "x"})
        assert db.update("items", {"score": 3}, {"name": "x"}) == 1
        assert db.update("items", {"score": 3}, {"name": "missing"}) == 0

    def test_transaction_commits(self, db):
        """Statements inside a transaction are visible after it ends."""
        with db.transaction():
            db.insert("items", {"name": "a"})
            db.execute("UPDATE ::items SET score = 5")
            assert db.fetch_value("SELECT score FROM ::items") == 5
        assert db.fetch_column("SELECT name FROM ::items") == ["a"]

    def test_transaction_rolls_back_on_error(self, db):
        """A failure undoes every statement of the block, nested ones included."""
        db.insert("items", {"name": "kept", "score": 1})
        with pytest.raises(IntegrityError):
            with db.transaction():
                db.execute("UPDATE ::items SET score = 2")
                with db.transaction():
                    db.insert("items", {"name": "new"})
                db.insert("items", {"name": "kept"})

        assert db.fetch_pairs("SELECT name, score FROM ::items") == {"kept": 1}

    def test_drop_table(self, db):
        """Tables are dropped once."""
        assert db.drop_table("links")
        assert not db.has_table("links")
        assert not db.drop_table("links")


class TestSchemaChanges:
    """Tests for column and index management."""

    def test_add_and_drop_field(self, db):
        """Columns are added once and dropped once."""
        column = Column("id_old", ColumnType.INTEGER, default=0)
        db.insert("items", {"name": "x"})
        assert db.add_field("items", column)
        assert not db.add_field("items", column)
        assert db.fetch_value("SELECT id_old FROM ::items") == 0
        assert db.drop_field("items", "id_old")
        assert not db.has_field("items", "id_old")
        assert not db.drop_field("items", "id_old")

    def test_add_and_drop_index(self, db):
        """Indexes are named after their table and created once."""
        assert db.add_index("items", "score_idx", ["score"])
        assert db.has_index("items", "score_idx")
        assert not db.add_index("items", "score_idx", ["score"])
        assert db.drop_index("items", "score_idx")
        assert not db.has_index("items", "score_idx")

    def test_reflection_refreshes_after_new_column(self, db):
        """Inserts see a column added after the table was first used."""
        db.insert("items", {"name": "before"})
        db.add_field("items", Column("id_old", ColumnType.INTEGER, default=0))
        db.insert("items", {"name": "after", "id_old": 9})
        assert db.fetch_value("SELECT id_old FROM ::items WHERE name = 'after'") == 9

    def test_requires_url_or_engine(self):
        """A database needs somewhere to connect."""
        with pytest.raises(ValueError):
            Database()
