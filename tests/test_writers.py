"""
Tests for the shared destination writers.

Tests cover:
- Discarding rows an interrupted batch left behind
- Natural-key upserts and their failures
- Duplicate link rows and permission pairs
"""

import pytest
from sqlalchemy.exc import IntegrityError

from forum_transformer.drivers.writers import (
    ForumPermsWriter,
    PositionedWriter,
    UpsertWriter,
    link_writer,
)
from forum_transformer.services import SchemaEvolver

from tests.factories import (
    add_forkbb_forum,
    add_forkbb_topic,
    add_forkbb_user,
    make_context,
    put,
)


@pytest.fixture
def ctx(source_db, forkbb_destination):
    """Context writing into a tracked ForkBB destination."""
    SchemaEvolver(forkbb_destination).add_tracking_columns()
    return make_context(source_db, forkbb_destination)


@pytest.fixture
def migrated(ctx):
    """Destination holding one migrated user, forum and topic."""
    dest = ctx.destination
    add_forkbb_user(dest, 10, "Alice", id_old=3)
    add_forkbb_forum(dest, 20, "News", cat_id=1, id_old=4)
    add_forkbb_topic(dest, 30, "Hello", forum_id=20, id_old=8)
    return ctx


def count(ctx, table: str) -> int:
    return ctx.destination.fetch_value(f"SELECT COUNT(*) FROM ::{table}")


class TestPrepare:
    """Tests for the cleanup before a batch."""

    def test_discards_rows_from_cursor(self, ctx):
        """Rows at or after the cursor go, earlier and pre-existing rows stay."""
        for id_old, name in [(0, "Existing"), (3, "Three"), (5, "Five"), (7, "Seven")]:
            put(ctx.destination, "categories", cat_name=name, disp_position=0, id_old=id_old)

        assert PositionedWriter("categories", "id").prepare(ctx, 5)
        names = ctx.destination.fetch_column("SELECT cat_name FROM ::categories ORDER BY id")
        assert names == ["Existing", "Three"]

    def test_cursor_zero_keeps_destination_rows(self, ctx):
        """Restarting an entity never deletes rows the board already had."""
        put(ctx.destination, "categories", cat_name="Existing", disp_position=0, id_old=0)
        put(ctx.destination, "categories", cat_name="Copied", disp_position=0, id_old=1)

        PositionedWriter("categories", "id").prepare(ctx, 0)
        assert ctx.destination.fetch_column("SELECT cat_name FROM ::categories") == ["Existing"]

    def test_untracked_tables_are_left_alone(self, ctx):
        """Writers of untracked tables have nothing to discard."""
        before = count(ctx, "bbcode")
        assert UpsertWriter("bbcode", "bb_tag").prepare(ctx, 0)
        assert count(ctx, "bbcode") == before


class TestUpsertWriter:
    """Tests for natural-key upserts."""

    def test_insert_then_update(self, ctx):
        """A new tag is inserted and a second write updates it in place."""
        writer = UpsertWriter("bbcode", "bb_tag")
        before = count(ctx, "bbcode")
        writer.write(ctx, {"id": 99, "bb_tag": "spoiler", "bb_edit": 1, "bb_delete": 1, "bb_structure": "a"})
        writer.write(ctx, {"id": 99, "bb_tag": "spoiler", "bb_edit": 1, "bb_delete": 1, "bb_structure": "b"})

        assert count(ctx, "bbcode") == before + 1
        assert ctx.destination.fetch_value("SELECT bb_structure FROM ::bbcode WHERE bb_tag = 'spoiler'") == "b"

    def test_constraint_failure_propagates(self, ctx):
        """A failed insert of a new tag is an error, not a silent update."""
        before = count(ctx, "bbcode")
        with pytest.raises(IntegrityError):
            UpsertWriter("bbcode", "bb_tag").write(ctx, {"bb_tag": "brandnew", "bb_structure": None})
        assert count(ctx, "bbcode") == before


class TestLinkWriter:
    """Tests for link rows between migrated entities."""

    def test_duplicate_link_is_skipped(self, migrated):
        """Writing the same subscription twice keeps one row."""
        writer = link_writer("forum_subscriptions")
        writer.write(migrated, {"user_id": 3, "forum_id": 4})
        writer.write(migrated, {"user_id": 3, "forum_id": 4})

        rows = migrated.destination.query("SELECT user_id, forum_id FROM ::forum_subscriptions")
        assert rows == [{"user_id": 10, "forum_id": 20}]
        assert migrated.skipped == 1

    def test_unmigrated_reference_is_skipped(self, migrated):
        """Links to rows that were not copied are dropped."""
        link_writer("forum_subscriptions").write(migrated, {"user_id": 3, "forum_id": 99})
        assert count(migrated, "forum_subscriptions") == 0
        assert migrated.skipped == 1

    def test_other_failures_propagate(self, migrated):
        """A link that is not a duplicate but cannot be stored raises."""
        row = {"tid": 8, "question_id": 1, "field_id": 0, "qna_text": None, "votes": 0}
        with pytest.raises(IntegrityError):
            link_writer("poll").write(migrated, row)
        assert migrated.skipped == 0


class TestForumPermsWriter:
    """Tests for forum permissions."""

    def test_existing_pair_is_kept(self, migrated):
        """A (group, forum) pair already written is not inserted again."""
        writer = ForumPermsWriter()
        row = {"group_id": 4, "forum_id": 4, "read_forum": 1, "post_replies": 1, "post_topics": 0}
        writer.write(migrated, dict(row))
        writer.write(migrated, dict(row, post_topics=1))

        perms = migrated.destination.query("SELECT group_id, forum_id, post_topics FROM ::forum_perms")
        assert perms == [{"group_id": 4, "forum_id": 20, "post_topics": 0}]
        assert migrated.skipped == 1
