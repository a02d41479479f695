"""
Tests for the step machine and persisted migration runs.

Tests cover:
- Handler lifecycle contract: batches, finalization, NOT_APPLICABLE
- Skips for merge and exact-copy modes
- Full ForkBB copy, exact copy and merge migrations
- Resuming runs across invocations and cleaning up abandoned runs
"""

import json

import pytest

from forum_transformer.drivers import detect_source
from forum_transformer.drivers.base import (
    BatchHandle,
    Driver,
    EntityHandler,
    NOT_APPLICABLE,
    SourceReader,
)
from forum_transformer.exceptions import ContractViolation, SettingsNotFound
from forum_transformer.models.entity import CLEANUP_STEP, END_OF_MIGRATION, Entity
from forum_transformer.models.migration import MigrationStatus, RunMode
from forum_transformer.orchestrator import MigrationOrchestrator, StepOrchestrator
from forum_transformer.services import Database, SchemaEvolver

from tests.factories import (
    add_forkbb_category,
    add_forkbb_forum,
    add_forkbb_group,
    add_forkbb_post,
    add_forkbb_topic,
    add_forkbb_user,
    create_forkbb_board,
    make_context,
    migrate,
    put,
    run_steps,
)


# Stub handlers for the lifecycle contract

class StubHandler(EntityHandler):
    """Handler returning canned lifecycle results and recording calls."""

    def __init__(self, batch, write_result=True, finalize_result=True, reader=None):
        super().__init__(reader=reader)
        self.batch = batch
        self.write_result = write_result
        self.finalize_result = finalize_result
        self.cursors = []
        self.written = []
        self.finalized = 0

    def begin_batch(self, ctx, cursor):
        self.cursors.append(cursor)
        return self.batch

    def write_row(self, ctx, row):
        self.written.append(row)
        return self.write_result

    def finalize(self, ctx):
        self.finalized += 1
        return self.finalize_result


class ExplodingHandler(EntityHandler):
    """Handler that must never be called."""

    def begin_batch(self, ctx, cursor):
        raise AssertionError("handler should have been skipped")


class DropOddRows(SourceReader):
    def translate(self, ctx, row):
        return row if row["id"] % 2 == 0 else None


class StubDriver(Driver):
    type_name = "Stub"

    def __init__(self, handlers):
        self._stub_handlers = handlers
        super().__init__()

    def build_handlers(self):
        return self._stub_handlers

    def read_version(self, db):
        return None


def keyed(*ids):
    return BatchHandle(iter([{"id": i} for i in ids]), 0, "id")


@pytest.fixture
def stub_context(source_db, destination_db):
    return make_context(source_db, destination_db)


class TestEntityStep:
    """Tests for one entity step against stub handlers."""

    def test_full_batch_advances_cursor(self, stub_context):
        """A non-empty batch resumes after its last key."""
        handler = StubHandler(keyed(5, 7))
        result = StepOrchestrator(stub_context, StubDriver({Entity.CATEGORIES: handler})).step(1, 0)

        assert (result.step, result.cursor) == (1, 8)
        assert result.processed == 2
        assert handler.finalized == 0
        assert not result.finished

    def test_empty_batch_finalizes(self, stub_context):
        """An empty batch finalizes and moves to the next step."""
        handler = StubHandler(keyed())
        result = StepOrchestrator(stub_context, StubDriver({Entity.CATEGORIES: handler})).step(1, 8)

        assert (result.step, result.cursor) == (2, 0)
        assert handler.cursors == [8]
        assert handler.finalized == 1

    def test_not_applicable_still_finalizes(self, stub_context):
        """Entities without source data run their fix-ups."""
        handler = StubHandler(NOT_APPLICABLE)
        result = StepOrchestrator(stub_context, StubDriver({Entity.TOPICS_AGAIN: handler})).step(11, 0)

        assert (result.step, result.cursor) == (12, 0)
        assert handler.finalized == 1
        assert handler.written == []

    def test_unkeyed_batch_is_read_in_one_step(self, stub_context):
        """Batches without a key column end the entity after one pass."""
        handler = StubHandler(BatchHandle(iter([{"conf_name": "a"}, {"conf_name": "b"}]), 0))
        result = StepOrchestrator(stub_context, StubDriver({Entity.FORUM_PERMS: handler})).step(5, 0)

        assert (result.step, result.cursor) == (6, 0)
        assert result.processed == 2
        assert handler.finalized == 1

    def test_untranslatable_rows_are_skipped(self, stub_context):
        """Rows the reader drops are counted, and do not end the batch."""
        handler = StubHandler(keyed(1, 2, 3, 4), reader=DropOddRows())
        result = StepOrchestrator(stub_context, StubDriver({Entity.USERS: handler})).step(3, 0)

        assert [r["id"] for r in handler.written] == [2, 4]
        assert (result.processed, result.skipped) == (2, 2)
        assert (result.step, result.cursor) == (3, 5)

    def test_entity_without_handler(self, stub_context):
        """Unregistered entities get a no-op handler and finish at once."""
        result = StepOrchestrator(stub_context, StubDriver({})).step(7, 0)
        assert (result.step, result.cursor) == (8, 0)

    @pytest.mark.parametrize(
        "handler, operation",
        [
            (StubHandler(False), "begin_batch"),
            (StubHandler(keyed(1), write_result=False), "write_row"),
            (StubHandler(keyed(), finalize_result=False), "finalize"),
        ],
    )
    def test_contract_violations(self, stub_context, handler, operation):
        """A false lifecycle result aborts the step."""
        orchestrator = StepOrchestrator(stub_context, StubDriver({Entity.POSTS: handler}))
        with pytest.raises(ContractViolation) as exc_info:
            orchestrator.step(10, 0)
        assert exc_info.value.entity == "posts"
        assert exc_info.value.operation == operation

    @pytest.mark.parametrize("step", [99, -5])
    def test_unknown_step(self, stub_context, step):
        """Steps outside the plan are rejected."""
        with pytest.raises(ValueError):
            StepOrchestrator(stub_context, StubDriver({})).step(step, 0)


class TestModeSkips:
    """Tests for steps skipped by run mode."""

    def test_merge_skips_config(self, source_db, destination_db):
        """Board options are never touched when merging."""
        ctx = make_context(source_db, destination_db, RunMode.MERGE)
        driver = StubDriver({Entity.CONFIG: ExplodingHandler()})
        result = StepOrchestrator(ctx, driver).step(26, 0)
        assert (result.step, result.cursor) == (27, 0)

    def test_exact_copy_skips_reconciliation(self, source_db, destination_db):
        """Kept ids need no cross-reference fix-ups."""
        ctx = make_context(source_db, destination_db, RunMode.EXACT_COPY)
        driver = StubDriver({Entity.TOPICS_AGAIN: ExplodingHandler(), Entity.OTHER_AGAIN: ExplodingHandler()})
        orchestrator = StepOrchestrator(ctx, driver)
        assert orchestrator.step(11, 0).step == 12
        assert orchestrator.step(34, 0).step == CLEANUP_STEP


class TestSchemaSteps:
    """Tests for setup and cleanup steps."""

    def test_setup_in_copy_mode(self, source_db, destination_db):
        """Step 0 creates the schema, then adds tracking columns."""
        orchestrator = StepOrchestrator(make_context(source_db, destination_db), StubDriver({}))

        first = orchestrator.step(0, 0)
        assert (first.step, first.cursor) == (0, 1)
        assert destination_db.has_table("users")
        assert not destination_db.has_field("users", "id_old")

        second = orchestrator.step(0, 1)
        assert (second.step, second.cursor) == (1, 0)
        assert destination_db.has_field("users", "id_old")

    def test_setup_in_merge_mode_keeps_schema(self, source_db, forkbb_destination):
        """Merging into a board only adds tracking columns."""
        ctx = make_context(source_db, forkbb_destination, RunMode.MERGE)
        orchestrator = StepOrchestrator(ctx, StubDriver({}))
        assert orchestrator.step(0, 0).cursor == 1
        orchestrator.step(0, 1)
        assert forkbb_destination.has_field("users", "id_old")

    def test_cleanup_ends_migration(self, source_db, forkbb_destination):
        """The cleanup step drops tracking columns and returns the end marker."""
        SchemaEvolver(forkbb_destination).add_tracking_columns()
        ctx = make_context(source_db, forkbb_destination)
        result = StepOrchestrator(ctx, StubDriver({})).step(CLEANUP_STEP, 0)

        assert result.step == END_OF_MIGRATION
        assert result.finished
        assert not forkbb_destination.has_field("users", "id_old")


# Full ForkBB migrations

def build_forkbb_source(db: Database) -> Database:
    create_forkbb_board(db)
    put(db, "config", conf_name="o_board_title", conf_value="Source board")
    for position, name in enumerate(["General", "Off-topic", "Archive"], start=1):
        add_forkbb_category(db, position, name, position=position)
    add_forkbb_group(db, 7, "Veterans", g_promote_next_group=9)
    add_forkbb_group(db, 9, "Elders")
    add_forkbb_user(db, 1, "Guest", group_id=3)
    add_forkbb_user(db, 2, "Admin", group_id=1)
    add_forkbb_user(db, 3, "Alice")
    add_forkbb_user(db, 4, "Bob")
    add_forkbb_user(db, 5, "Carol", group_id=7)
    add_forkbb_user(db, 6, "Dave", group_id=9)
    add_forkbb_forum(db, 1, "News", cat_id=2, moderators='{"3": "Alice"}')
    add_forkbb_topic(db, 1, "Hello", forum_id=1, poster="Alice", poster_id=3, first_post_id=1, last_post_id=2)
    add_forkbb_post(db, 1, 1, "Alice", 3)
    add_forkbb_post(db, 2, 1, "Bob", 4)
    return db


class TestForkBBCopy:
    """Tests for a copy from ForkBB into an empty destination."""

    @pytest.fixture
    def copied(self, source_db, destination_db):
        build_forkbb_source(source_db)
        migrate(source_db, destination_db, RunMode.COPY, batch_size=2)
        return destination_db

    def test_rows_are_copied(self, copied):
        """Every migrated entity arrives once."""
        assert copied.fetch_value("SELECT COUNT(*) FROM ::categories") == 3
        assert copied.fetch_column("SELECT g_id FROM ::groups ORDER BY g_id") == [1, 2, 3, 4, 5, 6]
        assert copied.fetch_column("SELECT username FROM ::users ORDER BY id") == [
            "Admin", "Alice", "Bob", "Carol", "Dave",
        ]

    def test_references_are_remapped(self, copied):
        """Group, moderator and poster references follow the new ids."""
        users = copied.fetch_pairs("SELECT username, id FROM ::users")
        groups = copied.fetch_pairs("SELECT username, group_id FROM ::users")
        assert groups == {"Admin": 1, "Alice": 4, "Bob": 4, "Carol": 5, "Dave": 6}
        assert copied.fetch_value("SELECT g_promote_next_group FROM ::groups WHERE g_id = 5") == 6

        forum = copied.fetch_one("SELECT * FROM ::forums")
        assert json.loads(forum["moderators"]) == {str(users["Alice"]): "Alice"}
        assert forum["last_poster"] == "Bob"
        assert forum["last_poster_id"] == users["Bob"]

        topic = copied.fetch_one("SELECT * FROM ::topics")
        assert topic["poster_id"] == users["Alice"]
        assert topic["last_poster_id"] == users["Bob"]
        posters = copied.fetch_column("SELECT poster_id FROM ::posts ORDER BY id")
        assert posters == [users["Alice"], users["Bob"]]

    def test_counters_and_config(self, copied):
        """Topic counters are rebuilt and board options copied."""
        assert copied.fetch_value("SELECT num_topics FROM ::users WHERE username = 'Alice'") == 1
        config = copied.fetch_pairs("SELECT conf_name, conf_value FROM ::config")
        assert config["o_board_title"] == "Source board"
        assert config["i_fork_revision"] == "48"

    def test_tracking_columns_removed(self, copied):
        """No id_old column survives the run."""
        assert not SchemaEvolver(copied).has_tracking_columns()

    def test_every_reference_resolves(self, copied):
        """No non-zero foreign key points at a row that does not exist."""
        references = [
            ("users", "group_id", "groups", "g_id"),
            ("groups", "g_promote_next_group", "groups", "g_id"),
            ("forums", "cat_id", "categories", "id"),
            ("forums", "last_post_id", "posts", "id"),
            ("forums", "last_poster_id", "users", "id"),
            ("topics", "forum_id", "forums", "id"),
            ("topics", "poster_id", "users", "id"),
            ("topics", "first_post_id", "posts", "id"),
            ("topics", "last_post_id", "posts", "id"),
            ("posts", "topic_id", "topics", "id"),
            ("posts", "poster_id", "users", "id"),
        ]
        for table, column, ref_table, ref_key in references:
            dangling = copied.fetch_value(
                f"SELECT COUNT(*) FROM ::{table} WHERE {column} <> 0 "
                f"AND {column} NOT IN (SELECT {ref_key} FROM ::{ref_table})"
            )
            assert dangling == 0, f"{table}.{column}"


class TestForkBBExactCopy:
    """Tests for an exact copy, which keeps source ids."""

    def test_ids_are_preserved(self, source_db, destination_db):
        """Users, categories and posts keep their source keys."""
        create_forkbb_board(source_db)
        add_forkbb_category(source_db, 4, "Four")
        add_forkbb_category(source_db, 9, "Nine")
        add_forkbb_user(source_db, 2, "Admin", group_id=1)
        add_forkbb_user(source_db, 5, "Alice")
        add_forkbb_user(source_db, 7, "Bob")
        add_forkbb_forum(source_db, 3, "News", cat_id=9)
        add_forkbb_topic(source_db, 8, "Hello", forum_id=3, poster="Bob", poster_id=7, first_post_id=12)
        add_forkbb_post(source_db, 12, 8, "Bob", 7)

        migrate(source_db, destination_db, RunMode.EXACT_COPY)

        assert destination_db.fetch_column("SELECT id FROM ::users ORDER BY id") == [2, 5, 7]
        assert destination_db.fetch_column("SELECT id FROM ::categories ORDER BY id") == [4, 9]
        assert destination_db.fetch_one("SELECT cat_id FROM ::forums WHERE id = 3")["cat_id"] == 9
        post = destination_db.fetch_one("SELECT * FROM ::posts")
        assert (post["id"], post["topic_id"], post["poster_id"]) == (12, 8, 7)
        assert not SchemaEvolver(destination_db).has_tracking_columns()


class TestResumableRuns:
    """Tests for MigrationOrchestrator across invocations."""

    def test_start_records_detection(self, source_db, migration_config):
        """Starting a run saves the detected source and mode."""
        create_forkbb_board(source_db)
        settings = MigrationOrchestrator(migration_config).start()

        assert settings.source_type == "ForkBB"
        assert settings.source_version == "48"
        assert settings.run_mode == RunMode.COPY
        assert (settings.step, settings.cursor) == (0, 0)
        assert MigrationOrchestrator(migration_config).status(settings.run_key).run_key == settings.run_key

    def test_resume_from_saved_position(self, source_db, destination_db, migration_config):
        """A run interrupted mid-entity continues without duplicating rows."""
        build_forkbb_source(source_db)
        orchestrator = MigrationOrchestrator(migration_config)
        run_key = orchestrator.start().run_key

        paused = orchestrator.run(run_key, max_steps=3)
        assert (paused.step, paused.cursor) == (1, 3)
        assert paused.status == MigrationStatus.RUNNING
        assert destination_db.fetch_value("SELECT COUNT(*) FROM ::categories") == 2

        finished = MigrationOrchestrator(migration_config).run(run_key)
        assert finished.finished
        assert finished.status == MigrationStatus.COMPLETED
        assert destination_db.fetch_value("SELECT COUNT(*) FROM ::categories") == 3
        assert destination_db.fetch_value("SELECT COUNT(*) FROM ::users") == 5

    def test_restart_between_entities(self, source_db, destination_db, migration_config):
        """A run stopped right after categories continues with groups."""
        build_forkbb_source(source_db)
        orchestrator = MigrationOrchestrator(migration_config)
        run_key = orchestrator.start().run_key

        paused = orchestrator.run(run_key, max_steps=5)
        assert (paused.step, paused.cursor) == (2, 0)

        MigrationOrchestrator(migration_config).run(run_key)
        assert destination_db.fetch_value("SELECT COUNT(*) FROM ::categories") == 3
        assert destination_db.fetch_value("SELECT COUNT(*) FROM ::groups WHERE g_id > 4") == 2
        assert destination_db.fetch_value("SELECT COUNT(*) FROM ::users") == 5

    def test_finished_run_does_no_work(self, source_db, migration_config):
        """Stepping a finished run returns the end marker."""
        create_forkbb_board(source_db)
        orchestrator = MigrationOrchestrator(migration_config)
        run_key = orchestrator.start().run_key
        orchestrator.run(run_key)

        result = orchestrator.resume_step(run_key)
        assert result.step == END_OF_MIGRATION

    def test_failure_is_recorded(self, source_db, migration_config):
        """A failing step marks the run as failed and re-raises."""
        create_forkbb_board(source_db)
        orchestrator = MigrationOrchestrator(migration_config)
        settings = orchestrator.start()
        settings.step = 99
        orchestrator.store.save(settings)

        with pytest.raises(ValueError):
            orchestrator.resume_step(settings.run_key)

        failed = orchestrator.status(settings.run_key)
        assert failed.status == MigrationStatus.FAILED
        assert failed.last_message == "Unknown migration step: 99"
        assert failed.step == 99

    def test_cleanup_abandoned_run(self, source_db, destination_db, migration_config):
        """Cleaning up drops tracking columns and forgets the run."""
        create_forkbb_board(source_db)
        orchestrator = MigrationOrchestrator(migration_config)
        run_key = orchestrator.start().run_key
        orchestrator.run(run_key, max_steps=2)
        assert destination_db.has_field("users", "id_old")

        assert orchestrator.cleanup(run_key)
        assert not destination_db.has_field("users", "id_old")
        with pytest.raises(SettingsNotFound):
            orchestrator.status(run_key)


def run_until(orchestrator: MigrationOrchestrator, run_key: str, step: int) -> None:
    """Resume a run until it stands at the start of ``step``."""
    while orchestrator.status(run_key).step < step:
        orchestrator.resume_step(run_key)


def fail_on_insert(monkeypatch, table: str, nth: int) -> None:
    """Make the nth insert into a destination table raise."""
    insert = Database.insert
    calls = []

    def failing(self, name, row):
        if name == table:
            calls.append(row)
            if len(calls) == nth:
                raise RuntimeError("connection lost")
        return insert(self, name, row)

    monkeypatch.setattr(Database, "insert", failing)


class TestInterruptedRuns:
    """Tests for invocations that die partway through a step."""

    def test_batch_failure_does_not_duplicate_rows(self, source_db, destination_db, migration_config, monkeypatch):
        """Rows written before the failure are written once after resuming."""
        build_forkbb_source(source_db)
        orchestrator = MigrationOrchestrator(migration_config)
        run_key = orchestrator.start().run_key
        run_until(orchestrator, run_key, 1)

        fail_on_insert(monkeypatch, "categories", 2)
        with pytest.raises(RuntimeError):
            orchestrator.resume_step(run_key)
        monkeypatch.undo()
        assert destination_db.fetch_column("SELECT cat_name FROM ::categories") == ["General"]

        assert orchestrator.run(run_key).finished
        names = destination_db.fetch_column("SELECT cat_name FROM ::categories ORDER BY cat_name")
        assert names == ["Archive", "General", "Off-topic"]

    def test_user_batch_failure_causes_no_rename(self, source_db, destination_db, migration_config, monkeypatch):
        """A user written before the failure does not collide with itself."""
        build_forkbb_source(source_db)
        orchestrator = MigrationOrchestrator(migration_config)
        run_key = orchestrator.start().run_key
        run_until(orchestrator, run_key, 3)

        fail_on_insert(monkeypatch, "users", 2)
        with pytest.raises(RuntimeError):
            orchestrator.resume_step(run_key)
        monkeypatch.undo()
        assert destination_db.fetch_column("SELECT username FROM ::users") == ["Admin"]

        settings = orchestrator.run(run_key)
        names = destination_db.fetch_column("SELECT username FROM ::users ORDER BY username")
        assert names == ["Admin", "Alice", "Bob", "Carol", "Dave"]
        assert settings.username_renames == {}

    def test_failed_fix_ups_are_rolled_back(self, source_db, forkbb_destination, migration_config, monkeypatch):
        """Fix-ups that fail halfway leave nothing applied, and run once on resume."""
        dest = forkbb_destination
        add_forkbb_category(dest, 1, "Existing", position=1)
        add_forkbb_forum(dest, 1, "Lobby", cat_id=1, disp_position=3)
        create_forkbb_board(source_db)
        add_forkbb_category(source_db, 1, "General", position=1)
        add_forkbb_forum(source_db, 1, "News", cat_id=1, disp_position=1)

        orchestrator = MigrationOrchestrator(migration_config)
        settings = orchestrator.start()
        assert settings.run_mode == RunMode.MERGE
        run_until(orchestrator, settings.run_key, 4)

        execute = Database.execute

        def failing(self, sql, params=None):
            if "SET cat_id" in sql:
                raise RuntimeError("connection lost")
            return execute(self, sql, params)

        monkeypatch.setattr(Database, "execute", failing)
        with pytest.raises(RuntimeError):
            orchestrator.run(settings.run_key)
        monkeypatch.undo()
        assert dest.fetch_value("SELECT disp_position FROM ::forums WHERE forum_name = 'News'") == 1

        orchestrator.run(settings.run_key)
        general = dest.fetch_value("SELECT id FROM ::categories WHERE cat_name = 'General'")
        news = dest.fetch_one("SELECT disp_position, cat_id FROM ::forums WHERE forum_name = 'News'")
        assert news == {"disp_position": 4, "cat_id": general}


class TestBatchIdempotence:
    """Tests for running the same batch more than once."""

    def test_same_cursor_writes_same_rows(self, source_db, destination_db):
        """A batch read again from its cursor leaves the same rows, with or without a reset."""
        build_forkbb_source(source_db)
        driver, _ = detect_source(source_db)
        orchestrator = StepOrchestrator(make_context(source_db, destination_db, batch_size=2), driver)
        run_steps(orchestrator, stop_before=1)

        def snapshot():
            return destination_db.query("SELECT cat_name, disp_position, id_old FROM ::categories ORDER BY id_old")

        first = orchestrator.step(1, 2)
        rows = snapshot()
        assert [r["id_old"] for r in rows] == [2, 3]

        destination_db.execute("DELETE FROM ::categories")
        second = orchestrator.step(1, 2)
        assert snapshot() == rows
        assert (second.step, second.cursor) == (first.step, first.cursor)

        orchestrator.step(1, 2)
        assert snapshot() == rows


class TestMerge:
    """Tests for merging a ForkBB board into an existing one."""

    @pytest.fixture
    def merged(self, source_db, forkbb_destination, migration_config):
        dest = forkbb_destination
        add_forkbb_user(dest, 2, "Bob")
        add_forkbb_category(dest, 1, "Existing", position=4)

        create_forkbb_board(source_db)
        put(source_db, "config", conf_name="o_board_title", conf_value="Source board")
        add_forkbb_category(source_db, 1, "General", position=1)
        add_forkbb_user(source_db, 10, "bob")
        add_forkbb_user(source_db, 11, "Alice")
        put(source_db, "bans", username="bob", ip="", email="", message="spam", ban_creator=11)

        orchestrator = MigrationOrchestrator(migration_config)
        settings = orchestrator.start()
        assert settings.run_mode == RunMode.MERGE
        return dest, orchestrator.run(settings.run_key)

    def test_colliding_username_is_renamed(self, merged):
        """A name that differs only by case gets a suffix and is recorded."""
        dest, settings = merged
        assert dest.fetch_column("SELECT username FROM ::users ORDER BY id") == ["Bob", "bob.2", "Alice"]
        assert settings.username_renames == {"bob": "bob.2"}

    def test_renames_carry_across_invocations(self, merged):
        """Bans written in a later invocation follow the rename."""
        dest, _ = merged
        ban = dest.fetch_one("SELECT username, ban_creator FROM ::bans")
        alice = dest.fetch_value("SELECT id FROM ::users WHERE username = 'Alice'")
        assert ban == {"username": "bob.2", "ban_creator": alice}

    def test_config_is_left_alone(self, merged):
        """Source options are not merged into the destination."""
        dest, _ = merged
        config = dest.fetch_pairs("SELECT conf_name, conf_value FROM ::config")
        assert config == {"i_fork_revision": "48"}

    def test_positions_follow_existing_rows(self, merged):
        """Merged categories are placed after the destination's own."""
        dest, _ = merged
        positions = dest.fetch_pairs("SELECT cat_name, disp_position FROM ::categories")
        assert positions == {"Existing": 4, "General": 5}


class TestUniqueUsers:
    """Tests for the unique user columns across a whole run."""

    def test_normalized_names_and_emails_stay_unique(self, source_db, forkbb_destination, migration_config):
        """Username and email collisions both end in distinct canonical forms."""
        dest = forkbb_destination
        add_forkbb_user(dest, 2, "Bob", email="bob@example.com")
        create_forkbb_board(source_db)
        add_forkbb_user(source_db, 10, "bob")
        add_forkbb_user(source_db, 11, "Carol", email="BOB@example.com")
        add_forkbb_user(source_db, 12, "Dave", email="bob+forum@example.com")

        orchestrator = MigrationOrchestrator(migration_config)
        settings = orchestrator.run(orchestrator.start().run_key)
        assert settings.finished

        users = dest.query("SELECT username, username_normal, email, email_normal FROM ::users")
        assert len(users) == 4
        assert len({u["username_normal"] for u in users}) == 4
        assert len({u["email_normal"] for u in users}) == 4

        carol = next(u for u in users if u["username"] == "Carol")
        assert carol["email"] == "BOB@example.com.local"
        assert settings.username_renames == {"bob": "bob.2"}
