"""Destination writers shared by every source product.

Writers receive rows already translated to the destination layout, with
source keys in ``id_old`` for tracked tables, and rewrite the remaining
source references once the referenced entity has been copied.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from ..context import RunContext
from ..models.entity import Entity, EntityRole, MIGRATION_PLAN
from ..models.schema import DEFAULT_GROUP_IDS, DESTINATION_SCHEMA
from ..services.database import Database
from ..services.normalizer import normalize_email, normalize_username
from ..services.remap import copy_username, offset_positions, remap_column, remap_self_reference
from .base import EntityHandler, EntityWriter, SourceReader

logger = logging.getLogger(__name__)


def row_exists(db: Database, table: str, values: Dict[str, Any]) -> bool:
    """Whether a row with all of the given column values exists."""
    condition = " AND ".join(f"{column} = :{column}" for column in values)
    return bool(db.fetch_value(f"SELECT COUNT(*) FROM ::{table} WHERE {condition}", values))


class InsertWriter(EntityWriter):
    """Plain insert. In exact-copy mode tracked rows keep their source key."""

    def __init__(self, table: str, primary_key: Optional[str] = None):
        self.table = table
        self.primary_key = primary_key

    def keyed(self, ctx: RunContext, row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(row)
        if self.primary_key and ctx.is_exact_copy and "id_old" in row:
            row[self.primary_key] = row["id_old"]
        return row

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        ctx.destination.insert(self.table, self.keyed(ctx, row))
        return True


class PositionedWriter(InsertWriter):
    """Insert, then move migrated rows after the rows already in the destination."""

    def finalize(self, ctx: RunContext) -> bool:
        offset_positions(ctx.destination, self.table)
        return True


class GroupsWriter(InsertWriter):
    """
    Groups: the built-in groups are updated in place, custom groups inserted.

    In merge mode the destination keeps its own built-in groups.
    """

    def __init__(self):
        super().__init__("groups", "g_id")

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        old_id = row.get("id_old")
        if old_id in DEFAULT_GROUP_IDS:
            if ctx.is_merge:
                return True
            values = {k: v for k, v in row.items() if k not in ("id_old", "g_id")}
            ctx.destination.update("groups", values, {"g_id": old_id})
            return True
        return super().write(ctx, row)

    def finalize(self, ctx: RunContext) -> bool:
        remap_self_reference(ctx.destination, "groups", "g_promote_next_group", key="g_id", where="t.g_id > 4")
        return True


class UsersWriter(InsertWriter):
    """Users, inserted through the collision resolver."""

    def __init__(self):
        super().__init__("users", "id")

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = self.keyed(ctx, row)
        if not row.get("username_normal"):
            row["username_normal"] = normalize_username(row.get("username", ""))
        if not row.get("email_normal"):
            row["email_normal"] = normalize_email(row.get("email", ""))
        ctx.resolver.insert_user(ctx.destination, row)
        return True

    def finalize(self, ctx: RunContext) -> bool:
        remap_column(ctx.destination, "users", "group_id", "groups", ref_key="g_id")
        return True


class ForumsWriter(PositionedWriter):
    """
    Forums. ``moderators`` arrives as JSON ``{old user id: name}`` and is
    stored as ``{new user id: name}``.
    """

    def __init__(self):
        super().__init__("forums", "id")

    def moderators(self, ctx: RunContext, value: Any) -> str:
        if not value:
            return ""
        try:
            mods = json.loads(value)
        except (TypeError, ValueError):
            logger.warning(f"Unreadable forum moderators list dropped: {value!r}")
            return ""
        if not isinstance(mods, dict) or not mods:
            return ""

        old_ids = [int(k) for k in mods]
        rows = ctx.destination.query(
            "SELECT id, username FROM ::users WHERE id_old > 0 AND id_old IN :ids",
            {"ids": old_ids},
        )
        if not rows:
            return ""
        return json.dumps({str(r["id"]): r["username"] for r in rows}, ensure_ascii=False)

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = dict(row)
        row["moderators"] = self.moderators(ctx, row.get("moderators"))
        return super().write(ctx, row)

    def finalize(self, ctx: RunContext) -> bool:
        db = ctx.destination
        offset_positions(db, "forums")
        remap_column(db, "forums", "cat_id", "categories", fallback="0")
        remap_self_reference(db, "forums", "parent_forum_id", default=0)
        return True


class ForumPermsWriter(EntityWriter):
    """
    Forum permissions keyed by (group, forum), both rewritten to destination ids.

    Forums are always new rows, so a (group, forum) pair that is already
    present was written by this run and is kept.
    """

    table = "forum_perms"

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = dict(row)
        group_id = ctx.ids.new_id("groups", row["group_id"], key="g_id")
        if group_id is not None:
            row["group_id"] = group_id
        forum_id = ctx.ids.new_id("forums", row["forum_id"])
        if forum_id is None:
            logger.warning(f"forum_perms: forum {row['forum_id']} was not migrated, row skipped")
            ctx.skipped += 1
            return True
        row["forum_id"] = forum_id
        if row_exists(ctx.destination, "forum_perms", {"group_id": row["group_id"], "forum_id": forum_id}):
            ctx.skipped += 1
            return True
        ctx.destination.insert("forum_perms", row)
        return True


class UpsertWriter(EntityWriter):
    """Insert, or update the row sharing the natural key."""

    def __init__(self, table: str, natural_key: str, drop: Tuple[str, ...] = ("id",)):
        self.table = table
        self.natural_key = natural_key
        self.drop = drop

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = {k: v for k, v in row.items() if k not in self.drop}
        key = row[self.natural_key]
        if not row_exists(ctx.destination, self.table, {self.natural_key: key}):
            ctx.destination.insert(self.table, row)
            return True
        values = {k: v for k, v in row.items() if k != self.natural_key}
        ctx.destination.update(self.table, values, {self.natural_key: key})
        logger.debug(f"{self.table}: updated existing '{key}'")
        return True


class SmiliesWriter(EntityWriter):
    """Smilies, skipping codes the destination already has."""

    table = "smilies"

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = {k: v for k, v in row.items() if k != "id"}
        if row_exists(ctx.destination, "smilies", {"sm_code": row.get("sm_code", "")}):
            ctx.skipped += 1
            return True
        ctx.destination.insert("smilies", row)
        return True


class TopicsWriter(InsertWriter):
    """Topics. Forum, mover and poster references are rewritten at the end."""

    def __init__(self):
        super().__init__("topics", "id")

    def finalize(self, ctx: RunContext) -> bool:
        db = ctx.destination
        remap_column(db, "topics", "forum_id", "forums", fallback="0")
        remap_self_reference(db, "topics", "moved_to", default=0)
        remap_column(db, "topics", "poster_id", "users", fallback="0", where="id_old > 0 AND poster_id > 0")
        remap_column(db, "topics", "last_poster_id", "users", fallback="0", where="id_old > 0 AND last_poster_id > 0")
        return True


class PostsWriter(InsertWriter):
    """Posts. Topic, poster and editor references are rewritten at the end."""

    def __init__(self):
        super().__init__("posts", "id")

    def finalize(self, ctx: RunContext) -> bool:
        db = ctx.destination
        remap_column(db, "posts", "topic_id", "topics", fallback="0")
        for id_column, name_column in (("poster_id", "poster"), ("editor_id", "editor")):
            remap_column(db, "posts", id_column, "users", fallback="0", where=f"id_old > 0 AND {id_column} > 0")
            copy_username(db, "posts", name_column, id_column)
        return True


class TopicsAgainWriter(EntityWriter):
    """First/last post ids and posters of migrated topics, recomputed from posts."""

    def finalize(self, ctx: RunContext) -> bool:
        db = ctx.destination
        db.execute(
            "UPDATE ::topics SET first_post_id = COALESCE(("
            "SELECT MIN(p.id) FROM ::posts AS p WHERE p.topic_id = ::topics.id), 0) "
            "WHERE id_old > 0"
        )
        db.execute(
            "UPDATE ::topics SET last_post_id = COALESCE(("
            "SELECT MAX(p.id) FROM ::posts AS p WHERE p.topic_id = ::topics.id), 0) "
            "WHERE id_old > 0"
        )
        for post_column, id_column, name_column in (
            ("first_post_id", "poster_id", "poster"),
            ("last_post_id", "last_poster_id", "last_poster"),
        ):
            db.execute(
                f"UPDATE ::topics SET {id_column} = ("
                f"SELECT p.poster_id FROM ::posts AS p WHERE p.id = ::topics.{post_column}) "
                f"WHERE id_old > 0 AND {post_column} > 0"
            )
            db.execute(
                f"UPDATE ::topics SET {name_column} = ("
                f"SELECT p.poster FROM ::posts AS p WHERE p.id = ::topics.{post_column}) "
                f"WHERE id_old > 0 AND {post_column} > 0"
            )
        return True


class ForumsAgainWriter(EntityWriter):
    """Last post of migrated forums, recomputed from topics."""

    def finalize(self, ctx: RunContext) -> bool:
        db = ctx.destination
        db.execute(
            "UPDATE ::forums SET last_post_id = COALESCE(("
            "SELECT MAX(t.last_post_id) FROM ::topics AS t WHERE t.forum_id = ::forums.id), 0) "
            "WHERE id_old > 0"
        )
        db.execute(
            "UPDATE ::forums SET last_poster_id = ("
            "SELECT p.poster_id FROM ::posts AS p WHERE p.id = ::forums.last_post_id) "
            "WHERE id_old > 0 AND last_post_id > 0"
        )
        db.execute(
            "UPDATE ::forums SET last_poster = ("
            "SELECT p.poster FROM ::posts AS p WHERE p.id = ::forums.last_post_id) "
            "WHERE id_old > 0 AND last_post_id > 0"
        )
        return True


class PmTopicsWriter(InsertWriter):
    """Private topics. Both participants are rewritten at the end."""

    def __init__(self):
        super().__init__("pm_topics", "id")

    def finalize(self, ctx: RunContext) -> bool:
        db = ctx.destination
        for id_column, name_column in (("poster_id", "poster"), ("target_id", "target")):
            remap_column(db, "pm_topics", id_column, "users", fallback="0", where=f"id_old > 0 AND {id_column} > 0")
            copy_username(db, "pm_topics", name_column, id_column)
        return True


class PmPostsWriter(InsertWriter):
    """Private posts. Topic and poster are rewritten at the end."""

    def __init__(self):
        super().__init__("pm_posts", "id")

    def finalize(self, ctx: RunContext) -> bool:
        db = ctx.destination
        remap_column(db, "pm_posts", "topic_id", "pm_topics", fallback="0")
        remap_column(db, "pm_posts", "poster_id", "users", fallback="0", where="id_old > 0 AND poster_id > 0")
        copy_username(db, "pm_posts", "poster", "poster_id")
        return True


class PmTopicsAgainWriter(EntityWriter):
    """First/last post ids of migrated private topics."""

    def finalize(self, ctx: RunContext) -> bool:
        db = ctx.destination
        db.execute(
            "UPDATE ::pm_topics SET first_post_id = COALESCE(("
            "SELECT MIN(p.id) FROM ::pm_posts AS p WHERE p.topic_id = ::pm_topics.id), 0) "
            "WHERE id_old > 0"
        )
        db.execute(
            "UPDATE ::pm_topics SET last_post_id = COALESCE(("
            "SELECT MAX(p.id) FROM ::pm_posts AS p WHERE p.topic_id = ::pm_topics.id), 0) "
            "WHERE id_old > 0"
        )
        return True


class LinkWriter(EntityWriter):
    """
    Rows that only link migrated entities together.

    Every reference column is rewritten through the id lookup; a row with a
    reference that was not migrated is dropped. A row whose key is already
    present is a duplicate and is dropped as well; any other failed insert
    propagates.
    """

    def __init__(self, table: str, refs: Dict[str, Tuple[str, str]]):
        """
        Initialize the writer.

        Args:
            table: Destination table
            refs: Column -> (referenced tracked table, its key column)
        """
        self.table = table
        self.refs = refs

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = dict(row)
        for column, (ref_table, ref_key) in self.refs.items():
            new_id = ctx.ids.new_id(ref_table, row.get(column), key=ref_key)
            if new_id is None:
                logger.debug(f"{self.table}: {column}={row.get(column)} was not migrated, row skipped")
                ctx.skipped += 1
                return True
            row[column] = new_id

        key = {c: row.get(c) for c in (DESTINATION_SCHEMA[self.table].key_columns or list(row))}
        if row_exists(ctx.destination, self.table, key):
            logger.debug(f"{self.table}: duplicate link {key} skipped")
            ctx.skipped += 1
            return True
        ctx.destination.insert(self.table, row)
        return True


class BansWriter(EntityWriter):
    """Bans. The ban creator is rewritten and renamed usernames are followed."""

    table = "bans"

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = {k: v for k, v in row.items() if k != "id"}
        row["ban_creator"] = ctx.ids.new_id("users", row.get("ban_creator")) or 0
        if row.get("username"):
            row["username"] = ctx.resolver.rename_of(row["username"])
        ctx.destination.insert("bans", row)
        return True


class ConfigWriter(EntityWriter):
    """Board options, replacing values that already exist."""

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = {"conf_name": row["conf_name"], "conf_value": row.get("conf_value")}
        if row["conf_value"] is not None:
            row["conf_value"] = str(row["conf_value"])
        updated = ctx.destination.update("config", {"conf_value": row["conf_value"]}, {"conf_name": row["conf_name"]})
        if not updated:
            ctx.destination.insert("config", row)
        return True


class WarningsWriter(EntityWriter):
    """
    Warnings are keyed by the post they were issued for, so the new key is
    the destination id of that post.
    """

    table = "warnings"

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = dict(row)
        post_id = ctx.ids.new_id("posts", row.get("id_old"))
        if post_id is None:
            logger.debug(f"warnings: post {row.get('id_old')} was not migrated, row skipped")
            ctx.skipped += 1
            return True
        row["id"] = post_id
        ctx.destination.insert("warnings", row)
        return True

    def finalize(self, ctx: RunContext) -> bool:
        remap_column(ctx.destination, "warnings", "poster_id", "users", fallback="0", where="id_old > 0 AND poster_id > 0")
        return True


class ReportsWriter(EntityWriter):
    """Reports, with every reference looked up per row."""

    table = "reports"

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = {k: v for k, v in row.items() if k != "id"}
        post_id = ctx.ids.new_id("posts", row.get("post_id"))
        if post_id is None:
            ctx.skipped += 1
            return True
        row["post_id"] = post_id
        row["topic_id"] = ctx.ids.new_id("topics", row.get("topic_id")) or 0
        row["forum_id"] = ctx.ids.new_id("forums", row.get("forum_id")) or 0
        row["reported_by"] = ctx.ids.new_id("users", row.get("reported_by")) or 0
        row["zapped_by"] = ctx.ids.new_id("users", row.get("zapped_by")) or 0
        ctx.destination.insert("reports", row)
        return True


class AttachmentsWriter(InsertWriter):
    """Attachments. The uploader is rewritten at the end."""

    def __init__(self):
        super().__init__("attachments", "id")

    def finalize(self, ctx: RunContext) -> bool:
        remap_column(ctx.destination, "attachments", "uid", "users", fallback="0", where="id_old > 0 AND uid > 0")
        return True


class DraftsWriter(EntityWriter):
    """Drafts, with poster, topic and forum looked up per row."""

    table = "drafts"

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        row = {k: v for k, v in row.items() if k != "id"}
        poster_id = ctx.ids.new_id("users", row.get("poster_id"))
        if poster_id is None:
            ctx.skipped += 1
            return True
        row["poster_id"] = poster_id
        row["topic_id"] = ctx.ids.new_id("topics", row.get("topic_id")) or 0
        row["forum_id"] = ctx.ids.new_id("forums", row.get("forum_id")) or 0
        ctx.destination.insert("drafts", row)
        return True


class OtherAgainWriter(EntityWriter):
    """Per-user counters that depend on several migrated entities."""

    def finalize(self, ctx: RunContext) -> bool:
        ctx.destination.execute(
            "UPDATE ::users SET num_topics = ("
            "SELECT COUNT(*) FROM ::topics AS t WHERE t.poster_id = ::users.id AND t.moved_to = 0) "
            "WHERE id_old > 0"
        )
        return True


USER = ("users", "id")
FORUM = ("forums", "id")
TOPIC = ("topics", "id")
POST = ("posts", "id")
PM_POST = ("pm_posts", "id")
ATTACHMENT = ("attachments", "id")

LINK_REFS: Dict[str, Dict[str, Tuple[str, str]]] = {
    "forum_subscriptions": {"user_id": USER, "forum_id": FORUM},
    "topic_subscriptions": {"user_id": USER, "topic_id": TOPIC},
    "mark_of_forum": {"uid": USER, "fid": FORUM},
    "mark_of_topic": {"uid": USER, "tid": TOPIC},
    "poll": {"tid": TOPIC},
    "poll_voted": {"tid": TOPIC, "uid": USER},
    "pm_block": {"bl_first_id": USER, "bl_second_id": USER},
    "providers_users": {"uid": USER},
    "attachments_pos": {"id": ATTACHMENT, "pid": POST},
    "attachments_pos_pm": {"id": ATTACHMENT, "pid": PM_POST},
    "reactions": {"pid": POST, "uid": USER},
}


def link_writer(table: str) -> LinkWriter:
    return LinkWriter(table, LINK_REFS[table])


def shared_writers() -> Dict[str, EntityWriter]:
    """Writers of every entity, keyed by entity name."""
    writers: Dict[str, EntityWriter] = {
        "categories": PositionedWriter("categories", "id"),
        "groups": GroupsWriter(),
        "users": UsersWriter(),
        "forums": ForumsWriter(),
        "forum_perms": ForumPermsWriter(),
        "bbcode": UpsertWriter("bbcode", "bb_tag"),
        "censoring": InsertWriter("censoring"),
        "smilies": SmiliesWriter(),
        "topics": TopicsWriter(),
        "posts": PostsWriter(),
        "topics_again": TopicsAgainWriter(),
        "forums_again": ForumsAgainWriter(),
        "warnings": WarningsWriter(),
        "reports": ReportsWriter(),
        "pm_topics": PmTopicsWriter(),
        "pm_posts": PmPostsWriter(),
        "pm_topics_again": PmTopicsAgainWriter(),
        "bans": BansWriter(),
        "config": ConfigWriter(),
        "providers": UpsertWriter("providers", "pr_name", drop=()),
        "attachments": AttachmentsWriter(),
        "drafts": DraftsWriter(),
        "other_again": OtherAgainWriter(),
    }
    for table in LINK_REFS:
        writers[table] = link_writer(table)
    return writers


AGAIN_TABLES = {
    Entity.TOPICS_AGAIN: "topics",
    Entity.FORUMS_AGAIN: "forums",
    Entity.PM_TOPICS_AGAIN: "pm_topics",
    Entity.OTHER_AGAIN: "users",
}


def assemble_handlers(readers: Dict[Entity, SourceReader]) -> Dict[Entity, EntityHandler]:
    """
    Pair product readers with the shared writers.

    Reconciliation entities always get their writer. Other entities without
    a reader are left out of the registry and fall back to the no-op handler.

    Args:
        readers: Reader of every entity the product can supply

    Returns:
        Handler registry for a driver
    """
    writers = shared_writers()
    handlers: Dict[Entity, EntityHandler] = {}
    for spec in MIGRATION_PLAN:
        if spec.role == EntityRole.AGAIN:
            handlers[spec.entity] = EntityHandler(writer=writers[spec.name], table=AGAIN_TABLES[spec.entity])
        elif spec.entity in readers:
            handlers[spec.entity] = EntityHandler(readers[spec.entity], writers[spec.name], table=spec.name)
    return handlers
