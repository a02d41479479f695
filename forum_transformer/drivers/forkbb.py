"""ForkBB source driver: rows are copied unchanged apart from their keys."""

from typing import Dict, Optional

from ..models.entity import Entity
from ..models.schema import GROUP_GUEST, GROUP_UNVERIFIED
from ..services.database import Database
from .base import Driver, EntityHandler, SourceReader, config_value, revision
from .readers import FullTableReader, KeyWindowReader, PagedReader
from .writers import assemble_handlers


class ForkBBDriver(Driver):
    """
    Identity driver for ForkBB boards.

    Supports:
    - Copy and merge into another ForkBB board
    - Exact copy, which keeps every tracked primary key
    """

    type_name = "ForkBB"
    min_version = "42"
    max_version = "48"
    required_tables = [
        "bans",
        "bbcode",
        "categories",
        "censoring",
        "config",
        "forums",
        "forum_perms",
        "forum_subscriptions",
        "groups",
        "mark_of_forum",
        "mark_of_topic",
        "online",
        "pm_block",
        "pm_posts",
        "pm_topics",
        "poll",
        "poll_voted",
        "posts",
        "reports",
        "search_cache",
        "search_matches",
        "search_words",
        "smilies",
        "topics",
        "topic_subscriptions",
        "users",
        "warnings",
    ]

    def read_version(self, db: Database) -> Optional[str]:
        return revision(config_value(db, "i_fork_revision"))

    def build_handlers(self) -> Dict[Entity, EntityHandler]:
        readers: Dict[Entity, SourceReader] = {
            Entity.CATEGORIES: PagedReader("categories"),
            Entity.GROUPS: PagedReader("groups", key="g_id"),
            Entity.USERS: PagedReader(
                "users",
                where="group_id NOT IN :excluded",
                params={"excluded": [GROUP_UNVERIFIED, GROUP_GUEST]},
            ),
            Entity.FORUMS: PagedReader("forums"),
            Entity.FORUM_PERMS: FullTableReader("forum_perms"),
            Entity.BBCODE: PagedReader("bbcode", tracked=False),
            Entity.CENSORING: PagedReader("censoring"),
            Entity.SMILIES: PagedReader("smilies", tracked=False),
            Entity.TOPICS: PagedReader("topics"),
            Entity.POSTS: PagedReader("posts"),
            Entity.WARNINGS: PagedReader("warnings"),
            Entity.REPORTS: PagedReader("reports"),
            Entity.FORUM_SUBSCRIPTIONS: KeyWindowReader("forum_subscriptions", "user_id"),
            Entity.TOPIC_SUBSCRIPTIONS: KeyWindowReader("topic_subscriptions", "user_id"),
            Entity.MARK_OF_FORUM: KeyWindowReader("mark_of_forum", "uid"),
            Entity.MARK_OF_TOPIC: KeyWindowReader("mark_of_topic", "uid"),
            Entity.POLL: KeyWindowReader("poll", "tid"),
            Entity.POLL_VOTED: KeyWindowReader("poll_voted", "tid"),
            Entity.PM_TOPICS: PagedReader("pm_topics"),
            Entity.PM_POSTS: PagedReader("pm_posts"),
            Entity.PM_BLOCK: KeyWindowReader("pm_block", "bl_first_id"),
            Entity.BANS: PagedReader("bans"),
            Entity.CONFIG: FullTableReader("config"),
            Entity.PROVIDERS: FullTableReader("providers", optional=True),
            Entity.PROVIDERS_USERS: KeyWindowReader("providers_users", "uid", optional=True),
            Entity.ATTACHMENTS: PagedReader("attachments", optional=True),
            Entity.ATTACHMENTS_POS: KeyWindowReader("attachments_pos", "id", optional=True),
            Entity.ATTACHMENTS_POS_PM: KeyWindowReader("attachments_pos_pm", "id", optional=True),
            Entity.REACTIONS: KeyWindowReader("reactions", "pid", optional=True),
            Entity.DRAFTS: PagedReader("drafts", optional=True),
        }
        return assemble_handlers(readers)
