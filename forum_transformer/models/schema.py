"""Destination schema definitions and seed data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum


FORK_REVISION = 48

# Destination group ids
GROUP_UNVERIFIED = 0
GROUP_ADMIN = 1
GROUP_MOD = 2
GROUP_GUEST = 3
GROUP_MEMBER = 4
GROUP_NEW_MEMBER = 5

DEFAULT_GROUP_IDS = (
    GROUP_UNVERIFIED,
    GROUP_ADMIN,
    GROUP_MOD,
    GROUP_GUEST,
    GROUP_MEMBER,
)


class ColumnType(str, Enum):
    """Portable column types."""
    SERIAL = "serial"  # Auto-increment integer primary key
    INTEGER = "integer"
    SMALLINT = "smallint"
    VARCHAR = "varchar"
    TEXT = "text"
    FLOAT = "float"


@dataclass
class Column:
    """Definition of a column in a destination table."""
    name: str
    type: ColumnType
    length: Optional[int] = None  # For VARCHAR
    nullable: bool = False
    default: Optional[Any] = None


@dataclass
class TableSchema:
    """Definition of a destination table."""
    name: str
    columns: List[Column] = field(default_factory=list)
    primary_key: List[str] = field(default_factory=list)
    unique: Dict[str, List[str]] = field(default_factory=dict)
    indexes: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def key_columns(self) -> List[str]:
        """Columns identifying a row: the primary key, else the first unique index."""
        if self.primary_key:
            return list(self.primary_key)
        for fields in self.unique.values():
            return list(fields)
        return []

    @property
    def serial_column(self) -> Optional[str]:
        for column in self.columns:
            if column.type == ColumnType.SERIAL:
                return column.name
        return None


def _int(name: str, default: int = 0) -> Column:
    return Column(name, ColumnType.INTEGER, default=default)


def _small(name: str, default: int = 0) -> Column:
    return Column(name, ColumnType.SMALLINT, default=default)


def _str(name: str, length: int, default: str = "") -> Column:
    return Column(name, ColumnType.VARCHAR, length=length, default=default)


def _text(name: str, nullable: bool = False) -> Column:
    return Column(name, ColumnType.TEXT, nullable=nullable)


def _serial(name: str = "id") -> Column:
    return Column(name, ColumnType.SERIAL)


DESTINATION_TABLES: List[TableSchema] = [
    TableSchema(
        "bans",
        [
            _serial(),
            _str("username", 190),
            _str("ip", 255),
            _str("email", 190),
            _str("message", 255),
            _int("expire"),
            _int("ban_creator"),
        ],
        primary_key=["id"],
        indexes={"username_idx": ["username"]},
    ),
    TableSchema(
        "bbcode",
        [
            _serial(),
            _str("bb_tag", 11),
            _small("bb_edit", 1),
            _small("bb_delete", 1),
            _text("bb_structure"),
        ],
        primary_key=["id"],
        unique={"bb_tag_idx": ["bb_tag"]},
    ),
    TableSchema(
        "categories",
        [
            _serial(),
            _str("cat_name", 80, "New Category"),
            _int("disp_position"),
        ],
        primary_key=["id"],
    ),
    TableSchema(
        "censoring",
        [
            _serial(),
            _str("search_for", 60),
            _str("replace_with", 60),
        ],
        primary_key=["id"],
    ),
    TableSchema(
        "config",
        [
            _str("conf_name", 190),
            _text("conf_value", nullable=True),
        ],
        primary_key=["conf_name"],
    ),
    TableSchema(
        "forum_perms",
        [
            _int("group_id"),
            _int("forum_id"),
            _small("read_forum", 1),
            _small("post_replies", 1),
            _small("post_topics", 1),
        ],
        primary_key=["group_id", "forum_id"],
    ),
    TableSchema(
        "forums",
        [
            _serial(),
            _str("forum_name", 80, "New forum"),
            _str("friendly_name", 80),
            _text("forum_desc"),
            _str("redirect_url", 255),
            _text("moderators"),
            _int("num_topics"),
            _int("num_posts"),
            _int("last_post"),
            _int("last_post_id"),
            _str("last_poster", 190),
            _int("last_poster_id"),
            _str("last_topic", 255),
            _small("sort_by"),
            _int("disp_position"),
            _int("cat_id"),
            _small("no_sum_mess"),
            _int("parent_forum_id"),
        ],
        primary_key=["id"],
    ),
    TableSchema(
        "groups",
        [
            _serial("g_id"),
            _str("g_title", 50),
            _str("g_user_title", 50),
            _int("g_promote_min_posts"),
            _int("g_promote_next_group"),
            _small("g_moderator"),
            _small("g_mod_edit_users"),
            _small("g_mod_rename_users"),
            _small("g_mod_change_passwords"),
            _small("g_mod_ban_users"),
            _small("g_mod_promote_users"),
            _small("g_read_board", 1),
            _small("g_view_users", 1),
            _small("g_post_replies", 1),
            _small("g_post_topics", 1),
            _small("g_edit_posts", 1),
            _small("g_delete_posts", 1),
            _small("g_delete_topics", 1),
            _small("g_post_links", 1),
            _small("g_set_title", 1),
            _small("g_search", 1),
            _small("g_search_users", 1),
            _small("g_send_email", 1),
            _small("g_post_flood", 30),
            _small("g_search_flood", 30),
            _small("g_email_flood", 60),
            _small("g_report_flood", 60),
            _int("g_deledit_interval"),
            _small("g_pm", 1),
            _int("g_pm_limit", 100),
            _small("g_sig_length", 400),
            _small("g_sig_lines", 4),
            _str("g_up_ext", 255, "webp,jpg,jpeg,png,gif,avif"),
            _int("g_up_size_kb"),
            _int("g_up_limit_mb"),
            _small("g_delete_profile"),
        ],
        primary_key=["g_id"],
    ),
    TableSchema(
        "online",
        [
            _int("user_id", 1),
            _str("ident", 190),
            _int("logged"),
            _int("last_post"),
            _int("last_search"),
            _str("o_position", 100),
            _str("o_name", 190),
        ],
        unique={"user_id_ident_idx": ["user_id", "ident"]},
        indexes={"ident_idx": ["ident"], "logged_idx": ["logged"]},
    ),
    TableSchema(
        "posts",
        [
            _serial(),
            _str("poster", 190),
            _int("poster_id", 1),
            _str("poster_ip", 45),
            _str("poster_email", 190),
            _text("message"),
            _small("hide_smilies"),
            _small("edit_post"),
            _int("posted"),
            _int("edited"),
            _str("editor", 190),
            _int("editor_id"),
            _str("user_agent", 255),
            _int("topic_id"),
        ],
        primary_key=["id"],
        indexes={"topic_id_idx": ["topic_id"], "multi_idx": ["poster_id", "topic_id"]},
    ),
    TableSchema(
        "reports",
        [
            _serial(),
            _int("post_id"),
            _int("topic_id"),
            _int("forum_id"),
            _int("reported_by"),
            _int("created"),
            _text("message"),
            _int("zapped"),
            _int("zapped_by"),
        ],
        primary_key=["id"],
        indexes={"zapped_idx": ["zapped"]},
    ),
    TableSchema(
        "search_cache",
        [
            _text("search_data"),
            _int("search_time"),
            _str("search_key", 190),
        ],
        indexes={"search_time_idx": ["search_time"], "search_key_idx": ["search_key"]},
    ),
    TableSchema(
        "search_matches",
        [
            _int("post_id"),
            _int("word_id"),
            _small("subject_match"),
        ],
        indexes={"word_id_idx": ["word_id"], "post_id_idx": ["post_id"]},
    ),
    TableSchema(
        "search_words",
        [
            _serial(),
            _str("word", 20),
        ],
        primary_key=["id"],
        unique={"word_idx": ["word"]},
    ),
    TableSchema(
        "topic_subscriptions",
        [
            _int("user_id"),
            _int("topic_id"),
        ],
        primary_key=["user_id", "topic_id"],
    ),
    TableSchema(
        "forum_subscriptions",
        [
            _int("user_id"),
            _int("forum_id"),
        ],
        primary_key=["user_id", "forum_id"],
    ),
    TableSchema(
        "topics",
        [
            _serial(),
            _str("poster", 190),
            _int("poster_id"),
            _str("subject", 255),
            _int("posted"),
            _int("first_post_id"),
            _int("last_post"),
            _int("last_post_id"),
            _str("last_poster", 190),
            _int("last_poster_id"),
            _int("num_views"),
            _int("num_replies"),
            _small("closed"),
            _small("sticky"),
            _small("stick_fp"),
            _int("moved_to"),
            _int("forum_id"),
            _small("poll_type"),
            _int("poll_time"),
            _small("poll_term"),
        ],
        primary_key=["id"],
        indexes={
            "forum_id_idx": ["forum_id"],
            "moved_to_idx": ["moved_to"],
            "last_post_idx": ["last_post"],
            "first_post_id_idx": ["first_post_id"],
        },
    ),
    TableSchema(
        "pm_block",
        [
            _int("bl_first_id"),
            _int("bl_second_id"),
        ],
        indexes={"bl_first_id_idx": ["bl_first_id"], "bl_second_id_idx": ["bl_second_id"]},
    ),
    TableSchema(
        "pm_posts",
        [
            _serial(),
            _str("poster", 190),
            _int("poster_id"),
            _str("poster_ip", 45),
            _text("message"),
            _small("hide_smilies"),
            _int("posted"),
            _int("edited"),
            _int("topic_id"),
        ],
        primary_key=["id"],
        indexes={"topic_id_idx": ["topic_id"]},
    ),
    TableSchema(
        "pm_topics",
        [
            _serial(),
            _str("subject", 255),
            _str("poster", 190),
            _int("poster_id"),
            _small("poster_status"),
            _int("poster_visit"),
            _str("target", 190),
            _int("target_id"),
            _small("target_status"),
            _int("target_visit"),
            _int("num_replies"),
            _int("first_post_id"),
            _int("last_post"),
            _int("last_post_id"),
            _small("last_number"),
        ],
        primary_key=["id"],
        indexes={
            "last_post_idx": ["last_post"],
            "poster_id_status_idx": ["poster_id", "poster_status"],
            "target_id_status_idx": ["target_id", "target_status"],
        },
    ),
    TableSchema(
        "users",
        [
            _serial(),
            _int("group_id"),
            _str("username", 190),
            _str("username_normal", 190),
            _str("password", 255),
            _str("email", 190),
            _str("email_normal", 190),
            _small("email_confirmed"),
            _str("title", 50),
            _str("avatar", 30),
            _str("realname", 40),
            _str("url", 100),
            _str("jabber", 80),
            _str("icq", 12),
            _str("msn", 80),
            _str("aim", 30),
            _str("yahoo", 30),
            _str("location", 30),
            _text("signature"),
            _small("disp_topics"),
            _small("disp_posts"),
            _small("email_setting", 1),
            _small("notify_with_post"),
            _small("auto_notify"),
            _small("show_smilies", 1),
            _small("show_img", 1),
            _small("show_img_sig", 1),
            _small("show_avatars", 1),
            _small("show_sig", 1),
            Column("timezone", ColumnType.FLOAT, default=0),
            _small("dst"),
            _small("time_format"),
            _small("date_format"),
            _str("language", 25),
            _str("locale", 20, "en"),
            _str("style", 25),
            _int("num_posts"),
            _int("num_topics"),
            _int("last_post"),
            _int("last_search"),
            _int("last_email_sent"),
            _int("last_report_sent"),
            _int("registered"),
            _str("registration_ip", 45),
            _int("last_visit"),
            _str("admin_note", 30),
            _str("activate_string", 80),
            _small("u_pm", 1),
            _small("u_pm_notify"),
            _small("u_pm_flash"),
            _int("u_pm_num_new"),
            _int("u_pm_num_all"),
            _int("u_pm_last_post"),
            _small("warning_flag"),
            _int("warning_all"),
            _small("gender"),
            _int("u_mark_all_read"),
            _int("last_report_id"),
            _small("ip_check_type"),
            _str("login_ip_cache", 255),
            _int("u_up_size_mb"),
            _str("unfollowed_f", 255),
            _small("show_reaction", 1),
            _small("page_scroll"),
            _int("about_me_id"),
        ],
        primary_key=["id"],
        unique={
            "username_normal_idx": ["username_normal"],
            "email_normal_idx": ["email_normal"],
        },
        indexes={"registered_idx": ["registered"]},
    ),
    TableSchema(
        "smilies",
        [
            _serial(),
            _str("sm_image", 40),
            _str("sm_code", 20),
            _int("sm_position"),
        ],
        primary_key=["id"],
    ),
    TableSchema(
        "warnings",
        [
            _serial(),
            _str("poster", 190),
            _int("poster_id"),
            _int("posted"),
            _text("message"),
        ],
        primary_key=["id"],
    ),
    TableSchema(
        "poll",
        [
            _int("tid"),
            _small("question_id"),
            _small("field_id"),
            _str("qna_text", 255),
            _int("votes"),
        ],
        primary_key=["tid", "question_id", "field_id"],
    ),
    TableSchema(
        "poll_voted",
        [
            _int("tid"),
            _int("uid"),
            _text("rez"),
        ],
        primary_key=["tid", "uid"],
    ),
    TableSchema(
        "mark_of_forum",
        [
            _int("uid"),
            _int("fid"),
            _int("mf_mark_all_read"),
        ],
        unique={"uid_fid_idx": ["uid", "fid"]},
        indexes={"mf_mark_all_read_idx": ["mf_mark_all_read"]},
    ),
    TableSchema(
        "mark_of_topic",
        [
            _int("uid"),
            _int("tid"),
            _int("mt_last_visit"),
            _int("mt_last_read"),
        ],
        unique={"uid_tid_idx": ["uid", "tid"]},
        indexes={"mt_last_visit_idx": ["mt_last_visit"], "mt_last_read_idx": ["mt_last_read"]},
    ),
    TableSchema(
        "providers",
        [
            _str("pr_name", 25),
            _small("pr_allow"),
            _int("pr_pos"),
            _str("pr_cl_id", 255),
            _str("pr_cl_sec", 255),
        ],
        primary_key=["pr_name"],
    ),
    TableSchema(
        "providers_users",
        [
            _int("uid"),
            _str("pr_name", 25),
            _str("pu_uid", 165),
            _str("pu_email", 190),
            _str("pu_email_normal", 190),
            _small("pu_email_verified"),
        ],
        primary_key=["pr_name", "pu_uid"],
        indexes={"uid_idx": ["uid"], "pu_email_normal_idx": ["pu_email_normal"]},
    ),
    TableSchema(
        "attachments",
        [
            _serial(),
            _int("uid"),
            _int("created"),
            _int("size_kb"),
            _str("path", 255),
            _str("uip", 45),
        ],
        primary_key=["id"],
        indexes={"uid_idx": ["uid"], "created_idx": ["created"]},
    ),
    TableSchema(
        "attachments_pos",
        [
            _int("id"),
            _int("pid"),
        ],
        primary_key=["id", "pid"],
        indexes={"pid_idx": ["pid"]},
    ),
    TableSchema(
        "attachments_pos_pm",
        [
            _int("id"),
            _int("pid"),
        ],
        primary_key=["id", "pid"],
        indexes={"pid_idx": ["pid"]},
    ),
    TableSchema(
        "reactions",
        [
            _int("pid"),
            _int("uid"),
            _small("reaction"),
        ],
        primary_key=["pid", "uid"],
        indexes={"uid_idx": ["uid"]},
    ),
    TableSchema(
        "drafts",
        [
            _serial(),
            _int("poster_id"),
            _int("topic_id"),
            _int("forum_id"),
            _str("poster_ip", 45),
            _str("subject", 255),
            _text("message"),
            _small("hide_smilies"),
            _str("user_agent", 255),
            _int("saved"),
        ],
        primary_key=["id"],
        indexes={"poster_id_idx": ["poster_id"]},
    ),
]

DESTINATION_SCHEMA: Dict[str, TableSchema] = {t.name: t for t in DESTINATION_TABLES}

# Tables that receive the temporary id_old column during a run
TRACKED_TABLES = [
    "categories",
    "forums",
    "groups",
    "posts",
    "topics",
    "pm_posts",
    "pm_topics",
    "users",
    "warnings",
    "attachments",
    "bans",
    "censoring",
    "reports",
    "drafts",
]

TRACKING_COLUMN = Column("id_old", ColumnType.INTEGER, default=0)
TRACKING_INDEX = "id_old_idx"

# Entities whose end-of-entity fix-ups have been committed, kept while the run lasts
FINALIZED_TABLE = TableSchema(
    "id_old_finalized",
    [_str("entity", 40)],
    primary_key=["entity"],
)

_GROUP_FLAGS = [
    "g_id", "g_title", "g_user_title", "g_moderator", "g_mod_edit_users",
    "g_mod_rename_users", "g_mod_change_passwords", "g_mod_ban_users",
    "g_mod_promote_users", "g_read_board", "g_view_users", "g_post_replies",
    "g_post_topics", "g_edit_posts", "g_delete_posts", "g_delete_topics",
    "g_post_links", "g_set_title", "g_search", "g_search_users", "g_send_email",
    "g_post_flood", "g_search_flood", "g_email_flood", "g_report_flood",
    "g_promote_min_posts", "g_promote_next_group",
]

_GROUP_ROWS = [
    [GROUP_ADMIN, "Administrators", "Administrator", 0, 0, 0, 0, 0, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 0, 0, 0, 0, 0, 0],
    [GROUP_MOD, "Moderators", "Moderator", 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 0, 0, 0, 0, 0, 0],
    [GROUP_GUEST, "Guests", "", 0, 0, 0, 0, 0, 0, 1, 1, 0, 0, 0, 0, 0, 0, 0, 1, 1, 0, 120, 60, 0, 0, 0, 0],
    [GROUP_MEMBER, "Members", "", 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 1, 1, 1, 1, 0, 1, 1, 1, 30, 30, 60, 60, 0, 0],
]

DEFAULT_GROUPS: List[Dict[str, Any]] = [dict(zip(_GROUP_FLAGS, row)) for row in _GROUP_ROWS]
DEFAULT_GROUPS[0]["g_pm_limit"] = 0
DEFAULT_GROUPS[2].update({"g_pm": 0, "g_sig_length": 0, "g_sig_lines": 0})

DEFAULT_SMILIES = [
    (":)", "smile.png"),
    ("=)", "smile.png"),
    (":|", "neutral.png"),
    ("=|", "neutral.png"),
    (":(", "sad.png"),
    ("=(", "sad.png"),
    (":D", "big_smile.png"),
    ("=D", "big_smile.png"),
    (":o", "yikes.png"),
    (":O", "yikes.png"),
    (";)", "wink.png"),
    (":/", "hmm.png"),
    (":P", "tongue.png"),
    (":p", "tongue.png"),
    (":lol:", "lol.png"),
    (":mad:", "mad.png"),
    (":rolleyes:", "roll.png"),
    (":cool:", "cool.png"),
]

# (tag, type, parents); the structure is stored as JSON in bbcode.bb_structure
DEFAULT_BBCODE = [
    ("ROOT", "block", []),
    ("code", "block", ["ROOT", "quote", "list"]),
    ("b", "inline", ["inline", "block"]),
    ("i", "inline", ["inline", "block"]),
    ("u", "inline", ["inline", "block"]),
    ("s", "inline", ["inline", "block"]),
    ("del", "inline", ["inline", "block"]),
    ("ins", "inline", ["inline", "block"]),
    ("em", "inline", ["inline", "block"]),
    ("color", "inline", ["inline", "block"]),
    ("colour", "inline", ["inline", "block"]),
    ("size", "inline", ["inline", "block"]),
    ("h", "block", ["ROOT", "quote"]),
    ("hr", "block", ["ROOT", "quote"]),
    ("right", "block", ["ROOT", "quote"]),
    ("center", "block", ["ROOT", "quote"]),
    ("left", "block", ["ROOT", "quote"]),
    ("quote", "block", ["ROOT", "quote"]),
    ("list", "block", ["ROOT", "quote", "list"]),
    ("*", "block", ["list"]),
    ("email", "inline", ["inline", "block"]),
    ("url", "inline", ["inline", "block"]),
    ("img", "inline", ["inline", "block"]),
]

DEFAULT_PROVIDERS = ["github", "yandex", "google", "vk", "discord"]
