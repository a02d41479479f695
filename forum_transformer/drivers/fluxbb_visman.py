"""FluxBB_by_Visman source driver."""

import json
import logging
import time
from typing import Any, Dict, Optional

import phpserialize

from ..context import RunContext
from ..models.entity import Entity
from ..services.database import Database
from ..services.normalizer import normalize_email, normalize_username
from .base import Driver, EntityHandler, SourceReader, config_value, revision
from .config_lists import visman_config
from .readers import (
    FixedListReader,
    FullTableReader,
    KeyWindowReader,
    PagedReader,
    as_int,
    as_str,
)
from .writers import assemble_handlers

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

GROUP_FLAGS = [
    "g_moderator",
    "g_mod_edit_users",
    "g_mod_rename_users",
    "g_mod_change_passwords",
    "g_mod_ban_users",
    "g_read_board",
    "g_view_users",
    "g_post_replies",
    "g_post_topics",
    "g_edit_posts",
    "g_delete_posts",
    "g_delete_topics",
    "g_post_links",
    "g_set_title",
    "g_search",
    "g_search_users",
    "g_send_email",
    "g_post_flood",
    "g_search_flood",
    "g_email_flood",
    "g_report_flood",
    "g_deledit_interval",
    "g_pm",
    "g_pm_limit",
]

USER_TEXT = ["title", "realname", "url", "jabber", "icq", "location", "signature", "registration_ip", "admin_note"]
USER_INTS = [
    "disp_topics", "disp_posts", "email_setting", "notify_with_post", "auto_notify",
    "show_smilies", "show_img", "show_img_sig", "show_avatars", "show_sig", "dst",
    "time_format", "date_format", "num_posts", "last_post", "last_search",
    "last_email_sent", "last_report_sent", "registered", "last_visit",
]


def today_midnight() -> int:
    now = int(time.time())
    return now - now % 86400


def decode_moderators(value: Any) -> str:
    """
    Convert a PHP-serialized ``{name: id}`` moderator list to JSON ``{id: name}``.

    Returns:
        JSON text, or an empty string when the value is empty or unreadable
    """
    if not value:
        return ""
    try:
        mods = phpserialize.loads(str(value).encode("utf-8"), decode_strings=True)
    except ValueError as e:
        logger.warning(f"Unreadable moderators list {value!r}: {e}")
        return ""
    if not isinstance(mods, dict):
        return ""
    return json.dumps({str(as_int(uid)): str(name) for name, uid in mods.items()}, ensure_ascii=False)


def pm_status(status: int, visit: int) -> int:
    """Map a pms_new status to a ForkBB pm status."""
    if status in (0, 1):
        return 2
    if status == 2:
        return 1 if not visit else 0
    return status


def translate_category(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["id"]),
        "cat_name": as_str(row.get("cat_name")),
        "disp_position": as_int(row.get("disp_position")),
    }


def translate_group(ctx: RunContext, row: Row) -> Row:
    group = {
        "id_old": as_int(row["g_id"]),
        "g_title": as_str(row.get("g_title")),
        "g_user_title": as_str(row.get("g_user_title")),
        "g_promote_min_posts": as_int(row.get("g_promote_min_posts")),
        "g_promote_next_group": as_int(row.get("g_promote_next_group")),
        "g_mod_promote_users": as_int(row.get("g_mod_promote_users")),
        "g_sig_length": 400,
        "g_sig_lines": 4,
    }
    for flag in GROUP_FLAGS:
        group[flag] = as_int(row.get(flag))
    return group


def translate_user(ctx: RunContext, row: Row) -> Row:
    user = {
        "id_old": as_int(row["id"]),
        "group_id": as_int(row.get("group_id")),
        "username": row["username"],
        "username_normal": normalize_username(row["username"]),
        "password": as_str(row.get("password")),
        "email": as_str(row.get("email")),
        "email_normal": normalize_email(as_str(row.get("email"))),
        "email_confirmed": 0,
        "avatar": "",
        "msn": "",
        "aim": "",
        "yahoo": "",
        "timezone": float(row.get("timezone") or 0),
        "language": "ru" if row.get("language") == "Russian" else "en",
        "style": "ForkBB",
        "num_topics": 0,
        "activate_string": "",
        "u_pm": as_int(row.get("messages_enable"), 1),
        "u_pm_notify": as_int(row.get("messages_email")),
        "u_pm_flash": as_int(row.get("messages_flag")),
        "u_pm_num_new": as_int(row.get("messages_new")),
        "u_pm_num_all": as_int(row.get("messages_all")),
        "u_pm_last_post": as_int(row.get("pmsn_last_post")),
        "warning_flag": as_int(row.get("warning_flag")),
        "warning_all": as_int(row.get("warning_all")),
        "gender": as_int(row.get("gender")),
        "u_mark_all_read": as_int(row.get("last_visit")) or today_midnight(),
        "last_report_id": 0,
        "ip_check_type": 0,
        "login_ip_cache": "",
    }
    for name in USER_TEXT:
        user[name] = as_str(row.get(name))
    for name in USER_INTS:
        user[name] = as_int(row.get(name))
    return user


def translate_forum(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["id"]),
        "forum_name": as_str(row.get("forum_name")),
        "forum_desc": as_str(row.get("forum_desc")),
        "redirect_url": as_str(row.get("redirect_url")),
        "moderators": decode_moderators(row.get("moderators")),
        "num_topics": as_int(row.get("num_topics")),
        "num_posts": as_int(row.get("num_posts")),
        "last_post": as_int(row.get("last_post")),
        "last_post_id": as_int(row.get("last_post_id")),
        "last_poster": as_str(row.get("last_poster")),
        "last_poster_id": 0,
        "last_topic": as_str(row.get("last_topic")),
        "sort_by": as_int(row.get("sort_by")),
        "disp_position": as_int(row.get("disp_position")),
        "cat_id": as_int(row.get("cat_id")),
        "no_sum_mess": as_int(row.get("no_sum_mess")),
        "parent_forum_id": as_int(row.get("parent_forum_id")),
    }


def translate_forum_perm(ctx: RunContext, row: Row) -> Row:
    return {
        "group_id": as_int(row["group_id"]),
        "forum_id": as_int(row["forum_id"]),
        "read_forum": as_int(row.get("read_forum")),
        "post_replies": as_int(row.get("post_replies")),
        "post_topics": as_int(row.get("post_topics")),
    }


def translate_censoring(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["id"]),
        "search_for": as_str(row.get("search_for")),
        "replace_with": as_str(row.get("replace_with")),
    }


def translate_smiley(ctx: RunContext, row: Row) -> Row:
    return {
        "sm_image": as_str(row.get("image")),
        "sm_code": as_str(row.get("text")),
        "sm_position": as_int(row.get("disp_position")),
    }


def translate_topic(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["id"]),
        "poster": as_str(row.get("poster")),
        "poster_id": 0,
        "subject": as_str(row.get("subject")),
        "posted": as_int(row.get("posted")),
        "first_post_id": as_int(row.get("first_post_id")),
        "last_post": as_int(row.get("last_post")),
        "last_post_id": as_int(row.get("last_post_id")),
        "last_poster": as_str(row.get("last_poster")),
        "last_poster_id": 0,
        "num_views": as_int(row.get("num_views")),
        "num_replies": as_int(row.get("num_replies")),
        "closed": as_int(row.get("closed")),
        "sticky": as_int(row.get("sticky")),
        "stick_fp": as_int(row.get("stick_fp")),
        "moved_to": as_int(row.get("moved_to")),
        "forum_id": as_int(row.get("forum_id")),
        "poll_type": as_int(row.get("poll_type")),
        "poll_time": as_int(row.get("poll_time")),
        "poll_term": as_int(row.get("poll_term")),
    }


def translate_post(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["id"]),
        "poster": as_str(row.get("poster")),
        "poster_id": as_int(row.get("poster_id")),
        "poster_ip": as_str(row.get("poster_ip")),
        "poster_email": as_str(row.get("poster_email")),
        "message": as_str(row.get("message")),
        "hide_smilies": as_int(row.get("hide_smilies")),
        "edit_post": as_int(row.get("edit_post")),
        "posted": as_int(row.get("posted")),
        "edited": as_int(row.get("edited")),
        "editor": as_str(row.get("edited_by")),
        "editor_id": 0,
        "user_agent": as_str(row.get("user_agent")),
        "topic_id": as_int(row.get("topic_id")),
    }


def translate_warning(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["id"]),
        "poster": as_str(row.get("poster")),
        "poster_id": as_int(row.get("poster_id")),
        "posted": as_int(row.get("posted")),
        "message": as_str(row.get("message")),
    }


def translate_user_link(column: str):
    def translate(ctx: RunContext, row: Row) -> Row:
        return {"user_id": as_int(row["user_id"]), column: as_int(row[column])}
    return translate


def translate_poll(ctx: RunContext, row: Row) -> Row:
    choice = as_str(row.get("choice"))
    votes = as_int(row.get("votes"))
    if not as_int(row.get("field")):
        choice = f"{votes}|{choice}"
        votes = as_int(row.get("poll_kol"))
    return {
        "tid": as_int(row["tid"]),
        "question_id": as_int(row.get("question")),
        "field_id": as_int(row.get("field")),
        "qna_text": choice,
        "votes": votes,
    }


def translate_poll_vote(ctx: RunContext, row: Row) -> Row:
    return {"tid": as_int(row["tid"]), "uid": as_int(row["uid"]), "rez": ""}


def translate_pm_topic(ctx: RunContext, row: Row) -> Row:
    see_st = as_int(row.get("see_st"))
    see_to = as_int(row.get("see_to"))
    return {
        "id_old": as_int(row["id"]),
        "subject": as_str(row.get("topic")),
        "poster": as_str(row.get("starter")),
        "poster_id": as_int(row.get("starter_id")),
        "poster_status": pm_status(as_int(row.get("topic_st")), see_st),
        "poster_visit": see_st,
        "target": as_str(row.get("to_user")),
        "target_id": as_int(row.get("to_id")),
        "target_status": pm_status(as_int(row.get("topic_to")), see_to),
        "target_visit": see_to,
        "num_replies": as_int(row.get("replies")),
        "first_post_id": 0,
        "last_post": as_int(row.get("last_posted")),
        "last_post_id": 0,
        "last_number": as_int(row.get("last_poster")),
    }


def translate_pm_post(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["id"]),
        "poster": as_str(row.get("poster")),
        "poster_id": as_int(row.get("poster_id")),
        "poster_ip": as_str(row.get("poster_ip")),
        "message": as_str(row.get("message")),
        "hide_smilies": as_int(row.get("hide_smilies")),
        "posted": as_int(row.get("posted")),
        "edited": as_int(row.get("edited")),
        "topic_id": as_int(row.get("topic_id")),
    }


def translate_pm_block(ctx: RunContext, row: Row) -> Row:
    return {"bl_first_id": as_int(row["bl_id"]), "bl_second_id": as_int(row["bl_user_id"])}


def translate_ban(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["id"]),
        "username": as_str(row.get("username")),
        "ip": as_str(row.get("ip")),
        "email": as_str(row.get("email")),
        "message": as_str(row.get("message")),
        "expire": as_int(row.get("expire")),
        "ban_creator": as_int(row.get("ban_creator")),
    }


def build_config(ctx: RunContext):
    old = ctx.source.fetch_pairs("SELECT conf_name, conf_value FROM ::config")
    return visman_config(old)


POLL_QUERY = (
    "SELECT p.*, t.poll_kol FROM ::poll AS p "
    "LEFT JOIN ::topics AS t ON t.id = p.tid "
    "WHERE p.tid BETWEEN :cursor AND :max ORDER BY p.tid"
)


class FluxBBVismanDriver(Driver):
    """
    Driver for FluxBB_by_Visman boards.

    Handles:
    - Field renames and defaults for users, groups, smilies and posts
    - PHP-serialized forum moderator lists
    - The pms_new private messaging tables
    - Polls without answer fields, folded into ``votes|choice`` text
    """

    type_name = "FluxBB_by_Visman"
    min_version = "78"
    max_version = "83"
    required_tables = [
        "bans",
        "categories",
        "censoring",
        "config",
        "forums",
        "forum_perms",
        "forum_subscriptions",
        "groups",
        "online",
        "pms_new_block",
        "pms_new_posts",
        "pms_new_topics",
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
        return revision(config_value(db, "o_cur_ver_revision"))

    def build_handlers(self) -> Dict[Entity, EntityHandler]:
        readers: Dict[Entity, SourceReader] = {
            Entity.CATEGORIES: PagedReader("categories", translate=translate_category),
            Entity.GROUPS: PagedReader("groups", key="g_id", where="g_id > 4", translate=translate_group),
            Entity.USERS: PagedReader(
                "users",
                where="group_id NOT IN :excluded",
                params={"excluded": [0, 3]},
                translate=translate_user,
            ),
            Entity.FORUMS: PagedReader("forums", translate=translate_forum),
            Entity.FORUM_PERMS: FullTableReader("forum_perms", translate=translate_forum_perm),
            Entity.CENSORING: PagedReader("censoring", translate=translate_censoring),
            Entity.SMILIES: PagedReader("smilies", translate=translate_smiley),
            Entity.TOPICS: PagedReader("topics", translate=translate_topic),
            Entity.POSTS: PagedReader("posts", translate=translate_post),
            Entity.WARNINGS: PagedReader("warnings", translate=translate_warning),
            Entity.FORUM_SUBSCRIPTIONS: KeyWindowReader(
                "forum_subscriptions", "user_id", translate=translate_user_link("forum_id")
            ),
            Entity.TOPIC_SUBSCRIPTIONS: KeyWindowReader(
                "topic_subscriptions", "user_id", translate=translate_user_link("topic_id")
            ),
            Entity.POLL: KeyWindowReader("poll", "tid", query=POLL_QUERY, translate=translate_poll),
            Entity.POLL_VOTED: KeyWindowReader("poll_voted", "tid", translate=translate_poll_vote),
            Entity.PM_TOPICS: PagedReader("pms_new_topics", translate=translate_pm_topic),
            Entity.PM_POSTS: PagedReader("pms_new_posts", translate=translate_pm_post),
            Entity.PM_BLOCK: KeyWindowReader("pms_new_block", "bl_id", translate=translate_pm_block),
            Entity.BANS: PagedReader("bans", translate=translate_ban),
            Entity.CONFIG: FixedListReader(build_config),
        }
        return assemble_handlers(readers)
