"""PunBB source driver."""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from ..context import RunContext
from ..models.entity import Entity
from ..models.schema import GROUP_GUEST, GROUP_MEMBER, GROUP_MOD
from ..services.database import Database
from ..services.normalizer import normalize_email, normalize_username
from .base import Driver, EntityHandler, SourceReader
from .config_lists import punbb_config
from .fluxbb_visman import (
    POLL_QUERY,
    decode_moderators,
    translate_ban,
    translate_category,
    translate_censoring,
    translate_forum_perm,
    translate_poll,
    translate_poll_vote,
    translate_post,
    translate_topic,
    translate_user_link,
)
from .readers import FixedListReader, FullTableReader, KeyWindowReader, PagedReader, as_int, as_str
from .writers import GroupsWriter, InsertWriter, assemble_handlers

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

PUNBB_GUEST = 2
REPLACEMENTS_KEY = "punbb_group_replacements"

LANGUAGES = {
    "Russian": "ru",
    "French": "fr",
    "Spanish": "es",
    "Simplified_Chinese": "zh",
    "Traditional_Chinese": "zh",
}


def parse_version(version: str) -> Tuple[int, ...]:
    """Numeric parts of a dotted version string."""
    parts = []
    for part in version.split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def group_replacements(ctx: RunContext) -> Dict[int, int]:
    """
    Built-in destination groups that stand in for PunBB groups.

    PunBB has no fixed moderator and member groups, so the first custom
    moderator group and the first custom plain group take those roles.
    Computed from the source once per run context.

    Returns:
        Destination group id -> source group id
    """
    if REPLACEMENTS_KEY in ctx.lookups:
        return ctx.lookups[REPLACEMENTS_KEY]

    replacements = {GROUP_GUEST: PUNBB_GUEST}
    for dest_id, moderator in ((GROUP_MOD, 1), (GROUP_MEMBER, 0)):
        gid = ctx.source.fetch_value(
            "SELECT g_id FROM ::groups WHERE g_id > 2 AND g_moderator = :moderator ORDER BY g_id LIMIT 1",
            {"moderator": moderator},
        )
        if gid:
            replacements[dest_id] = int(gid)

    ctx.lookups[REPLACEMENTS_KEY] = replacements
    return replacements


class PunBBGroupsReader(PagedReader):
    """Custom PunBB groups, minus the ones replaced by built-in groups."""

    def __init__(self):
        super().__init__("groups", key="g_id", translate=translate_group)

    def conditions(self, ctx: RunContext) -> List[str]:
        return super().conditions(ctx) + ["g_id > 2", "g_id NOT IN :replaced"]

    def parameters(self, ctx: RunContext) -> Dict[str, Any]:
        params = super().parameters(ctx)
        params["replaced"] = list(group_replacements(ctx).values())
        return params


class PunBBGroupsWriter(GroupsWriter):
    """
    Every PunBB group read is a custom group, whatever its id. The replacing
    built-in groups are marked with the source group they stand for.
    """

    def write(self, ctx: RunContext, row: Row) -> bool:
        return InsertWriter.write(self, ctx, row)

    def finalize(self, ctx: RunContext) -> bool:
        for dest_id, old_id in group_replacements(ctx).items():
            ctx.destination.update("groups", {"id_old": old_id}, {"g_id": dest_id})
        return super().finalize(ctx)


def translate_group(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["g_id"]),
        "g_title": as_str(row.get("g_title")),
        "g_user_title": as_str(row.get("g_user_title")),
        "g_promote_min_posts": 0,
        "g_promote_next_group": 0,
        "g_moderator": as_int(row.get("g_moderator")),
        "g_mod_edit_users": as_int(row.get("g_mod_edit_users")),
        "g_mod_rename_users": as_int(row.get("g_mod_rename_users")),
        "g_mod_change_passwords": as_int(row.get("g_mod_change_passwords")),
        "g_mod_ban_users": as_int(row.get("g_mod_ban_users")),
        "g_mod_promote_users": 0,
        "g_read_board": as_int(row.get("g_read_board")),
        "g_view_users": as_int(row.get("g_view_users")),
        "g_post_replies": as_int(row.get("g_post_replies")),
        "g_post_topics": as_int(row.get("g_post_topics")),
        "g_edit_posts": as_int(row.get("g_edit_posts")),
        "g_delete_posts": as_int(row.get("g_delete_posts")),
        "g_delete_topics": as_int(row.get("g_delete_topics")),
        "g_post_links": 1,
        "g_set_title": as_int(row.get("g_set_title")),
        "g_search": as_int(row.get("g_search")),
        "g_search_users": as_int(row.get("g_search_users")),
        "g_send_email": as_int(row.get("g_send_email")),
        "g_post_flood": as_int(row.get("g_post_flood")),
        "g_search_flood": as_int(row.get("g_search_flood")),
        "g_email_flood": as_int(row.get("g_email_flood")),
        "g_report_flood": 60,
        "g_deledit_interval": 0,
        "g_pm": as_int(row.get("g_pm"), 1),
        "g_pm_limit": as_int(row.get("g_pm_limit"), 100),
        "g_sig_length": 400,
        "g_sig_lines": 4,
        "g_up_ext": "webp,jpg,jpeg,png,gif,avif",
        "g_up_size_kb": 0,
        "g_up_limit_mb": 0,
        "g_delete_profile": 0,
    }


def translate_user(ctx: RunContext, row: Row) -> Row:
    now = int(time.time())
    language = LANGUAGES.get(as_str(row.get("language")), "en")
    username = as_str(row.get("username"))
    email = as_str(row.get("email"))
    user = {
        "id_old": as_int(row["id"]),
        "group_id": as_int(row.get("group_id")),
        "username": username,
        "username_normal": normalize_username(username),
        "password": as_str(row.get("password")),
        "email": email,
        "email_normal": normalize_email(email),
        "email_confirmed": 0,
        "avatar": "",
        "timezone": float(row.get("timezone") or 0),
        "language": language,
        "locale": language,
        "style": "ForkBB",
        "num_topics": 0,
        "last_report_sent": 0,
        "activate_string": "",
        "u_pm": as_int(row.get("messages_enable"), 1),
        "u_pm_notify": as_int(row.get("messages_email")),
        "u_pm_flash": as_int(row.get("messages_flag")),
        "u_pm_num_new": as_int(row.get("messages_new")),
        "u_pm_num_all": as_int(row.get("messages_all")),
        "u_pm_last_post": as_int(row.get("pmsn_last_post")),
        "warning_flag": 0,
        "warning_all": 0,
        "gender": 0,
        "u_mark_all_read": as_int(row.get("last_visit")) or now - now % 86400,
        "last_report_id": 0,
        "ip_check_type": 0,
        "login_ip_cache": "",
        "u_up_size_mb": 0,
        "unfollowed_f": "",
        "show_reaction": 1,
        "page_scroll": 0,
        "about_me_id": 0,
    }
    for name in ("title", "realname", "url", "jabber", "icq", "msn", "aim", "yahoo",
                 "location", "signature", "registration_ip", "admin_note"):
        user[name] = as_str(row.get(name))
    for name in ("disp_topics", "disp_posts", "email_setting", "notify_with_post", "auto_notify",
                 "show_smilies", "show_img", "show_img_sig", "show_avatars", "show_sig",
                 "time_format", "date_format", "num_posts", "last_post", "last_search",
                 "last_email_sent", "registered", "last_visit"):
        user[name] = as_int(row.get(name))
    return user


def translate_forum(ctx: RunContext, row: Row) -> Row:
    return {
        "id_old": as_int(row["id"]),
        "forum_name": as_str(row.get("forum_name")),
        "friendly_name": "",
        "forum_desc": as_str(row.get("forum_desc")),
        "redirect_url": as_str(row.get("redirect_url")),
        "moderators": decode_moderators(row.get("moderators")),
        "num_topics": as_int(row.get("num_topics")),
        "num_posts": as_int(row.get("num_posts")),
        "last_post": as_int(row.get("last_post")),
        "last_post_id": as_int(row.get("last_post_id")),
        "last_poster": as_str(row.get("last_poster")),
        "last_poster_id": 0,
        "last_topic": "",
        "sort_by": as_int(row.get("sort_by")),
        "disp_position": as_int(row.get("disp_position")),
        "cat_id": as_int(row.get("cat_id")),
        "no_sum_mess": 0,
        "parent_forum_id": 0,
    }


def translate_pm_topic(ctx: RunContext, row: Row) -> Row:
    """A pun_pm message becomes a private topic of its own."""
    draft = row.get("status") == "draft"
    return {
        "id_old": as_int(row["id"]),
        "subject": as_str(row.get("subject")),
        "poster": "",
        "poster_id": as_int(row.get("sender_id")),
        "poster_status": 0 if as_int(row.get("deleted_by_sender")) else (3 if draft else 2),
        "poster_visit": as_int(row.get("lastedited_at")),
        "target": "",
        "target_id": as_int(row.get("receiver_id")),
        "target_status": 0 if as_int(row.get("deleted_by_receiver")) else (1 if draft else 2),
        "target_visit": as_int(row.get("read_at")),
        "num_replies": 0,
        "first_post_id": 0,
        "last_post": as_int(row.get("lastedited_at")),
        "last_post_id": 0,
        "last_number": 0,
    }


def translate_pm_post(ctx: RunContext, row: Row) -> Row:
    """The body of a pun_pm message, posted in the topic created from the same message."""
    message_id = as_int(row["id"])
    return {
        "id_old": message_id,
        "poster": "",
        "poster_id": as_int(row.get("sender_id")),
        "poster_ip": "0.0.0.0",
        "message": as_str(row.get("body")),
        "hide_smilies": 0,
        "posted": as_int(row.get("lastedited_at")),
        "edited": 0,
        "topic_id": message_id,
    }


def build_config(ctx: RunContext) -> List[Row]:
    old = ctx.source.fetch_pairs("SELECT conf_name, conf_value FROM ::config")
    return punbb_config(old)


class PunBBDriver(Driver):
    """
    Driver for PunBB 1.4 boards.

    PunBB keeps its version as a dotted string and has no warnings, smilies
    or bbcode tables. Polls and private messages come from the optional
    extension tables when they are installed.
    """

    type_name = "PunBB"
    min_version = "1.4.4"
    max_version = "1.4.6"
    required_tables = [
        "bans",
        "categories",
        "censoring",
        "config",
        "extensions",
        "extension_hooks",
        "forums",
        "forum_perms",
        "forum_subscriptions",
        "groups",
        "online",
        "posts",
        "ranks",
        "reports",
        "search_cache",
        "search_matches",
        "search_words",
        "subscriptions",
        "topics",
        "users",
    ]

    def read_version(self, db: Database) -> Optional[str]:
        config = db.fetch_pairs("SELECT conf_name, conf_value FROM ::config")
        if "o_cur_ver_revision" in config or "o_searchindex_revision" in config:
            return None
        if not config.get("o_database_revision") or not config.get("o_cur_version"):
            return None
        return str(config["o_cur_version"]).strip()

    def version_in_range(self, version: str) -> bool:
        return parse_version(self.min_version) <= parse_version(version) <= parse_version(self.max_version)

    def format_version(self, version: str) -> str:
        return version

    def build_handlers(self) -> Dict[Entity, EntityHandler]:
        readers: Dict[Entity, SourceReader] = {
            Entity.CATEGORIES: PagedReader("categories", translate=translate_category),
            Entity.GROUPS: PunBBGroupsReader(),
            Entity.USERS: PagedReader(
                "users",
                where="group_id NOT IN :excluded",
                params={"excluded": [0, PUNBB_GUEST]},
                translate=translate_user,
            ),
            Entity.FORUMS: PagedReader("forums", translate=translate_forum),
            Entity.FORUM_PERMS: FullTableReader("forum_perms", translate=translate_forum_perm),
            Entity.CENSORING: PagedReader("censoring", translate=translate_censoring),
            Entity.TOPICS: PagedReader("topics", translate=translate_topic),
            Entity.POSTS: PagedReader("posts", translate=translate_post),
            Entity.FORUM_SUBSCRIPTIONS: KeyWindowReader(
                "forum_subscriptions", "user_id", translate=translate_user_link("forum_id")
            ),
            Entity.TOPIC_SUBSCRIPTIONS: KeyWindowReader(
                "subscriptions", "user_id", translate=translate_user_link("topic_id")
            ),
            Entity.POLL: KeyWindowReader("poll", "tid", query=POLL_QUERY, translate=translate_poll, optional=True),
            Entity.POLL_VOTED: KeyWindowReader("poll_voted", "tid", translate=translate_poll_vote, optional=True),
            Entity.PM_TOPICS: PagedReader("pun_pm_messages", translate=translate_pm_topic, optional=True),
            Entity.PM_POSTS: PagedReader("pun_pm_messages", translate=translate_pm_post, optional=True),
            Entity.BANS: PagedReader("bans", translate=translate_ban),
            Entity.CONFIG: FixedListReader(build_config),
        }
        handlers = assemble_handlers(readers)
        handlers[Entity.GROUPS] = EntityHandler(readers[Entity.GROUPS], PunBBGroupsWriter(), table="groups")
        return handlers
