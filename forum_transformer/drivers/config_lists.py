"""Board options generated for FluxBB-family sources."""

import json
import time
from typing import Any, Dict, List, Tuple

from ..models.schema import FORK_REVISION, GROUP_NEW_MEMBER


def _flag(old: Dict[str, Any], name: str, default: str = "0") -> int:
    return 1 if str(old.get(name, default)) == "1" else 0


def _int(old: Dict[str, Any], name: str, default: int = 0) -> int:
    value = old.get(name)
    return int(value) if value not in (None, "") else default


def _str(old: Dict[str, Any], name: str) -> str:
    value = old.get(name)
    return "" if value is None else str(value)


def _json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _rows(pairs: List[Tuple[str, Any]]) -> List[Dict[str, Any]]:
    return [{"conf_name": name, "conf_value": str(value)} for name, value in pairs]


def _common(old: Dict[str, Any]) -> List[Tuple[str, Any]]:
    return [
        ("i_fork_revision", FORK_REVISION),
        ("o_board_title", _str(old, "o_board_title")),
        ("o_board_desc", _str(old, "o_board_desc")),
        ("i_timeout_visit", _int(old, "o_timeout_visit")),
        ("i_timeout_online", _int(old, "o_timeout_online")),
        ("i_redirect_delay", _int(old, "o_redirect_delay")),
        ("b_show_user_info", _flag(old, "o_show_user_info")),
        ("b_show_post_count", _flag(old, "o_show_post_count")),
        ("b_smilies", _flag(old, "o_smilies")),
        ("b_smilies_sig", _flag(old, "o_smilies_sig")),
        ("b_make_links", _flag(old, "o_make_links")),
        ("o_default_lang", "ru" if old.get("o_default_lang") == "Russian" else "en"),
        ("o_default_style", "ForkBB"),
        ("i_default_user_group", GROUP_NEW_MEMBER),
        ("i_topic_review", _int(old, "o_topic_review")),
        ("i_disp_topics_default", _int(old, "o_disp_topics_default")),
        ("i_disp_posts_default", _int(old, "o_disp_posts_default")),
        ("i_disp_users", 50),
        ("b_quickpost", _flag(old, "o_quickpost")),
        ("b_users_online", _flag(old, "o_users_online")),
        ("b_censoring", _flag(old, "o_censoring")),
        ("b_show_dot", _flag(old, "o_show_dot")),
        ("b_topic_views", _flag(old, "o_topic_views")),
        ("o_additional_navlinks", ""),
        ("i_report_method", _int(old, "o_report_method")),
        ("b_regs_report", _flag(old, "o_regs_report")),
        ("i_default_email_setting", _int(old, "o_default_email_setting")),
        ("o_mailing_list", _str(old, "o_mailing_list")),
        ("b_avatars", _flag(old, "o_avatars")),
        ("o_avatars_dir", "/img/avatars"),
        ("i_avatars_width", _int(old, "o_avatars_width")),
        ("i_avatars_height", _int(old, "o_avatars_height")),
        ("i_avatars_size", _int(old, "o_avatars_size")),
        ("o_admin_email", _str(old, "o_admin_email")),
        ("o_webmaster_email", _str(old, "o_webmaster_email")),
        ("i_email_max_recipients", 1),
        ("o_smtp_host", _str(old, "o_smtp_host")),
        ("o_smtp_user", _str(old, "o_smtp_user")),
        ("o_smtp_pass", _str(old, "o_smtp_pass")),
        ("b_smtp_ssl", _flag(old, "o_smtp_ssl")),
        ("b_regs_allow", _flag(old, "o_regs_allow")),
        ("b_regs_verify", _flag(old, "o_regs_verify")),
        ("b_announcement", _flag(old, "o_announcement")),
        ("o_announcement_message", _str(old, "o_announcement_message")),
        ("b_rules", _flag(old, "o_rules")),
        ("o_rules_message", _str(old, "o_rules_message")),
        ("b_maintenance", _flag(old, "o_maintenance")),
        ("o_maintenance_message", _str(old, "o_maintenance_message")),
        ("b_message_bbcode", _flag(old, "p_message_bbcode")),
        ("b_message_all_caps", _flag(old, "p_message_all_caps")),
        ("b_subject_all_caps", _flag(old, "p_subject_all_caps")),
        ("b_sig_all_caps", _flag(old, "p_sig_all_caps")),
        ("b_sig_bbcode", _flag(old, "p_sig_bbcode")),
        ("b_force_guest_email", _flag(old, "p_force_guest_email")),
        ("b_pm", _flag(old, "o_pms_enabled")),
        ("b_poll_enabled", _flag(old, "o_poll_enabled")),
        ("b_poll_guest", _flag(old, "o_poll_guest")),
        ("a_bb_white_mes", _json([])),
        ("a_bb_white_sig", _json(["b", "i", "u", "color", "colour", "email", "url"])),
        ("a_bb_black_mes", _json([])),
        ("a_bb_black_sig", _json([])),
        ("a_guest_set", _json({
            "show_smilies": 1,
            "show_sig": 1,
            "show_avatars": 1,
            "show_img": 1,
            "show_img_sig": 1,
        })),
        ("s_РЕГИСТР", "Ok"),
    ]


def visman_config(old: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Build ForkBB options from a FluxBB_by_Visman configuration.

    Args:
        old: Source ``conf_name -> conf_value`` pairs

    Returns:
        Rows for the destination ``config`` table
    """
    return _rows(_common(old) + [
        ("o_default_timezone", _str(old, "o_default_timezone")),
        ("b_forum_subscriptions", _flag(old, "o_forum_subscriptions")),
        ("b_topic_subscriptions", _flag(old, "o_topic_subscriptions")),
        ("b_default_dst", _flag(old, "o_default_dst")),
        ("i_feed_type", _int(old, "o_feed_type")),
        ("i_feed_ttl", _int(old, "o_feed_ttl")),
        ("i_poll_max_questions", _int(old, "o_poll_max_ques")),
        ("i_poll_max_fields", _int(old, "o_poll_max_field")),
        ("i_poll_time", _int(old, "o_poll_time")),
        ("i_poll_term", _int(old, "o_poll_term")),
        ("a_max_users", _json({
            "number": _int(old, "st_max_users"),
            "time": _int(old, "st_max_users_time"),
        })),
    ])


REACTION_TYPES = ["like", "fire", "lol", "smile", "frown", "sad", "cry", "angry", "dislike", "meh", "shock"]


def punbb_config(old: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Build ForkBB options from a PunBB configuration."""
    return _rows(_common(old) + [
        ("o_default_timezone", "UTC"),
        ("b_forum_subscriptions", _flag(old, "o_subscriptions")),
        ("b_topic_subscriptions", _flag(old, "o_subscriptions")),
        ("i_feed_type", 2),
        ("i_feed_ttl", 15),
        ("i_poll_max_questions", _int(old, "o_poll_max_ques", 3)),
        ("i_poll_max_fields", _int(old, "o_poll_max_field", 20)),
        ("i_poll_time", _int(old, "o_poll_time", 60)),
        ("i_poll_term", _int(old, "o_poll_term", 3)),
        ("a_max_users", _json({"number": 1, "time": int(time.time())})),
        ("b_oauth_allow", 0),
        ("i_avatars_quality", 75),
        ("b_upload", 0),
        ("i_upload_img_quality", 75),
        ("i_upload_img_axis_limit", 1920),
        ("s_upload_img_outf", "webp,jpg,png,gif"),
        ("i_search_ttl", 900),
        ("b_ant_hidden_ch", 1),
        ("b_ant_use_js", 0),
        ("s_meta_desc", ""),
        ("a_og_image", _json([])),
        ("b_reaction", 0),
        ("a_reaction_types", _json({str(i): [name, True] for i, name in enumerate(REACTION_TYPES, start=1)})),
        ("b_show_user_reaction", 0),
        ("b_default_lang_auto", 1),
        ("b_email_use_cron", 0),
        ("i_censoring_count", 0),
        ("b_hide_guest_email_fld", 0),
        ("b_regs_disable_email", 0),
        ("b_premoderation", 0),
    ])
