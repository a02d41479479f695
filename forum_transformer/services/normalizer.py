"""Canonical forms of usernames and email addresses used by unique indexes."""

import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")

_GMAIL_DOMAINS = ("gmail.com", "googlemail.com")


def normalize_username(username: str) -> str:
    """
    Fold a username to the form stored in ``users.username_normal``.

    Two names that differ only by case, compatibility characters or runs of
    whitespace normalize to the same value.
    """
    value = unicodedata.normalize("NFKC", username or "")
    value = _WHITESPACE.sub(" ", value).strip()
    return value.casefold()


def normalize_email(email: str) -> str:
    """Fold an email address to the form stored in ``users.email_normal``."""
    value = (email or "").strip().lower()
    if "@" not in value:
        return value

    local, domain = value.rsplit("@", 1)
    local = local.split("+", 1)[0] or local

    if domain in _GMAIL_DOMAINS:
        local = local.replace(".", "")
        domain = "gmail.com"

    return f"{local}@{domain}"
