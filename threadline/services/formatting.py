"""Response views: comment trees, avatars, mail hashes and config subsets."""

import hashlib
from urllib.parse import quote

import bleach

from ..constants import ResCode

ALLOWED_TAGS = {
    "a", "b", "blockquote", "br", "code", "del", "details", "div", "em", "h1",
    "h2", "h3", "h4", "h5", "h6", "hr", "i", "img", "li", "ol", "p", "pre",
    "s", "span", "strong", "sub", "summary", "sup", "table", "tbody", "td",
    "th", "thead", "tr", "u", "ul",
}
ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "target", "rel"],
    "img": ["src", "alt", "title", "class", "width", "height", "loading"],
    "code": ["class"],
    "pre": ["class"],
    "span": ["class"],
    "div": ["class"],
}
ALLOWED_PROTOCOLS = ["http", "https", "mailto"]

PUBLIC_CONFIG_KEYS = (
    "SITE_NAME",
    "SITE_URL",
    "MASTER_TAG",
    "COMMENT_BG_IMG",
    "GRAVATAR_CDN",
    "DEFAULT_GRAVATAR",
    "SHOW_IMAGE",
    "IMAGE_CDN",
    "LIGHTBOX",
    "SHOW_EMOTION",
    "EMOTION_CDN",
    "COMMENT_PLACEHOLDER",
    "DISPLAYED_FIELDS",
    "REQUIRED_FIELDS",
    "HIDE_ADMIN_CRYPT",
    "HIGHLIGHT",
    "HIGHLIGHT_THEME",
    "HIGHLIGHT_PLUGIN",
    "LIMIT_LENGTH",
    "TURNSTILE_SITE_KEY",
)

DEFAULT_GRAVATAR_CDN = "weavatar.com"


def sanitize_comment(html: str) -> str:
    """Strip everything outside the comment markup allow-list."""
    return bleach.clean(
        str(html or ""),
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )


def comment_text(html: str) -> str:
    """Plain-text preview of a stored comment body."""
    return bleach.clean(str(html or ""), tags=set(), attributes={}, strip=True)


def normalize_mail(mail) -> str:
    return str(mail or "").strip().lower()


def equals_mail(first, second) -> bool:
    if not first or not second:
        return False
    return normalize_mail(first) == normalize_mail(second)


def mail_hash(mail: str, config: dict) -> str:
    """Avatar hash of a mail address; md5 for cravatar, sha256 otherwise."""
    if not mail:
        return ""
    normalized = normalize_mail(mail).encode("utf-8")
    if config.get("GRAVATAR_CDN") == "cravatar.cn":
        return hashlib.md5(normalized).hexdigest()
    return hashlib.sha256(normalized).hexdigest()


def record_mail_md5(record: dict) -> str:
    if record.get("mailMd5"):
        return record["mailMd5"]
    if record.get("mail"):
        return hashlib.md5(normalize_mail(record["mail"]).encode("utf-8")).hexdigest()
    return hashlib.md5(str(record.get("nick") or "").encode("utf-8")).hexdigest()


def avatar_url(record: dict, config: dict) -> str:
    if record.get("avatar"):
        return record["avatar"]
    cdn = config.get("GRAVATAR_CDN") or DEFAULT_GRAVATAR_CDN
    default = config.get("DEFAULT_GRAVATAR")
    if not default or default == "initials":
        default = f"initials&name={quote(str(record.get('nick') or ''))}"
    return f"https://{cdn}/avatar/{record_mail_md5(record)}?d={default}"


def comment_view(record: dict, uid: str, config: dict, replies=None, siblings=None) -> dict:
    likes = record.get("like") or []
    ruser = None
    if record.get("pid") and siblings:
        parent = next((item for item in siblings if item["_id"] == record["pid"]), None)
        ruser = parent["nick"] if parent else None
    return {
        "id": str(record["_id"]),
        "nick": record.get("nick"),
        "avatar": avatar_url(record, config),
        "mailMd5": record_mail_md5(record),
        "link": record.get("link"),
        "comment": record.get("comment"),
        "master": bool(record.get("master")),
        "like": len(likes),
        "liked": uid in likes,
        "replies": replies or [],
        "rid": record.get("rid"),
        "pid": record.get("pid"),
        "ruser": ruser,
        "top": bool(record.get("top")),
        "isSpam": bool(record.get("isSpam")),
        "created": record.get("created"),
        "updated": record.get("updated"),
    }


def comment_tree(records: list[dict], uid: str, config: dict) -> list[dict]:
    """Nest replies under their thread roots, keeping root order.

    Replies are sorted oldest first and name the author they answer in
    ``ruser``.
    """
    tree = []
    for record in records:
        if record.get("rid"):
            continue
        replies = sorted(
            (
                comment_view(item, uid, config, siblings=records)
                for item in records
                if item.get("rid") == record["_id"]
            ),
            key=lambda view: view["created"] or 0,
        )
        tree.append(comment_view(record, uid, config, replies=replies))
    return tree


def recent_view(record: dict, config: dict) -> dict:
    return {
        "id": str(record["_id"]),
        "url": record.get("url"),
        "nick": record.get("nick"),
        "avatar": avatar_url(record, config),
        "mailMd5": record_mail_md5(record),
        "link": record.get("link"),
        "comment": record.get("comment"),
        "commentText": comment_text(record.get("comment")),
        "created": record.get("created"),
    }


def public_config(config: dict, version: str, is_admin: bool) -> dict:
    view = {"VERSION": version, "IS_ADMIN": is_admin}
    view.update({key: config.get(key) for key in PUBLIC_CONFIG_KEYS})
    return {"code": ResCode.SUCCESS, "config": view}


def admin_config(config: dict) -> dict:
    view = {key: value for key, value in config.items() if key != "CREDENTIALS"}
    return {"code": ResCode.SUCCESS, "config": view}
