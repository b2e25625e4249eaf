"""Importers for comment exports of other widgets.

Each parser takes the raw export text and a ``log`` callable, and returns a
list of wire-named records ready for ``CommentStore.save``. Records that
cannot be parsed are reported through ``log`` and skipped.
"""

import json
import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import datetime, timezone
from urllib.parse import urlparse

from ..errors import ValidationError
from .formatting import sanitize_comment

Log = Callable[[str], None]

_DISQUS_NS = {
    "d": "http://disqus.com",
    "dsq": "http://disqus.com/disqus-internals",
}
_DSQ_ID = "{http://disqus.com/disqus-internals}id"


def parse_json(content: str):
    """Parse a JSON document, or JSON lines when that fails."""
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        return [json.loads(line) for line in content.splitlines() if line.strip()]


def to_millis(value) -> int:
    """Epoch milliseconds from an ISO string, epoch number or ``{"$date": ...}``."""
    if isinstance(value, dict):
        value = value.get("$date")
    if value is None or value == "":
        raise ValueError("missing timestamp")
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def _plain_id(value) -> str:
    if isinstance(value, dict):
        value = value.get("$oid")
    return "" if value is None else str(value)


def resolve_thread_roots(comments: list[dict]) -> None:
    """Fill ``rid`` by walking each ``pid`` chain up to its top-level comment."""
    by_id = {comment["_id"]: comment for comment in comments}
    for comment in comments:
        parent_id = comment.get("pid")
        seen = set()
        root = ""
        while parent_id and parent_id in by_id and parent_id not in seen:
            seen.add(parent_id)
            root = parent_id
            parent_id = by_id[parent_id].get("pid")
        comment["rid"] = root
        if not root:
            comment["pid"] = ""


def import_valine(content: str, log: Log) -> list[dict]:
    data = parse_json(content)
    log("Comment file parsed as JSON")
    if isinstance(data, dict):
        data = data.get("results")
    if not isinstance(data, list):
        log("Valine export has no comment list")
        return []

    comments = []
    for item in data:
        try:
            comments.append({
                "_id": _plain_id(item["objectId"]),
                "nick": item.get("nick", ""),
                "ip": item.get("ip", ""),
                "mail": item.get("mail", ""),
                "mailMd5": item.get("mailMd5", ""),
                "isSpam": bool(item.get("isSpam")),
                "ua": item.get("ua", ""),
                "link": item.get("link", ""),
                "pid": item.get("pid", ""),
                "rid": item.get("rid", ""),
                "master": False,
                "comment": sanitize_comment(item.get("comment", "")),
                "url": item["url"],
                "created": to_millis(item["createdAt"]),
                "updated": to_millis(item.get("updatedAt") or item["createdAt"]),
            })
            log(f"{item['objectId']} parsed")
        except (KeyError, TypeError, ValueError) as exc:
            log(f"{item.get('objectId') if isinstance(item, dict) else item} failed: {exc}")
    log(f"Parsed {len(comments)} comments")
    return comments


def import_disqus(content: str, log: Log) -> list[dict]:
    root = ET.fromstring(content)
    log("Comment file parsed as XML")

    threads = {}
    for thread in root.findall("d:thread", _DISQUS_NS):
        link = thread.findtext("d:link", default="", namespaces=_DISQUS_NS)
        threads[thread.get(_DSQ_ID)] = {"url": urlparse(link).path or "/", "href": link}

    comments = []
    for post in root.findall("d:post", _DISQUS_NS):
        post_id = post.get(_DSQ_ID)
        try:
            if post.findtext("d:isDeleted", namespaces=_DISQUS_NS) == "true":
                log(f"{post_id} skipped: deleted")
                continue
            thread = threads[post.find("d:thread", _DISQUS_NS).get(_DSQ_ID)]
            parent = post.find("d:parent", _DISQUS_NS)
            created = to_millis(post.findtext("d:createdAt", namespaces=_DISQUS_NS))
            comments.append({
                "_id": post_id,
                "nick": post.findtext("d:author/d:name", default="", namespaces=_DISQUS_NS),
                "mail": post.findtext("d:author/d:email", default="", namespaces=_DISQUS_NS),
                "link": "",
                "ua": "",
                "ip": post.findtext("d:ipAddress", default="", namespaces=_DISQUS_NS),
                "master": False,
                "comment": sanitize_comment(post.findtext("d:message", default="", namespaces=_DISQUS_NS)),
                "url": thread["url"],
                "href": thread["href"],
                "pid": parent.get(_DSQ_ID) if parent is not None else "",
                "isSpam": post.findtext("d:isSpam", namespaces=_DISQUS_NS) == "true",
                "created": created,
                "updated": created,
            })
            log(f"{post_id} parsed")
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            log(f"{post_id} failed: {exc}")
    resolve_thread_roots(comments)
    log(f"Parsed {len(comments)} comments")
    return comments


def _artalk_record(item: dict, created: int, updated: int) -> dict:
    parent = str(item.get("rid") or "")
    return {
        "_id": str(item["id"]),
        "nick": item.get("nick", ""),
        "mail": item.get("email", ""),
        "link": item.get("link", ""),
        "ua": item.get("ua", ""),
        "ip": item.get("ip", ""),
        "master": False,
        "comment": sanitize_comment(item.get("content", "")),
        "url": item["page_key"],
        "href": item.get("page_url") or item["page_key"],
        "pid": "" if parent in ("", "0") else parent,
        "isSpam": bool(item.get("is_pending")),
        "top": bool(item.get("is_pinned")),
        "created": created,
        "updated": updated,
    }


def import_artalk(content: str, log: Log) -> list[dict]:
    """Artalk v1 export: a JSON list with ``date`` timestamps."""
    data = parse_json(content)
    log("Comment file parsed as JSON")
    comments = []
    for item in data:
        try:
            created = to_millis(str(item["date"]).replace(" ", "T"))
            comments.append(_artalk_record(item, created, created))
            log(f"{item['id']} parsed")
        except (KeyError, TypeError, ValueError) as exc:
            log(f"{item.get('id') if isinstance(item, dict) else item} failed: {exc}")
    resolve_thread_roots(comments)
    log(f"Parsed {len(comments)} comments")
    return comments


def import_artalk2(content: str, log: Log) -> list[dict]:
    """Artalk v2 "artrans" export: ``created_at``/``updated_at`` timestamps."""
    data = parse_json(content)
    log("Comment file parsed as JSON")
    comments = []
    for item in data:
        try:
            created = to_millis(item["created_at"])
            updated = to_millis(item.get("updated_at") or item["created_at"])
            comments.append(_artalk_record(item, created, updated))
            log(f"{item['id']} parsed")
        except (KeyError, TypeError, ValueError) as exc:
            log(f"{item.get('id') if isinstance(item, dict) else item} failed: {exc}")
    resolve_thread_roots(comments)
    log(f"Parsed {len(comments)} comments")
    return comments


def import_twikoo(content: str, log: Log) -> list[dict]:
    """Exports of this backend or of other deployments of the same widget."""
    data = parse_json(content)
    log("Comment file parsed as JSON")
    if isinstance(data, dict):
        data = data.get("data") or []
    comments = []
    for item in data:
        try:
            record = dict(item)
            record["_id"] = _plain_id(item.get("_id") or item.get("id"))
            if not record["_id"]:
                raise ValueError("missing id")
            record["created"] = to_millis(item["created"])
            record["updated"] = to_millis(item.get("updated") or item["created"])
            record["comment"] = sanitize_comment(item.get("comment", ""))
            comments.append(record)
            log(f"{record['_id']} parsed")
        except (KeyError, TypeError, ValueError) as exc:
            log(f"{item.get('_id') if isinstance(item, dict) else item} failed: {exc}")
    log(f"Parsed {len(comments)} comments")
    return comments


IMPORTERS = {
    "valine": import_valine,
    "disqus": import_disqus,
    "artalk": import_artalk,
    "artalk2": import_artalk2,
    "twikoo": import_twikoo,
}


def parse_export(source: str, content: str, log: Log) -> list[dict]:
    importer = IMPORTERS.get(source)
    if importer is None:
        raise ValidationError(f"Import from {source} is not supported")
    return importer(content, log)
