"""Comment store: CRUD, threaded pagination and visibility.

Rows are exchanged with the rest of the app as "records": plain dicts using
the widget's wire names (``_id``, ``mailMd5``, ``isSpam``, ``like``...) with
the like set already decoded to a list.
"""

import json
import uuid
from dataclasses import dataclass, field

from ..constants import MAX_QUERY_LIMIT, MAX_TIMESTAMP_MILLIS
from ..errors import ValidationError
from ..models import Comment
from ..utils.clock import now_ms
from ..utils.logging import get_logger
from .statements import normalize_fields

logger = get_logger("threadline.store.comments")

# Wire name -> Comment attribute, for admin edits
EDITABLE_FIELDS = {
    "nick": "nick",
    "mail": "mail",
    "link": "link",
    "url": "url",
    "href": "href",
    "comment": "comment",
    "isSpam": "is_spam",
    "top": "top",
    "avatar": "avatar",
}
_BOOLEAN_FIELDS = {"is_spam", "top", "master"}

_WIRE_NAMES = {
    "id": "_id",
    "mail_md5": "mailMd5",
    "is_spam": "isSpam",
    "likes": "like",
}

ADMIN_FILTERS = {
    "VISIBLE": (False, False),
    "HIDDEN": (True, True),
}
_ALL_STATES = (False, True)


def new_comment_id() -> str:
    return uuid.uuid4().hex


def parse_likes(raw) -> list[str]:
    """Decode a stored like set; duplicates are dropped, order kept."""
    if not raw:
        return []
    likes = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(likes, list):
        return []
    return list(dict.fromkeys(str(uid) for uid in likes))


def to_record(row: Comment) -> dict:
    """Convert an ORM row into a wire-named record."""
    record = {}
    for column in Comment.__table__.columns:
        value = getattr(row, column.key)
        record[_WIRE_NAMES.get(column.key, column.key)] = value
    record["like"] = parse_likes(row.likes)
    record["id"] = row.id
    return record


def _text(value) -> str:
    return "" if value is None else str(value)


def to_row(record: dict) -> dict:
    """Map a wire-named record to ``Comment`` attribute values for insert."""
    now = now_ms()
    created = int(record.get("created") or now)
    return {
        "id": _text(record.get("_id") or record.get("id")) or new_comment_id(),
        "uid": _text(record.get("uid")),
        "nick": _text(record.get("nick")),
        "mail": _text(record.get("mail")),
        "mail_md5": _text(record.get("mailMd5")),
        "link": _text(record.get("link")),
        "ua": _text(record.get("ua")),
        "ip": _text(record.get("ip")),
        "master": bool(record.get("master")),
        "url": _text(record.get("url")),
        "href": _text(record.get("href")),
        "comment": _text(record.get("comment")),
        "pid": _text(record.get("pid")),
        "rid": _text(record.get("rid")),
        "is_spam": bool(record.get("isSpam")),
        "created": created,
        "updated": int(record.get("updated") or created),
        "likes": json.dumps(parse_likes(record.get("like"))),
        "top": bool(record.get("top")),
        "avatar": _text(record.get("avatar")),
    }


@dataclass
class CommentPage:
    """One page of a URL's comments: pinned, then top-level, then replies."""

    comments: list[dict] = field(default_factory=list)
    more: bool = False
    count: int = 0


class CommentStore:
    """All comment table access goes through here.

    Each method opens its own session, so independent calls can be awaited
    concurrently.
    """

    def __init__(self, storage) -> None:
        self._storage = storage
        self._statements = storage.statements

    # --- reads ---

    async def get_page(
        self,
        url: str,
        uid: str,
        is_admin: bool = False,
        before: int | None = None,
        limit: int = 8,
        include_top: bool = True,
    ) -> CommentPage:
        """Read one page of top-level comments plus their replies.

        Fetches ``limit + 1`` rows older than ``before`` to learn whether
        another page exists without a count query. Pinned comments are only
        merged in on the first page (``before`` is None).
        """
        visibility = {"uid": uid, "include_hidden": is_admin}
        page = CommentPage()
        async with self._storage.session() as session:
            result = await session.execute(
                self._statements.comment_count_query, {"url": url, **visibility}
            )
            page.count = result.scalar_one()

            result = await session.execute(
                self._statements.comment_query,
                {
                    "url": url,
                    **visibility,
                    "before": MAX_TIMESTAMP_MILLIS if before is None else before,
                    "top": False,
                    "limit": limit + 1,
                },
            )
            main = list(result.scalars().all())
            if len(main) > limit:
                page.more = True
                main = main[:limit]

            if include_top and before is None:
                result = await session.execute(
                    self._statements.comment_query,
                    {
                        "url": url,
                        **visibility,
                        "before": MAX_TIMESTAMP_MILLIS,
                        "top": True,
                        "limit": MAX_QUERY_LIMIT,
                    },
                )
                main = list(result.scalars().all()) + main

            replies = []
            if main:
                params = {"url": url, **visibility}
                params.update({f"rid_{i}": row.id for i, row in enumerate(main)})
                result = await session.execute(
                    self._statements.reply_query(len(main)), params
                )
                replies = list(result.scalars().all())

        page.comments = [to_record(row) for row in main + replies]
        return page

    async def get(self, comment_id: str) -> dict | None:
        async with self._storage.session() as session:
            result = await session.execute(
                self._statements.comment_by_id_query, {"target_id": comment_id}
            )
            row = result.scalar_one_or_none()
        return to_record(row) if row is not None else None

    async def get_for_admin(
        self,
        per: int,
        page: int,
        spam_filter: str | None = None,
        keyword: str | None = None,
    ) -> tuple[int, list[dict]]:
        """Search every comment, spam included; offset-paginated.

        ``spam_filter`` is ``"VISIBLE"``, ``"HIDDEN"`` or anything else for
        all comments. ``keyword`` matches case-insensitively as a substring
        of nick, mail, link, ip, body, url and href.
        """
        state_a, state_b = ADMIN_FILTERS.get(spam_filter, _ALL_STATES)
        params = {
            "spam_state_a": state_a,
            "spam_state_b": state_b,
            "keyword": f"%{keyword or ''}%",
        }
        async with self._storage.session() as session:
            result = await session.execute(
                self._statements.comment_for_admin_count_query, params
            )
            count = result.scalar_one()
            result = await session.execute(
                self._statements.comment_for_admin_query,
                {**params, "limit": per, "offset": per * (page - 1)},
            )
            rows = result.scalars().all()
        return count, [to_record(row) for row in rows]

    async def export(self) -> list[dict]:
        async with self._storage.session() as session:
            result = await session.execute(self._statements.comment_export_query)
            rows = result.scalars().all()
        return [to_record(row) for row in rows]

    async def count_since(self, since: int, ip: str | None = None) -> int:
        """Comments created after ``since``, optionally from one IP only."""
        async with self._storage.session() as session:
            if ip is None:
                result = await session.execute(
                    self._statements.comment_count_since_query, {"since": since}
                )
            else:
                result = await session.execute(
                    self._statements.comment_count_since_by_ip_query,
                    {"since": since, "ip": ip},
                )
            return result.scalar_one()

    async def count_by_url(self, url: str, include_reply: bool = False) -> int:
        async with self._storage.session() as session:
            result = await session.execute(
                self._statements.comment_count_by_url_query,
                {"url": url, "include_reply": bool(include_reply)},
            )
            return result.scalar_one()

    async def recent(
        self,
        urls: list[str] | None = None,
        include_reply: bool = False,
        limit: int = 10,
    ) -> list[dict]:
        """Newest visible comments, site-wide or restricted to ``urls``."""
        params = {"include_reply": bool(include_reply), "limit": limit}
        urls = list(dict.fromkeys(urls or []))
        if urls:
            stmt = self._statements.recent_comments_by_urls_query(len(urls))
            params.update({f"url_{i}": url for i, url in enumerate(urls)})
        else:
            stmt = self._statements.recent_comments_query
        async with self._storage.session() as session:
            result = await session.execute(stmt, params)
            rows = result.scalars().all()
        return [to_record(row) for row in rows]

    # --- writes ---

    async def save(self, record: dict) -> dict:
        """Insert ``record`` and return it with its id filled in.

        A record that already carries ``_id`` (an import) keeps it; otherwise
        a fresh id is generated.
        """
        row = to_row(record)
        async with self._storage.session() as session:
            await session.execute(self._statements.save_comment_stmt, row)
            await session.commit()
        record.update(_id=row["id"], id=row["id"], created=row["created"], updated=row["updated"])
        logger.info("comment_saved", id=row["id"], url=row["url"], is_spam=row["is_spam"])
        return record

    async def set_fields(self, comment_id: str, changes: dict) -> None:
        """Apply an admin edit; ``changes`` uses wire names.

        Only names in ``EDITABLE_FIELDS`` are accepted and ``updated`` is
        stamped on every edit.
        """
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f'Field "{unknown[0]}" cannot be modified')
        values = {}
        for wire_name, value in changes.items():
            column = EDITABLE_FIELDS[wire_name]
            values[column] = bool(value) if column in _BOOLEAN_FIELDS else _text(value)
        values["updated"] = now_ms()

        fields = normalize_fields(values)
        params = {"target_id": comment_id}
        params.update({f"set_{name}": values[name] for name in fields})
        async with self._storage.session() as session:
            await session.execute(self._statements.comment_set_stmt(fields), params)
            await session.commit()
        logger.info("comment_updated", id=comment_id, fields=list(fields))

    async def delete(self, comment_id: str) -> int:
        async with self._storage.session() as session:
            result = await session.execute(
                self._statements.comment_delete_stmt, {"target_id": comment_id}
            )
            await session.commit()
        logger.info("comment_deleted", id=comment_id, rows=result.rowcount)
        return result.rowcount

    async def toggle_like(self, comment_id: str, uid: str) -> list[str] | None:
        """Add ``uid`` to the comment's like set, or remove it if present.

        Read-modify-write without isolation: two concurrent toggles by the
        same uid may leave either state. Returns the new set, or None when
        the comment does not exist.
        """
        async with self._storage.session() as session:
            result = await session.execute(
                self._statements.comment_by_id_query, {"target_id": comment_id}
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            likes = parse_likes(row.likes)
            if uid in likes:
                likes.remove(uid)
            else:
                likes.append(uid)
            await session.execute(
                self._statements.update_like_stmt,
                {"target_id": comment_id, "new_likes": json.dumps(likes)},
            )
            await session.commit()
        return likes

    async def update_is_spam(self, comment_id: str, is_spam: bool) -> None:
        async with self._storage.session() as session:
            await session.execute(
                self._statements.update_is_spam_stmt,
                {"target_id": comment_id, "new_is_spam": bool(is_spam), "new_updated": now_ms()},
            )
            await session.commit()
