"""Statement cache: memoized, ready-to-bind SQLAlchemy statements.

Every query the stores run is built once per storage handle and then reused,
so the hot path only binds parameters. SQLAlchemy's compiled cache keys on
statement structure, which keeps the SQL compilation one-off as well.

Two families depend on runtime arity and are keyed by it:

* replies of a page, keyed by the number of thread-root ids
  (``rid IN (:rid_0, ..., :rid_n)``);
* admin field updates, keyed by the sorted tuple of updated columns.

Recent comments filtered by a URL list use the same arity keying. Entries are
never evicted: id counts are bounded by the page size plus pinned comments
and field sets by the allow-list of editable columns.
"""

from collections.abc import Callable, Iterable

from sqlalchemy import (
    Boolean,
    Delete,
    Insert,
    Select,
    Update,
    bindparam,
    delete,
    false,
    func,
    insert,
    or_,
    select,
    true,
    update,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..models import Comment, ConfigRecord, Counter


def normalize_fields(fields: Iterable[str]) -> tuple[str, ...]:
    """Canonical key of an update field set: unique names, sorted."""
    return tuple(sorted(set(fields)))


def _visible_to_requester():
    # Not spam, or the requester wrote it, or the requester is admin
    return or_(
        Comment.is_spam == false(),
        Comment.uid == bindparam("uid"),
        bindparam("include_hidden", type_=Boolean) == true(),
    )


def _spam_state_filter():
    # VISIBLE binds (False, False), HIDDEN (True, True), all (False, True)
    return Comment.is_spam.in_([
        bindparam("spam_state_a", type_=Boolean),
        bindparam("spam_state_b", type_=Boolean),
    ])


def _keyword_filter():
    keyword = bindparam("keyword")
    return or_(
        Comment.nick.ilike(keyword),
        Comment.mail.ilike(keyword),
        Comment.link.ilike(keyword),
        Comment.ip.ilike(keyword),
        Comment.comment.ilike(keyword),
        Comment.url.ilike(keyword),
        Comment.href.ilike(keyword),
    )


def _reply_filter():
    return or_(
        bindparam("include_reply", type_=Boolean) == true(),
        Comment.rid == "",
    )


class StatementCache:
    """Lazily built statements, reference-stable for equal structural keys.

    The cache is append-only by key and lives as long as the storage handle.
    ``dict.setdefault`` keeps the first built object should two coroutines
    race on a cold key.
    """

    def __init__(self) -> None:
        self._fixed: dict[str, object] = {}
        self._reply_queries: dict[int, Select] = {}
        self._comment_set_stmts: dict[tuple[str, ...], Update] = {}
        self._recent_by_urls_queries: dict[int, Select] = {}

    def __len__(self) -> int:
        return (
            len(self._fixed)
            + len(self._reply_queries)
            + len(self._comment_set_stmts)
            + len(self._recent_by_urls_queries)
        )

    def _get(self, name: str, build: Callable[[], object]):
        stmt = self._fixed.get(name)
        if stmt is None:
            stmt = self._fixed.setdefault(name, build())
        return stmt

    # --- comment reads ---

    @property
    def comment_count_query(self) -> Select:
        return self._get("comment_count", lambda: (
            select(func.count())
            .select_from(Comment)
            .where(
                Comment.url == bindparam("url"),
                Comment.rid == "",
                _visible_to_requester(),
            )
        ))

    @property
    def comment_query(self) -> Select:
        """Top-level comments of a page, newest first, before a cursor."""
        return self._get("comment", lambda: (
            select(Comment)
            .where(
                Comment.url == bindparam("url"),
                _visible_to_requester(),
                Comment.created < bindparam("before"),
                Comment.top == bindparam("top", type_=Boolean),
                Comment.rid == "",
            )
            .order_by(Comment.created.desc())
            .limit(bindparam("limit"))
        ))

    def reply_query(self, rid_count: int) -> Select:
        """Replies whose thread root is one of ``rid_count`` bound ids."""
        if rid_count < 1:
            raise ValueError("reply_query needs at least one thread-root id")
        stmt = self._reply_queries.get(rid_count)
        if stmt is None:
            stmt = (
                select(Comment)
                .where(
                    Comment.url == bindparam("url"),
                    _visible_to_requester(),
                    Comment.rid.in_([bindparam(f"rid_{i}") for i in range(rid_count)]),
                )
                .order_by(Comment.created.asc())
            )
            stmt = self._reply_queries.setdefault(rid_count, stmt)
        return stmt

    @property
    def comment_by_id_query(self) -> Select:
        return self._get("comment_by_id", lambda: (
            select(Comment).where(Comment.id == bindparam("target_id"))
        ))

    @property
    def comment_export_query(self) -> Select:
        return self._get("comment_export", lambda: (
            select(Comment).order_by(Comment.created.asc())
        ))

    # --- admin ---

    @property
    def comment_for_admin_count_query(self) -> Select:
        return self._get("comment_for_admin_count", lambda: (
            select(func.count())
            .select_from(Comment)
            .where(_spam_state_filter(), _keyword_filter())
        ))

    @property
    def comment_for_admin_query(self) -> Select:
        return self._get("comment_for_admin", lambda: (
            select(Comment)
            .where(_spam_state_filter(), _keyword_filter())
            .order_by(Comment.created.desc())
            .limit(bindparam("limit"))
            .offset(bindparam("offset"))
        ))

    def comment_set_stmt(self, fields: Iterable[str]) -> Update:
        """UPDATE of the given columns, each bound as ``set_<column>``.

        ``fields`` are attribute names of ``Comment``; the key is the sorted
        field tuple so ``{"top", "updated"}`` and ``["updated", "top"]`` share
        one statement. Callers must validate the names against an allow-list.
        """
        key = normalize_fields(fields)
        if not key:
            raise ValueError("comment_set_stmt needs at least one field")
        stmt = self._comment_set_stmts.get(key)
        if stmt is None:
            stmt = (
                update(Comment)
                .where(Comment.id == bindparam("target_id"))
                .values({field: bindparam(f"set_{field}") for field in key})
                .execution_options(synchronize_session=False)
            )
            stmt = self._comment_set_stmts.setdefault(key, stmt)
        return stmt

    @property
    def comment_delete_stmt(self) -> Delete:
        return self._get("comment_delete", lambda: (
            delete(Comment)
            .where(Comment.id == bindparam("target_id"))
            .execution_options(synchronize_session=False)
        ))

    # --- comment writes ---

    @property
    def save_comment_stmt(self) -> Insert:
        # Bound with one dict of Comment attribute names
        return self._get("save_comment", lambda: insert(Comment))

    @property
    def update_like_stmt(self) -> Update:
        return self._get("update_like", lambda: (
            update(Comment)
            .where(Comment.id == bindparam("target_id"))
            .values(likes=bindparam("new_likes"))
            .execution_options(synchronize_session=False)
        ))

    @property
    def update_is_spam_stmt(self) -> Update:
        return self._get("update_is_spam", lambda: (
            update(Comment)
            .where(Comment.id == bindparam("target_id"))
            .values(
                is_spam=bindparam("new_is_spam", type_=Boolean),
                updated=bindparam("new_updated"),
            )
            .execution_options(synchronize_session=False)
        ))

    # --- rate limiting ---

    @property
    def comment_count_since_by_ip_query(self) -> Select:
        return self._get("comment_count_since_by_ip", lambda: (
            select(func.count())
            .select_from(Comment)
            .where(Comment.created > bindparam("since"), Comment.ip == bindparam("ip"))
        ))

    @property
    def comment_count_since_query(self) -> Select:
        return self._get("comment_count_since", lambda: (
            select(func.count())
            .select_from(Comment)
            .where(Comment.created > bindparam("since"))
        ))

    # --- counts and recent comments ---

    @property
    def comment_count_by_url_query(self) -> Select:
        return self._get("comment_count_by_url", lambda: (
            select(func.count())
            .select_from(Comment)
            .where(
                Comment.url == bindparam("url"),
                Comment.is_spam == false(),
                _reply_filter(),
            )
        ))

    @property
    def recent_comments_query(self) -> Select:
        return self._get("recent_comments", lambda: (
            select(Comment)
            .where(Comment.is_spam == false(), _reply_filter())
            .order_by(Comment.created.desc())
            .limit(bindparam("limit"))
        ))

    def recent_comments_by_urls_query(self, url_count: int) -> Select:
        if url_count < 1:
            raise ValueError("recent_comments_by_urls_query needs at least one url")
        stmt = self._recent_by_urls_queries.get(url_count)
        if stmt is None:
            stmt = (
                select(Comment)
                .where(
                    Comment.url.in_([bindparam(f"url_{i}") for i in range(url_count)]),
                    Comment.is_spam == false(),
                    _reply_filter(),
                )
                .order_by(Comment.created.desc())
                .limit(bindparam("limit"))
            )
            stmt = self._recent_by_urls_queries.setdefault(url_count, stmt)
        return stmt

    # --- counter ---

    @property
    def inc_counter_stmt(self) -> Insert:
        """Insert a first hit, or increment and refresh title on conflict."""
        def build():
            stmt = sqlite_insert(Counter).values(
                url=bindparam("counter_url"),
                title=bindparam("counter_title"),
                time=1,
                created=bindparam("counter_now"),
                updated=bindparam("counter_now"),
            )
            return stmt.on_conflict_do_update(
                index_elements=[Counter.url],
                set_={
                    "time": Counter.time + 1,
                    "title": stmt.excluded.title,
                    "updated": stmt.excluded.updated,
                },
            )
        return self._get("inc_counter", build)

    @property
    def counter_query(self) -> Select:
        return self._get("counter", lambda: (
            select(Counter.time).where(Counter.url == bindparam("counter_url"))
        ))

    # --- config ---

    @property
    def read_config_query(self) -> Select:
        return self._get("read_config", lambda: (
            select(ConfigRecord.value).limit(1)
        ))

    @property
    def write_config_stmt(self) -> Insert:
        def build():
            stmt = sqlite_insert(ConfigRecord).values(
                id=bindparam("row_id"),
                value=bindparam("new_value"),
            )
            return stmt.on_conflict_do_update(
                index_elements=[ConfigRecord.id],
                set_={"value": stmt.excluded.value},
            )
        return self._get("write_config", build)
