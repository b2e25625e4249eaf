"""Tests for StatementCache: memoization and variable-arity families."""

import pytest

from threadline.store.statements import StatementCache, normalize_fields


class TestFixedStatements:
    def test_same_object_on_every_access(self):
        cache = StatementCache()
        assert cache.comment_query is cache.comment_query
        assert cache.inc_counter_stmt is cache.inc_counter_stmt
        assert cache.write_config_stmt is cache.write_config_stmt

    def test_caches_are_per_instance(self):
        assert StatementCache().comment_query is not StatementCache().comment_query

    def test_len_counts_built_entries(self):
        cache = StatementCache()
        assert len(cache) == 0
        cache.comment_query
        cache.comment_query
        cache.reply_query(2)
        cache.comment_set_stmt(["top"])
        assert len(cache) == 3


class TestReplyQuery:
    def test_keyed_by_count(self):
        cache = StatementCache()
        assert cache.reply_query(3) is cache.reply_query(3)
        assert cache.reply_query(3) is not cache.reply_query(4)

    def test_binds_one_parameter_per_id(self):
        compiled = StatementCache().reply_query(3).compile()
        assert {"rid_0", "rid_1", "rid_2", "url", "uid", "include_hidden"} <= set(compiled.params)

    def test_zero_ids_rejected(self):
        with pytest.raises(ValueError):
            StatementCache().reply_query(0)


class TestCommentSetStmt:
    def test_field_order_does_not_matter(self):
        cache = StatementCache()
        assert cache.comment_set_stmt(["top", "updated"]) is cache.comment_set_stmt(("updated", "top"))

    def test_duplicates_collapse(self):
        assert normalize_fields(["nick", "top", "nick"]) == ("nick", "top")

    def test_distinct_field_sets_get_distinct_statements(self):
        cache = StatementCache()
        assert cache.comment_set_stmt(["top"]) is not cache.comment_set_stmt(["nick"])

    def test_binds_set_prefixed_parameters(self):
        compiled = StatementCache().comment_set_stmt(["nick", "top"]).compile()
        assert {"set_nick", "set_top", "target_id"} <= set(compiled.params)

    def test_empty_field_set_rejected(self):
        with pytest.raises(ValueError):
            StatementCache().comment_set_stmt([])


class TestRecentByUrls:
    def test_keyed_by_url_count(self):
        cache = StatementCache()
        assert cache.recent_comments_by_urls_query(2) is cache.recent_comments_by_urls_query(2)

    def test_zero_urls_rejected(self):
        with pytest.raises(ValueError):
            StatementCache().recent_comments_by_urls_query(0)
