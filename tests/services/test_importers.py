"""Tests for the comment importers."""

import json

import pytest

from threadline.errors import ValidationError
from threadline.services.importers import parse_export, resolve_thread_roots, to_millis

DISQUS_XML = """<?xml version="1.0" encoding="utf-8"?>
<disqus xmlns="http://disqus.com" xmlns:dsq="http://disqus.com/disqus-internals">
  <thread dsq:id="t1">
    <link>https://blog.example.com/post/1</link>
    <title>Post</title>
  </thread>
  <post dsq:id="p1">
    <message><![CDATA[<p>First</p>]]></message>
    <createdAt>2020-01-01T00:00:00Z</createdAt>
    <isDeleted>false</isDeleted>
    <isSpam>false</isSpam>
    <author><name>Ann</name></author>
    <thread dsq:id="t1"/>
  </post>
  <post dsq:id="p2">
    <message><![CDATA[<p>Reply</p>]]></message>
    <createdAt>2020-01-02T00:00:00Z</createdAt>
    <isDeleted>false</isDeleted>
    <isSpam>false</isSpam>
    <author><name>Bea</name></author>
    <thread dsq:id="t1"/>
    <parent dsq:id="p1"/>
  </post>
  <post dsq:id="p3">
    <message>gone</message>
    <createdAt>2020-01-03T00:00:00Z</createdAt>
    <isDeleted>true</isDeleted>
    <isSpam>false</isSpam>
    <author><name>Cid</name></author>
    <thread dsq:id="t1"/>
  </post>
</disqus>"""


def _collect():
    lines = []
    return lines, lines.append


class TestValine:
    def test_results_wrapper(self):
        content = json.dumps({"results": [{
            "objectId": "v1", "nick": "Ann", "url": "/p", "comment": "hi",
            "createdAt": "2020-01-01T00:00:00.000Z", "updatedAt": "2020-01-01T00:00:00.000Z",
        }]})
        lines, log = _collect()

        records = parse_export("valine", content, log)

        assert records[0]["_id"] == "v1"
        assert records[0]["created"] == 1_577_836_800_000
        assert any("Parsed 1" in line for line in lines)

    def test_bad_record_is_logged_and_skipped(self):
        content = json.dumps([{"objectId": "v1"}])
        lines, log = _collect()
        assert parse_export("valine", content, log) == []
        assert any("v1 failed" in line for line in lines)


class TestDisqus:
    def test_threads_and_replies(self):
        lines, log = _collect()

        records = parse_export("disqus", DISQUS_XML, log)

        assert [r["_id"] for r in records] == ["p1", "p2"]
        assert records[0]["url"] == "/post/1"
        assert records[1]["rid"] == "p1"
        assert records[1]["pid"] == "p1"
        assert any("p3 skipped" in line for line in lines)


class TestArtalk:
    def test_artalk2_pinned_and_replies(self):
        content = json.dumps([
            {"id": 1, "rid": 0, "content": "root", "nick": "A", "page_key": "/p",
             "created_at": "2021-05-01T10:00:00+00:00", "is_pinned": True},
            {"id": 2, "rid": 1, "content": "child", "nick": "B", "page_key": "/p",
             "created_at": "2021-05-01T11:00:00+00:00"},
            {"id": 3, "rid": 2, "content": "grandchild", "nick": "C", "page_key": "/p",
             "created_at": "2021-05-01T12:00:00+00:00"},
        ])
        records = parse_export("artalk2", content, lambda _: None)

        assert records[0]["top"] is True
        assert records[0]["rid"] == ""
        assert records[2]["pid"] == "2"
        assert records[2]["rid"] == "1"

    def test_artalk_v1_dates(self):
        content = json.dumps([{"id": 5, "rid": "0", "content": "x", "page_key": "/p", "date": "2021-05-01 10:00:00"}])
        records = parse_export("artalk", content, lambda _: None)
        assert records[0]["created"] == to_millis("2021-05-01T10:00:00")


class TestTwikoo:
    def test_json_lines_and_oid(self):
        lines = "\n".join([
            json.dumps({"_id": {"$oid": "a1"}, "url": "/p", "comment": "hi", "created": 1000}),
            json.dumps({"_id": "a2", "url": "/p", "comment": "yo", "created": {"$date": 2000}, "like": ["u"]}),
        ])
        records = parse_export("twikoo", lines, lambda _: None)
        assert [r["_id"] for r in records] == ["a1", "a2"]
        assert records[1]["created"] == 2000
        assert records[1]["like"] == ["u"]


def test_unknown_source():
    with pytest.raises(ValidationError):
        parse_export("wordpress", "[]", lambda _: None)


def test_cycles_do_not_hang():
    records = [{"_id": "a", "pid": "b"}, {"_id": "b", "pid": "a"}]
    resolve_thread_roots(records)
    assert {r["rid"] for r in records} <= {"a", "b"}
