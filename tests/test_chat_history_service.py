"""Tests for the SQLite turn log."""

from __future__ import annotations

import json

import pytest

from codegen_assistant.domain.models import ToolCallRecord
from codegen_assistant.services.chat_history_service import ChatHistoryService


class TestAppend:
    def test_add_and_list(self, history: ChatHistoryService):
        first = history.add_chat_message("42", "hello", "user", user_id="u1")
        second = history.add_chat_message("42", "hi there", "ai")
        assert second > first

        records = history.list_history("42")
        assert [r.message for r in records] == ["hi there", "hello"]
        assert records[1].user_id == "u1"
        assert records[0].tool_calls is None
        assert records[0].created_at

    def test_rejects_unknown_type(self, history):
        with pytest.raises(ValueError):
            history.add_chat_message("42", "x", "system")

    def test_tool_calls_round_trip_and_dedup(self, history):
        calls = [
            ToolCallRecord(id="c1", name="writeFile", arguments='{"relativeFilePath": "a.js"}'),
            ToolCallRecord(id="c1", name="writeFile", arguments="{}"),
            ToolCallRecord(id="c2", name="readDir"),
        ]
        history.add_ai_message_with_tool_calls("42", "done", calls)
        [record] = history.list_history("42")

        assert record.message_type == "ai"
        assert record.has_tool_calls
        assert [(c.id, c.arguments) for c in record.tool_calls] == [
            ("c1", '{"relativeFilePath": "a.js"}'),
            ("c2", "{}"),
        ]

    def test_stored_tool_calls_are_json(self, history):
        history.add_ai_message_with_tool_calls("42", "", [ToolCallRecord(id="c1", name="readDir")])
        row = history.conn.execute("SELECT tool_calls FROM chat_history").fetchone()
        assert json.loads(row["tool_calls"]) == [{"id": "c1", "name": "readDir", "arguments": "{}", "executed": True}]

    def test_execution_flag_round_trip(self, history):
        history.add_ai_message_with_tool_calls(
            "42", "limit", [ToolCallRecord(id="c1", name="readDir", executed=False)]
        )
        history.conn.execute(
            "INSERT INTO chat_history (project_id, message, message_type, tool_calls, created_at) "
            "VALUES ('42', 'legacy row', 'ai', ?, '')",
            (json.dumps([{"id": "c0", "name": "readFile", "arguments": "{}"}]),),
        )
        legacy, limited = history.list_history("42")
        assert legacy.tool_calls[0].executed is True
        assert limited.tool_calls[0].executed is False

    def test_unreadable_tool_calls(self, history):
        history.conn.execute(
            "INSERT INTO chat_history (project_id, message, message_type, tool_calls) VALUES ('42', 'x', 'ai', 'nope')"
        )
        history.conn.commit()
        [record] = history.list_history("42")
        assert record.tool_calls is None


class TestRead:
    def test_load_recent_order(self, history):
        for i in range(4):
            history.add_chat_message("42", f"m{i}", "user")
        assert [r.message for r in history.load_recent("42", 10, skip_latest=False)] == ["m0", "m1", "m2", "m3"]
        assert [r.message for r in history.load_recent("42", 10)] == ["m0", "m1", "m2"]
        assert [r.message for r in history.load_recent("42", 2)] == ["m1", "m2"]
        assert history.load_recent("42", 0) == []

    def test_projects_are_isolated(self, history):
        history.add_chat_message("a", "x", "user")
        history.add_chat_message("b", "y", "user")
        assert history.count("a") == 1
        assert [r.message for r in history.list_history("b")] == ["y"]

    def test_delete_by_project(self, history):
        history.add_chat_message("a", "x", "user")
        history.add_chat_message("a", "y", "ai")
        history.add_chat_message("b", "z", "user")
        assert history.delete_by_project("a") == 2
        assert history.count("a") == 0
        assert history.count("b") == 1

    def test_reopen_keeps_records(self, tmp_path):
        path = tmp_path / "db" / "history.sqlite"
        svc = ChatHistoryService(path)
        svc.connect()
        svc.add_chat_message("42", "persisted", "user")
        svc.close()

        reopened = ChatHistoryService(path)
        reopened.connect()
        try:
            assert [r.message for r in reopened.list_history("42")] == ["persisted"]
        finally:
            reopened.close()
