"""Tests for CodeGeneratorFacade: streaming, early close, persistence and pipelines."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from pydantic_ai.messages import ToolReturnPart

from codegen_assistant.agent import SYSTEM_PROMPTS
from codegen_assistant.application.exceptions import EmptyPromptError, UnsupportedCodeGenTypeError
from codegen_assistant.application.generation_loop import GenerationLoop, LoopState
from codegen_assistant.application.memory import NOT_EXECUTED_RESULT
from codegen_assistant.application.orchestrator import (
    CodeGeneratorFacade,
    EventDispatcher,
    SaveGate,
    TurnOutcome,
    TurnSubscriber,
)
from codegen_assistant.application.prompt_augmenter import PromptAugmenter
from codegen_assistant.domain.events import AiResponseMessage
from codegen_assistant.domain.models import CodeGenType
from codegen_assistant.rag.indexer import IndexingListener
from codegen_assistant.services.project_summary import ProjectSummaryService
from conftest import FakeTransport, text_round, tool_round

PAGE = "<!DOCTYPE html>\n<html><body><h1>Shop</h1></body></html>"


@pytest.fixture()
def make_facade(executor, history, retriever, output_root: Path):
    def factory(transport, builder=None, listener=None, limit: int = 20) -> CodeGeneratorFacade:
        return CodeGeneratorFacade(
            loop=GenerationLoop(transport, executor, max_tool_invocations=limit),
            executor=executor,
            augmenter=PromptAugmenter(retriever, ProjectSummaryService(output_root)),
            history=history,
            system_prompts=SYSTEM_PROMPTS,
            output_root=output_root,
            indexing_listener=listener,
            builder=builder,
        )

    return factory


async def _collect(stream) -> str:
    return "".join([chunk async for chunk in stream])


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    async def test_blank_prompt(self, make_facade, history):
        facade = make_facade(FakeTransport())
        with pytest.raises(EmptyPromptError):
            await facade.generate("   ", "42", CodeGenType.VUE_PROJECT)
        assert history.count("42") == 0

    async def test_unknown_type(self, make_facade):
        with pytest.raises(UnsupportedCodeGenTypeError):
            await make_facade(FakeTransport()).generate("hi", "42", "react_native")

    async def test_type_from_string(self, make_facade):
        stream = await make_facade(FakeTransport([text_round("ok")])).generate("hi", "42", "vue_project")
        assert stream.gen_type is CodeGenType.VUE_PROJECT
        await stream.finished()


# ---------------------------------------------------------------------------
# Streaming and persistence
# ---------------------------------------------------------------------------


class TestTurn:
    async def test_full_stream_persists_user_and_ai(self, make_facade, history):
        facade = make_facade(FakeTransport([text_round("Hello world", chunks=4)]))
        stream = await facade.generate("say hi", "42", CodeGenType.VUE_PROJECT, user_id="u1")

        assert await _collect(stream) == "Hello world"
        outcome = await stream.finished()
        assert outcome.state is LoopState.COMPLETE
        assert outcome.trigger == "complete"

        records = history.load_recent("42", 10, skip_latest=False)
        assert [(r.message_type, r.message) for r in records] == [("user", "say hi"), ("ai", "Hello world")]
        assert records[1].user_id == "u1"

    async def test_tool_turn_output_and_record(self, make_facade, history, vue_project: Path):
        args = {"relativeFilePath": "src/App.vue", "content": "<template><p/></template>"}
        facade = make_facade(FakeTransport([tool_round(("c1", "writeFile", args)), text_round("Done.")]))
        stream = await facade.generate("create app", "42", CodeGenType.VUE_PROJECT)

        text = await _collect(stream)
        assert "[Tool selected] Write file" in text
        assert "[writeFile] Write file src/App.vue\n```vue\n<template><p/></template>\n```" in text
        assert text.endswith("Done.")

        await stream.finished()
        [record] = [r for r in history.list_history("42") if r.message_type == "ai"]
        assert [(c.id, c.name) for c in record.tool_calls] == [("c1", "writeFile")]
        assert json.loads(record.tool_calls[0].arguments) == args
        assert "[writeFile] Write file src/App.vue" in record.message
        assert record.message.endswith("Done.")

    async def test_silent_tool_output(self, make_facade, vue_project: Path):
        (vue_project / "a.js").write_text("const secret = 1", encoding="utf-8")
        transport = FakeTransport([tool_round(("c1", "readFile", {"relativeFilePath": "a.js"})), text_round("ok")])
        stream = await make_facade(transport).generate("read", "42", CodeGenType.VUE_PROJECT)
        text = await _collect(stream)
        assert "[readFile] ✅ read successful" in text
        assert "secret" not in text

    async def test_early_close_still_persists_once(self, make_facade, history):
        transport = FakeTransport([text_round("abcdefghij", chunks=10)], delay=0.01)
        stream = await make_facade(transport).generate("letters", "42", CodeGenType.VUE_PROJECT)

        received = []
        async for chunk in stream:
            received.append(chunk)
            if len(received) == 2:
                break

        outcome = await stream.finished()
        assert received == ["a", "b"]
        assert outcome.text == "abcdefghij"
        ai_records = [r for r in history.list_history("42") if r.message_type == "ai"]
        assert len(ai_records) == 1
        assert ai_records[0].message == "abcdefghij"

    async def test_closed_stream_receives_nothing_more(self, make_facade):
        transport = FakeTransport([text_round("abc", chunks=3)], delay=0.01)
        stream = await make_facade(transport).generate("x", "42", CodeGenType.VUE_PROJECT)
        stream.close()
        await stream.finished()
        assert stream._queue.qsize() <= 1

    async def test_memory_includes_previous_turn(self, make_facade):
        transport = FakeTransport([text_round("first answer"), text_round("second answer")])
        facade = make_facade(transport)
        await (await facade.generate("first", "42", CodeGenType.VUE_PROJECT)).finished()
        await (await facade.generate("second", "42", CodeGenType.VUE_PROJECT)).finished()

        contents = [
            getattr(part, "content", None) for message in transport.requests[1] for part in message.parts
        ]
        assert "first" in contents
        assert "first answer" in contents
        assert contents.count("second") == 1


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_error_is_streamed_and_partial_output_persisted(self, make_facade, history):
        transport = FakeTransport([[*text_round("partial")[:-1], ConnectionError("reset")]])
        stream = await make_facade(transport).generate("go", "42", CodeGenType.VUE_PROJECT)

        text = await _collect(stream)
        assert text == "partial\n\nGeneration failed: reset\n\n"
        outcome = await stream.finished()
        assert outcome.state is LoopState.ERROR
        assert outcome.trigger == "error"
        ai = [r for r in history.list_history("42") if r.message_type == "ai"]
        assert [r.message for r in ai] == ["partial"]

    async def test_unreadable_turn_log_does_not_fail_turn(self, make_facade, history):
        transport = FakeTransport([text_round("fresh answer")])
        with patch.object(history, "load_recent", side_effect=sqlite3.OperationalError("disk I/O error")):
            stream = await make_facade(transport).generate("go", "42", CodeGenType.VUE_PROJECT)
            assert await _collect(stream) == "fresh answer"
            outcome = await stream.finished()

        assert outcome.state is LoopState.COMPLETE
        assert [r.message for r in history.list_history("42")] == ["fresh answer", "go"]

    async def test_empty_output_not_persisted(self, make_facade, history):
        stream = await make_facade(FakeTransport([])).generate("go", "42", CodeGenType.VUE_PROJECT)
        await _collect(stream)
        outcome = await stream.finished()
        assert outcome.state is LoopState.ERROR
        assert [r.message_type for r in history.list_history("42")] == ["user"]

    async def test_limit_message_persisted(self, make_facade, history, vue_project: Path):
        transport = FakeTransport([tool_round(("c1", "readDir", {}), ("c2", "readDir", {}))])
        stream = await make_facade(transport, limit=1).generate("go", "42", CodeGenType.VUE_PROJECT)
        text = await _collect(stream)
        assert "Tool invocation limit reached (1)" in text
        outcome = await stream.finished()
        assert outcome.state is LoopState.LIMIT_EXCEEDED

    async def test_limit_turn_calls_replayed_as_not_executed(self, make_facade, history, vue_project: Path):
        transport = FakeTransport(
            [tool_round(("c1", "readDir", {}), ("c2", "readDir", {})), text_round("listed it")]
        )
        facade = make_facade(transport, limit=1)
        await (await facade.generate("list files", "42", CodeGenType.VUE_PROJECT)).finished()

        [ai] = [r for r in history.list_history("42") if r.message_type == "ai"]
        assert [(c.id, c.executed) for c in ai.tool_calls] == [("c1", False), ("c2", False)]

        await (await facade.generate("try again", "42", CodeGenType.VUE_PROJECT)).finished()
        returns = {
            part.tool_call_id: part.content
            for message in transport.requests[1]
            for part in message.parts
            if isinstance(part, ToolReturnPart)
        }
        assert returns == {"c1": NOT_EXECUTED_RESULT, "c2": NOT_EXECUTED_RESULT}

    async def test_shutdown_persists_via_teardown(self, make_facade, history):
        transport = FakeTransport([text_round("slow answer here", chunks=16)], delay=0.05)
        facade = make_facade(transport)
        stream = await facade.generate("go", "42", CodeGenType.VUE_PROJECT)
        await asyncio.sleep(0.2)
        await facade.shutdown()

        with pytest.raises(asyncio.CancelledError):
            await stream.finished()
        ai = [r for r in history.list_history("42") if r.message_type == "ai"]
        assert len(ai) == 1
        assert ai[0].message and "slow answer here".startswith(ai[0].message)


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------


class TestPipelines:
    async def test_html_saved(self, make_facade, output_root: Path):
        facade = make_facade(FakeTransport([text_round(f"```html\n{PAGE}\n```")]))
        stream = await facade.generate("a shop page", "7", CodeGenType.HTML)
        await _collect(stream)
        await stream.finished()
        assert (output_root / "html_7" / "index.html").read_text(encoding="utf-8") == PAGE

    async def test_multi_file_saved_without_tools(self, make_facade, output_root: Path):
        transport = FakeTransport([text_round(f"```html\n{PAGE}\n```\n```css\nh1 {{ color: red; }}\n```")])
        stream = await make_facade(transport).generate("a shop page", "7", CodeGenType.MULTI_FILE)
        await stream.finished()
        assert transport.tools == [[]]
        assert (output_root / "multi_file_7" / "style.css").read_text(encoding="utf-8") == "h1 { color: red; }"

    async def test_vue_build_scheduled(self, make_facade, vue_project: Path):
        builder = MagicMock()
        builder.build.return_value = True
        facade = make_facade(FakeTransport([text_round("ok")]), builder=builder)
        await (await facade.generate("go", "42", CodeGenType.VUE_PROJECT)).finished()
        for _ in range(50):
            if builder.build.called:
                break
            await asyncio.sleep(0.01)
        builder.build.assert_called_once_with(vue_project)

    async def test_written_files_are_indexed(self, make_facade, indexer, store, output_root: Path, vue_project: Path):
        listener = IndexingListener(indexer, output_root)
        try:
            args = {"relativeFilePath": "src/Footer.vue", "content": "<template><footer/></template>"}
            facade = make_facade(FakeTransport([tool_round(("c1", "writeFile", args)), text_round("ok")]), listener=listener)
            await (await facade.generate("footer", "42", CodeGenType.VUE_PROJECT)).finished()
        finally:
            listener.shutdown(wait=True)
        assert [f.source_path for f in store.fragments("42")] == ["src/Footer.vue"]


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class TestDispatcher:
    def test_failing_subscriber_is_isolated(self):
        class Broken(TurnSubscriber):
            def on_event(self, event):
                raise RuntimeError("boom")

            def on_finish(self, outcome):
                raise RuntimeError("boom")

        seen = []

        class Recorder(TurnSubscriber):
            def on_event(self, event):
                seen.append(event)

            def on_finish(self, outcome):
                seen.append(outcome.trigger)

        dispatcher = EventDispatcher([Broken(), Recorder()])
        dispatcher.publish(AiResponseMessage(data="x"))
        assert dispatcher.finish(TurnOutcome("42", LoopState.COMPLETE, trigger="complete")) is True
        assert dispatcher.finish(TurnOutcome("42", LoopState.COMPLETE, trigger="teardown")) is False
        assert seen == [AiResponseMessage(data="x"), "complete"]

    def test_save_gate(self):
        gate = SaveGate()
        assert not gate.taken
        assert gate.try_acquire()
        assert not gate.try_acquire()
        assert gate.taken
