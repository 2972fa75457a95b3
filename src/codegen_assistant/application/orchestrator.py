"""Code generation facade: one entry point per turn, for every pipeline.

A turn runs on two channels:

- the *generation* channel, an ``asyncio.Task`` that drives the
  generation loop to its end and publishes every event to the turn's
  subscribers (collect, deliver, index, persist, log);
- the *delivery* channel, a queue the caller drains through
  :class:`TurnStream`.

Closing or abandoning the stream only stops delivery.  Generation keeps
running and the complete turn is persisted exactly once, whichever comes
first of completion, failure, or teardown of the generation task.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from codegen_assistant.application.collector import StreamCollector
from codegen_assistant.application.exceptions import EmptyPromptError, UnsupportedCodeGenTypeError
from codegen_assistant.application.generation_loop import GenerationLoop, LoopState
from codegen_assistant.application.memory import ChatMemory
from codegen_assistant.application.prompt_augmenter import PromptAugmenter
from codegen_assistant.application.relay import MessageRelay
from codegen_assistant.domain.events import (
    AiResponseMessage,
    StreamEvent,
    ToolExecutedMessage,
    ToolRequestMessage,
)
from codegen_assistant.domain.models import CodeGenType, ToolCallRecord
from codegen_assistant.domain.protocols import IChatHistoryService, IProjectBuilder
from codegen_assistant.rag.indexer import IndexingListener
from codegen_assistant.services.code_parsers import HtmlCodeParser, MultiFileCodeParser
from codegen_assistant.services.code_saver import CodeFileSaver
from codegen_assistant.telemetry import span
from codegen_assistant.tools.registry import ToolExecutor, parse_arguments

ERROR_MESSAGE = "\n\nGeneration failed: {error}\n\n"

_END = object()


# ---------------------------------------------------------------------------
# Save gate & outcome
# ---------------------------------------------------------------------------


class SaveGate:
    """One-shot compare-and-set: only the first :meth:`try_acquire` wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._taken = False

    def try_acquire(self) -> bool:
        with self._lock:
            if self._taken:
                return False
            self._taken = True
            return True

    @property
    def taken(self) -> bool:
        with self._lock:
            return self._taken


@dataclass
class TurnOutcome:
    """What a finished turn produced; returned by :meth:`TurnStream.finished`."""

    project_id: str
    state: LoopState
    text: str = ""
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    record_id: int | None = None
    trigger: str = ""
    error: str | None = None


# ---------------------------------------------------------------------------
# Subscribers
# ---------------------------------------------------------------------------


class TurnSubscriber:
    """Receives every event of one turn, then the turn's outcome once."""

    def on_event(self, event: StreamEvent) -> None:
        pass

    def on_finish(self, outcome: TurnOutcome) -> None:
        pass


class CollectSubscriber(TurnSubscriber):
    """Accumulates what the persisted turn shows: text, tool calls, tool summaries."""

    def __init__(self, collector: StreamCollector, relay: MessageRelay) -> None:
        self.collector = collector
        self.relay = relay

    def on_event(self, event: StreamEvent) -> None:
        if isinstance(event, AiResponseMessage):
            self.collector.append_text(event.data)
        elif isinstance(event, ToolRequestMessage):
            self.collector.add_tool_call(event.id, event.name, event.arguments)
        elif isinstance(event, ToolExecutedMessage):
            self.collector.add_tool_call(event.id, event.name, event.arguments)
            self.collector.mark_executed(event.id, event.arguments)
            self.collector.append_text(self.relay.format_executed(event))


class DeliverSubscriber(TurnSubscriber):
    """Forwards rendered text to the caller while the caller is listening."""

    def __init__(self, stream: TurnStream, relay: MessageRelay) -> None:
        self.stream = stream
        self.relay = relay

    def on_event(self, event: StreamEvent) -> None:
        text = self.relay.render(event)
        if text:
            self.stream.deliver(text)


class IndexSubscriber(TurnSubscriber):
    """Hands executed file tools to the indexing listener."""

    def __init__(self, listener: IndexingListener, project_id: str) -> None:
        self.listener = listener
        self.project_id = project_id

    def on_event(self, event: StreamEvent) -> None:
        if not isinstance(event, ToolExecutedMessage):
            return
        try:
            arguments = parse_arguments(event.arguments)
        except ValueError:
            logger.warning("Skip indexing, unreadable tool arguments | tool={} | id={}", event.name, event.id)
            return
        self.listener.on_tool_executed(self.project_id, event.name, arguments)


class PersistSubscriber(TurnSubscriber):
    """Appends the collected assistant output to the turn log."""

    def __init__(self, history: IChatHistoryService, collector: StreamCollector, user_id: str | None) -> None:
        self.history = history
        self.collector = collector
        self.user_id = user_id

    def on_finish(self, outcome: TurnOutcome) -> None:
        text = self.collector.full_text
        tool_calls = self.collector.tool_calls
        outcome.text = text
        outcome.tool_calls = tool_calls
        if not text.strip() and not tool_calls:
            logger.warning("Empty assistant output, nothing to persist | project={}", outcome.project_id)
            return
        try:
            if tool_calls:
                outcome.record_id = self.history.add_ai_message_with_tool_calls(
                    outcome.project_id, text, tool_calls, self.user_id
                )
            else:
                outcome.record_id = self.history.add_chat_message(outcome.project_id, text, "ai", self.user_id)
        except Exception:
            logger.exception("Failed to persist assistant turn | project={}", outcome.project_id)
            return
        logger.info(
            "Persisted assistant turn | project={} | record={} | tool_calls={} | trigger={}",
            outcome.project_id,
            outcome.record_id,
            len(tool_calls),
            outcome.trigger,
        )


class PipelineSubscriber(TurnSubscriber):
    """Post-generation work of the pipeline: build, or parse and save."""

    def __init__(
        self,
        gen_type: CodeGenType,
        collector: StreamCollector,
        output_root: Path,
        saver: CodeFileSaver,
        builder: IProjectBuilder | None,
        spawn: Callable[[Coroutine[Any, Any, Any]], asyncio.Task],
    ) -> None:
        self.gen_type = gen_type
        self.collector = collector
        self.output_root = output_root
        self.saver = saver
        self.builder = builder
        self.spawn = spawn

    def on_finish(self, outcome: TurnOutcome) -> None:
        if outcome.state not in (LoopState.COMPLETE, LoopState.LIMIT_EXCEEDED):
            return
        if self.gen_type is CodeGenType.VUE_PROJECT:
            if self.builder is None:
                return
            project_dir = self.output_root / self.gen_type.project_dir_name(outcome.project_id)
            self.spawn(self._build(project_dir, outcome.project_id))
            return

        text = self.collector.full_text
        parser = HtmlCodeParser() if self.gen_type is CodeGenType.HTML else MultiFileCodeParser()
        try:
            self.saver.save(parser.parse(text), self.gen_type, outcome.project_id)
        except (ValueError, OSError) as exc:
            logger.error("Could not save generated code | project={} | type={} | {}", outcome.project_id, self.gen_type.value, exc)

    async def _build(self, project_dir: Path, project_id: str) -> None:
        ok = await asyncio.to_thread(self.builder.build, project_dir)
        if ok:
            logger.info("Background build succeeded | project={}", project_id)
        else:
            logger.warning("Background build failed | project={}", project_id)


class LogSubscriber(TurnSubscriber):
    def __init__(self, project_id: str) -> None:
        self.project_id = project_id

    def on_event(self, event: StreamEvent) -> None:
        if isinstance(event, ToolRequestMessage):
            logger.debug("Tool requested | project={} | tool={} | id={}", self.project_id, event.name, event.id)
        elif isinstance(event, ToolExecutedMessage):
            logger.info("Tool executed | project={} | tool={} | id={}", self.project_id, event.name, event.id)

    def on_finish(self, outcome: TurnOutcome) -> None:
        logger.info(
            "Turn finished | project={} | state={} | trigger={} | chars={}",
            self.project_id,
            outcome.state.value,
            outcome.trigger,
            len(outcome.text),
        )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class EventDispatcher:
    """Fans one event stream out to independent subscribers.

    A failing subscriber is logged and does not affect the others.
    :meth:`finish` runs at most once per turn, guarded by the save gate.
    """

    def __init__(self, subscribers: list[TurnSubscriber], gate: SaveGate | None = None) -> None:
        self.subscribers = subscribers
        self.gate = gate or SaveGate()

    def publish(self, event: StreamEvent) -> None:
        for subscriber in self.subscribers:
            try:
                subscriber.on_event(event)
            except Exception:
                logger.exception("Subscriber failed on event | subscriber={} | type={}", type(subscriber).__name__, event.type)

    def finish(self, outcome: TurnOutcome) -> bool:
        if not self.gate.try_acquire():
            return False
        for subscriber in self.subscribers:
            try:
                subscriber.on_finish(outcome)
            except Exception:
                logger.exception("Subscriber failed on finish | subscriber={}", type(subscriber).__name__)
        return True


# ---------------------------------------------------------------------------
# Caller-facing stream
# ---------------------------------------------------------------------------


class TurnStream:
    """Async iterator over the rendered text of one turn.

    Leaving the iteration early (or calling :meth:`close`) only stops
    delivery; ``await finished()`` still returns the full outcome.
    """

    def __init__(self, project_id: str, gen_type: CodeGenType) -> None:
        self.project_id = project_id
        self.gen_type = gen_type
        self.delivering = True
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None

    def attach(self, task: asyncio.Task) -> None:
        self._task = task

    def deliver(self, text: str) -> None:
        if self.delivering:
            self._queue.put_nowait(text)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    def close(self) -> None:
        if self.delivering:
            logger.info("Caller stopped listening, generation continues | project={}", self.project_id)
        self.delivering = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            while self.delivering:
                item = await self._queue.get()
                if item is _END:
                    return
                yield item
        finally:
            self.close()

    async def finished(self) -> TurnOutcome:
        assert self._task is not None
        return await asyncio.shield(self._task)


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class CodeGeneratorFacade:
    """Runs generation turns for every ``CodeGenType``.

    Parameters
    ----------
    loop:
        Generation loop shared by all turns.
    executor:
        Tools offered to the Vue project pipeline; also used to render tool events.
    augmenter:
        Builds the prompt sent to the model.
    history:
        The turn log.
    system_prompts:
        System prompt per generation type.
    indexing_listener:
        Optional; re-indexes files touched by tools.
    builder:
        Optional; builds Vue projects in the background after a turn.
    """

    def __init__(
        self,
        loop: GenerationLoop,
        executor: ToolExecutor,
        augmenter: PromptAugmenter,
        history: IChatHistoryService,
        system_prompts: dict[CodeGenType, str],
        output_root: Path,
        indexing_listener: IndexingListener | None = None,
        builder: IProjectBuilder | None = None,
        memory_max_records: int = 20,
        silent_tools: tuple[str, ...] | list[str] = ("readFile", "readDir"),
    ) -> None:
        self.loop = loop
        self.executor = executor
        self.augmenter = augmenter
        self.history = history
        self.system_prompts = system_prompts
        self.output_root = output_root
        self.indexing_listener = indexing_listener
        self.builder = builder
        self.memory_max_records = memory_max_records
        self.silent_tools = tuple(silent_tools)
        self.saver = CodeFileSaver(output_root)
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        project_id: str,
        gen_type: CodeGenType | str,
        user_id: str | None = None,
    ) -> TurnStream:
        """Start a turn and return its stream.

        The user message is persisted before generation starts.

        Raises:
            EmptyPromptError: If *prompt* is blank.
            UnsupportedCodeGenTypeError: If *gen_type* names no pipeline.
        """
        if not prompt or not prompt.strip():
            raise EmptyPromptError("prompt must not be empty")
        gen_type = self._coerce_type(gen_type)

        try:
            self.history.add_chat_message(project_id, prompt, "user", user_id)
        except Exception:
            logger.exception("Failed to persist user message | project={}", project_id)

        stream = TurnStream(project_id, gen_type)
        collector = StreamCollector()
        relay = MessageRelay(self.executor, self.silent_tools)

        subscribers: list[TurnSubscriber] = [
            CollectSubscriber(collector, relay),
            DeliverSubscriber(stream, relay),
        ]
        if gen_type.uses_tools and self.indexing_listener is not None:
            subscribers.append(IndexSubscriber(self.indexing_listener, project_id))
        subscribers += [
            PersistSubscriber(self.history, collector, user_id),
            PipelineSubscriber(gen_type, collector, self.output_root, self.saver, self.builder, self._spawn),
            LogSubscriber(project_id),
        ]
        dispatcher = EventDispatcher(subscribers)

        logger.info("Turn started | project={} | type={} | user={}", project_id, gen_type.value, user_id)
        stream.attach(self._spawn(self._run_turn(prompt, project_id, gen_type, stream, dispatcher)))
        return stream

    async def shutdown(self) -> None:
        """Cancel running turns; each still persists what it collected."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Generation channel
    # ------------------------------------------------------------------

    async def _run_turn(
        self,
        prompt: str,
        project_id: str,
        gen_type: CodeGenType,
        stream: TurnStream,
        dispatcher: EventDispatcher,
    ) -> TurnOutcome:
        outcome = TurnOutcome(project_id=project_id, state=LoopState.AWAITING_MODEL)
        run = None
        try:
            memory = ChatMemory(self.system_prompts.get(gen_type, ""), self.memory_max_records)
            await asyncio.to_thread(memory.load_from_history, self.history, project_id, self.memory_max_records)
            augmented = await asyncio.to_thread(self.augmenter.augment, prompt, project_id, gen_type)
            memory.add_user(augmented)

            tools = self.executor.definitions() if gen_type.uses_tools else []
            run = self.loop.run(memory, tools, project_id)
            with span("generation turn", project_id=project_id, gen_type=gen_type.value):
                async for event in run:
                    dispatcher.publish(event)

            outcome.state = run.state
            outcome.trigger = "complete"
            dispatcher.finish(outcome)
        except Exception as exc:
            logger.exception("Generation failed | project={} | type={}", project_id, gen_type.value)
            outcome.state = LoopState.ERROR
            outcome.error = str(exc)
            outcome.trigger = "error"
            stream.deliver(ERROR_MESSAGE.format(error=exc))
            dispatcher.finish(outcome)
        finally:
            if not dispatcher.gate.taken:
                outcome.state = run.state if run is not None else outcome.state
                outcome.trigger = "teardown"
                dispatcher.finish(outcome)
            stream.end()
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    def _coerce_type(gen_type: CodeGenType | str) -> CodeGenType:
        if isinstance(gen_type, CodeGenType):
            return gen_type
        try:
            return CodeGenType(gen_type)
        except ValueError:
            raise UnsupportedCodeGenTypeError(f"unsupported generation type: {gen_type}") from None
