"""Bounded, streaming tool-call loop.

One run alternates between asking the model and executing the tools it
requested, until the model answers without tool calls, the cumulative
invocation budget would be exceeded, or something fails::

    AWAITING_MODEL ──no tool calls──────────────▶ COMPLETE
         │    ▲
         │    └──────── EXECUTING_TOOLS
         ├──budget exceeded─────────────────────▶ LIMIT_EXCEEDED
         └──no response / exception─────────────▶ ERROR

The loop is iterative; there is no recursion per model round.  Text and
tool-call starts are emitted while the model is still streaming.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from enum import Enum

from loguru import logger
from pydantic_ai.messages import ToolCallPart
from pydantic_ai.tools import ToolDefinition

from codegen_assistant.application.exceptions import TransportError
from codegen_assistant.application.memory import ChatMemory
from codegen_assistant.application.transport import ResponseCompleted, TextDelta, ToolCallDelta
from codegen_assistant.domain.events import (
    AiResponseMessage,
    StreamEvent,
    ToolExecutedMessage,
    ToolRequestMessage,
)
from codegen_assistant.domain.protocols import IModelTransport
from codegen_assistant.telemetry import span
from codegen_assistant.tools.registry import ToolExecutor

LIMIT_MESSAGE = "Tool invocation limit reached ({limit}), please start a new conversation"


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    COMPLETE = "complete"
    ERROR = "error"
    LIMIT_EXCEEDED = "limit_exceeded"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.COMPLETE, LoopState.ERROR, LoopState.LIMIT_EXCEEDED)


class GenerationLoop:
    """Drives model rounds and tool execution for one request at a time.

    Parameters
    ----------
    transport:
        Streaming model transport.
    executor:
        Tool lookup table; tools run sequentially, off the event loop.
    max_tool_invocations:
        Cumulative budget for one run.  A round whose calls would exceed it
        is not executed at all.
    """

    def __init__(self, transport: IModelTransport, executor: ToolExecutor, max_tool_invocations: int = 20) -> None:
        self.transport = transport
        self.executor = executor
        self.max_tool_invocations = max_tool_invocations

    def run(self, memory: ChatMemory, tools: Sequence[ToolDefinition], context_id: str) -> LoopRun:
        return LoopRun(self, memory, list(tools), context_id)


class LoopRun:
    """A single run of the loop; iterate it to drive generation."""

    def __init__(self, loop: GenerationLoop, memory: ChatMemory, tools: list[ToolDefinition], context_id: str) -> None:
        self.loop = loop
        self.memory = memory
        self.tools = tools
        self.context_id = context_id
        self.state = LoopState.AWAITING_MODEL
        self.invocations = 0
        self.rounds = 0
        self.error: BaseException | None = None

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._drive()

    async def _drive(self) -> AsyncIterator[StreamEvent]:
        try:
            async for event in self._rounds():
                yield event
        except Exception as exc:
            self.state = LoopState.ERROR
            self.error = exc
            raise

    async def _rounds(self) -> AsyncIterator[StreamEvent]:
        limit = self.loop.max_tool_invocations
        while True:
            self.state = LoopState.AWAITING_MODEL
            self.rounds += 1
            announced: set[str] = set()
            response = None

            async for event in self.loop.transport.stream(self.memory.messages(), self.tools):
                if isinstance(event, TextDelta):
                    yield AiResponseMessage(data=event.text)
                elif isinstance(event, ToolCallDelta):
                    if event.is_start and event.tool_call_id not in announced:
                        announced.add(event.tool_call_id)
                        yield ToolRequestMessage(
                            id=event.tool_call_id, name=event.tool_name, arguments=event.args_delta
                        )
                elif isinstance(event, ResponseCompleted):
                    response = event.response

            if response is None:
                logger.error("Model stream ended without a response | context={} | round={}", self.context_id, self.rounds)
                raise TransportError("model stream ended without a complete response")

            calls = [part for part in response.parts if isinstance(part, ToolCallPart)]
            if not calls:
                self.memory.add_response(response)
                self.state = LoopState.COMPLETE
                logger.info(
                    "Generation complete | context={} | rounds={} | tool_invocations={}",
                    self.context_id,
                    self.rounds,
                    self.invocations,
                )
                return

            if self.invocations + len(calls) > limit:
                self.state = LoopState.LIMIT_EXCEEDED
                logger.warning(
                    "Tool invocation limit reached | context={} | used={} | requested={} | limit={}",
                    self.context_id,
                    self.invocations,
                    len(calls),
                    limit,
                )
                yield AiResponseMessage(data=LIMIT_MESSAGE.format(limit=limit))
                return

            self.memory.add_response(response)
            self.state = LoopState.EXECUTING_TOOLS
            for call in calls:
                arguments = call.args_as_json_str()
                if call.tool_call_id not in announced:
                    announced.add(call.tool_call_id)
                    yield ToolRequestMessage(id=call.tool_call_id, name=call.tool_name, arguments=arguments)

                with span("tool call", tool=call.tool_name, project_id=self.context_id):
                    result = await asyncio.to_thread(
                        self.loop.executor.execute, call.tool_name, arguments, self.context_id
                    )
                self.invocations += 1
                self.memory.add_tool_return(call.tool_name, call.tool_call_id, result)
                yield ToolExecutedMessage(id=call.tool_call_id, name=call.tool_name, arguments=arguments, result=result)
