"""Renders stream events into caller-facing text."""

from __future__ import annotations

from collections.abc import Iterable

from codegen_assistant.domain.events import (
    AiResponseMessage,
    StreamEvent,
    ToolExecutedMessage,
    ToolRequestMessage,
)
from codegen_assistant.tools.registry import ToolExecutor


class MessageRelay:
    """Per-turn renderer for the tagged event stream.

    - ``ai_response``: text passes through verbatim.
    - ``tool_request``: a selection notice, once per call id.
    - ``tool_executed``: the tool's summary of what it did.  Silent tools
      (read-only ones by default) show a short acknowledgement instead of
      their result.  With ``raw=True`` the tool result itself is shown.
    """

    def __init__(self, executor: ToolExecutor, silent_tools: Iterable[str] = (), raw: bool = False) -> None:
        self.executor = executor
        self.silent_tools = frozenset(silent_tools)
        self.raw = raw
        self._announced: set[str] = set()

    def render(self, event: StreamEvent) -> str | None:
        if isinstance(event, AiResponseMessage):
            return event.data or None
        if isinstance(event, ToolRequestMessage):
            if event.id in self._announced:
                return None
            self._announced.add(event.id)
            return f"\n\n{self.executor.request_notice(event.name)}\n\n"
        if isinstance(event, ToolExecutedMessage):
            return self.format_executed(event)
        return None

    def format_executed(self, event: ToolExecutedMessage) -> str:
        if event.name in self.silent_tools:
            body = f"[{event.name}] ✅ read successful"
        elif self.raw:
            body = event.result
        else:
            body = self.executor.executed_summary(event.name, event.arguments)
        return f"\n\n{body}\n\n"
