"""Thread-safe accumulator for one turn's assistant output."""

from __future__ import annotations

import threading

from codegen_assistant.domain.models import ToolCallRecord


class StreamCollector:
    """Accumulates assistant text and tool calls in emission order.

    Tool calls are deduplicated by id.  Reads return snapshots, so a caller
    may persist while generation is still appending.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._parts: list[str] = []
        self._tool_calls: dict[str, ToolCallRecord] = {}

    def append_text(self, text: str) -> None:
        if not text:
            return
        with self._lock:
            self._parts.append(text)

    def add_tool_call(self, call_id: str, name: str, arguments: str = "{}") -> bool:
        """Record a tool call; returns ``False`` when *call_id* was already seen."""
        with self._lock:
            if call_id in self._tool_calls:
                return False
            self._tool_calls[call_id] = ToolCallRecord(
                id=call_id, name=name, arguments=arguments or "{}", executed=False
            )
            return True

    def mark_executed(self, call_id: str, arguments: str = "") -> None:
        """Flag a recorded call as run, keeping the arguments it ran with."""
        with self._lock:
            record = self._tool_calls.get(call_id)
            if record is None:
                return
            record.executed = True
            if arguments:
                record.arguments = arguments

    @property
    def has_tool_calls(self) -> bool:
        with self._lock:
            return bool(self._tool_calls)

    @property
    def tool_call_count(self) -> int:
        with self._lock:
            return len(self._tool_calls)

    @property
    def full_text(self) -> str:
        with self._lock:
            return "".join(self._parts)

    @property
    def tool_calls(self) -> list[ToolCallRecord]:
        with self._lock:
            return [ToolCallRecord(r.id, r.name, r.arguments, r.executed) for r in self._tool_calls.values()]
