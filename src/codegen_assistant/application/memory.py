"""Per-request chat memory rebuilt from the turn log."""

from __future__ import annotations

from loguru import logger
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)

from codegen_assistant.domain.models import ChatHistoryRecord
from codegen_assistant.domain.protocols import IChatHistoryService

# Stand-in results for tool calls replayed from earlier turns
EARLIER_TURN_RESULT = "(executed in an earlier turn)"
NOT_EXECUTED_RESULT = "(not executed: the turn ended before this call ran)"


class ChatMemory:
    """Ordered model messages for one generation request.

    The system prompt is kept apart and prepended by :meth:`messages`.
    The window of ``max_messages`` applies to turn-log records when loading;
    messages added during the turn are never trimmed, so tool calls stay
    paired with their returns.
    """

    def __init__(self, system_prompt: str, max_messages: int = 20) -> None:
        self.system_prompt = system_prompt
        self.max_messages = max_messages
        self._messages: list[ModelMessage] = []

    def __len__(self) -> int:
        return len(self._messages)

    def messages(self) -> list[ModelMessage]:
        head: list[ModelMessage] = []
        if self.system_prompt:
            head.append(ModelRequest(parts=[SystemPromptPart(content=self.system_prompt)]))
        return head + list(self._messages)

    # ------------------------------------------------------------------
    # Appending
    # ------------------------------------------------------------------

    def add_user(self, text: str) -> None:
        self._messages.append(ModelRequest(parts=[UserPromptPart(content=text)]))

    def add_response(self, response: ModelResponse) -> None:
        self._messages.append(response)

    def add_tool_return(self, tool_name: str, tool_call_id: str, result: str) -> None:
        self._messages.append(
            ModelRequest(parts=[ToolReturnPart(tool_name=tool_name, content=result, tool_call_id=tool_call_id)])
        )

    # ------------------------------------------------------------------
    # Rebuild
    # ------------------------------------------------------------------

    def load_from_history(
        self,
        history: IChatHistoryService,
        project_id: str,
        max_count: int | None = None,
    ) -> int:
        """Replace the memory with the latest records of *project_id*.

        The newest record is skipped: it is the user message of the current
        request, which is added separately in its augmented form.  Returns
        the number of records loaded; when the turn log cannot be read the
        memory stays empty and 0 is returned.
        """
        limit = max_count if max_count is not None else self.max_messages
        self._messages = []
        try:
            records = history.load_recent(project_id, limit, skip_latest=True)
            messages = [message for record in records for message in history_record_to_messages(record)]
        except Exception:
            logger.exception("Loading chat memory failed, continuing without it | project={}", project_id)
            return 0
        self._messages = messages
        logger.debug("Loaded chat memory | project={} | records={} | messages={}", project_id, len(records), len(self))
        return len(records)


def history_record_to_messages(record: ChatHistoryRecord) -> list[ModelMessage]:
    """Convert one turn-log record into model messages.

    An assistant record with tool calls becomes the call, a synthetic return
    per call, then the assistant text: every call must be answered before
    the conversation may continue.  Calls that never ran are answered as
    not executed.
    """
    if record.message_type == "user":
        return [ModelRequest(parts=[UserPromptPart(content=record.message)])]

    if not record.has_tool_calls:
        return [ModelResponse(parts=[TextPart(content=record.message)])]

    calls = [ToolCallPart(tool_name=c.name, args=c.arguments or "{}", tool_call_id=c.id) for c in record.tool_calls]
    returns = [
        ToolReturnPart(
            tool_name=c.name,
            content=EARLIER_TURN_RESULT if c.executed else NOT_EXECUTED_RESULT,
            tool_call_id=c.id,
        )
        for c in record.tool_calls
    ]
    messages: list[ModelMessage] = [ModelResponse(parts=calls), ModelRequest(parts=returns)]
    if record.message:
        messages.append(ModelResponse(parts=[TextPart(content=record.message)]))
    return messages
