"""Stream events of a generation turn and their wire encoding.

Every event is a small discriminated record.  The ``type`` field is the tag,
so a consumer can decode any line with :data:`stream_event_adapter`.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter


class AiResponseMessage(BaseModel):
    """A delta of assistant text."""

    type: Literal["ai_response"] = "ai_response"
    data: str


class ToolRequestMessage(BaseModel):
    """The model selected a tool.  ``arguments`` may still be partial."""

    type: Literal["tool_request"] = "tool_request"
    id: str
    name: str
    arguments: str = ""


class ToolExecutedMessage(BaseModel):
    """A tool finished; ``result`` is the raw text the tool returned."""

    type: Literal["tool_executed"] = "tool_executed"
    id: str
    name: str
    arguments: str = "{}"
    result: str = ""


StreamEvent = Annotated[
    AiResponseMessage | ToolRequestMessage | ToolExecutedMessage,
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def encode_event(event: AiResponseMessage | ToolRequestMessage | ToolExecutedMessage) -> str:
    return event.model_dump_json()


def decode_event(raw: str | bytes) -> AiResponseMessage | ToolRequestMessage | ToolExecutedMessage:
    return stream_event_adapter.validate_json(raw)
