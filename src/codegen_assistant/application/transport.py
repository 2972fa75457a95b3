"""Streaming model transport over pydantic-ai's direct request API.

The transport turns one streamed model request into a flat sequence of
events the generation loop understands:

- ``TextDelta`` for each piece of assistant text,
- ``ToolCallDelta`` for each tool-call start or argument fragment,
- exactly one ``ResponseCompleted`` carrying the final ``ModelResponse``.

It knows nothing about tools, memory or persistence.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from loguru import logger
from pydantic_ai.direct import model_request_stream
from pydantic_ai.messages import (
    ModelMessage,
    ModelResponse,
    PartDeltaEvent,
    PartStartEvent,
    TextPart,
    TextPartDelta,
    ToolCallPart,
    ToolCallPartDelta,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.models.instrumented import InstrumentationSettings
from pydantic_ai.tools import ToolDefinition
from pydantic_ai.usage import RequestUsage

# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass
class TextDelta:
    text: str


@dataclass
class ToolCallDelta:
    """A tool-call start (``tool_name`` set) or an argument fragment."""

    index: int
    tool_call_id: str
    tool_name: str | None = None
    args_delta: str = ""

    @property
    def is_start(self) -> bool:
        return self.tool_name is not None


@dataclass
class ResponseCompleted:
    response: ModelResponse | None
    usage: RequestUsage | None = None


TransportEvent = TextDelta | ToolCallDelta | ResponseCompleted


# ---------------------------------------------------------------------------
# pydantic-ai implementation
# ---------------------------------------------------------------------------


class PydanticAIModelTransport:
    """``IModelTransport`` backed by ``pydantic_ai.direct.model_request_stream``."""

    def __init__(self, model: Model | str, instrument: InstrumentationSettings | bool | None = None) -> None:
        self.model = model
        self.instrument = instrument

    async def stream(
        self,
        messages: Sequence[ModelMessage],
        tools: Sequence[ToolDefinition],
    ) -> AsyncIterator[TransportEvent]:
        params = ModelRequestParameters(function_tools=list(tools))
        call_ids: dict[int, str] = {}

        async with model_request_stream(
            self.model,
            list(messages),
            model_request_parameters=params,
            instrument=self.instrument,
        ) as stream:
            async for event in stream:
                if isinstance(event, PartStartEvent):
                    part = event.part
                    if isinstance(part, TextPart):
                        if part.content:
                            yield TextDelta(part.content)
                    elif isinstance(part, ToolCallPart):
                        call_ids[event.index] = part.tool_call_id
                        yield ToolCallDelta(
                            index=event.index,
                            tool_call_id=part.tool_call_id,
                            tool_name=part.tool_name,
                            args_delta=_args_text(part.args),
                        )
                elif isinstance(event, PartDeltaEvent):
                    delta = event.delta
                    if isinstance(delta, TextPartDelta):
                        if delta.content_delta:
                            yield TextDelta(delta.content_delta)
                    elif isinstance(delta, ToolCallPartDelta):
                        call_id = delta.tool_call_id or call_ids.get(event.index, "")
                        yield ToolCallDelta(
                            index=event.index,
                            tool_call_id=call_id,
                            args_delta=_args_text(delta.args_delta),
                        )

            response = stream.get()
            usage = stream.usage()

        logger.debug(
            "Model response | parts={} | input_tokens={} | output_tokens={}",
            len(response.parts),
            usage.input_tokens,
            usage.output_tokens,
        )
        yield ResponseCompleted(response=response, usage=usage)


def _args_text(args: str | dict | None) -> str:
    if args is None:
        return ""
    if isinstance(args, str):
        return args
    # Some providers stream already-parsed arguments
    return json.dumps(args, ensure_ascii=False)
