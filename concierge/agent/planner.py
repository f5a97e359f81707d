"""Model-backed planner deciding the next step of a chat turn."""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Protocol, Sequence

from pydantic_ai import InstrumentationSettings
from pydantic_ai.direct import model_request_stream
from pydantic_ai.messages import (
    ModelMessage,
    ModelResponse,
    ModelResponseStreamEvent,
    PartDeltaEvent,
    PartStartEvent,
    TextPart,
    TextPartDelta,
    ToolCallPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.settings import ModelSettings
from pydantic_ai.tools import ToolDefinition

from .schemas import (
    FinalTextDecision,
    PlannerChunk,
    PlannerDecision,
    TextDelta,
    ToolCall,
    ToolCallsDecision,
)

logger = logging.getLogger(__name__)


class Planner(Protocol):
    """Anything that turns the conversation so far into the next decision.

    ``plan`` streams any number of :class:`TextDelta` chunks and then exactly
    one decision, which closes the step.
    """

    def plan(
        self, messages: Sequence[ModelMessage], tools: Sequence[ToolDefinition]
    ) -> AsyncIterator[PlannerChunk]: ...


def decision_from_response(response: ModelResponse) -> PlannerDecision:
    """Split a model response into its text and requested tool calls."""

    texts: List[str] = []
    calls: List[ToolCall] = []
    for part in response.parts:
        if isinstance(part, TextPart):
            if part.content:
                texts.append(part.content)
        elif isinstance(part, ToolCallPart):
            try:
                args = part.args_as_dict()
            except ValueError:
                logger.warning("Model sent unparseable arguments for %s", part.tool_name)
                args = {}
            calls.append(ToolCall(id=part.tool_call_id, name=part.tool_name, args=args))

    text = "".join(texts)
    if calls:
        return ToolCallsDecision(text=text or None, calls=calls)
    return FinalTextDecision(text=text)


def text_delta(event: ModelResponseStreamEvent) -> str | None:
    """Return the text carried by a stream event, if any."""

    if isinstance(event, PartStartEvent) and isinstance(event.part, TextPart):
        return event.part.content or None
    if isinstance(event, PartDeltaEvent) and isinstance(event.delta, TextPartDelta):
        return event.delta.content_delta or None
    return None


class ModelPlanner:
    """Planner streaming one direct model request per step."""

    def __init__(
        self,
        model: Model | str,
        *,
        model_settings: ModelSettings | None = None,
        instrument: InstrumentationSettings | bool | None = None,
    ) -> None:
        self._model = model
        self._model_settings = model_settings
        self._instrument = instrument

    async def plan(
        self, messages: Sequence[ModelMessage], tools: Sequence[ToolDefinition]
    ) -> AsyncIterator[PlannerChunk]:
        async with model_request_stream(
            self._model,
            list(messages),
            model_settings=self._model_settings,
            model_request_parameters=ModelRequestParameters(
                function_tools=list(tools), allow_text_output=True
            ),
            instrument=self._instrument,
        ) as stream:
            async for event in stream:
                delta = text_delta(event)
                if delta:
                    yield TextDelta(text=delta)
            response = stream.get()
        # Tool calls are only complete once the whole response has arrived.
        yield decision_from_response(response)


__all__ = ["ModelPlanner", "Planner", "decision_from_response", "text_delta"]
