"""Bounded agent loop turning one user message into streamed turn events."""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from enum import Enum
from typing import AsyncIterator, Dict, List, Mapping, Sequence

import anyio
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

from ..sessions.schemas import ConversationMessage
from .dependencies import AgentDependencies, ToolContext
from .planner import Planner
from .schemas import (
    DoneEvent,
    ErrorEvent,
    FinalTextDecision,
    PlannerDecision,
    StepLimitEvent,
    TextDelta,
    TextEvent,
    ToolCall,
    ToolCallEvent,
    ToolResult,
    ToolResultEvent,
    TurnEvent,
)
from .tools import ConciergeTool, build_registry, execute_tool_call, tool_definitions

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 5
DEFAULT_TURN_TIMEOUT_SECONDS = 60.0


class TurnPhase(str, Enum):
    AWAITING_MODEL_OUTPUT = "awaiting_model_output"
    TOOL_CALLS_PENDING = "tool_calls_pending"
    EXECUTING_TOOLS = "executing_tools"
    FINAL_TEXT = "final_text"


_TRANSITIONS: Dict[TurnPhase, frozenset[TurnPhase]] = {
    TurnPhase.AWAITING_MODEL_OUTPUT: frozenset(
        {TurnPhase.TOOL_CALLS_PENDING, TurnPhase.FINAL_TEXT}
    ),
    # The step bound can end the turn with calls still pending.
    TurnPhase.TOOL_CALLS_PENDING: frozenset(
        {TurnPhase.EXECUTING_TOOLS, TurnPhase.FINAL_TEXT}
    ),
    TurnPhase.EXECUTING_TOOLS: frozenset({TurnPhase.AWAITING_MODEL_OUTPUT}),
    TurnPhase.FINAL_TEXT: frozenset(),
}


class TurnState:
    """Phase, step counter and text produced so far within one turn."""

    def __init__(self) -> None:
        self.phase = TurnPhase.AWAITING_MODEL_OUTPUT
        self.steps = 0
        self.segments: List[str] = []

    def advance(self, phase: TurnPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise RuntimeError(f"Illegal turn transition {self.phase.value} -> {phase.value}")
        self.phase = phase

    @property
    def text(self) -> str:
        return "\n\n".join(segment for segment in self.segments if segment)


def build_messages(
    system_prompt: str,
    history: Sequence[ConversationMessage],
    user_message: str,
) -> List[ModelMessage]:
    """Translate stored chat history plus the new message into model messages."""

    messages: List[ModelMessage] = [ModelRequest(parts=[SystemPromptPart(content=system_prompt)])]
    for message in history:
        if not message.content:
            continue
        if message.role == "user":
            messages.append(ModelRequest(parts=[UserPromptPart(content=message.content)]))
        else:
            messages.append(ModelResponse(parts=[TextPart(content=message.content)]))
    messages.append(ModelRequest(parts=[UserPromptPart(content=user_message)]))
    return messages


class TurnTimeoutError(Exception):
    """The turn ran past its deadline."""


class TurnOrchestrator:
    """Drive planner and tools until the model answers or the step bound is hit."""

    def __init__(
        self,
        planner: Planner,
        *,
        system_prompt: str,
        max_steps: int = DEFAULT_MAX_STEPS,
        turn_timeout: float = DEFAULT_TURN_TIMEOUT_SECONDS,
        tools: Mapping[str, ConciergeTool] | None = None,
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self._planner = planner
        self._system_prompt = system_prompt
        self._max_steps = max_steps
        self._turn_timeout = turn_timeout
        self._tools = dict(tools) if tools is not None else build_registry()
        self._definitions = tool_definitions(self._tools)

    @property
    def max_steps(self) -> int:
        return self._max_steps

    async def run_turn(
        self,
        history: Sequence[ConversationMessage],
        user_message: str,
        deps: AgentDependencies,
    ) -> AsyncIterator[TurnEvent]:
        """Yield turn events as they are produced.

        The stream ends with either a ``done`` event or a single ``error``
        event. Waiting happens outside of yields, so a slow consumer does not
        count against the turn deadline.
        """

        messages = build_messages(self._system_prompt, history, user_message)
        ctx = ToolContext(deps=deps)
        state = TurnState()
        deadline = anyio.current_time() + self._turn_timeout

        while True:
            state.steps += 1
            decision: PlannerDecision | None = None
            streamed = False
            try:
                async with aclosing(self._planner.plan(messages, self._definitions)) as chunks:
                    while decision is None:
                        chunk = await self._within_deadline(deadline, anext(chunks, None))
                        if chunk is None:
                            raise RuntimeError("no reply was produced")
                        if isinstance(chunk, TextDelta):
                            if chunk.text:
                                streamed = True
                                yield TextEvent(step=state.steps, text=chunk.text)
                        else:
                            decision = chunk
            except TurnTimeoutError:
                logger.warning("Chat turn for %s timed out planning step %d", deps.session_id, state.steps)
                yield ErrorEvent(message="The assistant timed out. Please try again.")
                return
            except Exception as exc:
                logger.exception("Planner failed on step %d", state.steps)
                yield ErrorEvent(message=f"The assistant is unavailable: {exc}")
                return

            if decision.text:
                state.segments.append(decision.text)
                if not streamed:
                    yield TextEvent(step=state.steps, text=decision.text)

            if isinstance(decision, FinalTextDecision) or not decision.calls:
                state.advance(TurnPhase.FINAL_TEXT)
                break

            state.advance(TurnPhase.TOOL_CALLS_PENDING)
            if state.steps >= self._max_steps:
                logger.info(
                    "Step limit %d reached for %s; dropping %d pending calls",
                    self._max_steps,
                    deps.session_id,
                    len(decision.calls),
                )
                state.advance(TurnPhase.FINAL_TEXT)
                yield StepLimitEvent(
                    steps=state.steps, pending_calls=[call.name for call in decision.calls]
                )
                break

            state.advance(TurnPhase.EXECUTING_TOOLS)
            for call in decision.calls:
                yield ToolCallEvent(
                    step=state.steps, call_id=call.id, name=call.name, args=call.args
                )

            try:
                results = await self._within_deadline(
                    deadline, self._execute_batch(decision.calls, ctx)
                )
            except TurnTimeoutError:
                logger.warning("Chat turn for %s timed out running tools", deps.session_id)
                yield ErrorEvent(message="The assistant timed out. Please try again.")
                return

            for result in results:
                yield ToolResultEvent(
                    step=state.steps,
                    call_id=result.call_id,
                    name=result.name,
                    ok=result.ok,
                    result=result.data,
                    error=result.error,
                    discard_cart=result.discard_cart,
                )

            messages.extend(_tool_exchange(decision.text, decision.calls, results))
            state.advance(TurnPhase.AWAITING_MODEL_OUTPUT)

        yield DoneEvent(text=state.text, steps=state.steps)

    async def _within_deadline(self, deadline: float, awaitable):
        remaining = deadline - anyio.current_time()
        if remaining <= 0:
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            raise TurnTimeoutError()
        try:
            with anyio.fail_after(remaining):
                return await awaitable
        except TimeoutError as exc:
            raise TurnTimeoutError() from exc

    async def _execute_batch(
        self, calls: Sequence[ToolCall], ctx: ToolContext
    ) -> List[ToolResult]:
        # Dispatched calls keep running even if the turn gives up waiting.
        batch = asyncio.gather(
            *(execute_tool_call(call, ctx, self._tools) for call in calls)
        )
        return list(await asyncio.shield(batch))


def _tool_exchange(
    text: str | None, calls: Sequence[ToolCall], results: Sequence[ToolResult]
) -> List[ModelMessage]:
    response_parts: list = []
    if text:
        response_parts.append(TextPart(content=text))
    response_parts.extend(
        ToolCallPart(tool_name=call.name, args=call.args, tool_call_id=call.id)
        for call in calls
    )
    returns = [
        ToolReturnPart(
            tool_name=result.name,
            content=result.model_payload(),
            tool_call_id=result.call_id,
        )
        for result in results
    ]
    return [ModelResponse(parts=response_parts), ModelRequest(parts=returns)]


__all__ = [
    "DEFAULT_MAX_STEPS",
    "TurnOrchestrator",
    "TurnPhase",
    "TurnState",
    "TurnTimeoutError",
    "build_messages",
]
