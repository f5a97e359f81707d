"""Factories for the concierge planner, orchestrator and insight agent."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic_ai import Agent, InstrumentationSettings
from pydantic_ai.models.openai import OpenAIChatModel, OpenAIChatModelSettings
from pydantic_ai.providers.openai import OpenAIProvider

from ..config import settings
from .logging import _ensure_logfire
from .orchestrator import TurnOrchestrator
from .planner import ModelPlanner
from .prompts import INSIGHT_PROMPT, SYSTEM_PROMPT
from .tools import build_registry


@lru_cache(maxsize=1)
def get_model() -> OpenAIChatModel:
    """Return the OpenAI-compatible chat model shared by every agent."""

    _ensure_logfire()

    model_name = os.getenv("OPENAI_MODEL", "gpt-4.1")
    return OpenAIChatModel(
        model_name,
        provider=OpenAIProvider(
            base_url=os.getenv("OPENAI_BASE_URL"), api_key=os.getenv("OPENAI_API_KEY")
        ),
    )


@lru_cache(maxsize=1)
def get_planner() -> ModelPlanner:
    return ModelPlanner(
        get_model(),
        model_settings=OpenAIChatModelSettings(temperature=0.3, parallel_tool_calls=True),
        instrument=InstrumentationSettings(),
    )


@lru_cache(maxsize=1)
def get_orchestrator() -> TurnOrchestrator:
    """Return the chat orchestrator bounded by the configured step limit."""

    return TurnOrchestrator(
        get_planner(),
        system_prompt=SYSTEM_PROMPT,
        max_steps=settings.max_agent_steps,
        turn_timeout=settings.chat_turn_timeout_seconds,
        tools=build_registry(),
    )


@lru_cache(maxsize=1)
def get_insight_agent() -> Agent[None, str]:
    """Return the text-output agent that writes product analyses."""

    return Agent(
        model=get_model(),
        output_type=str,
        instructions=INSIGHT_PROMPT,
        model_settings=OpenAIChatModelSettings(temperature=0.2),
        instrument=InstrumentationSettings(),
        name="product-insights",
    )


__all__ = ["get_insight_agent", "get_model", "get_orchestrator", "get_planner"]
