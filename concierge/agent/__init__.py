"""Agent package exposing the tool-calling orchestrator and insight generation."""

from __future__ import annotations

from .dependencies import AgentDependencies, ToolContext
from .factory import get_insight_agent, get_orchestrator
from .insights import InsightUnavailableError, generate_insight
from .orchestrator import TurnOrchestrator, TurnPhase, build_messages
from .planner import ModelPlanner, Planner, decision_from_response
from .schemas import TurnEvent
from .tools import CONCIERGE_TOOLS, build_registry, execute_tool_call

__all__ = [
    "AgentDependencies",
    "CONCIERGE_TOOLS",
    "InsightUnavailableError",
    "ModelPlanner",
    "Planner",
    "ToolContext",
    "TurnEvent",
    "TurnOrchestrator",
    "TurnPhase",
    "build_messages",
    "build_registry",
    "decision_from_response",
    "execute_tool_call",
    "generate_insight",
    "get_insight_agent",
    "get_orchestrator",
]
