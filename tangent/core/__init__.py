"""Core orchestration components."""

from .agent import Agent, AgentEvent, AgentReply, CancellationToken
from .config import Settings
from .llm import AnthropicClient, LanguageModel
from .messages import Message, ToolCall, ToolCallStatus
from .orchestrator import Orchestrator, OrchestratorResult, SubAgentResult
from .registry import SkillRegistry
from .skill import ScopedAgentConfig, Skill, SkillMatch, SkillTool
from .tools import Tool, ToolEvent, ToolParam, ToolRegistry, ToolSpec

__all__ = [
    "Agent",
    "AgentEvent",
    "AgentReply",
    "AnthropicClient",
    "CancellationToken",
    "LanguageModel",
    "Message",
    "Orchestrator",
    "OrchestratorResult",
    "ScopedAgentConfig",
    "Settings",
    "Skill",
    "SkillMatch",
    "SkillRegistry",
    "SkillTool",
    "SubAgentResult",
    "Tool",
    "ToolCall",
    "ToolCallStatus",
    "ToolEvent",
    "ToolParam",
    "ToolRegistry",
    "ToolSpec",
]
