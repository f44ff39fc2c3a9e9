"""Skill definitions and the configuration derived from them."""

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .tools import Tool, ToolExecutor, ToolParam

SkillHook = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class SkillTool:
    """A tool that only exists while its owning skill is in scope."""

    name: str
    description: str
    execute: ToolExecutor
    params: tuple[ToolParam, ...] = ()

    def as_tool(self) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            execute=self.execute,
            params=self.params,
        )


@dataclass(frozen=True)
class Skill:
    """A domain bundle: prompt text, tool requirements and policy flags.

    `needs_accessibility` marks skills whose tools drive the on-screen
    automation surface. The orchestrator relies on this flag alone to keep
    two such agents from running at once, so it must be set on every skill
    that taps, types or reads the screen.
    """

    id: str
    name: str
    description: str
    prompt_fragment: str = ""
    required_tools: tuple[str, ...] = ()
    tools: tuple[SkillTool, ...] = ()
    max_steps: int | None = None
    model: str | None = None
    needs_accessibility: bool = False
    needs_background: bool = False
    sensitive_actions: tuple[str, ...] = ()
    on_activate: SkillHook | None = None
    on_deactivate: SkillHook | None = None


@dataclass
class SkillMatch:
    """A skill's score against one prompt."""

    skill: Skill
    confidence: float


@dataclass
class ScopedAgentConfig:
    """Merged agent configuration for a set of skills."""

    system_prompt: str
    tool_names: list[str]
    max_steps: int
    model: str | None = None
    needs_accessibility: bool = False
    needs_background: bool = False
    sensitive_actions: set[str] = field(default_factory=set)


@dataclass
class ScopedSelection:
    """What `SkillRegistry.build_scoped_config` hands to the orchestrator."""

    config: ScopedAgentConfig
    tools: dict[str, Tool]
    matched_skills: list[Skill]
