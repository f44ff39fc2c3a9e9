"""Shared fixtures: a scripted language model and quiet registries."""

import io
from typing import Any, Awaitable, Callable

import pytest
from rich.console import Console

from tangent.core.llm import DeltaCallback, Generation, LanguageModel
from tangent.core.messages import Message
from tangent.core.registry import CORE_TOOLS, SkillRegistry
from tangent.core.skill import Skill
from tangent.core.tools import Tool, ToolRegistry, ToolSpec

RunHandler = Callable[..., Awaitable[Generation]]


class FakeModel(LanguageModel):
    """Scripted model. Planner and synthesis replies may be text or exceptions."""

    def __init__(
        self,
        handler: RunHandler | None = None,
        plan: str | Exception = "[]",
        synthesis: str | Exception = "combined answer",
    ) -> None:
        self.handler = handler
        self.plan = plan
        self.synthesis = synthesis
        self.runs: list[dict[str, Any]] = []
        self.prompts: list[str] = []

    async def run_tools(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: dict[str, Tool],
        max_steps: int,
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> Generation:
        user_text = messages[-1].content
        self.runs.append(
            {
                "system_prompt": system_prompt,
                "messages": messages,
                "user_text": user_text,
                "tools": set(tools),
                "max_steps": max_steps,
                "model": model,
            }
        )
        if self.handler is not None:
            return await self.handler(user_text=user_text, tools=tools, on_delta=on_delta)
        return Generation(text=f"done: {user_text}", steps_taken=1)

    async def generate(self, prompt: str, model: str | None = None) -> str:
        self.prompts.append(prompt)
        reply = self.plan if "task planner" in prompt else self.synthesis
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_skill(skill_id: str, **overrides: Any) -> Skill:
    fields: dict[str, Any] = {
        "id": skill_id,
        "name": skill_id,
        "description": f"{skill_id} description",
        "prompt_fragment": f"{skill_id} prompt",
    }
    fields.update(overrides)
    return Skill(**fields)


def console_output(console: Console) -> str:
    return console.file.getvalue()  # type: ignore[attr-defined]


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200)


@pytest.fixture
def tool_registry(console):
    """A registry with the baseline tools stubbed out."""
    registry = ToolRegistry(console=console)

    async def echo(args: dict[str, Any]) -> dict[str, Any]:
        return {"ok": True, **args}

    for name in CORE_TOOLS:
        registry.register(name, ToolSpec(description=f"{name} stub", executor=echo))
    return registry


@pytest.fixture
def skill_registry(tool_registry, console):
    return SkillRegistry(tool_registry, console=console)
