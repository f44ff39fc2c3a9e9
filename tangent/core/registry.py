"""Skill registry: keyword matching and scoped agent configuration."""

from dataclasses import dataclass

from rich.console import Console
from rich.markup import escape

from .prompt import SYSTEM_PROMPT_BASE
from .skill import ScopedAgentConfig, ScopedSelection, Skill, SkillMatch
from .tools import Tool, ToolRegistry

# Appended to every composed config regardless of which skills are in play
CORE_TOOLS = (
    "get_device_info",
    "get_battery_status",
    "get_clipboard",
    "set_clipboard",
    "web_search",
)

MIN_MAX_STEPS = 5
MAX_SCOPED_SKILLS = 3


@dataclass
class _SkillEntry:
    skill: Skill
    keywords: list[str]


class SkillRegistry:
    """Catalog of skills, scored against prompts by keyword hits."""

    def __init__(
        self,
        tool_registry: ToolRegistry,
        base_prompt: str = SYSTEM_PROMPT_BASE,
        console: Console | None = None,
    ) -> None:
        self.tool_registry = tool_registry
        self.base_prompt = base_prompt
        self.console = console or Console()
        self.initialized = False  # set once the built-in catalog is loaded
        self._skills: dict[str, _SkillEntry] = {}
        self._enabled: set[str] = set()
        self._skill_tools: dict[str, Tool] = {}

    def register(self, skill: Skill, keywords: list[str]) -> None:
        """Register a skill with its matching keywords. New skills start enabled."""
        previous = self._skills.get(skill.id)
        if previous is not None:
            self.console.print(
                f"[yellow]Skill \"{escape(skill.id)}\" already registered, overwriting[/yellow]"
            )
            for skill_tool in previous.skill.tools:
                self._skill_tools.pop(skill_tool.name, None)

        for skill_tool in skill.tools:
            self._skill_tools[skill_tool.name] = skill_tool.as_tool()

        self._skills[skill.id] = _SkillEntry(skill, [kw.lower() for kw in keywords])
        self._enabled.add(skill.id)
        self.console.print(
            f"[dim]Registered skill: {escape(skill.id)} ({len(keywords)} keywords)[/dim]"
        )

    def enable(self, skill_id: str) -> None:
        if skill_id not in self._skills:
            self.console.print(f"[yellow]Cannot enable unknown skill: {escape(skill_id)}[/yellow]")
            return
        self._enabled.add(skill_id)

    def disable(self, skill_id: str) -> None:
        self._enabled.discard(skill_id)

    def is_enabled(self, skill_id: str) -> bool:
        return skill_id in self._enabled

    def get_skill(self, skill_id: str) -> Skill | None:
        entry = self._skills.get(skill_id)
        return entry.skill if entry else None

    def get_all_skills(self) -> list[Skill]:
        return [entry.skill for entry in self._skills.values()]

    def get_enabled_skills(self) -> list[Skill]:
        return [
            entry.skill for entry in self._skills.values() if entry.skill.id in self._enabled
        ]

    def match_skills(self, prompt: str) -> list[SkillMatch]:
        """
        Score every enabled skill against the prompt.

        Multi-word keywords match as substrings; single-word keywords only
        match whole tokens, so "cat" doesn't hit "category". Roughly 30%
        keyword coverage is full confidence.

        Returns:
            Matches sorted by confidence, highest first. Equal scores keep
            registration order.
        """
        lower = prompt.lower()
        words = set(lower.split())
        matches: list[SkillMatch] = []

        for entry in self._skills.values():
            if entry.skill.id not in self._enabled:
                continue

            hits = 0
            for keyword in entry.keywords:
                if " " in keyword:
                    if keyword in lower:
                        hits += 1
                elif keyword in words:
                    hits += 1

            if hits > 0:
                confidence = min(hits / max(len(entry.keywords) * 0.3, 1), 1.0)
                matches.append(SkillMatch(skill=entry.skill, confidence=confidence))

        # sorted() is stable, so ties stay in registration order
        return sorted(matches, key=lambda m: m.confidence, reverse=True)

    def compose_config(self, skills: list[Skill]) -> ScopedAgentConfig:
        """Merge prompts, tools, limits and flags of the given skills."""
        fragments = [s.prompt_fragment for s in skills if s.prompt_fragment]
        system_prompt = "\n\n".join([self.base_prompt, *fragments])

        tool_names: dict[str, None] = {}  # ordered set
        sensitive_actions: set[str] = set()
        max_steps = MIN_MAX_STEPS
        model: str | None = None

        for skill in skills:
            for name in skill.required_tools:
                tool_names[name] = None
            for skill_tool in skill.tools:
                tool_names[skill_tool.name] = None
            sensitive_actions.update(skill.sensitive_actions)
            if skill.max_steps and skill.max_steps > max_steps:
                max_steps = skill.max_steps
            if skill.model:
                model = skill.model

        for name in CORE_TOOLS:
            tool_names[name] = None

        return ScopedAgentConfig(
            system_prompt=system_prompt,
            tool_names=list(tool_names),
            max_steps=max_steps,
            model=model,
            needs_accessibility=any(s.needs_accessibility for s in skills),
            needs_background=any(s.needs_background for s in skills),
            sensitive_actions=sensitive_actions,
        )

    async def resolve_tools(self, tool_names: list[str]) -> dict[str, Tool]:
        """Look up tools by name, preferring global tools over skill-scoped ones.

        Missing tools are logged and left out.
        """
        global_tools = await self.tool_registry.get_tools()
        resolved: dict[str, Tool] = {}

        for name in tool_names:
            if name in global_tools:
                resolved[name] = global_tools[name]
            elif name in self._skill_tools:
                resolved[name] = self._skill_tools[name]
            else:
                self.console.print(
                    f"[yellow]Tool \"{escape(name)}\" not found in global or skill registries[/yellow]"
                )

        return resolved

    async def build_scoped_config(self, prompt: str) -> ScopedSelection | None:
        """Select the top matching skills for a prompt and build their config.

        Returns None when no skill matched.
        """
        matches = self.match_skills(prompt)
        if not matches:
            return None

        top_skills = [m.skill for m in matches[:MAX_SCOPED_SKILLS]]

        for skill in top_skills:
            if skill.on_activate is None:
                continue
            try:
                await skill.on_activate()
            except Exception as e:
                self.console.print(
                    f"[red]Skill {escape(skill.id)} activation failed: {escape(str(e))}[/red]"
                )

        config = self.compose_config(top_skills)
        tools = await self.resolve_tools(config.tool_names)
        return ScopedSelection(config=config, tools=tools, matched_skills=top_skills)

    async def release(self, skills: list[Skill]) -> None:
        """Run deactivation hooks once a request has finished with its skills."""
        for skill in skills:
            if skill.on_deactivate is None:
                continue
            try:
                await skill.on_deactivate()
            except Exception as e:
                self.console.print(
                    f"[red]Skill {escape(skill.id)} deactivation failed: {escape(str(e))}[/red]"
                )
