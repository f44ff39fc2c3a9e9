"""Main orchestrator that routes requests to one or more skill-scoped agents."""

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Literal, Sequence

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from rich.console import Console
from rich.markup import escape

from .agent import Agent, AgentReply, HistoryItem
from .config import Settings, get_settings
from .llm import LanguageModel
from .messages import ToolCall
from .prompt import SYSTEM_PROMPT
from .registry import SkillRegistry
from .skill import ScopedAgentConfig, Skill
from .tools import Tool, ToolRegistry

SubAgentStatus = Literal["completed", "failed", "cancelled"]

ERROR_MESSAGE = "I encountered an error processing your request."
APOLOGY_PREFIX = "I wasn't able to complete your request. "

PLANNER_PROMPT = """You are a task planner. Given a user request and available skills, decompose the request into independent subtasks that can run in parallel.

Available skills:
{skills}

Rules:
- Only create multiple subtasks if the request genuinely has independent parts
- Each subtask must map to one or more skills
- If the request is a single coherent task, return exactly one subtask
- Return JSON array of objects with "description" and "skillIds" fields

User request: "{prompt}"

Return ONLY the JSON array, no other text."""

SYNTHESIS_PROMPT = """The user asked: "{prompt}"

Multiple agents worked on parts of this request. Combine their results into a single coherent response for the user. Be concise and natural. If any part failed, mention it briefly.

Agent results:
{results}

Combined response:"""

_FENCE = re.compile(r"```(?:json)?\s*")


class PlanItem(BaseModel):
    """One entry of the planner's JSON reply."""

    model_config = ConfigDict(strict=True)

    description: str
    skill_ids: list[str] = Field(default_factory=list, alias="skillIds")


_PLAN_ADAPTER = TypeAdapter(list[PlanItem])


@dataclass
class SubTask:
    """An independently executable fragment of a request."""

    id: str
    description: str
    skills: list[Skill]
    prompt: str

    @property
    def needs_accessibility(self) -> bool:
        return any(skill.needs_accessibility for skill in self.skills)


@dataclass
class SubAgentResult:
    """Outcome of one agent run within an orchestration."""

    subtask_id: str
    skill_ids: list[str]
    content: str
    status: SubAgentStatus
    tool_calls: list[ToolCall] = field(default_factory=list)
    error: str | None = None
    duration_ms: float = 0.0


@dataclass
class OrchestratorResult:
    """Final answer plus per-subtask detail."""

    content: str
    tool_calls: list[ToolCall]
    sub_results: list[SubAgentResult]
    parallel: bool


class Orchestrator:
    """
    Decides between single- and multi-agent execution for a request.

    Subtasks whose skills need accessibility share one device automation
    surface. They run one at a time, after the parallel pool has finished.
    Nothing locks the surface at runtime, so exclusive access holds only as
    long as `Skill.needs_accessibility` is set correctly.
    """

    def __init__(
        self,
        model: LanguageModel,
        tool_registry: ToolRegistry,
        skill_registry: SkillRegistry,
        settings: Settings | None = None,
        max_concurrency: int | None = None,
        initialize_skills: Callable[[SkillRegistry], None] | None = None,
        console: Console | None = None,
    ) -> None:
        self.model = model
        self.tool_registry = tool_registry
        self.skill_registry = skill_registry
        self.settings = settings or get_settings()
        self.max_concurrency = max(1, max_concurrency or self.settings.max_concurrency)
        self.initialize_skills = initialize_skills
        self.console = console or Console()
        self.active_agents: set[Agent] = set()
        self._aborted = False

    def cancel(self) -> None:
        """Cancel every running agent and stop admitting new subtasks."""
        self._aborted = True
        for agent in list(self.active_agents):
            agent.cancel()
        self.active_agents.clear()

    async def execute(
        self,
        prompt: str,
        history: Sequence[HistoryItem],
        max_steps: int | None = None,
    ) -> OrchestratorResult:
        """
        Process a user request.

        Args:
            prompt: The user's natural language request
            history: Prior conversation, oldest first
            max_steps: Step budget override for every agent

        Returns:
            OrchestratorResult; failures are reported in-band, never raised
        """
        self._aborted = False
        if self.initialize_skills is not None and not self.skill_registry.initialized:
            self.initialize_skills(self.skill_registry)

        scoped = await self.skill_registry.build_scoped_config(prompt)
        if scoped is None:
            self.console.print("[dim]No skills matched, running default agent[/dim]")
            return await self._run_default_agent(prompt, history, max_steps)

        matched = scoped.matched_skills
        self.console.print(
            f"[dim]Matched skills: {escape(', '.join(s.id for s in matched))}[/dim]"
        )

        try:
            if len(matched) == 1 or not any(s.needs_accessibility for s in matched):
                self.console.print("[dim]Running single scoped agent[/dim]")
                return await self._run_scoped_agent(
                    prompt, history, scoped.config, scoped.tools, matched, max_steps
                )

            subtasks = await self._plan_subtasks(prompt, matched)
            if len(subtasks) <= 1:
                self.console.print("[dim]Planner returned single task, running scoped agent[/dim]")
                return await self._run_scoped_agent(
                    prompt, history, scoped.config, scoped.tools, matched, max_steps
                )

            self.console.print(f"[dim]Executing {len(subtasks)} subtasks[/dim]")
            return await self._run_subtasks(subtasks, history, prompt, max_steps)
        finally:
            await self.skill_registry.release(matched)

    async def _run_default_agent(
        self, prompt: str, history: Sequence[HistoryItem], max_steps: int | None
    ) -> OrchestratorResult:
        agent = Agent(
            self.model,
            tool_registry=self.tool_registry,
            system_prompt=SYSTEM_PROMPT,
            model_id=self.settings.agent_model,
            console=self.console,
        )
        result = await self._run_agent(agent, "default", [], prompt, history, max_steps)
        return OrchestratorResult(
            content=_final_content(result),
            tool_calls=result.tool_calls,
            sub_results=[result],
            parallel=False,
        )

    async def _run_scoped_agent(
        self,
        prompt: str,
        history: Sequence[HistoryItem],
        config: ScopedAgentConfig,
        tools: dict[str, Tool],
        skills: list[Skill],
        max_steps: int | None,
    ) -> OrchestratorResult:
        agent = self._make_agent(config, tools)
        result = await self._run_agent(
            agent,
            "scoped",
            [s.id for s in skills],
            prompt,
            history,
            max_steps or config.max_steps,
        )
        return OrchestratorResult(
            content=_final_content(result),
            tool_calls=result.tool_calls,
            sub_results=[result],
            parallel=False,
        )

    async def _plan_subtasks(self, prompt: str, skills: list[Skill]) -> list[SubTask]:
        """Ask the planner model to split the request. Returns [] when unusable."""
        skill_list = "\n".join(f"- {s.id}: {s.description}" for s in skills)
        planner_prompt = PLANNER_PROMPT.format(skills=skill_list, prompt=prompt)

        try:
            text = await self.model.generate(planner_prompt, model=self.settings.planner_model)
        except Exception as e:
            self.console.print(f"[red]Task planning failed: {escape(str(e))}[/red]")
            return []

        try:
            subtasks = parse_plan(text, skills)
        except Exception as e:
            self.console.print(f"[red]Could not parse plan: {escape(str(e))}[/red]")
            return []
        if not subtasks:
            self.console.print("[yellow]Planner returned empty or invalid response[/yellow]")
        return subtasks

    async def _run_subtasks(
        self,
        subtasks: list[SubTask],
        history: Sequence[HistoryItem],
        prompt: str,
        max_steps: int | None,
    ) -> OrchestratorResult:
        serialized = [task for task in subtasks if task.needs_accessibility]
        pool = [task for task in subtasks if not task.needs_accessibility]

        results: list[SubAgentResult] = []
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_pooled(task: SubTask) -> None:
            async with semaphore:
                results.append(await self._execute_subtask(task, history, max_steps))

        await asyncio.gather(*(run_pooled(task) for task in pool))

        for task in serialized:
            results.append(await self._execute_subtask(task, history, max_steps))

        content = await self._synthesize(results, prompt)
        return OrchestratorResult(
            content=content,
            tool_calls=[call for result in results for call in result.tool_calls],
            sub_results=results,
            parallel=bool(pool),
        )

    async def _execute_subtask(
        self,
        subtask: SubTask,
        history: Sequence[HistoryItem],
        max_steps: int | None,
    ) -> SubAgentResult:
        skill_ids = [s.id for s in subtask.skills]
        if self._aborted:
            return SubAgentResult(
                subtask_id=subtask.id,
                skill_ids=skill_ids,
                content="",
                status="cancelled",
            )

        start = time.monotonic()
        try:
            config = self.skill_registry.compose_config(subtask.skills)
            tools = await self.skill_registry.resolve_tools(config.tool_names)
        except Exception as e:
            self.console.print(f"[red]Subtask {escape(subtask.id)} failed: {escape(str(e))}[/red]")
            return SubAgentResult(
                subtask_id=subtask.id,
                skill_ids=skill_ids,
                content="",
                status="failed",
                error=str(e),
                duration_ms=_elapsed_ms(start),
            )

        agent = self._make_agent(config, tools)
        return await self._run_agent(
            agent,
            subtask.id,
            skill_ids,
            subtask.prompt,
            history,
            max_steps or config.max_steps,
        )

    async def _run_agent(
        self,
        agent: Agent,
        subtask_id: str,
        skill_ids: list[str],
        prompt: str,
        history: Sequence[HistoryItem],
        max_steps: int | None,
    ) -> SubAgentResult:
        """Run one tracked agent turn and fold any failure into the result."""
        self.active_agents.add(agent)
        start = time.monotonic()
        try:
            reply: AgentReply = await agent.process_message(prompt, history, max_steps=max_steps)
        except Exception as e:
            reply = AgentReply(content="", error=str(e) or type(e).__name__)
        finally:
            self.active_agents.discard(agent)

        if not reply.ok:
            self.console.print(
                f"[red]Subtask {escape(subtask_id)} failed: {escape(reply.error or '')}[/red]"
            )
            return SubAgentResult(
                subtask_id=subtask_id,
                skill_ids=skill_ids,
                content="",
                status="failed",
                error=reply.error,
                duration_ms=_elapsed_ms(start),
            )

        return SubAgentResult(
            subtask_id=subtask_id,
            skill_ids=skill_ids,
            content=reply.content,
            status="completed",
            tool_calls=reply.tool_calls,
            duration_ms=_elapsed_ms(start),
        )

    async def _synthesize(self, results: list[SubAgentResult], prompt: str) -> str:
        completed = [r for r in results if r.status == "completed"]
        failed = [r for r in results if r.status == "failed"]

        if len(completed) == 1 and not failed:
            return completed[0].content

        if not completed:
            # Nothing to combine, so the synthesis model isn't called
            return APOLOGY_PREFIX + "; ".join(r.error for r in failed if r.error)

        summaries = "\n\n".join(_summarize(r) for r in results if r.status != "cancelled")
        try:
            return await self.model.generate(
                SYNTHESIS_PROMPT.format(prompt=prompt, results=summaries),
                model=self.settings.synthesis_model,
            )
        except Exception as e:
            self.console.print(
                f"[red]Synthesis failed, returning raw results: {escape(str(e))}[/red]"
            )
            return "\n\n".join(r.content for r in completed)

    def _make_agent(self, config: ScopedAgentConfig, tools: dict[str, Tool]) -> Agent:
        return Agent(
            self.model,
            tool_registry=self.tool_registry,
            tools=tools,
            system_prompt=config.system_prompt,
            max_steps=config.max_steps,
            model_id=config.model or self.settings.agent_model,
            console=self.console,
        )


def parse_plan(text: str, skills: list[Skill]) -> list[SubTask]:
    """
    Parse the planner's JSON reply into subtasks.

    Markdown fences are stripped first. Skill ids the planner invented are
    dropped. Anything that isn't a list of {description, skillIds} objects
    yields [].
    """
    cleaned = _FENCE.sub("", text).strip()
    try:
        items = _PLAN_ADAPTER.validate_json(cleaned)
    except ValidationError:
        return []

    by_id = {skill.id: skill for skill in skills}
    return [
        SubTask(
            id=f"subtask_{i}",
            description=item.description,
            skills=[by_id[sid] for sid in item.skill_ids if sid in by_id],
            prompt=item.description,
        )
        for i, item in enumerate(items)
    ]


def _summarize(result: SubAgentResult) -> str:
    label = ", ".join(result.skill_ids)
    if result.status == "completed":
        return f"[{label}]: {result.content}"
    return f"[{label}]: FAILED - {result.error}"


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


def _final_content(result: SubAgentResult) -> str:
    return result.content if result.status == "completed" else ERROR_MESSAGE
