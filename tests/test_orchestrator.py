"""Tests for orchestration paths, scheduling and synthesis."""

import asyncio
import json

import pytest

from tangent.core import orchestrator as orchestrator_module
from tangent.core.config import Settings
from tangent.core.llm import Generation, ToolInvocation
from tangent.core.orchestrator import APOLOGY_PREFIX, ERROR_MESSAGE, Orchestrator, parse_plan
from tangent.skills import initialize_skills

from conftest import FakeModel, console_output, make_skill


def plan(*items: tuple[str, list[str]]) -> str:
    return json.dumps([{"description": d, "skillIds": ids} for d, ids in items])


@pytest.fixture
def settings():
    return Settings(max_concurrency=3)


@pytest.fixture
def make_orchestrator(tool_registry, skill_registry, settings, console):
    def build(model, **kwargs):
        return Orchestrator(
            model,
            tool_registry,
            skill_registry,
            settings=settings,
            console=console,
            **kwargs,
        )

    return build


@pytest.fixture
def screen_skills(skill_registry):
    """Two screen skills and two background-safe skills."""
    skill_registry.register(make_skill("chat", needs_accessibility=True), ["chat"])
    skill_registry.register(make_skill("shop", needs_accessibility=True), ["shop"])
    skill_registry.register(make_skill("news"), ["news"])
    skill_registry.register(make_skill("weather"), ["weather"])


class TestSingleAgentPaths:
    """Test the paths that run one agent."""

    async def test_no_match_runs_default_agent(self, make_orchestrator, tool_registry):
        """Test zero matches produce a single default sub-result."""
        model = FakeModel()
        result = await make_orchestrator(model).execute("hello there", [])

        assert result.parallel is False
        assert [r.subtask_id for r in result.sub_results] == ["default"]
        assert result.sub_results[0].status == "completed"
        assert result.sub_results[0].skill_ids == []
        assert result.content == "done: hello there"
        assert model.runs[0]["tools"] == set(tool_registry.get_names())

    async def test_default_agent_failure(self, make_orchestrator):
        """Test a failing default agent is reported in-band."""

        async def handler(user_text, tools, on_delta):
            raise RuntimeError("model offline")

        result = await make_orchestrator(FakeModel(handler)).execute("hello", [])

        assert result.content == ERROR_MESSAGE
        assert result.sub_results[0].subtask_id == "default"
        assert result.sub_results[0].status == "failed"
        assert result.sub_results[0].error == "model offline"

    async def test_single_match_runs_scoped_agent(self, make_orchestrator, screen_skills):
        """Test one matched skill runs one scoped agent."""
        model = FakeModel()
        result = await make_orchestrator(model).execute("open chat", [])

        assert result.parallel is False
        assert [r.subtask_id for r in result.sub_results] == ["scoped"]
        assert result.sub_results[0].skill_ids == ["chat"]
        assert "chat prompt" in model.runs[0]["system_prompt"]
        assert model.prompts == []  # no planner call

    async def test_background_only_skills_skip_planning(self, make_orchestrator, screen_skills):
        """Test several matches without screen access run as one scoped agent."""
        model = FakeModel()
        result = await make_orchestrator(model).execute("news and weather", [])

        assert [r.subtask_id for r in result.sub_results] == ["scoped"]
        assert result.sub_results[0].skill_ids == ["news", "weather"]
        assert model.prompts == []

    async def test_max_steps_override(self, make_orchestrator, screen_skills):
        """Test the caller's max_steps wins over the skill config."""
        model = FakeModel()
        await make_orchestrator(model).execute("open chat", [], max_steps=2)
        assert model.runs[0]["max_steps"] == 2

    async def test_initializes_builtin_skills(self, make_orchestrator, skill_registry):
        """Test execute loads the catalog once before matching."""
        model = FakeModel()
        orchestrator = make_orchestrator(model, initialize_skills=initialize_skills)

        result = await orchestrator.execute("play a song on spotify", [])
        await orchestrator.execute("play a song on spotify", [])

        assert skill_registry.initialized
        assert result.sub_results[0].skill_ids == ["entertainment"]


class TestPlanning:
    """Test planner output handling."""

    @pytest.mark.parametrize(
        "reply",
        [
            "not json at all",
            "[]",
            '{"description": "x"}',
            plan(("just one thing", ["chat", "news"])),
            RuntimeError("planner down"),
        ],
    )
    async def test_unusable_plan_falls_back_to_scoped(self, make_orchestrator, screen_skills, reply):
        """Test bad, empty or single-task plans degrade to one scoped agent."""
        model = FakeModel(plan=reply)
        result = await make_orchestrator(model).execute("chat about the news", [])

        assert result.parallel is False
        assert [r.subtask_id for r in result.sub_results] == ["scoped"]
        assert result.sub_results[0].skill_ids == ["chat", "news"]
        assert len(model.prompts) == 1

    def test_parse_plan_strips_fences_and_unknown_ids(self):
        """Test markdown fences are removed and invented skills dropped."""
        skills = [make_skill("chat"), make_skill("news")]
        text = "```json\n" + plan(("read chat", ["chat", "ghost"]), ("get news", ["news"])) + "\n```"

        subtasks = parse_plan(text, skills)

        assert [t.id for t in subtasks] == ["subtask_0", "subtask_1"]
        assert [[s.id for s in t.skills] for t in subtasks] == [["chat"], ["news"]]
        assert subtasks[0].prompt == "read chat"

    def test_parse_plan_rejects_malformed_items(self):
        """Test items without a description invalidate the plan."""
        assert parse_plan('[{"skillIds": ["chat"]}]', [make_skill("chat")]) == []

    @pytest.mark.parametrize(
        "items",
        [
            [{"description": "a", "skillIds": [["chat"]]}, {"description": "b", "skillIds": ["news"]}],
            [{"description": "a", "skillIds": ["chat"]}, {"description": "b", "skillIds": [{"id": "news"}]}],
            [{"description": "a", "skillIds": "chat"}, {"description": "b", "skillIds": ["news"]}],
            [{"description": 1, "skillIds": ["chat"]}, {"description": "b", "skillIds": ["news"]}],
            ["a", "b"],
        ],
    )
    def test_parse_plan_rejects_non_string_fields(self, items):
        """Test skill ids and descriptions must be strings."""
        skills = [make_skill("chat"), make_skill("news")]
        assert parse_plan(json.dumps(items), skills) == []

    async def test_nested_skill_ids_fall_back_to_scoped(self, make_orchestrator, screen_skills):
        """Test a well-formed JSON plan with nested ids doesn't make execute raise."""
        reply = json.dumps(
            [
                {"description": "a", "skillIds": [["chat"]]},
                {"description": "b", "skillIds": [{"id": "news"}]},
            ]
        )
        model = FakeModel(plan=reply)

        result = await make_orchestrator(model).execute("chat news", [])

        assert [r.subtask_id for r in result.sub_results] == ["scoped"]
        assert result.sub_results[0].status == "completed"

    async def test_non_text_plan_falls_back_to_scoped(self, make_orchestrator, screen_skills, console):
        """Test a planner reply that can't be parsed at all is logged and ignored."""
        model = FakeModel(plan=None)

        result = await make_orchestrator(model).execute("chat news", [])

        assert [r.subtask_id for r in result.sub_results] == ["scoped"]
        assert "Could not parse plan" in console_output(console)


class TestMultiAgent:
    """Test decomposed execution."""

    async def test_runs_each_subtask(self, make_orchestrator, screen_skills):
        """Test N subtasks give N results and parallel=True."""
        model = FakeModel(plan=plan(("read chat", ["chat"]), ("get news", ["news"])))
        result = await make_orchestrator(model).execute("chat and news", [])

        assert result.parallel is True
        assert len(result.sub_results) == 2
        assert {r.status for r in result.sub_results} == {"completed"}
        assert result.content == "combined answer"
        synthesis_prompt = model.prompts[-1]
        assert "[news]: done: get news" in synthesis_prompt
        assert "[chat]: done: read chat" in synthesis_prompt

    async def test_subtask_uses_only_its_skills(self, make_orchestrator, screen_skills):
        """Test each subtask composes config from its assigned skills."""
        model = FakeModel(plan=plan(("read chat", ["chat"]), ("get news", ["news"])))
        await make_orchestrator(model).execute("chat and news", [])

        prompts = {run["user_text"]: run["system_prompt"] for run in model.runs}
        assert "chat prompt" in prompts["read chat"]
        assert "news prompt" not in prompts["read chat"]
        assert "news prompt" in prompts["get news"]

    async def test_failure_is_isolated(self, make_orchestrator, screen_skills):
        """Test one failing subtask doesn't affect its siblings."""

        async def handler(user_text, tools, on_delta):
            if user_text == "get news":
                raise RuntimeError("news api down")
            return Generation(text=f"done: {user_text}")

        model = FakeModel(
            handler,
            plan=plan(("read chat", ["chat"]), ("get news", ["news"]), ("check weather", ["weather"])),
        )
        result = await make_orchestrator(model).execute("chat news weather", [])

        statuses = {r.subtask_id: r.status for r in result.sub_results}
        assert statuses == {"subtask_0": "completed", "subtask_1": "failed", "subtask_2": "completed"}
        failed = next(r for r in result.sub_results if r.status == "failed")
        assert failed.error == "news api down"
        assert "[news]: FAILED - news api down" in model.prompts[-1]

    async def test_serialized_queue_runs_after_pool_in_order(self, make_orchestrator, screen_skills):
        """Test screen subtasks run one at a time, after the pool, in plan order."""
        log = []
        active_screen = 0
        peak_screen = 0

        async def handler(user_text, tools, on_delta):
            nonlocal active_screen, peak_screen
            screen = user_text.startswith("screen")
            log.append(("start", user_text))
            if screen:
                active_screen += 1
                peak_screen = max(peak_screen, active_screen)
            await asyncio.sleep(0.01)
            if screen:
                active_screen -= 1
            log.append(("end", user_text))
            return Generation(text=user_text)

        model = FakeModel(
            handler,
            plan=plan(
                ("screen chat", ["chat"]),
                ("bg news", ["news"]),
                ("screen shop", ["shop"]),
                ("bg weather", ["news"]),
            ),
        )
        result = await make_orchestrator(model).execute("chat shop news weather", [])

        order = [r.subtask_id for r in result.sub_results]
        assert set(order[:2]) == {"subtask_1", "subtask_3"}
        assert order[2:] == ["subtask_0", "subtask_2"]
        assert peak_screen == 1
        last_pool_end = max(i for i, e in enumerate(log) if e[0] == "end" and e[1].startswith("bg"))
        first_screen_start = log.index(("start", "screen chat"))
        assert first_screen_start > last_pool_end

    async def test_only_screen_subtasks_is_not_parallel(self, make_orchestrator, screen_skills):
        """Test parallel=False when every subtask needs the screen."""
        model = FakeModel(plan=plan(("open chat", ["chat"]), ("open shop", ["shop"])))
        result = await make_orchestrator(model).execute("chat then shop", [])

        assert result.parallel is False
        assert [r.subtask_id for r in result.sub_results] == ["subtask_0", "subtask_1"]

    async def test_concurrency_bound(self, make_orchestrator, skill_registry):
        """Test at most max_concurrency subtasks run at once."""
        # Only three skills survive the scoping cap, so subtasks share the two background ones
        skill_registry.register(make_skill("bg0"), ["bg0"])
        skill_registry.register(make_skill("bg1"), ["bg1"])
        skill_registry.register(make_skill("screen", needs_accessibility=True), ["screen"])

        active = 0
        peak = 0
        durations = {"one": 0.03, "two": 0.01, "three": 0.02, "four": 0.005}

        async def handler(user_text, tools, on_delta):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(durations[user_text])
            active -= 1
            return Generation(text=user_text)

        model = FakeModel(
            handler,
            plan=plan(("one", ["bg0"]), ("two", ["bg1"]), ("three", ["bg0"]), ("four", ["bg1"])),
        )
        result = await make_orchestrator(model, max_concurrency=2).execute("bg0 bg1 screen", [])

        assert peak == 2
        assert len(result.sub_results) == 4
        assert all(r.skill_ids for r in result.sub_results)
        assert {r.status for r in result.sub_results} == {"completed"}
        assert result.parallel is True

    async def test_tool_calls_flattened_in_result_order(self, make_orchestrator, screen_skills):
        """Test tool calls follow sub_results order."""

        async def handler(user_text, tools, on_delta):
            return Generation(
                text=user_text,
                tool_calls=[ToolInvocation(f"id-{user_text}", "web_search", {}, {})],
            )

        model = FakeModel(handler, plan=plan(("a", ["news"]), ("b", ["chat"])))
        result = await make_orchestrator(model).execute("news chat", [])

        assert [c.id for c in result.tool_calls] == ["id-a", "id-b"]


class TestSynthesis:
    """Test combining subtask results."""

    async def test_all_failed_returns_apology_without_synthesis(self, make_orchestrator, screen_skills):
        """Test no completed subtasks skips the synthesis model."""

        async def handler(user_text, tools, on_delta):
            raise RuntimeError(f"{user_text} broke")

        model = FakeModel(handler, plan=plan(("a", ["news"]), ("b", ["chat"])))
        result = await make_orchestrator(model).execute("news chat", [])

        assert result.content == APOLOGY_PREFIX + "a broke; b broke"
        assert len(model.prompts) == 1  # planner only

    async def test_single_completed_returned_verbatim(self, make_orchestrator, screen_skills):
        """Test one completed and nothing failed skips synthesis."""
        model = FakeModel(plan=plan(("a", ["news"]), ("b", ["chat"])))
        orchestrator = make_orchestrator(model)
        results = [
            orchestrator_module.SubAgentResult("s0", ["news"], "only answer", "completed"),
            orchestrator_module.SubAgentResult("s1", ["chat"], "", "cancelled"),
        ]

        assert await orchestrator._synthesize(results, "q") == "only answer"
        assert model.prompts == []

    async def test_synthesis_failure_joins_contents(self, make_orchestrator, screen_skills):
        """Test a failing synthesis call falls back to the raw contents."""
        model = FakeModel(
            plan=plan(("a", ["news"]), ("b", ["chat"])),
            synthesis=RuntimeError("synthesis down"),
        )
        result = await make_orchestrator(model).execute("news chat", [])

        assert result.content == "done: a\n\ndone: b"


class TestCancel:
    """Test cooperative cancellation."""

    def test_cancel_before_any_agent(self, make_orchestrator):
        """Test cancel is safe with nothing running."""
        orchestrator = make_orchestrator(FakeModel())
        orchestrator.cancel()
        assert orchestrator.active_agents == set()

    async def test_cancel_reaches_running_agents(self, make_orchestrator, screen_skills, monkeypatch):
        """Test cancel marks every agent created so far and skips queued work."""
        created = []
        original_agent = orchestrator_module.Agent

        class RecordingAgent(original_agent):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                created.append(self)

        monkeypatch.setattr(orchestrator_module, "Agent", RecordingAgent)

        started = asyncio.Event()
        release = asyncio.Event()

        async def handler(user_text, tools, on_delta):
            started.set()
            await release.wait()
            return Generation(text=user_text)

        model = FakeModel(handler, plan=plan(("bg", ["news"]), ("screen", ["chat"])))
        orchestrator = make_orchestrator(model)

        task = asyncio.create_task(orchestrator.execute("news chat", []))
        await started.wait()
        orchestrator.cancel()
        release.set()
        result = await task

        assert len(created) == 1
        assert all(agent.cancelled for agent in created)
        assert orchestrator.active_agents == set()
        statuses = {r.subtask_id: r.status for r in result.sub_results}
        assert statuses == {"subtask_0": "completed", "subtask_1": "cancelled"}
        assert result.content == "bg"
