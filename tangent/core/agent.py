"""Agent: one bounded tool-calling turn against a language model."""

import asyncio
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Literal, Mapping, Sequence

from rich.console import Console
from rich.markup import escape

from .llm import Generation, LanguageModel, ModelDelta
from .messages import Message, ToolCall, ToolCallStatus
from .prompt import SYSTEM_PROMPT
from .tools import Tool, ToolEvent, ToolRegistry

FALLBACK_MESSAGE = "I encountered an error processing your request."
DEFAULT_MAX_STEPS = 10

AgentEventType = Literal[
    "thinking",
    "reasoning",
    "text",
    "tool-call",
    "tool-call-end",
    "done",
    "error",
    "cancelled",
]
TERMINAL_EVENTS = frozenset({"done", "error", "cancelled"})

# Identifies which streaming turn a tool invocation belongs to
_current_turn: ContextVar[object | None] = ContextVar("tangent_agent_turn", default=None)


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and an agent."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class AgentEvent:
    """One item of a streamed agent turn."""

    type: AgentEventType
    text: str = ""
    tool_name: str | None = None
    args: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    error: str | None = None


@dataclass
class AgentReply:
    """Result of a blocking agent turn. `error` is set when the turn failed."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


HistoryItem = Message | Mapping[str, Any]


class Agent:
    """Runs a single request/response cycle with a tool-calling model."""

    def __init__(
        self,
        model: LanguageModel,
        tool_registry: ToolRegistry | None = None,
        tools: dict[str, Tool] | None = None,
        system_prompt: str = SYSTEM_PROMPT,
        max_steps: int = DEFAULT_MAX_STEPS,
        model_id: str | None = None,
        console: Console | None = None,
    ) -> None:
        self.model = model
        self.tool_registry = tool_registry
        self.tools = tools
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.model_id = model_id
        self.console = console or Console()
        self.token = CancellationToken()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        """Request cancellation.

        Only honoured by `process_message_stream`, right before the model call
        starts. A call already in flight runs to completion.
        """
        self.token.cancel()

    async def process_message(
        self,
        user_text: str,
        history: Sequence[HistoryItem],
        max_steps: int | None = None,
    ) -> AgentReply:
        """Run one turn and wait for the final answer. Never raises."""
        try:
            tools = await self._tools_for_turn()
            generation = await self.model.run_tools(
                self.system_prompt,
                self._build_messages(user_text, history),
                tools,
                max_steps or self.max_steps,
                model=self.model_id,
            )
        except Exception as e:
            self.console.print(f"[red]Agent error: {escape(str(e))}[/red]")
            return AgentReply(
                content=FALLBACK_MESSAGE,
                tool_calls=[],
                error=str(e) or type(e).__name__,
            )

        return AgentReply(content=generation.text, tool_calls=_to_tool_calls(generation))

    async def process_message_stream(
        self,
        user_text: str,
        history: Sequence[HistoryItem],
        max_steps: int | None = None,
        streaming: bool = True,
    ) -> AsyncIterator[AgentEvent]:
        """
        Run one turn, yielding events as they happen.

        Always starts with "thinking" and ends with exactly one of "done",
        "error" or "cancelled". Tool start/end events from the registry are
        mirrored as "tool-call"/"tool-call-end" for invocations made by this
        turn only.

        Args:
            user_text: The new user message
            history: Prior conversation turns
            max_steps: Step budget override
            streaming: Forward text/reasoning deltas as they arrive; when
                False the full text is emitted once before "done"
        """
        yield AgentEvent(type="thinking")

        queue: asyncio.Queue[AgentEvent] = asyncio.Queue()
        turn = object()

        def on_tool_event(event: ToolEvent) -> None:
            if _current_turn.get() is not turn:
                return
            if event.type == "start":
                queue.put_nowait(
                    AgentEvent(type="tool-call", tool_name=event.tool_name, args=event.args)
                )
            else:
                queue.put_nowait(
                    AgentEvent(
                        type="tool-call-end",
                        tool_name=event.tool_name,
                        args=event.args,
                        result=event.result,
                    )
                )

        def on_delta(delta: ModelDelta) -> None:
            event_type: AgentEventType = "reasoning" if delta.kind == "reasoning" else "text"
            queue.put_nowait(AgentEvent(type=event_type, text=delta.text))

        async def run() -> None:
            _current_turn.set(turn)
            try:
                tools = await self._tools_for_turn()
                # The one cancellation checkpoint: nothing has been sent yet
                if self.token.cancelled:
                    queue.put_nowait(AgentEvent(type="cancelled"))
                    return
                generation = await self.model.run_tools(
                    self.system_prompt,
                    self._build_messages(user_text, history),
                    tools,
                    max_steps or self.max_steps,
                    model=self.model_id,
                    on_delta=on_delta if streaming else None,
                )
            except Exception as e:
                self.console.print(f"[red]Agent stream error: {escape(str(e))}[/red]")
                queue.put_nowait(
                    AgentEvent(type="error", text=FALLBACK_MESSAGE, error=str(e) or type(e).__name__)
                )
                return

            if not streaming and generation.text:
                queue.put_nowait(AgentEvent(type="text", text=generation.text))
            queue.put_nowait(
                AgentEvent(
                    type="done",
                    text=generation.text,
                    tool_calls=_to_tool_calls(generation),
                )
            )

        unsubscribe = (
            self.tool_registry.on_tool_event(on_tool_event)
            if self.tool_registry is not None
            else lambda: None
        )
        task = asyncio.create_task(run())
        try:
            while True:
                event = await queue.get()
                yield event
                if event.type in TERMINAL_EVENTS:
                    break
        finally:
            unsubscribe()
            if not task.done():
                task.cancel()

    async def _tools_for_turn(self) -> dict[str, Tool]:
        if self.tools is not None:
            return self.tools
        if self.tool_registry is not None:
            return await self.tool_registry.get_tools()
        return {}

    def _build_messages(self, user_text: str, history: Sequence[HistoryItem]) -> list[Message]:
        messages: list[Message] = []
        for item in history:
            if isinstance(item, Message):
                message = item
            else:
                message = Message(role=str(item["role"]), content=str(item["content"]))
            if message.role in ("user", "assistant"):
                messages.append(message)
        messages.append(Message.user(user_text))
        return messages


def _to_tool_calls(generation: Generation) -> list[ToolCall]:
    return [
        ToolCall(
            id=call.id,
            name=call.name,
            arguments=call.arguments,
            status=ToolCallStatus.ERROR if call.is_error else ToolCallStatus.SUCCESS,
            result=call.result,
        )
        for call in generation.tool_calls
    ]
