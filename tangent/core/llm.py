"""Language model clients.

`LanguageModel` is the contract the agent and orchestrator depend on.
`AnthropicClient` implements it against the Anthropic Messages API and runs
the tool loop itself: each `tool_use` block is executed through the resolved
`Tool` and its result fed back until the model stops or the step budget runs
out.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Literal

import httpx

from .config import Settings, get_settings
from .errors import LLMError
from .messages import Message
from .tools import Tool

ANTHROPIC_VERSION = "2023-06-01"


@dataclass
class ToolInvocation:
    """A tool the model invoked, with what came back."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    is_error: bool = False


@dataclass
class Generation:
    """Outcome of one tool-calling run."""

    text: str
    tool_calls: list[ToolInvocation] = field(default_factory=list)
    steps_taken: int = 0


@dataclass
class ModelDelta:
    """An incremental piece of streamed output."""

    kind: Literal["text", "reasoning"]
    text: str


DeltaCallback = Callable[[ModelDelta], None]


class LanguageModel(ABC):
    """A tool-calling text generation backend."""

    @abstractmethod
    async def run_tools(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: dict[str, Tool],
        max_steps: int,
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> Generation:
        """
        Run a bounded tool-calling loop.

        Args:
            system_prompt: System instructions for the run
            messages: Conversation so far, ending with the user's turn
            tools: Tools the model may invoke, by name
            max_steps: Maximum number of model round trips
            model: Model id override
            on_delta: If given, output is streamed and each delta passed here

        Returns:
            Generation with the final text and every tool invocation
        """

    @abstractmethod
    async def generate(self, prompt: str, model: str | None = None) -> str:
        """Plain single-turn text generation."""


class AnthropicClient(LanguageModel):
    """Anthropic Messages API over httpx."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = client or httpx.AsyncClient(timeout=self.settings.request_timeout)

    @property
    def url(self) -> str:
        return f"{self.settings.anthropic_base_url.rstrip('/')}/v1/messages"

    async def generate(self, prompt: str, model: str | None = None) -> str:
        payload = self._payload(
            model or self.settings.agent_model,
            system_prompt=None,
            messages=[{"role": "user", "content": prompt}],
            tool_defs=[],
            thinking=False,
        )
        content, _ = await self._send(payload)
        return _join_text(content)

    async def run_tools(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: dict[str, Tool],
        max_steps: int,
        model: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> Generation:
        conversation: list[dict[str, Any]] = [
            {"role": m.role, "content": m.content} for m in messages if m.content
        ]
        tool_defs = [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.input_schema(),
            }
            for tool in tools.values()
        ]
        invocations: list[ToolInvocation] = []
        text = ""
        steps = 0

        while steps < max_steps:
            steps += 1
            payload = self._payload(
                model or self.settings.agent_model,
                system_prompt=system_prompt,
                messages=conversation,
                tool_defs=tool_defs,
                thinking=True,
            )
            if on_delta is not None:
                content, stop_reason = await self._stream(payload, on_delta)
            else:
                content, stop_reason = await self._send(payload)

            text = _join_text(content)
            tool_uses = [block for block in content if block.get("type") == "tool_use"]
            if stop_reason != "tool_use" or not tool_uses:
                break

            conversation.append({"role": "assistant", "content": content})
            results = []
            for block in tool_uses:
                invocation = await self._invoke(tools, block)
                invocations.append(invocation)
                results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": invocation.id,
                        "content": json.dumps(invocation.result, default=str),
                        "is_error": invocation.is_error,
                    }
                )
            conversation.append({"role": "user", "content": results})

        return Generation(text=text, tool_calls=invocations, steps_taken=steps)

    async def _invoke(self, tools: dict[str, Tool], block: dict[str, Any]) -> ToolInvocation:
        invocation = ToolInvocation(
            id=block.get("id", ""),
            name=block.get("name", ""),
            arguments=block.get("input") or {},
        )
        tool = tools.get(invocation.name)
        if tool is None:
            invocation.result = {"error": f"Unknown tool: {invocation.name}"}
            invocation.is_error = True
            return invocation
        try:
            invocation.result = await tool.execute(invocation.arguments)
        except Exception as e:
            invocation.result = {"error": str(e)}
            invocation.is_error = True
        return invocation

    def _headers(self) -> dict[str, str]:
        if not self.settings.anthropic_api_key:
            raise LLMError("Anthropic isn't configured. Add ANTHROPIC_API_KEY to your .env file.")
        return {
            "x-api-key": self.settings.anthropic_api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _payload(
        self,
        model: str,
        system_prompt: str | None,
        messages: list[dict[str, Any]],
        tool_defs: list[dict[str, Any]],
        thinking: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": self.settings.max_tokens,
            "messages": messages,
        }
        if system_prompt:
            payload["system"] = system_prompt
        if tool_defs:
            payload["tools"] = tool_defs
        budget = self.settings.thinking_budget
        if thinking and budget > 0:
            payload["thinking"] = {"type": "enabled", "budget_tokens": budget}
            # max_tokens has to leave room above the thinking budget
            payload["max_tokens"] = max(self.settings.max_tokens, budget + 1024)
        return payload

    async def _send(self, payload: dict[str, Any]) -> tuple[list[dict[str, Any]], str | None]:
        response = await self.client.post(self.url, headers=self._headers(), json=payload)
        response.raise_for_status()
        data = response.json()
        content = data.get("content")
        if not isinstance(content, list):
            raise LLMError("Received unexpected response format from Anthropic.")
        return content, data.get("stop_reason")

    async def _stream(
        self, payload: dict[str, Any], on_delta: DeltaCallback
    ) -> tuple[list[dict[str, Any]], str | None]:
        blocks: dict[int, dict[str, Any]] = {}
        partial_json: dict[int, list[str]] = {}
        stop_reason: str | None = None

        async with self.client.stream(
            "POST", self.url, headers=self._headers(), json={**payload, "stream": True}
        ) as response:
            if response.is_error:
                await response.aread()
                response.raise_for_status()

            async for event in _iter_sse(response):
                kind = event.get("type")
                if kind == "content_block_start":
                    blocks[event["index"]] = dict(event.get("content_block") or {})
                elif kind == "content_block_delta":
                    index = event["index"]
                    block = blocks.setdefault(index, {})
                    delta = event.get("delta") or {}
                    delta_type = delta.get("type")
                    if delta_type == "text_delta":
                        block["text"] = block.get("text", "") + delta["text"]
                        on_delta(ModelDelta(kind="text", text=delta["text"]))
                    elif delta_type == "thinking_delta":
                        block["thinking"] = block.get("thinking", "") + delta["thinking"]
                        on_delta(ModelDelta(kind="reasoning", text=delta["thinking"]))
                    elif delta_type == "signature_delta":
                        block["signature"] = delta["signature"]
                    elif delta_type == "input_json_delta":
                        partial_json.setdefault(index, []).append(delta.get("partial_json", ""))
                elif kind == "content_block_stop":
                    index = event["index"]
                    if index in partial_json:
                        raw = "".join(partial_json.pop(index))
                        try:
                            blocks[index]["input"] = json.loads(raw) if raw else {}
                        except json.JSONDecodeError as e:
                            raise LLMError(f"Malformed tool input from model: {e}") from e
                elif kind == "message_delta":
                    stop_reason = (event.get("delta") or {}).get("stop_reason", stop_reason)
                elif kind == "error":
                    message = (event.get("error") or {}).get("message", "stream error")
                    raise LLMError(message)

        return [blocks[i] for i in sorted(blocks)], stop_reason

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "AnthropicClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


async def _iter_sse(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Yield the JSON payload of each server-sent event."""
    async for line in response.aiter_lines():
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data:
            continue
        try:
            yield json.loads(data)
        except json.JSONDecodeError as e:
            raise LLMError(f"Malformed stream event: {data[:100]}") from e


def _join_text(content: list[dict[str, Any]]) -> str:
    return "".join(block.get("text", "") for block in content if block.get("type") == "text")
