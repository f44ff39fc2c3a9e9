"""Process-wide tool catalog with lazy loading and invocation events."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model
from rich.console import Console
from rich.markup import escape

from .errors import ToolArgumentError

ToolExecutor = Callable[[dict[str, Any]], Awaitable[Any]]
ToolLoader = Callable[["ToolRegistry"], Awaitable[None]]
ToolListener = Callable[["ToolEvent"], None]

ParamType = Literal["string", "number", "integer", "boolean", "array", "object"]

_PYTHON_TYPES: dict[str, type] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
}


@dataclass(frozen=True)
class ToolParam:
    """A single tool parameter, independent of any schema library."""

    name: str
    type: ParamType = "string"
    description: str = ""
    required: bool = True
    enum: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ToolSpec:
    """What a tool module hands to the registry."""

    description: str
    executor: ToolExecutor
    params: tuple[ToolParam, ...] = ()


@dataclass(frozen=True)
class Tool:
    """An executable tool as seen by agents and model clients."""

    name: str
    description: str
    execute: ToolExecutor
    params: tuple[ToolParam, ...] = ()

    def input_schema(self) -> dict[str, Any]:
        """Render the parameters as a JSON schema object."""
        properties: dict[str, Any] = {}
        for param in self.params:
            prop: dict[str, Any] = {"type": param.type}
            if param.description:
                prop["description"] = param.description
            if param.enum:
                prop["enum"] = list(param.enum)
            properties[param.name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": [p.name for p in self.params if p.required],
        }


@dataclass
class ToolEvent:
    """Emitted around every wrapped tool invocation."""

    type: Literal["start", "end"]
    tool_name: str
    args: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    duration_ms: float | None = None


def build_args_model(name: str, params: tuple[ToolParam, ...]) -> type[BaseModel]:
    """
    Create a pydantic model for a tool's arguments.

    Validation is strict, so "2" is not accepted for a number. Enums become
    `Literal` types. Unknown extra arguments are passed through.
    """
    fields: dict[str, Any] = {}
    for param in params:
        annotation: Any = (
            Literal[param.enum] if param.enum else _PYTHON_TYPES.get(param.type, Any)
        )
        if param.required:
            fields[param.name] = (annotation, Field(..., description=param.description))
        else:
            fields[param.name] = (
                Optional[annotation],
                Field(default=None, description=param.description),
            )

    model_name = "".join(part.title() for part in name.split("_")) + "Args"
    return create_model(
        model_name,
        __config__=ConfigDict(strict=True, extra="allow"),
        **fields,
    )


def validate_args(model: type[BaseModel], args: dict[str, Any]) -> None:
    """Check args against a tool's argument model.

    Raises:
        ToolArgumentError: a required argument is missing, has the wrong JSON
            type, or is outside its enum.
    """
    try:
        model.model_validate(args)
    except ValidationError as e:
        raise ToolArgumentError(_describe(e)) from e


def _describe(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        field_name = ".".join(str(part) for part in item["loc"])
        if item["type"] == "missing":
            problems.append(f"missing required argument '{field_name}'")
        else:
            problems.append(f"argument '{field_name}': {item['msg']}")
    return "; ".join(problems)


class ToolRegistry:
    """Maps tool names to wrapped executors.

    Tool groups can be registered eagerly with `register` or deferred with
    `register_loader`; loaders run once, concurrently, on the first
    `get_tools()` call.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._tools: dict[str, Tool] = {}
        self._loaders: list[ToolLoader] = []
        self._listeners: list[ToolListener] = []
        self._init_task: asyncio.Future[None] | None = None

    @property
    def initialized(self) -> bool:
        return self._init_task is not None and self._init_task.done()

    def register(self, name: str, spec: ToolSpec) -> None:
        """Register a tool, overwriting any existing tool with the same name."""
        if name in self._tools:
            self.console.print(
                f"[yellow]Tool \"{escape(name)}\" is already registered, overwriting.[/yellow]"
            )
        self._tools[name] = Tool(
            name=name,
            description=spec.description,
            execute=self._wrap(name, spec, build_args_model(name, spec.params)),
            params=spec.params,
        )

    def register_loader(self, loader: ToolLoader) -> None:
        """Defer registration of a group of tools until first use."""
        if self._init_task is not None:
            self.console.print(
                "[yellow]Tool loader registered after initialization; it will not run.[/yellow]"
            )
            return
        self._loaders.append(loader)

    def on_tool_event(self, listener: ToolListener) -> Callable[[], None]:
        """Subscribe to start/end events. Returns an unsubscribe handle."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def get_tools(self) -> dict[str, Tool]:
        """Return all tools, running the registered loaders on first call."""
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._run_loaders())
        # Shielded so one cancelled caller doesn't abort initialization for the rest
        await asyncio.shield(self._init_task)
        return dict(self._tools)

    async def execute(self, name: str, args: dict[str, Any] | None = None) -> Any:
        """Invoke a registered tool by name."""
        tool = (await self.get_tools()).get(name)
        if tool is None:
            raise KeyError(f"Unknown tool: {name}")
        return await tool.execute(args or {})

    def has(self, name: str) -> bool:
        return name in self._tools

    def get_names(self) -> list[str]:
        return list(self._tools)

    async def _run_loaders(self) -> None:
        loaders = list(self._loaders)
        results = await asyncio.gather(
            *(loader(self) for loader in loaders), return_exceptions=True
        )
        for loader, result in zip(loaders, results):
            if isinstance(result, BaseException):
                name = getattr(loader, "__name__", repr(loader))
                self.console.print(
                    f"[yellow]Failed to load tools from {escape(name)}: "
                    f"{escape(str(result))}[/yellow]"
                )
        self.console.print(f"[dim]Tools initialized: {len(self._tools)} available[/dim]")

    def _wrap(
        self, name: str, spec: ToolSpec, args_model: type[BaseModel]
    ) -> ToolExecutor:
        async def execute(args: dict[str, Any] | None = None) -> Any:
            args = dict(args or {})
            self._emit(ToolEvent(type="start", tool_name=name, args=args))
            started = time.perf_counter()
            try:
                validate_args(args_model, args)
                result = await spec.executor(args)
            except Exception as e:
                self.console.print(f"[red]Tool {escape(name)} failed: {escape(str(e))}[/red]")
                raise
            duration_ms = (time.perf_counter() - started) * 1000
            self._emit(
                ToolEvent(
                    type="end",
                    tool_name=name,
                    args=args,
                    result=result,
                    duration_ms=duration_ms,
                )
            )
            return result

        return execute

    def _emit(self, event: ToolEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                self.console.print(
                    f"[yellow]Tool event listener failed: {escape(str(e))}[/yellow]"
                )
