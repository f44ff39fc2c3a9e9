#!/usr/bin/env python3
"""Tangent CLI - Text-mode interface for the orchestrator."""

import asyncio
import json
import sys

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from .core import AnthropicClient, Message, Orchestrator, SkillRegistry, ToolEvent, ToolRegistry
from .core.config import get_settings
from .skills import initialize_skills
from .tools import register_default_loaders


def tool_event_handler(console: Console):
    """Print tool activity as it happens."""

    def handle(event: ToolEvent) -> None:
        if event.type == "start":
            args = json.dumps(event.args, default=str)
            console.print(f"[dim]  → {escape(event.tool_name)}({escape(args)})[/dim]")
        else:
            console.print(
                f"[dim]  ✓ {escape(event.tool_name)} ({event.duration_ms or 0:.0f} ms)[/dim]"
            )

    return handle


async def async_main() -> None:
    """Main async entry point."""
    console = Console()
    settings = get_settings()

    # Print welcome banner
    console.print(
        Panel.fit(
            "[bold blue]Tangent[/bold blue] - Mobile assistant orchestrator\n"
            "[dim]Text-mode • Type 'help' for commands • 'quit' to exit[/dim]",
            border_style="blue",
        )
    )

    if not settings.anthropic_api_key:
        console.print("[yellow]ANTHROPIC_API_KEY is not set; requests will fail.[/yellow]")

    # Composition root
    tool_registry = ToolRegistry(console=console)
    register_default_loaders(tool_registry, settings)
    skill_registry = SkillRegistry(tool_registry, console=console)
    initialize_skills(skill_registry)
    unsubscribe = tool_registry.on_tool_event(tool_event_handler(console))

    history: list[Message] = []

    async with AnthropicClient(settings) as model:
        orchestrator = Orchestrator(
            model,
            tool_registry,
            skill_registry,
            settings=settings,
            initialize_skills=initialize_skills,
            console=console,
        )
        console.print()

        # Main loop
        while True:
            try:
                query = Prompt.ask("[bold green]You[/bold green]")

                # Handle special commands
                if query.lower() in ("quit", "exit", "q"):
                    console.print("[dim]Goodbye![/dim]")
                    break

                if query.lower() == "help":
                    _show_help(console)
                    continue

                if query.lower() == "skills":
                    _show_skills(console, skill_registry)
                    continue

                if query.lower() == "tools":
                    await _show_tools(console, tool_registry)
                    continue

                if not query.strip():
                    continue

                result = await orchestrator.execute(query, history)

                failed = any(r.status == "failed" for r in result.sub_results)
                color = "red" if failed and len(result.sub_results) == 1 else "blue"
                console.print(f"[bold {color}]Tangent[/bold {color}]: {escape(result.content)}")
                if result.parallel or len(result.sub_results) > 1:
                    for sub in result.sub_results:
                        console.print(
                            f"[dim]  {escape(sub.subtask_id)} "
                            f"[{escape(', '.join(sub.skill_ids))}] {sub.status} "
                            f"in {sub.duration_ms:.0f} ms[/dim]"
                        )

                history.append(Message.user(query))
                history.append(Message.assistant(result.content))
                console.print()

            except KeyboardInterrupt:
                orchestrator.cancel()
                console.print("\n[dim]Goodbye![/dim]")
                break
            except EOFError:
                break

    unsubscribe()


def _show_help(console: Console) -> None:
    """Show help information."""
    console.print(
        Panel(
            "[bold]Commands:[/bold]\n"
            "  help   - Show this help\n"
            "  skills - List available skills\n"
            "  tools  - List loaded tools\n"
            "  quit   - Exit Tangent\n\n"
            "[bold]Example requests:[/bold]\n"
            "  • What's my battery level?\n"
            "  • Search the news about the monsoon\n"
            "  • Order biryani on zomato and remind me about the meeting at 5",
            title="Help",
            border_style="green",
        )
    )


def _show_skills(console: Console, registry: SkillRegistry) -> None:
    """List all registered skills."""
    lines = []
    for skill in registry.get_all_skills():
        state = "" if registry.is_enabled(skill.id) else " [dim](disabled)[/dim]"
        flag = " [yellow]screen[/yellow]" if skill.needs_accessibility else ""
        lines.append(f"[bold]{escape(skill.id)}[/bold]{flag}{state}: {escape(skill.description)}")
    console.print(Panel("\n".join(lines), title="Available Skills", border_style="cyan"))


async def _show_tools(console: Console, registry: ToolRegistry) -> None:
    """List tools that loaded successfully."""
    tools = await registry.get_tools()
    lines = [f"[bold]{escape(name)}[/bold]: {escape(tool.description)}" for name, tool in tools.items()]
    console.print(Panel("\n".join(lines) or "[dim]No tools loaded[/dim]", title="Tools", border_style="cyan"))


def main() -> None:
    """Entry point."""
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
