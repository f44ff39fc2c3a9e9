"""Clipboard tools backed by the system clipboard commands."""

import asyncio
import shutil
from typing import Any

from ..core.tools import ToolParam, ToolRegistry, ToolSpec

# (copy command, paste command) pairs, in order of preference
BACKENDS = [
    (["wl-copy"], ["wl-paste", "--no-newline"]),
    (["xclip", "-selection", "clipboard"], ["xclip", "-selection", "clipboard", "-o"]),
    (["pbcopy"], ["pbpaste"]),
]


class Clipboard:
    """Reads and writes the clipboard through an external command."""

    def __init__(self, copy_cmd: list[str], paste_cmd: list[str]) -> None:
        self.copy_cmd = copy_cmd
        self.paste_cmd = paste_cmd

    @classmethod
    def detect(cls) -> "Clipboard":
        """Pick the first backend whose commands are installed."""
        for copy_cmd, paste_cmd in BACKENDS:
            if shutil.which(copy_cmd[0]) and shutil.which(paste_cmd[0]):
                return cls(copy_cmd, paste_cmd)
        raise RuntimeError("No clipboard command found (install wl-clipboard or xclip)")

    async def read(self, args: dict[str, Any]) -> dict[str, Any]:
        output = await self._run(self.paste_cmd)
        return {"text": output}

    async def write(self, args: dict[str, Any]) -> dict[str, Any]:
        await self._run(self.copy_cmd, stdin=args["text"])
        return {"success": True, "length": len(args["text"])}

    async def _run(self, cmd: list[str], stdin: str | None = None) -> str:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if stdin is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate(
            stdin.encode() if stdin is not None else None
        )
        if process.returncode != 0:
            raise RuntimeError(f"{cmd[0]} failed: {stderr.decode().strip()[:100]}")
        return stdout.decode()


async def load(registry: ToolRegistry) -> None:
    """Register clipboard tools. Fails if no clipboard command is available."""
    clipboard = Clipboard.detect()
    registry.register(
        "get_clipboard",
        ToolSpec(description="Read the current clipboard text", executor=clipboard.read),
    )
    registry.register(
        "set_clipboard",
        ToolSpec(
            description="Copy text to the clipboard",
            executor=clipboard.write,
            params=(ToolParam("text", "string", "Text to copy"),),
        ),
    )
