"""Conversation messages and tool-call records."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ToolCallStatus(str, Enum):
    """Lifecycle of a single tool invocation."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ToolCall:
    """A tool invocation made by the model during a turn."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.PENDING
    result: Any = None


@dataclass
class Message:
    """One turn of caller-owned conversation history."""

    role: str  # "user" or "assistant"
    content: str

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role="assistant", content=content)
