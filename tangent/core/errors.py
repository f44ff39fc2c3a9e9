"""Exception types raised inside the core."""


class TangentError(Exception):
    """Base class for Tangent errors."""


class ToolArgumentError(TangentError, ValueError):
    """Tool arguments don't satisfy the tool's parameter description."""


class LLMError(TangentError):
    """The language model call failed or returned something unusable."""
