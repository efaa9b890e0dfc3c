"""
Exception types raised by catalog generation and tool invocation.
"""

from typing import List


class ODataToolError(Exception):
    """Base class for errors raised by this library."""


class ToolValidationError(ODataToolError, ValueError):
    """Invalid tool input detected before any request is sent."""


class ToolStateError(ODataToolError, RuntimeError):
    """The operation cannot run in the current state."""


class ToolTimeoutError(ODataToolError, TimeoutError):
    """The invocation ran past its deadline or was cancelled."""

    def __init__(self, message: str, cancelled: bool = False):
        super().__init__(message)
        self.cancelled = cancelled


class PolicyValidationError(ODataToolError, ValueError):
    def __init__(self, problems: List[str]):
        super().__init__("Invalid generation policy: " + "; ".join(problems))
        self.problems = problems


class CatalogValidationError(ODataToolError, ValueError):
    def __init__(self, problems: List[str]):
        super().__init__("Generated tool catalog is invalid: " + "; ".join(problems))
        self.problems = problems


class ToolCallFailed(ODataToolError):
    """Raised to the MCP server so a failed result is flagged as an error.

    The message is the serialized result envelope.
    """
