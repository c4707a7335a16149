"""The tool record handed to the model and the errors tools raise."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable


class ToolError(Exception):
    """A tool failed; the message is the text reported back to the model."""


class InvalidArgumentError(ToolError, ValueError):
    """The tool input is malformed or misses a required field."""


class NotFoundError(ToolError, LookupError):
    """The tool, file or job named in the input does not exist."""


class InvalidStateError(ToolError, RuntimeError):
    """The tool is not configured to run."""


class InvalidSizeError(ToolError, ValueError):
    """A file or buffer is empty or exceeds the allowed size."""


class ToolFailedError(ToolError, RuntimeError):
    """The tool's operation failed for another reason."""


@dataclass(frozen=True)
class Tool:
    """A named tool with its description, JSON input schema and executor."""

    name: str
    description: str
    input_schema_json: str
    execute: Callable[[str], str]

    def run(self, input_json: str | None) -> str:
        """Execute the tool on ``input_json`` (an empty object when None)."""
        return self.execute(input_json if input_json is not None else "{}")