"""Data types and the provider interface of the language-model layer."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any

from embedclaw.config import Settings

MAX_TOOL_CALLS = Settings().max_tool_calls


class LlmError(Exception):
    """Base class for errors raised by the language-model layer."""


class LlmInvalidArgumentError(LlmError, ValueError):
    """An argument or the provider configuration is missing or invalid."""


class LlmInvalidStateError(LlmError, RuntimeError):
    """The layer was used before a provider was initialised."""


class LlmType(enum.Enum):
    """Wire dialects a provider may speak."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class ToolCall:
    """One tool invocation requested by the model."""

    id: str = ""
    name: str = ""
    index: int = 0
    input: str | None = None


@dataclass
class LlmResponse:
    """Text and tool calls returned by one chat turn."""

    text: str | None = None
    calls: list[ToolCall] = field(default_factory=list)
    tool_use: bool = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def clear(self) -> None:
        """Drop the text and all tool calls."""
        self.text = None
        for call in self.calls:
            call.input = None
        self.calls.clear()
        self.tool_use = False


@dataclass
class ProviderContext:
    """Endpoint, credentials and model name of a provider."""

    url: str | None = None
    api_key: str | None = None
    model: str | None = None

    def is_complete(self) -> bool:
        """True when url, api key and model are all non-empty."""
        return bool(self.url) and bool(self.api_key) and bool(self.model)


class LlmProvider(ABC):
    """A chat-completion backend able to request tool calls."""

    name: str = ""

    def __init__(self) -> None:
        self.context = ProviderContext()

    def init(self, provider_ctx: ProviderContext | None) -> None:
        """Adopt the endpoint, credentials and model from ``provider_ctx``."""
        if provider_ctx is None:
            raise LlmInvalidArgumentError("provider_ctx must be provided")
        self.context = replace(provider_ctx)

    @abstractmethod
    def chat_tools(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools_json: str | None,
    ) -> LlmResponse:
        """Run one chat turn and return the model's text and tool calls."""