"""Tool-calling agent building blocks: an OpenAI-compatible provider and tools."""

__version__ = "0.1.0"