[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "embedclaw"
version = "0.1.0"
description = "Tool-calling agent building blocks: an OpenAI-compatible LLM provider, cron scheduling, time and web search tools."
requires-python = ">=3.10"
dependencies = []
keywords = ["llm", "agent", "tool-calling", "openai", "cron", "assistant"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["embedclaw"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
