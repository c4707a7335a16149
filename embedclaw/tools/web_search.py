"""The web_search tool backed by the Tavily search API."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Callable

from embedclaw.config import Settings
from embedclaw.tools.base import (
    InvalidArgumentError,
    InvalidStateError,
    Tool,
    ToolFailedError,
)

_log = logging.getLogger(__name__)

_DEFAULTS = Settings()
SEARCH_URL = "https://api.tavily.com/search"
SEARCH_BUF_SIZE = _DEFAULTS.search_buf_size
SEARCH_RESULT_COUNT = _DEFAULTS.search_result_count
REQUEST_TIMEOUT_S = 15.0
NO_RESULTS = "No web results found."

DESCRIPTION = (
    "Search the web for current information. Use this when you need up-to-date "
    "facts, news, weather, or anything beyond your training data."
)
INPUT_SCHEMA_JSON = (
    '{"type":"object",'
    '"properties":{"query":{"type":"string","description":"The search query"}},'
    '"required":["query"]}'
)

SearchTransport = Callable[[str, dict, bytes, float], "tuple[int, bytes]"]


def _get(obj: Any, key: str) -> Any:
    return obj.get(key) if isinstance(obj, dict) else None


def _str_or(value: Any, default: str) -> str:
    return value if isinstance(value, str) else default


def format_results_tavily(root: Any) -> str:
    """Render the first search results as a numbered list."""
    results = _get(root, "results")
    if not isinstance(results, list) or not results:
        return NO_RESULTS
    parts = []
    for number, item in enumerate(results[:SEARCH_RESULT_COUNT], start=1):
        title = _str_or(_get(item, "title"), "(no title)")
        url = _str_or(_get(item, "url"), "")
        content = _str_or(_get(item, "content"), "")
        parts.append(f"{number}. {title}\n   {url}\n   {content}\n\n")
    return "".join(parts)


def _detail_error(root: Any) -> str | None:
    detail = _get(root, "detail")
    if isinstance(detail, dict):
        error = detail.get("error")
        if isinstance(error, str):
            return error
    return None


def _urllib_transport(
    url: str, headers: dict, body: bytes, timeout: float
) -> tuple[int, bytes]:
    request = urllib.request.Request(url, data=body, headers=headers, method="POST")
    try:
        with urllib.request.urlopen(request, timeout=timeout) as reply:
            return reply.status, reply.read()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read()


class WebSearch:
    """Runs queries against the search API with a bearer key."""

    def __init__(
        self,
        api_key: str = _DEFAULTS.search_api_key,
        transport: SearchTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.transport: SearchTransport = transport or _urllib_transport

    def search(self, query: str) -> str:
        """Search for ``query`` and return the formatted results."""
        _log.info("Query: %s", query)
        payload = json.dumps(
            {
                "query": query,
                "max_results": SEARCH_RESULT_COUNT,
                "search_depth": "basic",
                "topic": "general",
            },
            ensure_ascii=False,
            separators=(",", ":"),
        ).encode("utf-8")
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json; charset=utf-8",
            "User-Agent": "curl/8.4.0",
            "Accept-Encoding": "identity",
            "Authorization": f"Bearer {self.api_key}",
        }
        try:
            status, reply = self.transport(SEARCH_URL, headers, payload, REQUEST_TIMEOUT_S)
        except OSError as exc:
            raise ToolFailedError(f"Error: HTTP request failed ({exc})") from exc

        # The reply buffer holds at most SEARCH_BUF_SIZE - 1 bytes.
        text = reply[: SEARCH_BUF_SIZE - 1].decode("utf-8", errors="replace")

        if status != 200:
            _log.error("Tavily HTTP %d, body: %s", status, text[:250])
            try:
                error = _detail_error(json.loads(text))
            except ValueError:
                error = None
            if error is not None:
                raise ToolFailedError(f"Error: Tavily API {status}: {error}")
            raise ToolFailedError(f"Error: Tavily API returned {status}")

        try:
            root = json.loads(text)
        except ValueError as exc:
            raise ToolFailedError("Error: Failed to parse Tavily search results") from exc

        error = _detail_error(root)
        if error is not None:
            raise ToolFailedError(f"Error: Tavily API: {error}")

        output = format_results_tavily(root)
        _log.info("Tavily search complete, %d bytes result", len(output))
        return output

    def execute(self, input_json: str) -> str:
        """Tool entry point: read ``query`` from the input and search."""
        if not self.api_key:
            raise InvalidStateError("Error: No Tavily API key. Set the search API key.")
        try:
            root = json.loads(input_json)
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError("Error: Invalid input JSON") from exc
        query = _get(root, "query")
        if not isinstance(query, str) or not query:
            raise InvalidArgumentError("Error: Missing 'query' field")
        _log.info("Searching: %s", query)
        return self.search(query)

    def tool(self) -> Tool:
        """The ``web_search`` tool bound to this searcher."""
        return Tool(
            name="web_search",
            description=DESCRIPTION,
            input_schema_json=INPUT_SCHEMA_JSON,
            execute=self.execute,
        )