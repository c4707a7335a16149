import json

import pytest

from embedclaw.tools.base import InvalidArgumentError, InvalidStateError, ToolFailedError
from embedclaw.tools.web_search import SEARCH_URL, WebSearch, format_results_tavily


def _fixed(status, body):
    calls = []

    def transport(url, headers, payload, timeout):
        calls.append((url, headers, json.loads(payload)))
        return status, body

    return transport, calls


def test_rejects_invalid_json_and_missing_query():
    search = WebSearch(api_key="placeholder")
    with pytest.raises(InvalidArgumentError, match="Invalid input JSON"):
        search.execute("{")
    with pytest.raises(InvalidArgumentError, match="Missing 'query'"):
        search.execute("{}")
    with pytest.raises(InvalidArgumentError, match="Missing 'query'"):
        search.execute('{"query":""}')


def test_requires_api_key():
    with pytest.raises(InvalidStateError, match="No Tavily API key"):
        WebSearch(api_key="").execute('{"query":"x"}')


def test_formatter_renders_results():
    root = {
        "results": [
            {"title": "Title A", "url": "https://a.example", "content": "Summary A"},
            {"title": "Title B", "url": "https://b.example", "content": "Summary B"},
        ]
    }
    output = format_results_tavily(root)
    assert "1. Title A" in output
    assert "https://a.example" in output
    assert "Summary B" in output
    assert output.startswith("1. Title A\n   https://a.example\n   Summary A\n\n2. ")


def test_formatter_empty_results():
    assert format_results_tavily({"results": []}) == "No web results found."
    assert format_results_tavily({}) == "No web results found."


def test_formatter_caps_and_defaults():
    root = {"results": [{"url": f"https://{n}.example"} for n in range(8)]}
    output = format_results_tavily(root)
    assert "5. (no title)" in output
    assert "6." not in output


def test_search_sends_request_and_formats():
    body = json.dumps({"results": [{"title": "T", "url": "https://t.example", "content": "C"}]})
    transport, calls = _fixed(200, body.encode())
    search = WebSearch(api_key="placeholder", transport=transport)
    assert search.tool().run('{"query":"news"}') == "1. T\n   https://t.example\n   C\n\n"
    url, headers, payload = calls[0]
    assert url == SEARCH_URL
    assert headers["Authorization"] == "Bearer placeholder"
    assert payload == {
        "query": "news",
        "max_results": 5,
        "search_depth": "basic",
        "topic": "general",
    }


def test_search_http_error_with_detail():
    transport, _ = _fixed(401, b'{"detail":{"error":"bad key"}}')
    search = WebSearch(api_key="placeholder", transport=transport)
    with pytest.raises(ToolFailedError, match="Tavily API 401: bad key"):
        search.search("x")


def test_search_http_error_without_detail():
    transport, _ = _fixed(500, b"oops")
    search = WebSearch(api_key="placeholder", transport=transport)
    with pytest.raises(ToolFailedError, match="Tavily API returned 500"):
        search.search("x")


def test_search_detail_error_in_ok_body():
    transport, _ = _fixed(200, b'{"detail":{"error":"quota"}}')
    search = WebSearch(api_key="placeholder", transport=transport)
    with pytest.raises(ToolFailedError, match="Tavily API: quota"):
        search.search("x")


def test_search_unparsable_body():
    transport, _ = _fixed(200, b"not json")
    search = WebSearch(api_key="placeholder", transport=transport)
    with pytest.raises(ToolFailedError, match="Failed to parse"):
        search.search("x")


def test_search_transport_failure():
    def transport(url, headers, payload, timeout):
        raise OSError("unreachable")

    search = WebSearch(api_key="placeholder", transport=transport)
    with pytest.raises(ToolFailedError, match="HTTP request failed"):
        search.search("x")