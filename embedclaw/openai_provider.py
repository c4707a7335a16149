"""Chat-completions provider speaking the OpenAI-compatible wire format."""

from __future__ import annotations

import json
import logging
import ssl
import urllib.error
import urllib.request
from typing import Any, Callable

from embedclaw.config import Settings
from embedclaw.llm import (
    MAX_TOOL_CALLS,
    LlmError,
    LlmInvalidArgumentError,
    LlmProvider,
    LlmResponse,
    ProviderContext,
    ToolCall,
)

_log = logging.getLogger(__name__)

_DEFAULTS = Settings()
MAX_TOKENS = _DEFAULTS.llm_max_tokens
REQUEST_TIMEOUT_S = 120.0

_TOOL_ID_MAX = 63
_TOOL_NAME_MAX = 31
_ERROR_SNIPPET = 500

CONTENT_FILTER_MESSAGE = "当前请求触发了内容安全审核，请换一种说法或稍后再试。"

# Some endpoints present a chain rooted at GlobalSign Root CA - R3; trust it
# explicitly for those hosts instead of relying on the system bundle.
GLOBALSIGN_ROOT_CA_R3_PEM = (
    "-----BEGIN CERTIFICATE-----\n"
    "MIIDXzCCAkegAwIBAgILBAAAAAABIVhTCKIwDQYJKoZIhvcNAQELBQAwTDEgMB4G\n"
    "A1UECxMXR2xvYmFsU2lnbiBSb290IENBIC0gUjMxEzARBgNVBAoTCkdsb2JhbFNp\n"
    "Z24xEzARBgNVBAMTCkdsb2JhbFNpZ24wHhcNMDkwMzE4MTAwMDAwWhcNMjkwMzE4\n"
    "MTAwMDAwWjBMMSAwHgYDVQQLExdHbG9iYWxTaWduIFJvb3QgQ0EgLSBSMzETMBEG\n"
    "A1UEChMKR2xvYmFsU2lnbjETMBEGA1UEAxMKR2xvYmFsU2lnbjCCASIwDQYJKoZI\n"
    "hvcNAQEBBQADggEPADCCAQoCggEBAMwldpB5BngiFvXAg7aEyiie/QV2EcWtiHL8\n"
    "RgJDx7KKnQRfJMsuS+FggkbhUqsMgUdwbN1k0ev1LKMPgj0MK66X17YUhhB5uzsT\n"
    "gHeMCOFJ0mpiLx9e+pZo34knlTifBtc+ycsmWQ1z3rDI6SYOgxXG71uL0gRgykmm\n"
    "KPZpO/bLyCiR5Z2KYVc3rHQU3HTgOu5yLy6c+9C7v/U9AOEGM+iCK65TpjoWc4zd\n"
    "QQ4gOsC0p6Hpsk+QLjJg6VfLuQSSaGjlOCZgdbKfd/+RFO+uIEn8rUAVSNECMWEZ\n"
    "XriX7613t2Saer9fwRPvm2L7DWzgVGkWqQPabumDk3F2xmmFghcCAwEAAaNCMEAw\n"
    "DgYDVR0PAQH/BAQDAgEGMA8GA1UdEwEB/wQFMAMBAf8wHQYDVR0OBBYEFI/wS3+o\n"
    "LkUkrk1Q+mOai97i3Ru8MA0GCSqGSIb3DQEBCwUAA4IBAQBLQNvAUKr+yAzv95ZU\n"
    "RUm7lgAJQayzE4aGKAczymvmdLm6AC2upArT9fHxD4q/c2dKg8dEe3jgr25sbwMp\n"
    "jjM5RcOO5LlXbKr8EpbsU8Yt5CRsuZRj+9xTaGdWPoO4zzUhw8lo/s7awlOqzJCK\n"
    "6fBdRoyV3XpYKBovHd7NADdBj+1EbddTKJd+82cEHhXXipa0095MJ6RMG3NzdvQX\n"
    "mcIfeg7jLQitChws/zyrVQ4PkX4268NXSb7hLi18YIvDQVETI53O9zJrlAGomecs\n"
    "Mx86OyXShkDOOyyGeMlhLxS67ttVb9+E7gUJTb0o2HLO02JQZR7rkpeDMdmztcpH\n"
    "WD9f\n"
    "-----END CERTIFICATE-----\n"
)

Transport = Callable[[str, dict, bytes, "str | None", float], "tuple[int, bytes]"]


def _get(obj: Any, key: str) -> Any:
    """Look up ``key`` when ``obj`` is a JSON object, else None."""
    return obj.get(key) if isinstance(obj, dict) else None


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def convert_tools_openai(tools_json: str | None) -> list[dict[str, Any]] | None:
    """Wrap tool declarations as OpenAI ``function`` tools.

    Returns None when ``tools_json`` is missing, malformed or not an array.
    Tools without a string name are skipped.
    """
    if tools_json is None:
        return None
    try:
        tools = json.loads(tools_json)
    except ValueError:
        return None
    if not isinstance(tools, list):
        return None

    out: list[dict[str, Any]] = []
    for tool in tools:
        name = _get(tool, "name")
        if not _is_str(name):
            continue
        func: dict[str, Any] = {"name": name}
        desc = _get(tool, "description")
        if _is_str(desc):
            func["description"] = desc
        schema = _get(tool, "input_schema")
        if schema is not None:
            func["parameters"] = json.loads(_dumps(schema))
        out.append({"type": "function", "function": func})
    return out


def _convert_assistant(content: list[Any]) -> dict[str, Any]:
    texts: list[str] = []
    tool_calls: list[dict[str, Any]] | None = None
    next_index = 0
    for block in content:
        btype = _get(block, "type")
        if btype == "text":
            text = _get(block, "text")
            if _is_str(text):
                texts.append(text)
        elif btype == "tool_use":
            if tool_calls is None:
                tool_calls = []
            name = _get(block, "name")
            if not _is_str(name):
                continue
            call: dict[str, Any] = {}
            call_id = _get(block, "id")
            if _is_str(call_id):
                call["id"] = call_id
            index = _get(block, "index")
            call["index"] = int(index) if _is_number(index) else next_index
            call["type"] = "function"
            func: dict[str, Any] = {"name": name}
            if isinstance(block, dict) and "input" in block:
                func["arguments"] = _dumps(block["input"])
            call["function"] = func
            tool_calls.append(call)
            next_index += 1

    message: dict[str, Any] = {"role": "assistant", "content": "".join(texts)}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return message


def _convert_user(content: list[Any]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    texts: list[str] = []
    has_text = False
    for block in content:
        btype = _get(block, "type")
        if btype == "tool_result":
            tool_id = _get(block, "tool_use_id")
            if not _is_str(tool_id):
                continue
            tcontent = _get(block, "content")
            out.append(
                {
                    "role": "tool",
                    "tool_call_id": tool_id,
                    "content": tcontent if _is_str(tcontent) else "",
                }
            )
        elif btype == "text":
            text = _get(block, "text")
            if _is_str(text):
                texts.append(text)
                has_text = True
    if has_text:
        out.append({"role": "user", "content": "".join(texts)})
    return out


def convert_messages_openai(
    system_prompt: str | None, messages: Any
) -> list[dict[str, Any]]:
    """Turn block-structured history into OpenAI chat messages.

    Assistant ``tool_use`` blocks become ``tool_calls``; user ``tool_result``
    blocks become ``role=tool`` messages. Messages with plain string content
    pass through unchanged.
    """
    out: list[dict[str, Any]] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    if not isinstance(messages, list):
        return out

    for msg in messages:
        role = _get(msg, "role")
        content = _get(msg, "content")
        if not _is_str(role):
            continue
        if _is_str(content):
            out.append({"role": role, "content": content})
            continue
        if not isinstance(content, list):
            continue
        if role == "assistant":
            out.append(_convert_assistant(content))
        elif role == "user":
            out.extend(_convert_user(content))
    return out


def select_server_ca_pem(url: str | None) -> str | None:
    """Return a pinned root certificate for known endpoints, else None."""
    if url is None:
        return None
    if "aliyuncs.com" in url:
        return GLOBALSIGN_ROOT_CA_R3_PEM
    return None


def _content_filter_hit(body: str) -> bool:
    try:
        root = json.loads(body)
    except ValueError:
        return False
    error = _get(root, "error")
    if not isinstance(error, dict):
        return False
    code = error.get("code")
    msg = error.get("message")
    code_str = code if _is_str(code) else ""
    msg_str = msg if _is_str(msg) else ""
    return "data_inspection" in code_str or "inappropriate" in msg_str


def _parse_tool_call(tc: Any, position: int) -> ToolCall:
    call = ToolCall()
    call_id = _get(tc, "id")
    if _is_str(call_id):
        call.id = call_id[:_TOOL_ID_MAX]
    index = _get(tc, "index")
    call.index = int(index) if _is_number(index) else position
    func = _get(tc, "function")
    if func is not None:
        name = _get(func, "name")
        if _is_str(name):
            call.name = name[:_TOOL_NAME_MAX]
        args = _get(func, "arguments")
        if _is_str(args):
            call.input = args
    return call


def parse_chat_response(status: int, body: str | bytes | None) -> LlmResponse:
    """Interpret a chat-completions HTTP reply.

    A 400 reply caused by the content filter yields a friendly text reply;
    any other non-200 status or an unparsable body raises :class:`LlmError`.
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    body = body or ""

    if status != 200:
        if status == 400 and body and _content_filter_hit(body):
            return LlmResponse(text=CONTENT_FILTER_MESSAGE)
        _log.error("API error %d: %s", status, body[:_ERROR_SNIPPET])
        raise LlmError(f"API error {status}: {body[:_ERROR_SNIPPET]}")

    try:
        root = json.loads(body)
    except ValueError as exc:
        _log.error(
            "Failed to parse API response JSON (status=%d, len=%d, body=%s)",
            status,
            len(body),
            body[:_ERROR_SNIPPET],
        )
        raise LlmError("failed to parse API response JSON") from exc

    resp = LlmResponse()
    choices = _get(root, "choices")
    choice0 = choices[0] if isinstance(choices, list) and choices else None
    if choice0 is not None:
        finish = _get(choice0, "finish_reason")
        if _is_str(finish):
            resp.tool_use = finish == "tool_calls"

        message = _get(choice0, "message")
        if message is not None:
            content = _get(message, "content")
            if _is_str(content):
                resp.text = content

            tool_calls = _get(message, "tool_calls")
            if isinstance(tool_calls, list):
                for tc in tool_calls[:MAX_TOOL_CALLS]:
                    resp.calls.append(_parse_tool_call(tc, len(resp.calls)))
                if resp.calls:
                    resp.tool_use = True

    _log.info(
        "Response: %d bytes text, %d tool calls, stop=%s",
        len(resp.text or ""),
        resp.call_count,
        "tool_use" if resp.tool_use else "end_turn",
    )
    return resp


def _urllib_transport(
    url: str, headers: dict, body: bytes, cert_pem: str | None, timeout: float
) -> tuple[int, bytes]:
    """POST ``body`` to ``url`` and return the status code and reply body."""
    if cert_pem:
        context = ssl.create_default_context(cadata=cert_pem)
    else:
        context = ssl.create_default_context()
    request = urllib.request.Request(url, data=body, headers=headers, method="POST")
    try:
        with urllib.request.urlopen(request, timeout=timeout, context=context) as reply:
            return reply.status, reply.read()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read()


class OpenAIProvider(LlmProvider):
    """Provider for OpenAI-compatible chat completions (OpenAI, Qwen and the like)."""

    name = "openai"

    def __init__(self, transport: Transport | None = None) -> None:
        super().__init__()
        self.transport: Transport = transport or _urllib_transport

    def init(self, provider_ctx: ProviderContext | None) -> None:
        """Adopt the endpoint, API key and model of ``provider_ctx``."""
        super().init(provider_ctx)

    def build_request_body(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools_json: str | None,
    ) -> dict[str, Any]:
        """Assemble the JSON request body for one chat turn."""
        body: dict[str, Any] = {
            "model": self.context.model,
            "max_tokens": MAX_TOKENS,
            "messages": convert_messages_openai(system_prompt, messages),
        }
        tools = convert_tools_openai(tools_json)
        if tools is not None:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        return body

    def chat_tools(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools_json: str | None,
    ) -> LlmResponse:
        """Send one chat turn with tools and return the parsed reply."""
        if system_prompt is None or messages is None or tools_json is None:
            raise LlmInvalidArgumentError("Invalid arguments to chat_tools")
        if not self.context.is_complete():
            raise LlmInvalidArgumentError("API key, model, and url must be provided")

        post_data = _dumps(self.build_request_body(system_prompt, messages, tools_json))
        payload = post_data.encode("utf-8")
        _log.info(
            "Calling LLM API with tools (model=%s, body=%d bytes)",
            self.context.model,
            len(payload),
        )

        url = self.context.url
        cert_pem = select_server_ca_pem(url)
        if cert_pem:
            _log.info("Using pinned root CA for %s", url)
        headers = {
            "Content-Type": "application/json; charset=utf-8",
            "Authorization": f"Bearer {self.context.api_key}",
        }
        try:
            status, reply = self.transport(url, headers, payload, cert_pem, REQUEST_TIMEOUT_S)
        except OSError as exc:
            _log.error("HTTP request failed: %s", exc)
            raise LlmError(f"HTTP request failed: {exc}") from exc
        return parse_chat_response(status, reply)