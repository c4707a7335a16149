import pytest

from embedclaw.llm import (
    LlmError,
    LlmInvalidArgumentError,
    LlmProvider,
    LlmResponse,
    ProviderContext,
    ToolCall,
)


class EchoProvider(LlmProvider):
    name = "echo"

    def chat_tools(self, system_prompt, messages, tools_json):
        return LlmResponse(text=f"{system_prompt}:{len(messages)}")


def test_response_cleanup_releases_owned_buffers():
    resp = LlmResponse(
        text="hello",
        calls=[ToolCall(input='{"ok":true}')],
        tool_use=True,
    )
    first = resp.calls[0]
    resp.clear()
    assert resp.text is None
    assert first.input is None
    assert resp.call_count == 0
    assert resp.tool_use is False


def test_call_count_tracks_calls():
    resp = LlmResponse(calls=[ToolCall(name="a"), ToolCall(name="b")])
    assert resp.call_count == 2


def test_provider_context_complete_only_with_all_fields():
    ctx = ProviderContext(url="https://example.com", api_key="placeholder", model="test")
    assert ctx.is_complete() is True
    assert ProviderContext(url="https://example.com", api_key="", model="test").is_complete() is False
    assert ProviderContext(url=None, api_key="placeholder", model="test").is_complete() is False
    assert ProviderContext().is_complete() is False


def test_provider_init_rejects_missing_context():
    provider = EchoProvider()
    with pytest.raises(LlmInvalidArgumentError) as info:
        LlmProvider.init(provider, None)
    assert isinstance(info.value, LlmError)
    assert isinstance(info.value, ValueError)


def test_provider_init_copies_context():
    ctx = ProviderContext(url="https://example.com", api_key="placeholder", model="test")
    provider = EchoProvider()
    LlmProvider.init(provider, ctx)
    ctx.model = "changed"
    assert provider.context.model == "test"
    assert provider.context.url == "https://example.com"


def test_provider_base_is_abstract():
    with pytest.raises(TypeError):
        LlmProvider()