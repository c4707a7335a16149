# embedclaw

Building blocks for a small tool-calling chat agent, using only the Python
standard library:

- `embedclaw.llm` – the data types of the language-model layer: `LlmType`,
  `ProviderContext`, `LlmResponse`, `ToolCall`, the abstract `LlmProvider`
  and the errors `LlmError`, `LlmInvalidArgumentError` and
  `LlmInvalidStateError`.
- `embedclaw.openai_provider` – `OpenAIProvider`, which talks to any
  OpenAI-compatible chat-completions endpoint, plus the helpers
  `convert_messages_openai`, `convert_tools_openai`, `parse_chat_response`
  and `select_server_ca_pem`.
- `embedclaw.tools` – tools a model can call:
  - `cron.CronService` – `cron_add`, `cron_list` and `cron_remove`, with
    recurring (`every`) and one-shot (`at`) jobs stored as JSON.
  - `get_time.make_get_time_tool` – `get_current_time`, via SNTP with a
    system clock fallback.
  - `web_search.WebSearch` – `web_search` through the Tavily search API.
  - `base` – the `Tool` record and the `ToolError` family of exceptions.
- `embedclaw.config.Settings` – paths, limits and endpoints with their
  defaults.

## Installing

```
pip install .
```

For the tests:

```
pip install .[test]
pytest
```

## Talking to a model

```python
from embedclaw.llm import ProviderContext
from embedclaw.openai_provider import OpenAIProvider

provider = OpenAIProvider()
provider.init(ProviderContext(
    url="https://llm.example.com/v1/chat/completions",
    api_key="placeholder",
    model="qwen-plus",
))

messages = [{"role": "user", "content": "What time is it?"}]
response = provider.chat_tools("You are a helpful assistant.", messages, "[]")
print(response.text)
for call in response.calls:
    print(call.id, call.name, call.input)
```

`chat_tools` takes the tool catalogue as a JSON array of
`{"name", "description", "input_schema"}` objects and sends them as OpenAI
`function` tools. Conversation history may use plain string content or
content blocks: assistant `tool_use` blocks become `tool_calls`, and user
`tool_result` blocks become `role=tool` messages. At most
`Settings().max_tool_calls` tool calls are kept from a reply.

A missing argument or an incomplete `ProviderContext` raises
`LlmInvalidArgumentError`; a transport failure, a non-200 status or an
unparsable reply raises `LlmError`. A 400 reply caused by the endpoint's
content filter is returned as a normal response with a friendly text instead.
For hosts under `aliyuncs.com` the request trusts a pinned GlobalSign root
certificate.

The HTTP call goes through a transport callable, which you may replace:

```python
def transport(url, headers, body, cert_pem, timeout):
    ...
    return 200, b'{"choices": []}'

provider = OpenAIProvider(transport)
```

## Using the tools

Every tool is a `Tool` with a name, a description, a JSON schema string and a
`run` method that takes the model's JSON arguments and returns text. Failures
raise a `ToolError` subclass (`InvalidArgumentError`, `NotFoundError`,
`InvalidStateError`, `InvalidSizeError`, `ToolFailedError`) whose message is
the text to hand back to the model.

### Cron jobs

```python
from embedclaw.tools.cron import CronService

def deliver(channel, chat_id, message):
    print(channel, chat_id, message)

service = CronService("cron.json", inbound=deliver)
print(service.add_execute(
    '{"name": "heartbeat", "schedule_type": "every", "interval_s": 60, "message": "ping"}'
))
print(service.list_execute())
service.start()   # checks for due jobs every 60 seconds in a daemon thread
...
service.stop()
```

Jobs without a channel go to `system:cron`. Pass `requires_chat_id` and
`validate_chat_id` callables to enforce destinations for channels that need
one. `persist=False` keeps the job table in memory only; `clock` replaces
`time.time`. `process_due_jobs()` fires due jobs immediately and returns how
many fired.

### Current time

```python
from embedclaw.tools.get_time import format_epoch, make_get_time_tool

tool = make_get_time_tool(server="ntp.aliyun.com", timezone="UTC-8")
print(tool.run(None))
print(format_epoch(1760000000, "UTC-8"))
```

Time zones are fixed-offset POSIX strings: `UTC-8` is eight hours ahead of
UTC. `format_epoch` returns `None` for times before 2020, which are taken as
an unset clock.

### Web search

```python
from embedclaw.tools.web_search import WebSearch

search = WebSearch(api_key="placeholder")
print(search.tool().run('{"query": "today news"}'))
```

Without an API key the tool raises `InvalidStateError`. Results are rendered
as a numbered list of at most five entries.

## What this package does not do

- It has no agent loop, session history, memory, skills or chat channels; it
  only supplies the provider and the tools such a loop would use.
- It has no front end that picks a provider from an `LlmType`; create
  `OpenAIProvider` directly. There is no provider for `LlmType.ANTHROPIC`.
- It has no file tools (reading, writing, editing or listing files).
- It provides no command-line program or server.