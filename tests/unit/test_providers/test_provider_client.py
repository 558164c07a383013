"""Wire-level tests for ProviderClient using httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from conftest import TEST_KEYS, delta, sse
from notegen.cancellation import CancellationToken
from notegen.errors import (
    CredentialMissingError,
    ErrorCategory,
    GenerationTimeoutError,
    ParseFailureExceededError,
    ProviderHTTPError,
    TransportError,
    UnsupportedModelError,
)
from notegen.providers.types import GenerationPhase, GenerationRequest, StreamEventKind
from notegen.services.key_store import StaticKeyStore
from notegen.services.markdown_renderer import render_complete, render_stream


def make_request(recorder=None, **kwargs):
    kwargs.setdefault("note_id", "note-1")
    kwargs.setdefault("prompt", "Say hello")
    if recorder is not None:
        kwargs.update(recorder.callbacks())
    return GenerationRequest(**kwargs)


class TestRoundTrip:
    """Happy-path streaming."""

    @pytest.mark.asyncio
    async def test_two_chunks_then_done(self, mock_http, registry_factory, recorder):
        http = mock_http(lambda request: httpx.Response(200, content=sse(delta("Hello "), delta("world"))))
        client = await registry_factory(http).load_provider("openai")

        result = await client.generate_content(make_request(recorder))

        assert [p[0] for p in recorder.partials] == [render_stream("Hello "), render_stream("Hello world")]
        assert len(recorder.completes) == 1
        assert recorder.errors == []
        rendered, completed = recorder.completes[0]
        assert rendered == render_complete("Hello world")
        assert completed is result
        assert result.phase == GenerationPhase.COMPLETED
        assert result.raw_markdown == "Hello world"
        assert result.provider_id == "openai"
        assert result.model == "gpt-4"

    @pytest.mark.asyncio
    async def test_request_wire_format(self, mock_http, registry_factory):
        http = mock_http(lambda request: httpx.Response(200, content=sse(delta("ok"))))
        client = await registry_factory(http).load_provider("openai")

        await client.generate_content(make_request(model="gpt-4o"))

        sent = http.requests[0]
        assert str(sent.url) == "https://api.openai.com/v1/chat/completions"
        assert sent.headers["authorization"] == f"Bearer {TEST_KEYS['openai']}"
        assert json.loads(sent.content) == {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "Say hello"}],
            "stream": True,
        }

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self, mock_http, registry_factory):
        http = mock_http(lambda request: httpx.Response(200, content=sse(delta("a"), delta("b"))))
        client = await registry_factory(http).load_provider("openai")
        seen = []

        async def on_partial(rendered, metadata):
            await asyncio.sleep(0)
            seen.append(metadata.raw_length)

        async def on_complete(rendered, result):
            seen.append("done")

        await client.generate_content(make_request(on_partial=on_partial, on_complete=on_complete))

        assert seen == [1, 2, "done"]

    @pytest.mark.asyncio
    async def test_network_fragmentation_and_multibyte_split(self, mock_http, registry_factory):
        body = sse(delta("héllo "), delta("世界"))
        cut = body.index("世".encode("utf-8")) + 1

        async def fragments():
            for piece in (body[:5], body[5:cut], body[cut:]):
                yield piece

        http = mock_http(lambda request: httpx.Response(200, content=fragments()))
        client = await registry_factory(http).load_provider("openai")

        result = await client.generate_content(make_request())

        assert result.raw_markdown == "héllo 世界"

    @pytest.mark.asyncio
    async def test_single_json_response(self, mock_http, registry_factory):
        payload = {"choices": [{"message": {"role": "assistant", "content": "Whole answer"}}]}
        http = mock_http(lambda request: httpx.Response(200, json=payload))
        client = await registry_factory(http).load_provider("openai")

        result = await client.generate_content(make_request(stream=False))

        assert result.raw_markdown == "Whole answer"

    @pytest.mark.asyncio
    async def test_stream_content_event_sequence(self, mock_http, registry_factory):
        http = mock_http(lambda request: httpx.Response(200, content=sse(delta("x"), delta("y"))))
        client = await registry_factory(http).load_provider("openai")

        kinds = [event.kind async for event in client.stream_content(make_request())]

        assert kinds == [StreamEventKind.PARTIAL, StreamEventKind.PARTIAL, StreamEventKind.COMPLETE]


class TestReasoning:

    @pytest.mark.asyncio
    async def test_deepseek_reasoning_is_one_step(self, mock_http, registry_factory, recorder):
        body = sse(
            delta(reasoning_content="First, "),
            delta(reasoning_content="consider the sum."),
            delta("The answer is 4."),
        )
        http = mock_http(lambda request: httpx.Response(200, content=body))
        client = await registry_factory(http).load_provider("deepseek")

        result = await client.generate_content(make_request(recorder, model="deepseek-reasoner"))

        assert result.thinking_chain.total_steps == 1
        assert result.thinking_chain.steps[0].content == "First, consider the sum."
        assert result.raw_markdown == "The answer is 4."
        assert recorder.partials[0][1].phase == GenerationPhase.THINKING
        assert all(len(p[1].thinking_chain.steps) == 1 for p in recorder.partials)

    @pytest.mark.asyncio
    async def test_alibaba_cumulative_stream(self, mock_http, registry_factory):
        events = [
            {"output": {"text": "Hel", "finish_reason": "null"}},
            {"output": {"text": "Hello", "finish_reason": "null"}},
            {"output": {"text": "Hello there", "finish_reason": "stop"}},
        ]
        body = "".join(f"id:{i}\ndata:{json.dumps(e)}\n\n" for i, e in enumerate(events)).encode()
        http = mock_http(lambda request: httpx.Response(200, content=body))
        client = await registry_factory(http).load_provider("alibaba")

        result = await client.generate_content(make_request())

        assert result.raw_markdown == "Hello there"
        sent = http.requests[0]
        assert sent.headers["x-dashscope-sse"] == "enable"
        assert json.loads(sent.content)["input"]["messages"][0]["content"] == "Say hello"

    @pytest.mark.asyncio
    async def test_anthropic_headers_on_wire(self, mock_http, registry_factory):
        body = (
            'event: content_block_delta\n'
            'data: {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}}\n\n'
            'event: message_stop\ndata: {"type": "message_stop"}\n\n'
        ).encode()
        http = mock_http(lambda request: httpx.Response(200, content=body))
        client = await registry_factory(http).load_provider("anthropic")

        result = await client.generate_content(make_request())

        sent = http.requests[0]
        assert sent.headers["x-api-key"] == TEST_KEYS["anthropic"]
        assert sent.headers["anthropic-version"] == "2023-06-01"
        assert "authorization" not in sent.headers
        assert result.raw_markdown == "Hi"


class TestErrors:

    @pytest.mark.asyncio
    async def test_parse_failures_exceeded(self, mock_http, registry_factory, recorder):
        body = b"".join(b"data: {broken %d\n\n" % i for i in range(4))
        http = mock_http(lambda request: httpx.Response(200, content=body))
        client = await registry_factory(http).load_provider("openai")

        with pytest.raises(ParseFailureExceededError):
            await client.generate_content(make_request(recorder))

        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], ParseFailureExceededError)
        assert recorder.errors[0].category == ErrorCategory.PARSE
        assert recorder.errors[0].prompt_excerpt == "Say hello"
        assert recorder.completes == []

    @pytest.mark.asyncio
    async def test_http_error_is_scrubbed(self, mock_http, registry_factory, recorder):
        key = TEST_KEYS["openai"]
        http = mock_http(lambda request: httpx.Response(401, text=f"invalid key {key}"))
        client = await registry_factory(http).load_provider("openai")

        with pytest.raises(ProviderHTTPError) as exc_info:
            await client.generate_content(make_request(recorder))

        error = exc_info.value
        assert error.status_code == 401
        assert key not in str(error)
        assert key not in error.body
        assert error.retryable is False
        assert recorder.partials == []
        assert recorder.errors == [error]

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self, mock_http, registry_factory):
        http = mock_http(lambda request: httpx.Response(429, text="slow down"))
        client = await registry_factory(http).load_provider("openai")

        with pytest.raises(ProviderHTTPError) as exc_info:
            await client.generate_content(make_request())

        assert exc_info.value.retryable is True
        assert exc_info.value.category == ErrorCategory.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_missing_credential_makes_no_request(self, mock_http, registry_factory, recorder):
        http = mock_http(lambda request: httpx.Response(200, content=sse(delta("x"))))
        registry = registry_factory(http, credentials=StaticKeyStore({}))
        client = await registry.load_provider("openai")

        with pytest.raises(CredentialMissingError):
            await client.generate_content(make_request(recorder))

        assert http.requests == []
        assert len(recorder.errors) == 1

    @pytest.mark.asyncio
    async def test_strict_provider_rejects_unknown_model(self, mock_http, registry_factory):
        http = mock_http(lambda request: httpx.Response(200, content=sse(delta("x"))))
        client = await registry_factory(http).load_provider("deepseek")

        with pytest.raises(UnsupportedModelError):
            await client.generate_content(make_request(model="gpt-4"))

        assert http.requests == []

    @pytest.mark.asyncio
    async def test_lenient_provider_passes_model_through(self, mock_http, registry_factory):
        http = mock_http(lambda request: httpx.Response(200, content=sse(delta("x"))))
        client = await registry_factory(http).load_provider("openai")

        result = await client.generate_content(make_request(model="gpt-4.1-mini"))

        assert result.model == "gpt-4.1-mini"

    @pytest.mark.asyncio
    async def test_timeout_fires_on_error(self, mock_http, registry_factory, recorder):
        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200, content=sse(delta("late")))

        http = mock_http(slow)
        client = await registry_factory(http, timeout=0.05).load_provider("openai")

        with pytest.raises(GenerationTimeoutError) as exc_info:
            await client.generate_content(make_request(recorder))

        assert exc_info.value.retryable is True
        assert len(recorder.errors) == 1
        assert recorder.completes == []

    @pytest.mark.asyncio
    async def test_transport_error(self, mock_http, registry_factory, recorder):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = await registry_factory(mock_http(refuse)).load_provider("openai")

        with pytest.raises(TransportError) as exc_info:
            await client.generate_content(make_request(recorder))

        assert exc_info.value.category == ErrorCategory.NETWORK
        assert len(recorder.errors) == 1


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_from_partial_callback(self, mock_http, registry_factory, recorder):
        http = mock_http(lambda request: httpx.Response(200, content=sse(delta("a"), delta("b"), delta("c"))))
        client = await registry_factory(http).load_provider("openai")
        token = CancellationToken()

        def on_partial(rendered, metadata):
            recorder.partials.append((rendered, metadata))
            token.cancel()

        request = make_request(on_partial=on_partial, on_complete=recorder.on_complete, on_error=recorder.on_error)
        result = await client.generate_content(request, token)

        assert result is None
        assert len(recorder.partials) == 1
        assert recorder.completes == []
        assert recorder.errors == []

    @pytest.mark.asyncio
    async def test_cancel_while_waiting_for_data(self, mock_http, registry_factory, recorder):
        async def stalled():
            yield sse(delta("first"), done=False)
            await asyncio.sleep(10)
            yield sse(delta("never"))

        http = mock_http(lambda request: httpx.Response(200, content=stalled()))
        client = await registry_factory(http).load_provider("openai")
        token = CancellationToken()

        task = asyncio.create_task(client.generate_content(make_request(recorder), token))
        await asyncio.sleep(0.05)
        token.cancel()
        result = await asyncio.wait_for(task, timeout=2)

        assert result is None
        assert len(recorder.partials) == 1
        assert recorder.completes == []
        assert recorder.errors == []

    @pytest.mark.asyncio
    async def test_pre_cancelled_token_sends_nothing(self, mock_http, registry_factory, recorder):
        http = mock_http(lambda request: httpx.Response(200, content=sse(delta("x"))))
        client = await registry_factory(http).load_provider("openai")
        token = CancellationToken()
        token.cancel()

        assert await client.generate_content(make_request(recorder), token) is None
        assert http.requests == []
        assert recorder.partials == recorder.completes == recorder.errors == []

    @pytest.mark.asyncio
    async def test_cancel_suppresses_later_parse_failure(self, mock_http, registry_factory, recorder):
        body = sse(delta("good"), done=False) + b"".join(b"data: {bad %d\n\n" % i for i in range(4))
        http = mock_http(lambda request: httpx.Response(200, content=body))
        client = await registry_factory(http).load_provider("openai")
        token = CancellationToken()

        def on_partial(rendered, metadata):
            recorder.partials.append((rendered, metadata))
            token.cancel()

        request = make_request(on_partial=on_partial, on_complete=recorder.on_complete, on_error=recorder.on_error)
        result = await client.generate_content(request, token)

        assert result is None
        assert len(recorder.partials) == 1
        assert recorder.completes == []
        assert recorder.errors == []

    @pytest.mark.asyncio
    async def test_stream_content_stops_after_cancel(self, mock_http, registry_factory):
        body = sse(delta("one"), delta("two"), delta("three"))
        http = mock_http(lambda request: httpx.Response(200, content=body))
        client = await registry_factory(http).load_provider("openai")
        token = CancellationToken()

        events = []
        async for event in client.stream_content(make_request(), token):
            events.append(event)
            token.cancel()

        assert [event.kind for event in events] == [StreamEventKind.PARTIAL]
        assert events[0].metadata.raw_length == len("one")
