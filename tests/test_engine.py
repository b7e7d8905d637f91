"""Tests for the streaming completion engine."""

import asyncio

import httpx
import pytest

from lumen.llm.cancellation import CancellationToken
from lumen.llm.engine import NOT_IMPLEMENTED, choose_model
from lumen.types import ChatMessage, ProbeResult, ProviderConfig
from tests.mock_backends import (
    SSE_DONE,
    FakeGenAIClient,
    RequestRecorder,
    genai_factory_for,
    make_gateway,
    ndjson_lines,
    refuse_connection,
    sse_event,
    stream_response,
)

MESSAGES = [
    ChatMessage(role="system", content="Be brief."),
    ChatMessage(role="user", content="Hi"),
]


async def collect(gateway, config, messages=MESSAGES, token=None):
    return [f async for f in gateway.stream(config, messages, token)]


def local():
    return ProviderConfig(provider="local", base_url="http://localhost:11434", model_name="llama3")


def openai():
    return ProviderConfig(provider="openai", api_key="sk-test", model_name="gpt-4o")


class TestLocalStreaming:

    @pytest.mark.asyncio
    async def test_ndjson_split_across_reads(self):
        body = b"".join(ndjson_lines("a", "b", "c"))
        parts = [body[:10], body[10:45], body[45:]]
        recorder = RequestRecorder(stream_response(*parts))
        fragments = await collect(make_gateway(recorder), local())
        assert fragments == ["a", "b", "c"]

        request = recorder.last
        assert request.method == "POST"
        assert str(request.url) == "http://127.0.0.1:11434/api/chat"
        assert recorder.last_json() == {
            "model": "llama3",
            "messages": [m.to_wire() for m in MESSAGES],
            "stream": True,
        }

    @pytest.mark.asyncio
    async def test_default_model_when_unset(self):
        recorder = RequestRecorder(stream_response(*ndjson_lines("ok")))
        cfg = ProviderConfig(provider="local", base_url="http://h:11434")
        await collect(make_gateway(recorder), cfg)
        assert recorder.last_json()["model"] == "llama3"

    @pytest.mark.asyncio
    async def test_unreachable_yields_hint(self):
        fragments = await collect(make_gateway(refuse_connection), local())
        assert len(fragments) == 1
        assert fragments[0].startswith("\n[Error: ")
        assert "Is the server running? Is CORS configured?" in fragments[0]

    @pytest.mark.asyncio
    async def test_missing_base_url(self):
        fragments = await collect(make_gateway(refuse_connection), ProviderConfig(provider="local"))
        assert fragments == ["\n[Error: Base URL is required for Ollama provider.]"]

    @pytest.mark.asyncio
    async def test_malformed_base_url(self):
        cfg = ProviderConfig(provider="local", base_url="http://localhost:11434x", model_name="m")
        fragments = await collect(make_gateway(refuse_connection), cfg)
        assert len(fragments) == 1
        assert fragments[0].startswith("\n[Error: Invalid port")


class TestSseStreaming:

    @pytest.mark.asyncio
    async def test_stream_and_request_shape(self):
        recorder = RequestRecorder(stream_response(sse_event("Hel"), sse_event("lo"), SSE_DONE))
        fragments = await collect(make_gateway(recorder), openai())
        assert fragments == ["Hel", "lo"]

        request = recorder.last
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        assert request.headers["accept"] == "text/event-stream"
        assert recorder.last_json()["stream"] is True

    @pytest.mark.asyncio
    async def test_malformed_frame_skipped(self):
        handler = stream_response(sse_event("one"), b"data: {oops\n\n", sse_event("two"), SSE_DONE)
        assert await collect(make_gateway(handler), openai()) == ["one", "two"]

    @pytest.mark.asyncio
    async def test_done_produces_no_error(self):
        handler = stream_response(sse_event("only"), SSE_DONE)
        fragments = await collect(make_gateway(handler), openai())
        assert fragments == ["only"]

    @pytest.mark.asyncio
    async def test_missing_key(self):
        recorder = RequestRecorder(stream_response(SSE_DONE))
        fragments = await collect(make_gateway(recorder), ProviderConfig(provider="groq", api_key=""))
        assert fragments == ["\n[Error: Groq API key is required.]"]
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_http_error_body_message(self):
        handler = lambda request: httpx.Response(
            404, json={"error": {"message": "The model `gpt-5` does not exist"}}
        )
        fragments = await collect(make_gateway(handler), openai())
        assert fragments == ["\n[Error: The model `gpt-5` does not exist]"]

    @pytest.mark.asyncio
    async def test_http_error_falls_back_to_reason(self):
        handler = lambda request: httpx.Response(502, text="<html>bad gateway</html>")
        fragments = await collect(make_gateway(handler), openai())
        assert fragments == ["\n[Error: Bad Gateway]"]

    @pytest.mark.asyncio
    async def test_custom_placeholder_key_sends_no_auth(self):
        recorder = RequestRecorder(stream_response(sse_event("x"), SSE_DONE))
        cfg = ProviderConfig(provider="custom", base_url="https://llm.lan/", api_key="na", model_name="m")
        assert await collect(make_gateway(recorder), cfg) == ["x"]
        assert str(recorder.last.url) == "https://llm.lan/v1/chat/completions"
        assert "authorization" not in recorder.last.headers

    @pytest.mark.asyncio
    async def test_mixed_content_blocked(self):
        recorder = RequestRecorder(stream_response(SSE_DONE))
        cfg = ProviderConfig(provider="custom", base_url="http://10.0.0.2:8000", model_name="m")
        fragments = await collect(make_gateway(recorder, page_secure=True), cfg)
        assert len(fragments) == 1
        assert "Security Error" in fragments[0]
        assert recorder.requests == []


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_after_first_fragment(self):
        handler = stream_response(sse_event("first"), sse_event("second"), hang=True)
        token = CancellationToken()
        received = []
        async for fragment in make_gateway(handler).stream(openai(), MESSAGES, token):
            received.append(fragment)
            token.cancel()
        assert received == ["first"]

    @pytest.mark.asyncio
    async def test_cancel_while_read_pending(self):
        handler = stream_response(b"".join(ndjson_lines("first", done=False)), hang=True)
        token = CancellationToken()
        received = []

        async def consume():
            async for fragment in make_gateway(handler).stream(local(), MESSAGES, token):
                received.append(fragment)
                asyncio.get_running_loop().call_later(0.01, token.cancel)

        await asyncio.wait_for(consume(), timeout=2)
        assert received == ["first"]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        recorder = RequestRecorder(stream_response(sse_event("x"), SSE_DONE))
        token = CancellationToken()
        token.cancel()
        assert await collect(make_gateway(recorder), openai(), token=token) == []

    @pytest.mark.asyncio
    async def test_cancel_after_completion_is_noop(self):
        token = CancellationToken()
        handler = stream_response(sse_event("done"), SSE_DONE)
        assert await collect(make_gateway(handler), openai(), token=token) == ["done"]
        token.cancel()
        token.cancel()
        assert token.cancelled


class TestGeminiStreaming:

    @pytest.mark.asyncio
    async def test_streams_sdk_chunks(self):
        fake = FakeGenAIClient(["Hi ", "", "there"])
        gateway = make_gateway(refuse_connection, genai_factory=genai_factory_for(fake))
        cfg = ProviderConfig(provider="gemini", api_key="AIzaKEY", model_name="gemini-2.5-flash")
        messages = MESSAGES + [
            ChatMessage(role="assistant", content="Hello"),
            ChatMessage(role="system", content="ignored"),
            ChatMessage(role="user", content="Again"),
        ]
        assert await collect(gateway, cfg, messages) == ["Hi ", "there"]

        assert fake.api_key == "AIzaKEY"
        call = fake.models.calls[0]
        assert call["model"] == "gemini-2.5-flash"
        assert call["config"].system_instruction == "Be brief."
        assert [c["role"] for c in call["contents"]] == ["user", "model", "user"]
        assert call["contents"][1]["parts"] == [{"text": "Hello"}]

    @pytest.mark.asyncio
    async def test_no_system_instruction(self):
        fake = FakeGenAIClient(["ok"])
        gateway = make_gateway(refuse_connection, genai_factory=genai_factory_for(fake))
        cfg = ProviderConfig(provider="gemini", api_key="k", model_name="gemini-2.5-flash")
        await collect(gateway, cfg, [ChatMessage(role="user", content="q")])
        assert fake.models.calls[0]["config"] is None

    @pytest.mark.asyncio
    async def test_missing_key(self):
        fake = FakeGenAIClient(["never"])
        gateway = make_gateway(refuse_connection, genai_factory=genai_factory_for(fake))
        fragments = await collect(gateway, ProviderConfig(provider="gemini", api_key=""))
        assert fragments == ["\n[Error: Gemini API key is required.]"]
        assert fake.models.calls == []

    @pytest.mark.asyncio
    async def test_cancel_after_first_fragment(self):
        fake = FakeGenAIClient(["one", "two"], hang=True)
        gateway = make_gateway(refuse_connection, genai_factory=genai_factory_for(fake))
        cfg = ProviderConfig(provider="gemini", api_key="k", model_name="gemini-2.5-flash")
        token = CancellationToken()
        received = []
        async for fragment in gateway.stream(cfg, MESSAGES, token):
            received.append(fragment)
            token.cancel()
        assert received == ["one"]

    @pytest.mark.asyncio
    async def test_sdk_error_becomes_fragment(self):
        def broken_factory(api_key):
            raise RuntimeError("quota exceeded")

        gateway = make_gateway(refuse_connection, genai_factory=broken_factory)
        cfg = ProviderConfig(provider="gemini", api_key="k", model_name="gemini-2.5-flash")
        assert await collect(gateway, cfg) == ["\n[Error: quota exceeded]"]


class TestUnsupported:

    @pytest.mark.asyncio
    async def test_anthropic_not_ready(self):
        recorder = RequestRecorder(stream_response(SSE_DONE))
        cfg = ProviderConfig(provider="anthropic", api_key="sk-ant")
        assert await collect(make_gateway(recorder), cfg) == [NOT_IMPLEMENTED]
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_unknown_provider(self):
        assert await collect(make_gateway(refuse_connection), ProviderConfig(provider="mistral")) == [NOT_IMPLEMENTED]


class TestChooseModel:

    def test_keeps_listed_model(self):
        cfg = local()
        assert choose_model(cfg, ProbeResult(True, "ok", ["mistral", "llama3"])) is cfg

    def test_switches_to_first_listed(self):
        chosen = choose_model(local(), ProbeResult(True, "ok", ["mistral", "phi3"]))
        assert chosen.model_name == "mistral"
        assert chosen.base_url == "http://localhost:11434"

    def test_failed_probe_keeps_config(self):
        cfg = local()
        assert choose_model(cfg, ProbeResult(False, "down")) is cfg

    def test_empty_list_keeps_config(self):
        cfg = local()
        assert choose_model(cfg, ProbeResult(True, "ok", [])) is cfg
