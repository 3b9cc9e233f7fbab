"""Tests for the chat completion transports."""

import json
import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from chatstream.config import Settings
from chatstream.errors import TransportError
from chatstream.llm import LLM, ByteStream, OpenRouter, Simulated, from_settings
from chatstream.sse import SSEDecoder

MESSAGES = [{"role": "user", "content": "Hello"}]


async def _read_all(stream: ByteStream) -> bytes:
    body = b""
    async for chunk in stream:
        body += chunk
    await stream.aclose()
    return body


def _decode(body: bytes):
    return [event.data for event in SSEDecoder().feed(body)]


class TestLLMInterface:
    def test_llm_is_abstract(self):
        with pytest.raises(TypeError, match="abstract"):
            LLM()

    def test_subclass_must_implement_send_chat(self):
        class Incomplete(LLM):
            pass

        with pytest.raises(TypeError) as exc_info:
            Incomplete()
        assert "send_chat" in str(exc_info.value)


class TestByteStream:
    @pytest.mark.asyncio
    async def test_from_chunks(self):
        stream = ByteStream.from_chunks([b"a", b"b"])
        assert await _read_all(stream) == b"ab"
        assert stream.closed

    @pytest.mark.asyncio
    async def test_close_callback_runs_once(self):
        calls = []

        async def close():
            calls.append(True)

        stream = ByteStream(ByteStream.from_chunks([b"x"]), close=close)
        await stream.aclose()
        await stream.aclose()
        assert calls == [True]


class TestOpenRouter:
    """Test the HTTP transport against httpx.MockTransport."""

    def _llm(self, handler):
        return OpenRouter(
            api_key="sk-test",
            base_url="https://example.test/api/v1/",
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=b"data: [DONE]\n\n",
            )

        stream = await self._llm(handler).send_chat(
            [{"role": "user", "content": "Hello", "id": "ignored"}], "openai/gpt-4"
        )
        await _read_all(stream)

        assert seen["url"] == "https://example.test/api/v1/chat/completions"
        assert seen["headers"]["authorization"] == "Bearer sk-test"
        assert seen["headers"]["accept"] == "text/event-stream"
        assert seen["body"] == {
            "model": "openai/gpt-4",
            "messages": [{"role": "user", "content": "Hello"}],
            "stream": True,
        }

    @pytest.mark.asyncio
    async def test_streams_body_bytes(self):
        body = (
            b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
            b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
            b"data: [DONE]\n\n"
        )

        def handler(request):
            return httpx.Response(
                200, headers={"content-type": "text/event-stream; charset=utf-8"}, content=body
            )

        stream = await self._llm(handler).send_chat(MESSAGES, "m")
        assert await _read_all(stream) == body

    @pytest.mark.asyncio
    async def test_error_status_raises_with_body(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "No auth credentials found"}})

        with pytest.raises(TransportError) as exc_info:
            await self._llm(handler).send_chat(MESSAGES, "m")

        assert exc_info.value.status_code == 401
        assert "No auth credentials found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_failure_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError) as exc_info:
            await self._llm(handler).send_chat(MESSAGES, "m")

        assert "connection refused" in str(exc_info.value)
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_json_reply_becomes_event_stream(self):
        def handler(request):
            return httpx.Response(
                200, json={"choices": [{"message": {"role": "assistant", "content": "Hi!"}}]}
            )

        stream = await self._llm(handler).send_chat(MESSAGES, "m")
        data = _decode(await _read_all(stream))

        assert json.loads(data[0]) == {"choices": [{"delta": {"content": "Hi!"}}]}
        assert data[-1] == "[DONE]"

    @pytest.mark.asyncio
    async def test_json_reply_without_content(self):
        def handler(request):
            return httpx.Response(200, json={"id": "gen-1"})

        stream = await self._llm(handler).send_chat(MESSAGES, "m")
        assert _decode(await _read_all(stream)) == ["[DONE]"]

    @pytest.mark.asyncio
    async def test_unparseable_reply_raises(self):
        def handler(request):
            return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html>")

        with pytest.raises(TransportError):
            await self._llm(handler).send_chat(MESSAGES, "m")

    @pytest.mark.asyncio
    async def test_files_are_ignored_with_warning(self, caplog):
        def handler(request):
            assert "files" not in json.loads(request.content)
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, content=b"data: [DONE]\n\n"
            )

        with caplog.at_level(logging.WARNING, logger="chatstream.llm"):
            stream = await self._llm(handler).send_chat(MESSAGES, "m", files=["notes.pdf"])
            await _read_all(stream)

        assert "not supported" in caplog.text


class TestSimulated:
    """Test the credential-free transport used as a fixture."""

    @pytest.mark.asyncio
    async def test_echoes_last_user_message(self):
        messages = [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "second"},
        ]
        stream = await Simulated(delay=0).send_chat(messages, "any")
        events = _decode(await _read_all(stream))

        assert events[-1] == "[DONE]"
        text = "".join(json.loads(e)["choices"][0]["delta"]["content"] for e in events[:-1])
        assert text.strip() == Simulated.TEMPLATE.format(message="second")

    @pytest.mark.asyncio
    async def test_one_event_per_word(self):
        stream = await Simulated(delay=0).send_chat(MESSAGES, "any")
        events = _decode(await _read_all(stream))
        words = Simulated.TEMPLATE.format(message="Hello").split(" ")

        assert len(events) == len(words) + 1
        assert json.loads(events[0])["choices"][0]["delta"]["content"] == words[0] + " "

    @pytest.mark.asyncio
    async def test_no_user_message(self):
        stream = await Simulated(delay=0).send_chat([], "any")
        events = _decode(await _read_all(stream))
        text = "".join(json.loads(e)["choices"][0]["delta"]["content"] for e in events[:-1])
        assert 'You said: "".' in text

    def test_deterministic(self):
        simulated = Simulated()
        assert simulated.build_response(MESSAGES) == simulated.build_response(MESSAGES)

    @pytest.mark.asyncio
    async def test_delay_between_chunks(self):
        with patch("chatstream.llm.asyncio.sleep", new_callable=AsyncMock) as sleep:
            stream = await Simulated(delay=0.25).send_chat(MESSAGES, "any")
            events = _decode(await _read_all(stream))

        assert sleep.call_count == len(events)
        sleep.assert_called_with(0.25)


class TestFromSettings:
    def test_live_key_selects_openrouter(self):
        llm = from_settings(Settings(api_key="sk-live", request_timeout=12))
        assert isinstance(llm, OpenRouter)
        assert llm.request_timeout == 12

    @pytest.mark.parametrize("api_key", [None, "", "placeholder-key"])
    def test_missing_key_selects_simulated_with_warning(self, api_key):
        with pytest.warns(UserWarning, match="simulated"):
            llm = from_settings(Settings(api_key=api_key, simulated_delay=0.5))
        assert isinstance(llm, Simulated)
        assert llm.delay == 0.5
