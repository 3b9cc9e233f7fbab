"""Concrete implementations for chat completion transports."""

import asyncio
import json
import logging
import warnings
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from .config import OPENROUTER_BASE_URL, Settings
from .errors import TransportError
from .models import DONE_SENTINEL, USER_ROLE
from .sse import encode_event

logger = logging.getLogger(__name__)


class ByteStream:
    """An async iterator over response body chunks that owns its cleanup.

    Parameters
    ----------
    chunks : AsyncIterator[bytes]
        The body, as it arrives.
    close : callable, optional
        Coroutine function releasing the underlying connection.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        close: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self._chunks = chunks
        self._close = close
        self.closed = False

    def __aiter__(self) -> "ByteStream":
        return self

    async def __anext__(self) -> bytes:
        return await self._chunks.__anext__()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._close is not None:
            await self._close()
        elif hasattr(self._chunks, "aclose"):
            await self._chunks.aclose()

    @classmethod
    def from_chunks(cls, chunks: Sequence[bytes]) -> "ByteStream":
        """Builds a stream over a fixed list of chunks."""

        async def generate():
            for chunk in chunks:
                yield chunk

        return cls(generate())


class LLM(ABC):
    """Abstract Base Class for all chat completion transports."""

    @abstractmethod
    async def send_chat(
        self,
        messages: List[Dict[str, str]],
        model: str,
        files: Optional[Sequence[Any]] = None,
    ) -> ByteStream:
        """Opens a streamed chat completion.

        Parameters
        ----------
        messages : List[Dict[str, str]]
            Ordered ``{role, content}`` pairs derived from the transcript.
        model : str
            The model id to generate with.
        files : Sequence, optional
            Attachments. Accepted for interface compatibility but not sent.

        Returns
        -------
        ByteStream
            The server-sent event body, readable chunk by chunk.

        Raises
        ------
        TransportError
            If the request cannot be sent or is rejected.
        """
        pass


class OpenRouter(LLM):
    """Streams chat completions from OpenRouter or any OpenAI-compatible endpoint.

    Usage:
        >>> llm = OpenRouter(api_key="sk-or-...")
        >>> stream = await llm.send_chat([{"role": "user", "content": "Hi"}], "openai/gpt-4")
        >>> async for chunk in stream:
        ...     print(chunk)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = OPENROUTER_BASE_URL,
        request_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    async def send_chat(self, messages, model, files=None) -> ByteStream:
        if files:
            logger.warning("File uploads are not supported; sending text content only")

        payload = {
            "model": model,
            "messages": [
                {"role": message["role"], "content": message["content"]}
                for message in messages
            ],
            "stream": True,
        }
        # Stalled reads are bounded by the engine's stream timeout, not here.
        client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.request_timeout, read=None),
            transport=self._transport,
        )
        request = client.build_request(
            "POST", "/chat/completions", json=payload, headers=self._headers()
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise TransportError(f"Failed to reach {self.base_url}: {exc}") from exc

        async def close() -> None:
            await response.aclose()
            await client.aclose()

        if response.is_error:
            body = await response.aread()
            await close()
            detail = body.decode("utf-8", errors="replace") or response.reason_phrase
            raise TransportError(
                f"Failed to send message: {detail}", status_code=response.status_code
            )

        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type:
            return ByteStream(response.aiter_bytes(), close=close)

        body = await response.aread()
        await close()
        return ByteStream.from_chunks(_completion_as_events(body))


def _completion_as_events(body: bytes) -> List[bytes]:
    """Re-frames a non-streaming completion as a one-delta event stream."""
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise TransportError("Chat response was neither an event stream nor JSON") from exc

    content = ""
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            content = message["content"]

    events = []
    if content:
        events.append(encode_event({"choices": [{"delta": {"content": content}}]}))
    events.append(encode_event(DONE_SENTINEL))
    return events


class Simulated(LLM):
    """Synthesizes a deterministic event stream so the pipeline runs without credentials.

    The reply echoes the last user message inside a canned sentence and is
    emitted one word per event, ``delay`` seconds apart, followed by
    ``[DONE]``.
    """

    TEMPLATE = (
        'This is a simulated response without an API key. You said: "{message}". '
        "To use real AI capabilities, please add your OpenRouter API key to the environment."
    )

    def __init__(self, delay: float = 0.1):
        self.delay = delay

    def build_response(self, messages: List[Dict[str, str]]) -> str:
        user_messages = [m["content"] for m in messages if m["role"] == USER_ROLE]
        last_user_message = user_messages[-1] if user_messages else ""
        return self.TEMPLATE.format(message=last_user_message)

    async def send_chat(self, messages, model, files=None) -> ByteStream:
        if files:
            logger.warning("File uploads are not supported; sending text content only")
        words = self.build_response(messages).split(" ")

        async def generate():
            for word in words:
                await asyncio.sleep(self.delay)
                yield encode_event({"choices": [{"delta": {"content": word + " "}}]})
            await asyncio.sleep(self.delay)
            yield encode_event(DONE_SENTINEL)

        return ByteStream(generate())


def from_settings(settings: Settings) -> LLM:
    """Returns the live transport when credentials are configured, else the simulated one."""
    if settings.has_live_credentials:
        return OpenRouter(
            api_key=settings.api_key,
            base_url=settings.base_url,
            request_timeout=settings.request_timeout,
        )
    warnings.warn(
        "Chatstream is running with a simulated transport because no OpenRouter API key is set. "
        "Set OPENROUTER_API_KEY to talk to real models.",
        UserWarning,
    )
    return Simulated(delay=settings.simulated_delay)
