"""
Core pytest configuration and fixtures for Chatstream testing.

This module provides shared test fixtures: sample transcripts, deterministic
tokenizers, scripted transports and a headless engine context.
"""

import asyncio
import json
import threading
from typing import List

import pytest
from chatstream.config import Settings
from chatstream.context import Context
from chatstream.engine import Streaming
from chatstream.llm import LLM, ByteStream, Simulated
from chatstream.models import ASSISTANT_ROLE, USER_ROLE, ChatMessage
from chatstream.runner import LoopThread
from chatstream.store import Transcript
from chatstream.tokenizer import Tokenizer

# ===== TEST UTILITIES =====


def delta_frame(content: str) -> bytes:
    """A single SSE frame carrying one content delta."""
    payload = json.dumps({"choices": [{"delta": {"content": content}}]})
    return f"data: {payload}\n\n".encode("utf-8")


DONE_FRAME = b"data: [DONE]\n\n"


class WordTokenizer(Tokenizer):
    """Deterministic tokenizer counting whitespace separated words."""

    def __init__(self):
        self.calls = 0

    def count(self, text: str) -> int:
        self.calls += 1
        return len(text.split())


class FailingTokenizer(Tokenizer):
    """Tokenizer that always fails, to force the length-based fallback."""

    def __init__(self):
        self.calls = 0

    def count(self, text: str) -> int:
        self.calls += 1
        raise ValueError("tokenizer unavailable")


class ScriptedLLM(LLM):
    """Transport replaying fixed chunks and recording every request."""

    def __init__(self, chunks: List[bytes] = None, error: Exception = None, fail_after: int = None):
        self.chunks = list(chunks or [])
        self.error = error
        self.fail_after = fail_after
        self.requests = []
        self.streams = []

    async def send_chat(self, messages, model, files=None):
        self.requests.append({"messages": messages, "model": model, "files": files})
        if self.error is not None and self.fail_after is None:
            raise self.error

        chunks, error, fail_after = self.chunks, self.error, self.fail_after

        async def generate():
            for position, chunk in enumerate(chunks):
                if fail_after is not None and position == fail_after:
                    raise error
                yield chunk
            if fail_after is not None and fail_after >= len(chunks):
                raise error

        stream = ByteStream(generate())
        self.streams.append(stream)
        return stream


class StalledLLM(LLM):
    """Streams ``head``, then stays silent until cancelled.

    ``stalled`` is a thread event, so tests driving the engine through a
    :class:`LoopThread` can wait for it from any thread.
    """

    def __init__(self, head: List[bytes] = None):
        self.head = list(head or [])
        self.stalled = threading.Event()
        self.streams = []

    async def send_chat(self, messages, model, files=None):
        head, stalled = self.head, self.stalled

        async def generate():
            for chunk in head:
                yield chunk
            stalled.set()
            await asyncio.sleep(3600)
            yield b""

        stream = ByteStream(generate())
        self.streams.append(stream)
        return stream


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages() -> List[ChatMessage]:
    """Sample chat messages for testing."""
    return [
        ChatMessage(role=USER_ROLE, content="Hello, how are you?"),
        ChatMessage(role=ASSISTANT_ROLE, content="I'm doing well, thank you!"),
        ChatMessage(role=USER_ROLE, content="Can you explain quantum computing?"),
        ChatMessage(role=ASSISTANT_ROLE, content="Quantum computing uses qubits."),
    ]


@pytest.fixture
def sample_transcript(sample_messages) -> Transcript:
    return Transcript(sample_messages)


@pytest.fixture
def hello_chunks() -> List[bytes]:
    return [delta_frame("Hel"), delta_frame("lo"), DONE_FRAME]


# ===== ENGINE FIXTURES =====


@pytest.fixture
def settings() -> Settings:
    return Settings(simulated_delay=0)


@pytest.fixture
def word_tokenizer() -> WordTokenizer:
    return WordTokenizer()


@pytest.fixture
def make_context(settings, word_tokenizer):
    """Factory building a headless context around a given transport."""

    def factory(llm=None, **kwargs) -> Context:
        return Context(
            settings=kwargs.pop("settings", settings),
            llm=llm if llm is not None else Simulated(delay=0),
            tokenizer=kwargs.pop("tokenizer", word_tokenizer),
            **kwargs,
        )

    return factory


@pytest.fixture
def make_engine(make_context):
    """Factory building a streaming engine bound to a fresh context."""

    def factory(llm=None, **kwargs) -> Streaming:
        stream_timeout = kwargs.pop("stream_timeout", None)
        return Streaming(make_context(llm, **kwargs), stream_timeout=stream_timeout)

    return factory


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow-running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ===== HELPER FIXTURES =====


@pytest.fixture
def frame():
    """Builds one SSE delta frame: ``frame("Hi")``."""
    return delta_frame


@pytest.fixture
def done_frame() -> bytes:
    return DONE_FRAME


@pytest.fixture
def scripted_llm():
    """Factory for transports replaying fixed chunks."""
    return ScriptedLLM


@pytest.fixture
def failing_tokenizer() -> FailingTokenizer:
    return FailingTokenizer()


@pytest.fixture
def stalled_llm():
    """Factory for transports that stall after their first chunks."""
    return StalledLLM


@pytest.fixture
def runner():
    """A background event loop thread, stopped after the test."""
    loop_thread = LoopThread(name="chatstream-test-loop")
    yield loop_thread
    loop_thread.stop(timeout=5)
