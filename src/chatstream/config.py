"""Configuration for Chatstream."""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-3.5-turbo"
PLACEHOLDER_API_KEY = "placeholder-key"


class Settings(BaseModel):
    """
    Runtime configuration for the chat client.

    Attributes:
        api_key: OpenRouter API key. Without one, the simulated transport is used.
        base_url: Root URL of the OpenAI-compatible API (without trailing slash).
        default_model: Model id selected when the application starts.
        request_timeout: Timeout in seconds for connecting and sending a request.
        stream_timeout: Longest wait in seconds for the next chunk of a streamed
            reply. ``None`` waits indefinitely.
        simulated_delay: Seconds between chunks of the simulated transport.
        tokenizer_encoding: ``tiktoken`` encoding used for the token estimate.

    Usage:
        >>> settings = Settings.from_env({"CHATSTREAM_STREAM_TIMEOUT": "45"})
        >>> settings.stream_timeout
        45.0
    """

    api_key: Optional[str] = None
    base_url: str = OPENROUTER_BASE_URL
    default_model: str = DEFAULT_MODEL
    request_timeout: float = Field(default=30.0, gt=0)
    stream_timeout: Optional[float] = Field(default=None, gt=0)
    simulated_delay: float = Field(default=0.1, ge=0)
    tokenizer_encoding: str = "cl100k_base"

    @property
    def has_live_credentials(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_API_KEY

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build :class:`Settings` from environment variables.

        Supported variables:
            - OPENROUTER_API_KEY: API key for OpenRouter.
            - CHATSTREAM_BASE_URL: API root (default: https://openrouter.ai/api/v1).
            - CHATSTREAM_MODEL: Initially selected model (default: openai/gpt-3.5-turbo).
            - CHATSTREAM_REQUEST_TIMEOUT: Request timeout in seconds (default: 30).
            - CHATSTREAM_STREAM_TIMEOUT: Per-chunk stream timeout in seconds (default: none).
            - CHATSTREAM_SIMULATED_DELAY: Delay between simulated chunks (default: 0.1).
            - CHATSTREAM_TOKENIZER_ENCODING: tiktoken encoding (default: cl100k_base).

        Raises:
            pydantic.ValidationError: If a numeric variable is malformed or out of range.
        """
        env = os.environ if environ is None else environ
        values = {
            "api_key": env.get("OPENROUTER_API_KEY") or None,
            "base_url": (env.get("CHATSTREAM_BASE_URL") or OPENROUTER_BASE_URL).rstrip("/"),
            "default_model": env.get("CHATSTREAM_MODEL") or DEFAULT_MODEL,
            "tokenizer_encoding": env.get("CHATSTREAM_TOKENIZER_ENCODING") or "cl100k_base",
        }
        optional = {
            "request_timeout": "CHATSTREAM_REQUEST_TIMEOUT",
            "stream_timeout": "CHATSTREAM_STREAM_TIMEOUT",
            "simulated_delay": "CHATSTREAM_SIMULATED_DELAY",
        }
        for field, name in optional.items():
            raw = env.get(name)
            if raw:
                values[field] = raw
        return cls(**values)
