"""Explicit application state handed to the streaming engine."""

from typing import Optional

from . import llm as llm_module
from .config import Settings
from .store import Transcript
from .tokenizer import Tiktoken, Tokenizer


class Context:
    """
    Everything the engine reads or writes, in one object.

    The engine never reaches for globals or UI state: the transport, the
    tokenizer, the transcript and the selected model all live here, so the
    engine can be driven headlessly in tests.

    Usage:
        >>> from chatstream.llm import Simulated
        >>> context = Context(llm=Simulated(delay=0))
        >>> context.model
        'openai/gpt-3.5-turbo'
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm: Optional[llm_module.LLM] = None,
        tokenizer: Optional[Tokenizer] = None,
        transcript: Optional[Transcript] = None,
        model: Optional[str] = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings.from_env()
        self.llm = llm if llm is not None else llm_module.from_settings(self.settings)
        self.tokenizer = (
            tokenizer
            if tokenizer is not None
            else Tiktoken(self.settings.tokenizer_encoding)
        )
        self.transcript = transcript if transcript is not None else Transcript()
        self.model = model or self.settings.default_model
