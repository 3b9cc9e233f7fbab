"""Concrete implementations for token counting and the transcript token estimate."""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from .models import ChatMessage

logger = logging.getLogger(__name__)


class Tokenizer(ABC):
    """Interface for counting tokens in a piece of text."""

    @abstractmethod
    def count(self, text: str) -> int:
        """Returns the number of tokens ``text`` encodes to."""
        pass


class Tiktoken(Tokenizer):
    """Counts tokens with a ``tiktoken`` BPE encoding.

    The encoding is loaded on first use, so constructing the tokenizer never
    touches the network or the encoding cache.
    """

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        self._encoding = None

    def count(self, text: str) -> int:
        if self._encoding is None:
            import tiktoken

            self._encoding = tiktoken.get_encoding(self.encoding_name)
        # Special tokens such as "<|endoftext|>" are rejected with a ValueError.
        return len(self._encoding.encode(text))


def estimate_from_length(text: str) -> int:
    """Rough estimate of four characters per token."""
    return round(len(text) / 4)


def estimate_tokens(
    messages: Sequence[ChatMessage], tokenizer: Optional[Tokenizer] = None
) -> int:
    """Estimates the token usage of a transcript.

    All message contents are joined with newlines, in order, and counted with
    ``tokenizer``. If no tokenizer is given or it fails for any reason, the
    estimate falls back to the character length divided by four.

    Parameters
    ----------
    messages : Sequence[ChatMessage]
        The transcript, in conversation order.
    tokenizer : Tokenizer, optional
        Tokenizer used for the exact count.

    Returns
    -------
    int
        The estimated token count. An empty transcript is always 0 and never
        reaches the tokenizer.
    """
    if not messages:
        return 0

    text = "\n".join(message.content for message in messages)
    if tokenizer is None:
        return estimate_from_length(text)

    try:
        return tokenizer.count(text)
    except Exception as exc:
        logger.debug("Could not encode tokens, estimating from length: %s", exc)
        return estimate_from_length(text)
