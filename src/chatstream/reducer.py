"""Folds decoded stream events into the transcript."""

import json
import logging
from typing import Any, Optional

from .models import StreamEvent
from .store import Transcript

logger = logging.getLogger(__name__)


def extract_delta(payload: Any) -> Optional[str]:
    """Returns ``choices[0].delta.content`` if it is a non-empty string, else None.

    Any other payload shape (usage reports, role-only deltas, provider
    specific events) is not an error and simply carries no text.
    """
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class DeltaReducer:
    """Applies the events of one streamed turn to a transcript.

    A single malformed event never aborts the stream: it is logged and
    skipped. Once the ``[DONE]`` sentinel has been seen, every later event is
    ignored.
    """

    def __init__(self, transcript: Transcript):
        self.transcript = transcript
        self.done = False
        self.skipped = 0

    def reduce(self, event: StreamEvent) -> bool:
        """Applies one event. Returns False when the turn is over."""
        if self.done:
            return False
        if event.is_done:
            self.done = True
            return False

        try:
            payload = json.loads(event.data)
        except (ValueError, RecursionError):
            # RecursionError: nesting too deep for the JSON scanner.
            self.skipped += 1
            logger.warning("Skipping non-JSON stream event: %.200r", event.data)
            return True

        text = extract_delta(payload)
        if text:
            self.transcript.append_delta(text)
        return True
