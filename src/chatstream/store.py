"""The transcript store: the ordered conversation log shown to the user and sent to the API."""

import logging
from typing import Callable, Dict, Iterator, List, Optional

from .errors import IndexOutOfRange
from .models import ASSISTANT_ROLE, USER_ROLE, ChatMessage

logger = logging.getLogger(__name__)

Listener = Callable[["Transcript"], None]


class Transcript:
    """Ordered sequence of chat messages, in conversation order.

    The streaming engine is the only writer. Readers (the layout, the token
    estimator) observe changes through :meth:`subscribe`; every mutating
    method notifies the listeners once it has completed.

    Usage:
        >>> transcript = Transcript()
        >>> transcript.append_user("Hi")
        ChatMessage(role='user', content='Hi')
        >>> transcript.begin_assistant_turn()
        ChatMessage(role='assistant', content='')
        >>> transcript.append_delta("Hel")
        ChatMessage(role='assistant', content='Hel')
        >>> transcript.append_delta("lo").content
        'Hello'
    """

    def __init__(self, messages: Optional[List[ChatMessage]] = None):
        self._messages: List[ChatMessage] = list(messages or [])
        self._listeners: List[Listener] = []

    # --- Reads ---

    @property
    def messages(self) -> List[ChatMessage]:
        """A shallow copy of the messages, safe to iterate while streaming."""
        return list(self._messages)

    @property
    def last(self) -> Optional[ChatMessage]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self.messages)

    def __getitem__(self, index: int) -> ChatMessage:
        self._check_index(index)
        return self._messages[index]

    def to_api_messages(self) -> List[Dict[str, str]]:
        """Return ``{role, content}`` pairs for the chat completion request.

        Empty assistant entries (a cancelled turn, or a reply that carried no
        text) are left out; several providers reject empty assistant content.
        """
        return [
            message.as_api_dict()
            for message in self._messages
            if message.content or message.role != ASSISTANT_ROLE
        ]

    # --- Writes ---

    def append_user(self, text: str) -> ChatMessage:
        """Append a user message. Empty text is accepted; callers validate input."""
        message = ChatMessage(role=USER_ROLE, content=text)
        self._messages.append(message)
        self._notify()
        return message

    def begin_assistant_turn(self) -> ChatMessage:
        """Append the empty assistant placeholder that streaming will fill."""
        message = ChatMessage(role=ASSISTANT_ROLE, content="")
        self._messages.append(message)
        self._notify()
        return message

    def append_delta(self, text: str) -> ChatMessage:
        """Grow the in-progress assistant message by ``text``.

        If the last entry is not an assistant message (the placeholder was
        never appended), a new assistant message is started with ``text`` so
        the first token of a turn is never dropped. This is a fallback; the
        engine always appends the placeholder first.
        """
        last = self.last
        if last is not None and last.role == ASSISTANT_ROLE:
            last.content += text
            message = last
        else:
            logger.debug("No assistant message in progress; starting a new one")
            message = ChatMessage(role=ASSISTANT_ROLE, content=text)
            self._messages.append(message)
        self._notify()
        return message

    def append_error(self, text: str) -> ChatMessage:
        """Record a failed send as a visible assistant entry.

        An empty placeholder is filled in place. If the turn already streamed
        some output, the error goes into a new entry and the partial output is
        kept as it was.
        """
        last = self.last
        if last is not None and last.role == ASSISTANT_ROLE and not last.content:
            last.content = text
            message = last
        else:
            message = ChatMessage(role=ASSISTANT_ROLE, content=text)
            self._messages.append(message)
        self._notify()
        return message

    def remove_at(self, index: int) -> ChatMessage:
        """Remove exactly one entry; later entries shift down by one."""
        self._check_index(index)
        message = self._messages.pop(index)
        self._notify()
        return message

    def truncate_at(self, index: int) -> List[ChatMessage]:
        """Drop the entry at ``index`` and everything after it."""
        self._check_index(index)
        removed = self._messages[index:]
        del self._messages[index:]
        self._notify()
        return removed

    def reset(self) -> None:
        """Clear the transcript for a new conversation."""
        self._messages.clear()
        self._notify()

    # --- Observation ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called after each mutation. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or not 0 <= index < len(self._messages):
            raise IndexOutOfRange(
                f"Transcript index {index!r} is out of range "
                f"(transcript has {len(self._messages)} messages)"
            )
