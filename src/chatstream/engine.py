"""The streaming session controller: drives one chat completion into the transcript."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import StreamTimeout
from .llm import ByteStream
from .models import USER_ROLE, SessionState
from .reducer import DeltaReducer
from .sse import SSEDecoder
from .store import Transcript
from .tokenizer import estimate_tokens

logger = logging.getLogger(__name__)

StateListener = Callable[[SessionState], None]


class Session:
    """The mutable state of one outstanding request."""

    def __init__(self, decoder: Optional[SSEDecoder] = None):
        self.state = SessionState.IDLE
        self.decoder = decoder if decoder is not None else SSEDecoder()
        self.reader: Optional[ByteStream] = None
        self.error: Optional[BaseException] = None
        self.cancelled = False
        self.task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.SENDING, SessionState.STREAMING)


class Engine(ABC):
    """Abstract base for conversation engines."""

    def __init__(self, context=None):
        self.context = context

    @abstractmethod
    async def send(
        self, text: str, files: Optional[Sequence[Any]] = None, model: Optional[str] = None
    ):
        """Sends a user message and produces the assistant reply in the transcript."""
        pass


class Streaming(Engine):
    """Streams one assistant reply at a time into the context's transcript.

    State machine: ``idle -> sending -> streaming -> idle``. A transport
    error, a read error or a stalled stream goes through ``failed`` before
    returning to ``idle`` and leaves a visible ``Error: ...`` entry in the
    transcript.

    Starting a new send while a session is active cancels that session
    first. Cancellation interrupts whichever read the session is waiting on;
    the output streamed so far stays in the transcript.

    All calls must come from one event loop; threaded servers submit them
    through :class:`~chatstream.runner.LoopThread`.

    Parameters
    ----------
    context : Context, optional
        The application state. May be bound later by assigning ``context``.
    stream_timeout : float, optional
        Longest wait in seconds for the next chunk. Defaults to the context
        settings; ``None`` waits indefinitely.
    """

    def __init__(self, context=None, stream_timeout: Optional[float] = None):
        self._context = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._stream_timeout = stream_timeout
        self._listeners: List[StateListener] = []
        self.session: Optional[Session] = None
        self.pending_input = ""
        self.token_count = 0
        super().__init__(context)

    # --- Binding ---

    @property
    def context(self):
        return self._context

    @context.setter
    def context(self, context) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._context = context
        if context is not None:
            self._unsubscribe = context.transcript.subscribe(self._on_transcript_change)
            self._recount()

    @property
    def stream_timeout(self) -> Optional[float]:
        if self._stream_timeout is not None:
            return self._stream_timeout
        if self._context is not None:
            return self._context.settings.stream_timeout
        return None

    # --- State ---

    @property
    def state(self) -> SessionState:
        return self.session.state if self.session is not None else SessionState.IDLE

    @property
    def is_streaming(self) -> bool:
        """True while a request is outstanding, from sending until the turn ends."""
        return self.session is not None and self.session.is_active

    def add_listener(self, listener: StateListener) -> None:
        """Registers a callback invoked with every state the engine enters."""
        self._listeners.append(listener)

    def _transition(self, session: Session, state: SessionState) -> None:
        session.state = state
        logger.debug("Session entered %s", state.value)
        if session is self.session:
            for listener in list(self._listeners):
                listener(state)

    # --- Token estimate ---

    def _on_transcript_change(self, transcript: Transcript) -> None:
        self._recount()

    def _recount(self) -> None:
        self.token_count = estimate_tokens(
            self._context.transcript.messages, self._context.tokenizer
        )

    # --- Public operations ---

    async def send(self, text, files=None, model=None) -> Session:
        """Sends ``text`` and streams the reply into the transcript.

        Returns the finished session; its ``error`` is set if the send failed.
        """
        if self.session is not None and self.session.is_active:
            logger.info("A new message supersedes the active session")
            await self.cancel()

        transcript = self.context.transcript
        transcript.append_user(text)
        messages = transcript.to_api_messages()
        transcript.begin_assistant_turn()

        session = Session()
        self.session = session
        self._transition(session, SessionState.SENDING)
        session.task = asyncio.ensure_future(
            self._run(session, messages, model or self.context.model, files)
        )
        try:
            await session.task
        except asyncio.CancelledError:
            if not session.cancelled:
                raise
        return session

    async def cancel(self) -> None:
        """Cancels the active session, if any, and waits until it has shut down."""
        session = self.session
        if session is None or not session.is_active:
            return
        task = session.task
        if task is not None and task.get_loop() is not asyncio.get_running_loop():
            raise RuntimeError(
                "The active session runs on another event loop; "
                "drive every engine call from the same loop"
            )
        session.cancelled = True
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])

    async def new_chat(self) -> None:
        """Cancels any active session and clears the transcript."""
        await self.cancel()
        self.context.transcript.reset()
        self.pending_input = ""

    def edit(self, index: int) -> str:
        """Takes a user message out of the transcript so it can be resubmitted.

        The message text is placed in ``pending_input`` and returned.

        Raises
        ------
        IndexOutOfRange
            If ``index`` is not a transcript position.
        ValueError
            If the entry at ``index`` is not a user message.
        """
        transcript = self.context.transcript
        if transcript[index].role != USER_ROLE:
            raise ValueError(f"Only user messages can be edited (index {index})")
        message = transcript.remove_at(index)
        self.pending_input = message.content
        return message.content

    def select_model(self, model_id: str) -> None:
        self.context.model = model_id
        self._recount()

    # --- Session lifecycle ---

    async def _run(
        self, session: Session, messages: List[Dict[str, str]], model: str, files
    ) -> None:
        try:
            session.reader = await self.context.llm.send_chat(messages, model, files=files)
            self._transition(session, SessionState.STREAMING)
            await self._consume(session)
        except asyncio.CancelledError:
            logger.info("Session cancelled")
            self._transition(session, SessionState.IDLE)
            raise
        except Exception as exc:
            self._fail(session, exc)
        finally:
            if session.reader is not None:
                await self._close_reader(session.reader)

    async def _consume(self, session: Session) -> None:
        reducer = DeltaReducer(self.context.transcript)
        while True:
            try:
                chunk = await self._next_chunk(session.reader)
            except StopAsyncIteration:
                session.decoder.close()
                break
            for event in session.decoder.feed(chunk):
                if not reducer.reduce(event):
                    self._transition(session, SessionState.IDLE)
                    return
        self._transition(session, SessionState.IDLE)

    async def _close_reader(self, reader: ByteStream) -> None:
        try:
            await reader.aclose()
        except Exception as exc:
            logger.warning("Failed to close the response stream: %s", exc)

    async def _next_chunk(self, reader: ByteStream) -> bytes:
        timeout = self.stream_timeout
        if timeout is None:
            return await reader.__anext__()
        try:
            return await asyncio.wait_for(reader.__anext__(), timeout)
        except asyncio.TimeoutError as exc:
            raise StreamTimeout(f"No data received for {timeout:g} seconds") from exc

    def _fail(self, session: Session, exc: Exception) -> None:
        session.error = exc
        self._transition(session, SessionState.FAILED)
        logger.error("Error sending message or processing stream: %s", exc)
        self.context.transcript.append_error(f"Error: {exc}")
        self._transition(session, SessionState.IDLE)
