"""A background event loop shared by every caller of the engine."""

import asyncio
import logging
import threading
from typing import Any, Callable, Coroutine, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LoopThread:
    """Runs one asyncio event loop on a daemon thread.

    Dash serves callbacks from a pool of worker threads. Every engine call is
    submitted here, so sessions, cancellations and transcript writes all
    happen on a single loop and a single thread.

    Usage:
        >>> runner = LoopThread()
        >>> session = runner.run(engine.send("Hi"))
        >>> runner.call(engine.edit, 0)
        'Hi'
        >>> runner.stop()
    """

    def __init__(self, name: str = "chatstream-engine"):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> asyncio.AbstractEventLoop:
        """Starts the loop thread if needed and returns its loop."""
        with self._lock:
            if not self.is_running:
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._serve, args=(self._loop,), daemon=True, name=self.name
                )
                self._thread.start()
                logger.debug("Started event loop thread %s", self.name)
            return self._loop

    def _serve(self, loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            loop.close()

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """Runs ``coro`` on the loop and blocks the calling thread until it finishes.

        Exceptions raised by ``coro`` propagate to the caller.
        """
        loop = self.start()
        if threading.current_thread() is self._thread:
            coro.close()
            raise RuntimeError("LoopThread.run() would block its own event loop")
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        return future.result(timeout)

    def call(self, func: Callable[..., T], *args: Any) -> T:
        """Runs a plain function on the loop thread and returns its result."""

        async def invoke() -> T:
            return func(*args)

        return self.run(invoke())

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stops the loop and waits for its thread to exit."""
        with self._lock:
            if not self.is_running:
                return
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)
            self._thread = None
