"""
Capture Supervisor
==================

Owns the background capture workers.

Each capture runs in its own named task keyed by session id. The capture
itself is bounded by a deadline; when it expires, in-flight provider calls
are cancelled and the attempt becomes a ``timeout`` failure. The
completion callback then always runs, so the session is closed and the
device released whatever happened.

Usage:
    supervisor = CaptureSupervisor(deadline_seconds=120)
    supervisor.submit(session.id, lambda: orchestrator.capture(ref, tracking), finalize)
    supervisor.running()        # ["<session id>"]
    await supervisor.cancel(session.id)
"""

import asyncio
from typing import Awaitable, Callable, Optional

from phonepool.capture.orchestrator import CaptureErrorCode, CaptureResult
from phonepool.utils.logger import LogContext, get_logger

logger = get_logger(__name__)

CaptureFactory = Callable[[], Awaitable[CaptureResult]]
CompletionCallback = Callable[[CaptureResult], Awaitable[None]]


class CaptureSupervisor:
    """Runs capture flows as supervised tasks with a deadline."""

    def __init__(self, deadline_seconds: float = 120.0) -> None:
        self.deadline_seconds = deadline_seconds
        self._tasks: dict[str, asyncio.Task] = {}

    def running(self) -> list[str]:
        """Session ids with a capture in flight."""
        return [key for key, task in self._tasks.items() if not task.done()]

    def is_running(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def run_with_deadline(self, capture: CaptureFactory) -> CaptureResult:
        """
        Await a capture under the deadline.

        Returns:
            The capture result, or a ``timeout``/``unexpected`` failure.
        """
        try:
            return await asyncio.wait_for(capture(), timeout=self.deadline_seconds)
        except asyncio.TimeoutError:
            logger.warning("Capture deadline exceeded", deadline_seconds=self.deadline_seconds)
            return CaptureResult.failure(
                CaptureErrorCode.TIMEOUT,
                f"Capture did not finish within {self.deadline_seconds:.0f} seconds",
            )
        except Exception as e:
            logger.exception("Capture raised")
            return CaptureResult.failure(CaptureErrorCode.UNEXPECTED, str(e))

    def submit(
        self,
        key: str,
        capture: CaptureFactory,
        on_complete: CompletionCallback,
    ) -> asyncio.Task:
        """
        Start a supervised capture.

        Args:
            key: Session id the capture belongs to.
            capture: Zero-argument factory producing the capture coroutine.
            on_complete: Awaited with the result once the capture is over.

        Returns:
            The background task.

        Raises:
            RuntimeError: If a capture for ``key`` is already running.
        """
        if self.is_running(key):
            raise RuntimeError(f"Capture already running for {key}")

        task = asyncio.create_task(self._run(key, capture, on_complete), name=f"capture:{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    async def _run(self, key: str, capture: CaptureFactory, on_complete: CompletionCallback) -> None:
        with LogContext(session_id=key):
            cancelled = False
            try:
                result = await self.run_with_deadline(capture)
            except asyncio.CancelledError:
                cancelled = True
                result = CaptureResult.failure(CaptureErrorCode.CANCELLED, "Capture was cancelled")

            try:
                await on_complete(result)
            except Exception:
                logger.exception("Capture completion failed")

            if cancelled:
                raise asyncio.CancelledError()

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def cancel(self, key: str) -> bool:
        """
        Cancel a running capture and wait for its completion callback.

        Returns:
            True if a running capture was cancelled.
        """
        task: Optional[asyncio.Task] = self._tasks.get(key)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Capture cancelled", session_id=key)
        return True

    async def wait(self, key: str) -> None:
        """Wait for a capture to finish (used by tests and shutdown)."""
        task = self._tasks.get(key)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every running capture and wait for them."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Capture supervisor stopped", cancelled=len(tasks))
