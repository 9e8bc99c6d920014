"""Best-effort background dispatch of post-commit side effects.

Audit appends and notification writes run after a transition has committed.
They are scheduled as asyncio tasks so the caller never waits on them, retried
with tenacity exponential backoff, and finally logged and dropped. A failed
side effect never undoes or fails the transition that caused it.

Tasks inherit the caller's contextvars, so log entries keep the request_id
and actor bound by the API layer.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_exponential

from arbitrated_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = get_logger(__name__)


class SideEffectDispatcher:
    """Runs side-effect coroutines in the background with bounded retries."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        backoff_max_seconds: float = 5.0,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        self._backoff_max_seconds = backoff_max_seconds
        self._tasks: set[asyncio.Task[None]] = set()
        self._failed = 0

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    @property
    def failed_count(self) -> int:
        """Side effects that exhausted their retries since startup."""
        return self._failed

    def submit(
        self,
        name: str,
        operation: Callable[[], Awaitable[Any]],
        **context: Any,
    ) -> asyncio.Task[None]:
        """Schedule ``operation`` and return immediately.

        Args:
            name: Dotted label for logs, e.g. "audit.record".
            operation: Zero-argument coroutine factory, re-invoked per attempt.
            **context: Extra fields attached to the log entries.
        """
        task = asyncio.get_running_loop().create_task(self._run(name, operation, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every scheduled side effect has finished or given up."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _run(
        self,
        name: str,
        operation: Callable[[], Awaitable[Any]],
        context: dict[str, Any],
    ) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._backoff_seconds,
                max=self._backoff_max_seconds,
            ),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await operation()
        except RetryError as err:
            self._failed += 1
            cause = err.last_attempt.exception()
            logger.error(
                "side_effect.failed",
                side_effect=name,
                attempts=self._max_attempts,
                error=str(cause),
                error_type=type(cause).__name__,
                **context,
            )
            return
        logger.debug("side_effect.done", side_effect=name, **context)
