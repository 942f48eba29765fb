"""Per-step retry policy for model calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from meeting_analysis.analysis.errors import (
    OutputValidationError,
    StepFailedError,
    TransientCallError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    step_name: str,
    phase: str,
    max_attempts: int = 3,
    validation_retries: int = 1,
    backoff_seconds: float = 2.0,
    max_backoff_seconds: float = 30.0,
    before_attempt: Callable[[], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``fn()`` until it succeeds or its retry budget is spent.

    Transient failures back off exponentially (``backoff_seconds * 2**n``,
    capped at ``max_backoff_seconds``) up to ``max_attempts`` attempts.
    Malformed output is retried immediately ``validation_retries`` times.
    Every other exception propagates unchanged.

    Raises:
        StepFailedError: When either budget is exhausted.
    """
    transient_failures = 0
    validation_failures = 0

    while True:
        if before_attempt is not None:
            before_attempt()
        try:
            return await fn()
        except TransientCallError as exc:
            transient_failures += 1
            if transient_failures >= max_attempts:
                raise StepFailedError(
                    f"{step_name} failed after {transient_failures} attempts: {exc.message}",
                    phase=phase,
                ) from exc
            delay = min(backoff_seconds * 2 ** (transient_failures - 1), max_backoff_seconds)
            logger.warning(
                "%s: transient failure (attempt %d/%d), retrying in %.1fs: %s",
                step_name,
                transient_failures,
                max_attempts,
                delay,
                exc.message,
            )
            await sleep(delay)
        except OutputValidationError as exc:
            validation_failures += 1
            if validation_failures > validation_retries:
                raise StepFailedError(
                    f"{step_name} returned invalid output: {exc.message}", phase=phase
                ) from exc
            logger.warning("%s: invalid output, retrying: %s", step_name, exc.message)
