"""Per-run execution context: concurrency bound, timeouts, cancellation, counts."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from meeting_analysis.analysis.client import CallStep, ModelClient
from meeting_analysis.analysis.errors import AnalysisCancelledError, TransientCallError
from meeting_analysis.analysis.progress import PHASE_EVALUATION, ProgressReporter
from meeting_analysis.analysis.retry import call_with_retry
from meeting_analysis.config import Settings

logger = logging.getLogger(__name__)


class RunContext:
    """Everything one analysis run owns; nothing here is shared across runs.

    ``call`` is the only place a run suspends on network I/O. It enforces the
    concurrency bound, the per-attempt timeout and the retry policy, and
    discards a result that arrives after cancellation was requested. A slot of
    the bound is held only while an attempt is in flight, never during backoff.
    """

    def __init__(
        self,
        model: ModelClient,
        settings: Settings,
        reporter: ProgressReporter,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.model = model
        self.settings = settings
        self.reporter = reporter
        self.cancel_event = cancel_event
        self.semaphore = asyncio.Semaphore(settings.max_concurrent_calls)
        self.call_count = 0
        self.evaluation_call_count = 0

    def check_cancelled(self, phase: str | None = None) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise AnalysisCancelledError(phase=phase)

    async def _attempt(self, step: CallStep[Any]) -> Any:
        async with self.semaphore:
            self.check_cancelled(step.phase)
            try:
                async with asyncio.timeout(self.settings.call_timeout_seconds):
                    return await self.model.invoke(step)
            except TimeoutError as exc:
                raise TransientCallError(
                    f"{step.name} timed out after {self.settings.call_timeout_seconds:g}s",
                    phase=step.phase,
                ) from exc

    async def call(self, step: CallStep[Any], message: str | None = None) -> Any:
        self.check_cancelled(step.phase)
        self.reporter.step(step.phase, message or step.name)
        logger.info("Calling %s (phase: %s)", step.name, step.phase)
        result = await call_with_retry(
            lambda: self._attempt(step),
            step_name=step.name,
            phase=step.phase,
            max_attempts=self.settings.call_max_attempts,
            validation_retries=self.settings.call_validation_retries,
            backoff_seconds=self.settings.call_backoff_seconds,
            max_backoff_seconds=self.settings.call_max_backoff_seconds,
            before_attempt=lambda: self.check_cancelled(step.phase),
        )
        self.check_cancelled(step.phase)
        if step.phase == PHASE_EVALUATION:
            self.evaluation_call_count += 1
        else:
            self.call_count += 1
        return result
