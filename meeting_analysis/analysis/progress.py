"""Progress reporting: phase plans and a publish/subscribe channel.

The orchestrator publishes one ``ProgressEvent`` per call step boundary.
Subscribers (callbacks or queues) may attach and detach at any time; a
failing subscriber is logged and never affects the run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from meeting_analysis.pipeline_config import AnalysisStrategy

logger = logging.getLogger(__name__)

PHASE_SECTIONS = "sections"
PHASE_ANALYSIS = "analysis"
PHASE_SYNTHESIS = "synthesis"
PHASE_AGENDA = "agenda"
PHASE_DECISIONS = "decisions"
PHASE_ACTION_ITEMS = "action_items"
PHASE_FINALIZE = "finalize"
PHASE_EVALUATION = "evaluation"
PHASE_COMPLETE = "complete"

EVALUATION_STEPS = 2  # score, then (maybe) revise


@dataclass(frozen=True)
class Phase:
    name: str
    steps: int
    start: int
    end: int


@dataclass(frozen=True)
class ProgressEvent:
    step: int
    total_steps: int
    message: str
    phase: str
    percent: int
    phase_percent: int = 0


def phase_steps(
    strategy: AnalysisStrategy, pipeline_steps: dict[str, int], run_evaluation: bool
) -> list[tuple[str, int]]:
    """Ordered ``(phase, step count)`` pairs for a run."""
    if strategy is AnalysisStrategy.BASIC:
        order = [PHASE_ANALYSIS]
    elif strategy is AnalysisStrategy.HYBRID:
        order = [PHASE_SECTIONS, PHASE_SYNTHESIS]
    else:
        order = [PHASE_SECTIONS, PHASE_AGENDA, PHASE_DECISIONS, PHASE_ACTION_ITEMS, PHASE_FINALIZE]
    steps = [(name, pipeline_steps.get(name, 0)) for name in order]
    if run_evaluation:
        steps.append((PHASE_EVALUATION, EVALUATION_STEPS))
    return steps


def build_phases(steps: list[tuple[str, int]]) -> list[Phase]:
    """Assign each phase an integer percentage range proportional to its steps.

    Ranges are contiguous, start at 0 and end at 100.
    """
    total = sum(count for _, count in steps)
    phases: list[Phase] = []
    done = 0
    for name, count in steps:
        start = done * 100 // total if total else 0
        done += count
        end = done * 100 // total if total else 100
        phases.append(Phase(name=name, steps=count, start=start, end=end))
    return phases


class ProgressChannel:
    """Fan-out of progress events to callbacks and asyncio queues."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[[ProgressEvent], None]] = []
        self._queues: list[asyncio.Queue[ProgressEvent | None]] = []
        self.closed = False

    def subscribe(self, callback: Callable[[ProgressEvent], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that detaches it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def queue(self) -> asyncio.Queue[ProgressEvent | None]:
        """Return a queue receiving every event; ``None`` marks the end of the run."""
        q: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._queues.append(q)
        return q

    def detach_queue(self, q: asyncio.Queue[ProgressEvent | None]) -> None:
        if q in self._queues:
            self._queues.remove(q)

    def publish(self, event: ProgressEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                logger.exception("Progress subscriber failed; continuing run")
        for q in list(self._queues):
            q.put_nowait(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for q in list(self._queues):
            q.put_nowait(None)


class ProgressReporter:
    """Maps step boundaries of one run onto phases and percentages.

    Step ``i`` (1-based) is resolved against the phase plan: the phase whose
    steps contain ``i`` owns the event, and the overall percent is that
    phase's ``start`` plus the share of its range already completed. A step
    announced for a later phase than the plan expects skips ahead to that
    phase's first step, so the event never names the wrong phase. Percent
    never reaches 100 until ``complete()`` is called after a successful run.
    """

    def __init__(self, phases: list[Phase], channel: ProgressChannel | None = None) -> None:
        self.phases = phases
        self.total_steps = sum(p.steps for p in phases)
        self.channel = channel
        self.current_step = 0
        self.percent = 0

    def _locate(self, index: int) -> tuple[Phase, int]:
        """Phase holding 1-based step ``index`` and the step's offset within it."""
        done = 0
        for phase in self.phases:
            if phase.steps and index <= done + phase.steps:
                return phase, index - done - 1
            done += phase.steps
        last = next(p for p in reversed(self.phases) if p.steps)
        return last, last.steps - 1

    def _first_step(self, name: str) -> int | None:
        done = 0
        for phase in self.phases:
            if phase.name == name and phase.steps:
                return done + 1
            done += phase.steps
        return None

    def _publish(self, message: str, phase: str, percent: int, phase_percent: int) -> None:
        self.percent = max(self.percent, percent)
        logger.info("[%d/%d %s %d%%] %s", self.current_step, self.total_steps, phase, self.percent, message)
        if self.channel is not None:
            self.channel.publish(
                ProgressEvent(
                    step=self.current_step,
                    total_steps=self.total_steps,
                    message=message,
                    phase=phase,
                    percent=self.percent,
                    phase_percent=phase_percent,
                )
            )

    def step(self, phase: str, message: str) -> None:
        """Announce the start of the next call step."""
        if not self.total_steps:
            self._publish(message, phase, 0, 0)
            return
        index = min(self.current_step + 1, self.total_steps)
        planned, offset = self._locate(index)
        if planned.name != phase:
            first = self._first_step(phase)
            if first is not None and first > index:
                index = first
                planned, offset = self._locate(index)
        self.current_step = index
        percent = planned.start + offset * (planned.end - planned.start) // planned.steps
        self._publish(message, planned.name, min(percent, 99), offset * 100 // planned.steps)

    def complete(self, message: str = "Analysis complete") -> None:
        self.current_step = self.total_steps
        self._publish(message, PHASE_COMPLETE, 100, 100)
        if self.channel is not None:
            self.channel.close()

    def fail(self) -> None:
        if self.channel is not None:
            self.channel.close()
