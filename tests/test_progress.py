"""Tests for phase plans, the progress reporter and the progress channel."""

from __future__ import annotations

import pytest

from meeting_analysis.analysis.pipelines import advanced, basic, hybrid
from meeting_analysis.analysis.progress import (
    ProgressChannel,
    ProgressReporter,
    build_phases,
    phase_steps,
)
from meeting_analysis.pipeline_config import AnalysisStrategy


class TestPhases:
    @pytest.mark.parametrize("strategy", list(AnalysisStrategy))
    @pytest.mark.parametrize("run_evaluation", [True, False])
    def test_ranges_partition_0_to_100(self, strategy, run_evaluation, make_template, settings) -> None:
        pipeline = {"basic": basic, "hybrid": hybrid, "advanced": advanced}[strategy.value]
        counts = pipeline.step_counts(make_template(section_count=5), settings)
        phases = build_phases(phase_steps(strategy, counts, run_evaluation))

        assert phases[0].start == 0
        assert phases[-1].end == 100
        for current, nxt in zip(phases, phases[1:]):
            assert current.end == nxt.start
            assert current.start <= current.end

    def test_advanced_phase_order(self) -> None:
        steps = phase_steps(AnalysisStrategy.ADVANCED, {"sections": 5, "agenda": 1, "decisions": 1, "action_items": 1, "finalize": 1}, False)
        assert [name for name, _ in steps] == ["sections", "agenda", "decisions", "action_items", "finalize"]
        assert sum(count for _, count in steps) == 9

    def test_evaluation_phase_appended(self) -> None:
        steps = phase_steps(AnalysisStrategy.BASIC, {"analysis": 1}, True)
        assert steps == [("analysis", 1), ("evaluation", 2)]


class TestProgressReporter:
    def _reporter(self, channel=None) -> ProgressReporter:
        return ProgressReporter(build_phases([("analysis", 1), ("evaluation", 2)]), channel)

    def test_percent_never_reaches_100_before_complete(self) -> None:
        channel = ProgressChannel()
        events = []
        channel.subscribe(events.append)
        reporter = self._reporter(channel)

        for _ in range(5):  # more steps than planned are clamped
            reporter.step("analysis", "working")
        assert all(e.percent < 100 for e in events)

        reporter.complete()
        assert events[-1].percent == 100
        assert events[-1].step == events[-1].total_steps == 3

    def test_step_percentages(self) -> None:
        channel = ProgressChannel()
        events = []
        channel.subscribe(events.append)
        reporter = self._reporter(channel)
        reporter.step("analysis", "one")
        reporter.step("evaluation", "two")
        reporter.step("evaluation", "three")
        assert [e.percent for e in events] == [0, 33, 66]
        assert [e.step for e in events] == [1, 2, 3]


    def test_percent_stays_inside_active_phase(self) -> None:
        phases = build_phases(
            [("sections", 5), ("agenda", 1), ("decisions", 1), ("action_items", 1), ("finalize", 1), ("evaluation", 2)]
        )
        channel = ProgressChannel()
        events = []
        channel.subscribe(events.append)
        reporter = ProgressReporter(phases, channel)
        plan = ["sections"] * 5 + ["agenda", "decisions", "action_items", "finalize", "evaluation", "evaluation"]
        for name in plan:
            reporter.step(name, name)

        ranges = {p.name: (p.start, p.end) for p in phases}
        assert [e.phase for e in events] == plan
        for event in events:
            start, end = ranges[event.phase]
            assert start <= event.percent < end
        assert [e.phase_percent for e in events[:5]] == [0, 20, 40, 60, 80]
        assert events[-1].phase_percent == 50

    def test_skipped_steps_jump_to_announced_phase(self) -> None:
        phases = build_phases([("sections", 2), ("synthesis", 1), ("evaluation", 2)])
        channel = ProgressChannel()
        events = []
        channel.subscribe(events.append)
        reporter = ProgressReporter(phases, channel)
        reporter.step("sections", "batch 1")
        reporter.step("synthesis", "synthesis")

        assert events[-1].phase == "synthesis"
        assert events[-1].step == 3
        assert events[-1].percent == phases[1].start
        assert events[-1].phase_percent == 0


class TestProgressChannel:
    def test_unsubscribe(self) -> None:
        channel = ProgressChannel()
        events = []
        unsubscribe = channel.subscribe(events.append)
        reporter = ProgressReporter(build_phases([("analysis", 2)]), channel)
        reporter.step("analysis", "one")
        unsubscribe()
        reporter.step("analysis", "two")
        assert len(events) == 1

    def test_failing_callback_is_isolated(self) -> None:
        channel = ProgressChannel()
        received = []

        def broken(event) -> None:
            raise ValueError("boom")

        channel.subscribe(broken)
        channel.subscribe(received.append)
        ProgressReporter(build_phases([("analysis", 1)]), channel).step("analysis", "one")
        assert len(received) == 1

    def test_close_is_idempotent(self) -> None:
        channel = ProgressChannel()
        queue = channel.queue()
        channel.close()
        channel.close()
        assert queue.qsize() == 1
        assert queue.get_nowait() is None

    def test_detach_queue(self) -> None:
        channel = ProgressChannel()
        queue = channel.queue()
        channel.detach_queue(queue)
        ProgressReporter(build_phases([("analysis", 1)]), channel).step("analysis", "one")
        assert queue.empty()
