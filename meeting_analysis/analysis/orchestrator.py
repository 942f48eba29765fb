"""Analysis orchestrator: the single entry point of the analysis core.

Flow: validate input -> configured deployments -> token estimate ->
deployment -> strategy -> call pipeline -> linker -> (evaluation) -> result.
Nothing from a failed or cancelled run is returned.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from anthropic import AsyncAnthropic

from meeting_analysis.analysis.client import ModelClient, get_anthropic_client
from meeting_analysis.analysis.context import RunContext
from meeting_analysis.analysis.deployments import (
    DeploymentInfo,
    configured_deployments,
    select_deployment,
)
from meeting_analysis.analysis.errors import InvalidTemplateError, InvalidTranscriptError
from meeting_analysis.analysis.evaluator import run_evaluation_pass
from meeting_analysis.analysis.linker import link
from meeting_analysis.analysis.models import (
    AnalysisRunResult,
    RunMetadata,
    Template,
    Transcript,
)
from meeting_analysis.analysis.pipelines import advanced, basic, hybrid
from meeting_analysis.analysis.pipelines.common import Draft
from meeting_analysis.analysis.progress import (
    ProgressChannel,
    ProgressEvent,
    ProgressReporter,
    build_phases,
    phase_steps,
)
from meeting_analysis.analysis.strategy import build_thresholds, resolve_strategy, strategy_info
from meeting_analysis.analysis.tokens import estimate_tokens
from meeting_analysis.config import Settings, get_settings
from meeting_analysis.pipeline_config import AnalysisStrategy, StrategyInfo, StrategyOption

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pipeline:
    run: Callable[[RunContext, Template, Transcript], Awaitable[Draft]]
    step_counts: Callable[[Template, Settings], dict[str, int]]


PIPELINES: dict[AnalysisStrategy, Pipeline] = {
    AnalysisStrategy.BASIC: Pipeline(basic.run, basic.step_counts),
    AnalysisStrategy.HYBRID: Pipeline(hybrid.run, hybrid.step_counts),
    AnalysisStrategy.ADVANCED: Pipeline(advanced.run, advanced.step_counts),
}


@dataclass(frozen=True)
class StrategyRecommendation:
    strategy: AnalysisStrategy
    reason: str
    token_estimate: int
    deployment: DeploymentInfo
    info: StrategyInfo


def transcript_text(transcript: Transcript) -> str:
    if transcript.text.strip():
        return transcript.text
    return " ".join(s.text for s in transcript.segments)


def validate_input(template: Template, transcript: Transcript) -> None:
    """Reject input that cannot be analysed, before any model call.

    Raises:
        InvalidTranscriptError: If the transcript has no segments.
        InvalidTemplateError: If the template has no sections or its section
            dependencies are unknown or circular.
    """
    if not transcript.segments:
        raise InvalidTranscriptError("Transcript has no segments", phase="validation")
    if not template.sections:
        raise InvalidTemplateError("Template has no sections", phase="validation")
    advanced.dependency_levels(template.sections)


def recommend_strategy(text: str, settings: Settings | None = None) -> StrategyRecommendation:
    """Strategy and deployment ``auto`` would pick for ``text``, without running anything."""
    settings = settings or get_settings()
    token_estimate = estimate_tokens(text)
    deployment = select_deployment(token_estimate, configured_deployments(settings))
    selection = resolve_strategy(StrategyOption.AUTO, token_estimate, build_thresholds(settings))
    return StrategyRecommendation(
        strategy=selection.strategy,
        reason=selection.reason,
        token_estimate=token_estimate,
        deployment=deployment,
        info=strategy_info(selection.strategy),
    )


async def execute_analysis(
    template: Template,
    transcript: Transcript,
    *,
    strategy: StrategyOption | str = StrategyOption.AUTO,
    run_evaluation: bool = True,
    settings: Settings | None = None,
    client: AsyncAnthropic | None = None,
    progress: ProgressChannel | Callable[[ProgressEvent], None] | None = None,
    cancel_event: asyncio.Event | None = None,
) -> AnalysisRunResult:
    """Run a complete analysis of ``transcript`` against ``template``.

    Args:
        template: The section template and requested outputs.
        transcript: Transcript with at least one segment.
        strategy: ``auto`` or an explicit strategy, which bypasses thresholds.
        run_evaluation: Whether to score (and possibly revise) the draft.
        settings: Overrides the cached application settings.
        client: Anthropic async client; built from settings when omitted.
        progress: Channel or callback receiving a ``ProgressEvent`` per step.
        cancel_event: Setting it cancels the run at the next step boundary.

    Returns:
        The immutable run result.

    Raises:
        InvalidInputError: Empty transcript or invalid template.
        ConfigurationError: No deployment, credentials or thresholds usable.
        StepFailedError: A call step exhausted its retries.
        AnalysisCancelledError: ``cancel_event`` was set during the run.
    """
    settings = settings or get_settings()
    validate_input(template, transcript)

    deployments = configured_deployments(settings)
    token_estimate = estimate_tokens(transcript_text(transcript))
    deployment = select_deployment(token_estimate, deployments)
    selection = resolve_strategy(strategy, token_estimate, build_thresholds(settings))
    anthropic_client = client if client is not None else get_anthropic_client(settings)

    pipeline = PIPELINES[selection.strategy]
    channel = progress if isinstance(progress, ProgressChannel) else ProgressChannel()
    if progress is not None and not isinstance(progress, ProgressChannel):
        channel.subscribe(progress)
    reporter = ProgressReporter(
        build_phases(
            phase_steps(
                selection.strategy, pipeline.step_counts(template, settings), run_evaluation
            )
        ),
        channel,
    )
    ctx = RunContext(
        ModelClient(anthropic_client, deployment.deployment, settings.max_output_tokens),
        settings,
        reporter,
        cancel_event,
    )

    logger.info(
        "Starting %s analysis (%s): %d sections, ~%d tokens, deployment %s (%.1f%% of limit)",
        selection.strategy.value,
        "auto" if selection.was_auto_selected else "explicit",
        len(template.sections),
        token_estimate,
        deployment.deployment,
        deployment.utilization_percentage,
    )

    try:
        draft = link(await pipeline.run(ctx, template, transcript), template, transcript, settings)
        evaluation = None
        draft_results = None
        evaluation_error = None
        results = draft
        if run_evaluation:
            outcome = await run_evaluation_pass(ctx, template, transcript, draft)
            draft_results = draft
            evaluation = outcome.evaluation
            results = outcome.results
            evaluation_error = outcome.error
        ctx.check_cancelled()
    except BaseException:
        reporter.fail()
        raise

    reporter.complete()
    score = evaluation.quality_score if evaluation else None
    logger.info(
        "Analysis complete: %d calls (+%d evaluation), %d sections, quality %s",
        ctx.call_count,
        ctx.evaluation_call_count,
        len(results.sections),
        f"{score:.1f}" if score is not None else "n/a",
    )

    return AnalysisRunResult(
        strategy=selection.strategy,
        draft_results=draft_results,
        evaluation=evaluation,
        results=results,
        metadata=RunMetadata(
            was_auto_selected=selection.was_auto_selected,
            deployment_used=deployment.deployment,
            token_estimate=token_estimate,
            call_count=ctx.call_count,
            is_extended_context=deployment.is_extended,
            evaluation_call_count=ctx.evaluation_call_count,
            evaluation_error=evaluation_error,
        ),
    )
