"""Optional evaluation pass: score a draft and revise it when it falls short.

The draft is never modified. A failed evaluation or revision falls back to
the draft and is recorded, rather than failing the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from meeting_analysis.analysis import prompts
from meeting_analysis.analysis.client import CallStep
from meeting_analysis.analysis.context import RunContext
from meeting_analysis.analysis.errors import (
    AnalysisCancelledError,
    AnalysisError,
    ConfigurationError,
    EvaluationError,
)
from meeting_analysis.analysis.linker import find_orphaned_items, link
from meeting_analysis.analysis.models import (
    AnalysisResults,
    EvaluationMetadata,
    Template,
    Transcript,
)
from meeting_analysis.analysis.pipelines.basic import full_analysis_to_draft
from meeting_analysis.analysis.progress import PHASE_EVALUATION
from meeting_analysis.analysis.schemas import EvaluationOutput, FullAnalysisOutput

logger = logging.getLogger(__name__)

EVALUATION_TOOL = "record_evaluation"
REVISION_TOOL = "record_revised_analysis"


@dataclass(frozen=True)
class EvaluationOutcome:
    evaluation: EvaluationMetadata
    results: AnalysisResults
    error: str | None = None


@dataclass(frozen=True)
class ResultComparison:
    sections_changed: int
    agenda_items_added: int
    decisions_added: int
    action_items_added: int
    relationships_added: int


def _relationship_count(results: AnalysisResults) -> int:
    count = sum(1 for d in results.decisions or [] if d.related_agenda_item_id)
    for action in results.action_items or []:
        count += len(action.related_decision_ids)
        count += 1 if action.related_agenda_item_id else 0
    return count


def compare_results(draft: AnalysisResults, final: AnalysisResults) -> ResultComparison:
    """Summarise how much a revision changed relative to its draft."""
    changed = sum(
        1 for before, after in zip(draft.sections, final.sections) if before.content != after.content
    )
    changed += abs(len(final.sections) - len(draft.sections))
    return ResultComparison(
        sections_changed=changed,
        agenda_items_added=len(final.agenda_items or []) - len(draft.agenda_items or []),
        decisions_added=len(final.decisions or []) - len(draft.decisions or []),
        action_items_added=len(final.action_items or []) - len(draft.action_items or []),
        relationships_added=_relationship_count(final) - _relationship_count(draft),
    )


async def score_draft(
    ctx: RunContext, template: Template, transcript: Transcript, draft: AnalysisResults
) -> EvaluationMetadata:
    """Ask the model to score the draft.

    Raises:
        EvaluationError: If the scoring call fails.
    """
    orphaned = find_orphaned_items(draft)
    step = CallStep(
        name="evaluation",
        phase=PHASE_EVALUATION,
        tool_name=EVALUATION_TOOL,
        tool_description="Record the quality review of the draft analysis.",
        output_model=EvaluationOutput,
        prompt=prompts.evaluation_prompt(template, draft, transcript, orphaned),
    )
    try:
        review: EvaluationOutput = await ctx.call(step, "Evaluating draft quality")
    except (AnalysisCancelledError, ConfigurationError):
        raise
    except AnalysisError as exc:
        raise EvaluationError(f"Evaluation failed: {exc.message}", phase=PHASE_EVALUATION) from exc

    return EvaluationMetadata(
        quality_score=review.quality_score,
        was_revised=False,
        notes=review.reasoning or None,
        improvements=[*review.improvements, *review.additions],
        warnings=review.warnings,
        orphaned_items=orphaned,
    )


async def revise_draft(
    ctx: RunContext,
    template: Template,
    transcript: Transcript,
    draft: AnalysisResults,
    evaluation: EvaluationMetadata,
) -> AnalysisResults:
    """Request a complete revision of the draft and link it like a fresh draft.

    Raises:
        EvaluationError: If the revision call or its validation fails.
    """
    step = CallStep(
        name="revision",
        phase=PHASE_EVALUATION,
        tool_name=REVISION_TOOL,
        tool_description="Record the complete revised meeting analysis.",
        output_model=FullAnalysisOutput,
        prompt=prompts.revision_prompt(template, draft, evaluation, transcript),
        convert=lambda out: link(
            full_analysis_to_draft(out, template, transcript, PHASE_EVALUATION),
            template,
            transcript,
            ctx.settings,
        ),
    )
    try:
        return await ctx.call(step, "Revising analysis")
    except (AnalysisCancelledError, ConfigurationError):
        raise
    except AnalysisError as exc:
        raise EvaluationError(f"Revision failed: {exc.message}", phase=PHASE_EVALUATION) from exc


async def run_evaluation_pass(
    ctx: RunContext,
    template: Template,
    transcript: Transcript,
    draft: AnalysisResults,
) -> EvaluationOutcome:
    threshold = ctx.settings.evaluation_quality_threshold

    try:
        evaluation = await score_draft(ctx, template, transcript, draft)
    except EvaluationError as exc:
        logger.warning("%s; keeping draft", exc)
        return EvaluationOutcome(
            evaluation=EvaluationMetadata(
                quality_score=None,
                was_revised=False,
                notes="Evaluation could not be completed; the draft was kept.",
                orphaned_items=find_orphaned_items(draft),
            ),
            results=draft,
            error=str(exc),
        )

    logger.info("Draft quality score %.1f (threshold %.1f)", evaluation.quality_score, threshold)
    if evaluation.quality_score >= threshold:
        return EvaluationOutcome(evaluation=evaluation, results=draft)

    try:
        revised = await revise_draft(ctx, template, transcript, draft, evaluation)
    except EvaluationError as exc:
        logger.warning("%s; keeping draft", exc)
        return EvaluationOutcome(evaluation=evaluation, results=draft, error=str(exc))

    comparison = compare_results(draft, revised)
    logger.info(
        "Revision changed %d sections, added %d decisions, %d action items, %d links",
        comparison.sections_changed,
        comparison.decisions_added,
        comparison.action_items_added,
        comparison.relationships_added,
    )
    return EvaluationOutcome(
        evaluation=evaluation.model_copy(update={"was_revised": True}),
        results=revised,
    )
