"""Basic strategy: one call carrying the whole template and transcript."""

from __future__ import annotations

from meeting_analysis.analysis import prompts
from meeting_analysis.analysis.client import CallStep
from meeting_analysis.analysis.context import RunContext
from meeting_analysis.analysis.models import Template, Transcript
from meeting_analysis.analysis.pipelines.common import Draft, align_sections, check_references
from meeting_analysis.analysis.progress import PHASE_ANALYSIS
from meeting_analysis.analysis.schemas import FullAnalysisOutput
from meeting_analysis.config import Settings

ANALYSIS_TOOL = "record_meeting_analysis"


def step_counts(template: Template, settings: Settings) -> dict[str, int]:
    return {PHASE_ANALYSIS: 1}


def full_analysis_to_draft(
    output: FullAnalysisOutput, template: Template, transcript: Transcript, phase: str
) -> Draft:
    """Validate a complete single-call analysis and fold it into a draft."""
    sections = align_sections(template.sections, output.sections, transcript.segments, phase)
    check_references(
        phase,
        agenda_items=output.agenda_items,
        decisions=output.decisions,
        action_items=output.action_items,
    )
    return Draft(
        sections=sections,
        summary=output.summary,
        agenda_items=output.agenda_items,
        decisions=output.decisions,
        action_items=output.action_items,
        quotes=output.quotes,
    )


async def run(ctx: RunContext, template: Template, transcript: Transcript) -> Draft:
    step = CallStep(
        name="basic analysis",
        phase=PHASE_ANALYSIS,
        tool_name=ANALYSIS_TOOL,
        tool_description="Record the complete meeting analysis: every section plus agenda and outputs.",
        output_model=FullAnalysisOutput,
        prompt=prompts.basic_prompt(template, transcript),
        convert=lambda out: full_analysis_to_draft(out, template, transcript, PHASE_ANALYSIS),
    )
    return await ctx.call(step, "Analysing transcript in a single pass")
