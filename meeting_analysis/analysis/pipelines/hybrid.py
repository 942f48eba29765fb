"""Hybrid strategy: sections in up to two batches, then one synthesis call."""

from __future__ import annotations

import math

from meeting_analysis.analysis import prompts
from meeting_analysis.analysis.client import CallStep
from meeting_analysis.analysis.context import RunContext
from meeting_analysis.analysis.models import AnalysisSection, Template, TemplateSection, Transcript
from meeting_analysis.analysis.pipelines.common import (
    Draft,
    align_sections,
    check_references,
    section_payload,
)
from meeting_analysis.analysis.progress import PHASE_SECTIONS, PHASE_SYNTHESIS
from meeting_analysis.analysis.schemas import SectionBatchOutput, SynthesisOutput
from meeting_analysis.config import Settings

SECTIONS_TOOL = "record_sections"
SYNTHESIS_TOOL = "record_synthesis"
MAX_BATCHES = 2


def batch_sections(sections: list[TemplateSection]) -> list[list[TemplateSection]]:
    """Split sections into at most two contiguous, near-equal batches."""
    if not sections:
        return []
    size = math.ceil(len(sections) / MAX_BATCHES)
    return [sections[i : i + size] for i in range(0, len(sections), size)]


def step_counts(template: Template, settings: Settings) -> dict[str, int]:
    return {PHASE_SECTIONS: len(batch_sections(template.sections)), PHASE_SYNTHESIS: 1}


async def run(ctx: RunContext, template: Template, transcript: Transcript) -> Draft:
    batches = batch_sections(template.sections)
    sections: list[AnalysisSection] = []

    for number, batch in enumerate(batches, start=1):
        step = CallStep(
            name=f"section batch {number}/{len(batches)}",
            phase=PHASE_SECTIONS,
            tool_name=SECTIONS_TOOL,
            tool_description="Record the analysis of the requested template sections.",
            output_model=SectionBatchOutput,
            prompt=prompts.section_batch_prompt(
                template, batch, transcript, section_payload(sections)
            ),
            convert=lambda out, batch=batch: align_sections(
                batch, out.sections, transcript.segments, PHASE_SECTIONS
            ),
        )
        sections.extend(
            await ctx.call(step, f"Analysing sections batch {number} of {len(batches)}")
        )

    def finish(output: SynthesisOutput) -> Draft:
        check_references(
            PHASE_SYNTHESIS,
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

    step = CallStep(
        name="synthesis",
        phase=PHASE_SYNTHESIS,
        tool_name=SYNTHESIS_TOOL,
        tool_description="Record the agenda, cross-cutting outputs and their relationships.",
        output_model=SynthesisOutput,
        prompt=prompts.synthesis_prompt(template, section_payload(sections), transcript),
        convert=finish,
    )
    return await ctx.call(step, "Synthesising agenda, decisions and action items")
