"""Prompt text for every analysis call step."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel

from meeting_analysis.analysis.evidence import format_timestamp
from meeting_analysis.analysis.models import (
    OutputFormat,
    OutputType,
    Template,
    TemplateSection,
    Transcript,
)

MAX_BULLET_POINTS = 10
MAX_BULLET_WORDS = 15
MAX_PARAGRAPH_WORDS = 200

SYSTEM_PROMPT = (
    "You are a meeting analysis assistant. You read meeting transcripts and "
    "produce accurate, concise, well-structured analysis.\n\n"
    "Rules:\n"
    "- Only state what the transcript supports. Never invent people, dates or facts.\n"
    "- Evidence quotes must be copied verbatim from the transcript.\n"
    "- Timestamps are in seconds from the start of the meeting.\n"
    "- Always return your answer by calling the provided tool exactly once."
)

OUTPUT_DESCRIPTIONS: dict[OutputType, str] = {
    OutputType.SUMMARY: "summary: a 3-5 sentence executive summary of the meeting.",
    OutputType.ACTION_ITEMS: (
        "actionItems: concrete tasks with owner and deadline when mentioned, and the "
        "timestamp where the task was assigned."
    ),
    OutputType.DECISIONS: (
        "decisions: conclusions or agreements reached, with context and the timestamp "
        "where each was made."
    ),
    OutputType.QUOTES: "quotes: 3-5 notable verbatim quotes with speaker and timestamp.",
}


def format_output_type(output_format: OutputFormat) -> str:
    if output_format is OutputFormat.BULLET_POINTS:
        return (
            'Bulleted list (use the "-" character only, no numbered lists or other '
            f"bullet characters, max {MAX_BULLET_POINTS} items, "
            f"{MAX_BULLET_WORDS} words each)"
        )
    if output_format is OutputFormat.PARAGRAPH:
        return f"Paragraph format (continuous prose, 100-{MAX_PARAGRAPH_WORDS} words)"
    return "Table format (markdown table syntax with a header row, max 10 rows)"


def render_transcript(transcript: Transcript) -> str:
    """Render segments as ``[M:SS-M:SS] Speaker: text`` lines.

    The start time in seconds is included so the model can cite it.
    """
    lines = []
    for segment in transcript.segments:
        speaker = f"{segment.speaker}: " if segment.speaker else ""
        lines.append(
            f"[{format_timestamp(segment.start)}-{format_timestamp(segment.end)} | "
            f"t={segment.start:g}s] {speaker}{segment.text}"
        )
    return "\n".join(lines)


def render_sections(sections: list[TemplateSection]) -> str:
    blocks = []
    for section in sections:
        evidence = (
            "Include 1-3 supporting evidence quotes copied verbatim from the transcript."
            if section.extract_evidence
            else "Do not include evidence."
        )
        blocks.append(
            f"### {section.name} (sectionId: {section.id})\n"
            f"Instructions: {section.prompt}\n"
            f"Format: {format_output_type(section.output_format)}\n"
            f"Evidence: {evidence}"
        )
    return "\n\n".join(blocks)


def render_outputs(outputs: list[OutputType]) -> str:
    if not outputs:
        return "No additional outputs requested."
    return "\n".join(f"- {OUTPUT_DESCRIPTIONS[o]}" for o in outputs)


def to_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, exclude_none=True)
    elif isinstance(value, list):
        value = [
            v.model_dump(by_alias=True, exclude_none=True) if isinstance(v, BaseModel) else v
            for v in value
        ]
    return json.dumps(value, indent=2, ensure_ascii=False)


def _transcript_block(transcript: Transcript) -> str:
    return f"TRANSCRIPT:\n{render_transcript(transcript)}"


# ---------------------------------------------------------------------------
# Step prompts
# ---------------------------------------------------------------------------


def basic_prompt(template: Template, transcript: Transcript) -> str:
    return (
        f'Analyse this meeting using the template "{template.name}".\n\n'
        f"SECTIONS (produce every one, in this order):\n{render_sections(template.sections)}\n\n"
        "AGENDA: list the agenda items (topics discussed) with ids and start timestamps.\n\n"
        f"ADDITIONAL OUTPUTS:\n{render_outputs(template.outputs)}\n\n"
        "RELATIONSHIPS: give every agenda item, decision and action item a short "
        'unique id (e.g. "agenda-1", "decision-1", "action-1"). Link decisions to '
        "agenda items with relatedAgendaItemId and action items to decisions with "
        "relatedDecisionIds, using only ids you defined.\n\n"
        f"{_transcript_block(transcript)}"
    )


def section_batch_prompt(
    template: Template,
    sections: list[TemplateSection],
    transcript: Transcript,
    previous: list[Any] | None = None,
) -> str:
    context = ""
    if previous:
        context = (
            "ALREADY ANALYSED SECTIONS (for context, do not repeat them):\n"
            f"{to_json(previous)}\n\n"
        )
    return (
        f'Analyse the following sections of the "{template.name}" template.\n\n'
        f"SECTIONS (produce every one, in this order):\n{render_sections(sections)}\n\n"
        f"{context}{_transcript_block(transcript)}"
    )


def synthesis_prompt(template: Template, sections: list[Any], transcript: Transcript) -> str:
    return (
        "Using the section analysis below and the transcript, extract the "
        "cross-cutting outputs of the meeting.\n\n"
        "AGENDA: list the agenda items with ids and start timestamps.\n\n"
        f"ADDITIONAL OUTPUTS:\n{render_outputs(template.outputs)}\n\n"
        "RELATIONSHIPS: give agenda items, decisions and action items unique ids. "
        "Set relatedAgendaItemId on decisions and action items and relatedDecisionIds "
        "on action items wherever the transcript shows the link. Use only ids you "
        "defined in this answer.\n\n"
        f"SECTION ANALYSIS:\n{to_json(sections)}\n\n"
        f"{_transcript_block(transcript)}"
    )


def dependent_sections_prompt(
    template: Template,
    sections: list[TemplateSection],
    transcript: Transcript,
    dependencies: list[Any],
) -> str:
    context = ""
    if dependencies:
        context = (
            "RESULTS OF SECTIONS THESE DEPEND ON (build on them):\n"
            f"{to_json(dependencies)}\n\n"
        )
    return (
        f'Analyse the following section(s) of the "{template.name}" template in depth, '
        "grounding every point in the transcript.\n\n"
        f"SECTIONS:\n{render_sections(sections)}\n\n"
        f"{context}{_transcript_block(transcript)}"
    )


def agenda_prompt(sections: list[Any], transcript: Transcript) -> str:
    return (
        "Identify the agenda of this meeting: the distinct topics discussed, in the "
        'order they came up. Give each a unique id ("agenda-1", "agenda-2", ...), a '
        "short topic, optional context, and the timestamp (seconds) where it starts.\n\n"
        f"SECTION ANALYSIS:\n{to_json(sections)}\n\n"
        f"{_transcript_block(transcript)}"
    )


def decisions_prompt(agenda: list[Any], sections: list[Any], transcript: Transcript) -> str:
    return (
        "List every decision made in the meeting. Give each a unique id "
        '("decision-1", ...), the decision, context and timestamp. Set '
        "relatedAgendaItemId to the id of the agenda item under which it was made, "
        "using only ids from the agenda below, or leave it empty.\n\n"
        f"AGENDA:\n{to_json(agenda)}\n\n"
        f"SECTION ANALYSIS:\n{to_json(sections)}\n\n"
        f"{_transcript_block(transcript)}"
    )


def action_items_prompt(
    agenda: list[Any], decisions: list[Any], transcript: Transcript
) -> str:
    return (
        "List every action item agreed in the meeting. Give each a unique id "
        '("action-1", ...), the task, owner and deadline when mentioned, and the '
        "timestamp. Set relatedDecisionIds to the decisions the task implements and "
        "relatedAgendaItemId to its agenda item, using only ids listed below.\n\n"
        f"AGENDA:\n{to_json(agenda)}\n\n"
        f"DECISIONS:\n{to_json(decisions)}\n\n"
        f"{_transcript_block(transcript)}"
    )


def finalize_prompt(
    template: Template, analysis: dict[str, Any], transcript: Transcript
) -> str:
    return (
        "Write the executive summary of this meeting (3-5 sentences) from the "
        "analysis below, and extract 3-5 notable verbatim quotes with speaker and "
        "timestamp.\n\n"
        f'TEMPLATE: "{template.name}"\n\n'
        f"ANALYSIS SO FAR:\n{to_json(analysis)}\n\n"
        f"{_transcript_block(transcript)}"
    )


def evaluation_prompt(
    template: Template,
    draft: Any,
    transcript: Transcript,
    orphaned: Any,
) -> str:
    return (
        "Review this draft meeting analysis against the transcript and template. "
        "Score it from 0 to 10 for completeness, faithfulness to the transcript, "
        "formatting and correctness of the links between agenda items, decisions "
        "and action items. List concrete improvements, missing items (additions) "
        "and warnings.\n\n"
        f"TEMPLATE SECTIONS:\n{render_sections(template.sections)}\n\n"
        f"REQUESTED OUTPUTS:\n{render_outputs(template.outputs)}\n\n"
        f"ITEMS WITHOUT LINKS:\n{to_json(orphaned)}\n\n"
        f"DRAFT:\n{to_json(draft)}\n\n"
        f"{_transcript_block(transcript)}"
    )


def revision_prompt(
    template: Template,
    draft: Any,
    evaluation: Any,
    transcript: Transcript,
) -> str:
    return (
        "Revise the draft meeting analysis below. Apply every improvement and "
        "addition from the review, fix the warnings, keep everything that is already "
        "correct, and return the complete revised analysis. Keep existing ids where "
        "items are unchanged and only reference ids present in your answer.\n\n"
        f"SECTIONS (produce every one, in this order):\n{render_sections(template.sections)}\n\n"
        f"ADDITIONAL OUTPUTS:\n{render_outputs(template.outputs)}\n\n"
        f"REVIEW:\n{to_json(evaluation)}\n\n"
        f"DRAFT:\n{to_json(draft)}\n\n"
        f"{_transcript_block(transcript)}"
    )
