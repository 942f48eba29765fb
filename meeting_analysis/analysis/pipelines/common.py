"""Helpers shared by the call pipelines: the draft accumulator and step checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from meeting_analysis.analysis.errors import OutputValidationError, RelationshipValidationError
from meeting_analysis.analysis.evidence import ground_evidence
from meeting_analysis.analysis.models import AnalysisSection, TemplateSection, TranscriptSegment
from meeting_analysis.analysis.schemas import (
    ActionItemOutput,
    AgendaItemOutput,
    DecisionOutput,
    QuoteOutput,
    SectionOutput,
)


@dataclass
class Draft:
    """Everything a pipeline produced, before linking.

    ``sections`` is always aligned to template order.
    """

    sections: list[AnalysisSection]
    summary: str | None = None
    agenda_items: list[AgendaItemOutput] = field(default_factory=list)
    decisions: list[DecisionOutput] = field(default_factory=list)
    action_items: list[ActionItemOutput] = field(default_factory=list)
    quotes: list[QuoteOutput] = field(default_factory=list)


def _key(name: str) -> str:
    return " ".join(name.lower().split())


def align_sections(
    expected: list[TemplateSection],
    produced: list[SectionOutput],
    segments: list[TranscriptSegment],
    phase: str,
) -> list[AnalysisSection]:
    """Match model sections to template sections and return them in template order.

    Sections are matched by id, then by case-insensitive name. Remaining gaps
    take the unclaimed outputs in order, but only when there is exactly one
    unclaimed output per gap and none of them carries another section's id.

    Raises:
        OutputValidationError: If a template section is missing or empty, or
            the unclaimed outputs do not line up with the gaps.
    """
    by_id = {s.section_id: s for s in produced if s.section_id}
    by_name: dict[str, SectionOutput] = {}
    for s in produced:
        by_name.setdefault(_key(s.name), s)

    claimed: set[int] = set()
    matched: list[SectionOutput | None] = []
    for sec in expected:
        output = by_id.get(sec.id) or by_name.get(_key(sec.name))
        if output is not None and id(output) in claimed:
            output = None
        if output is not None:
            claimed.add(id(output))
        matched.append(output)

    gaps = [i for i, m in enumerate(matched) if m is None]
    if gaps:
        expected_ids = {sec.id for sec in expected}
        leftovers = [s for s in produced if id(s) not in claimed]
        if len(leftovers) != len(gaps) or any(s.section_id in expected_ids for s in leftovers):
            missing = [expected[i].name for i in gaps]
            raise OutputValidationError(f"Missing sections: {', '.join(missing)}", phase=phase)
        for i, output in zip(gaps, leftovers):
            matched[i] = output

    aligned: list[AnalysisSection] = []
    for section, output in zip(expected, matched):
        assert output is not None
        if not output.content.strip():
            raise OutputValidationError(f"Section {section.name!r} has no content", phase=phase)
        evidence = ground_evidence(output.evidence, segments) if section.extract_evidence else []
        aligned.append(
            AnalysisSection(name=section.name, content=output.content.strip(), evidence=evidence)
        )
    return aligned


def check_references(
    phase: str,
    agenda_items: list[AgendaItemOutput] | None = None,
    decisions: list[DecisionOutput] | None = None,
    action_items: list[ActionItemOutput] | None = None,
    known_agenda_ids: set[str] | None = None,
    known_decision_ids: set[str] | None = None,
) -> None:
    """Reject a step output whose references point at ids that do not exist.

    Known ids are those defined in the same output plus any passed in from
    earlier steps.

    Raises:
        RelationshipValidationError: On the first dangling reference set.
    """
    agenda_ids = {a.id for a in agenda_items or [] if a.id} | (known_agenda_ids or set())
    decision_ids = {d.id for d in decisions or [] if d.id} | (known_decision_ids or set())

    dangling: list[str] = []
    for decision in decisions or []:
        ref = decision.related_agenda_item_id
        if ref and ref not in agenda_ids:
            dangling.append(f"decision {decision.id or decision.decision!r} -> agenda {ref}")
    for action in action_items or []:
        ref = action.related_agenda_item_id
        if ref and ref not in agenda_ids:
            dangling.append(f"action {action.id or action.task!r} -> agenda {ref}")
        for ref in action.related_decision_ids:
            if ref not in decision_ids:
                dangling.append(f"action {action.id or action.task!r} -> decision {ref}")
    if dangling:
        raise RelationshipValidationError(
            "Unknown ids referenced: " + "; ".join(dangling), phase=phase
        )


def section_payload(sections: list[AnalysisSection]) -> list[dict[str, Any]]:
    """Section content without evidence, for feeding into later prompts."""
    return [{"name": s.name, "content": s.content} for s in sections]
