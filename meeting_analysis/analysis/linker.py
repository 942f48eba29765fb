"""Relationship linking: turn a pipeline draft into validated ``AnalysisResults``.

Ids the model produced are always preferred. The linker only fills
references that are still empty, using timestamp proximity with keyword
overlap as the tie-break, and never invents an id that is not in the draft.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TypeVar

from meeting_analysis.analysis.errors import RelationshipValidationError
from meeting_analysis.analysis.evidence import (
    extract_evidence,
    extract_keywords,
    extract_prompt_keywords,
    find_matching_segment,
)
from meeting_analysis.analysis.models import (
    ActionItem,
    AgendaItem,
    AnalysisResults,
    AnalysisSection,
    Decision,
    OrphanedItems,
    OutputType,
    Quote,
    Template,
    Transcript,
)
from meeting_analysis.analysis.pipelines.common import Draft
from meeting_analysis.config import Settings

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", AgendaItem, Decision, ActionItem, Quote)

MAX_CONTENT_KEYWORDS = 20


def ensure_unique_ids(items: Sequence[ItemT], prefix: str) -> list[ItemT]:
    """Return copies of ``items`` where every id is present and unique.

    The first item carrying an id keeps it; later duplicates and items
    without an id get the next free ``{prefix}-{n}``.
    """
    used = {item.id for item in items if item.id}
    seen: set[str] = set()
    counter = 0
    result: list[ItemT] = []
    for item in items:
        if item.id and item.id not in seen:
            seen.add(item.id)
            result.append(item.model_copy())
            continue
        if item.id:
            logger.warning("Duplicate %s id %r reassigned", prefix, item.id)
        counter += 1
        while f"{prefix}-{counter}" in used:
            counter += 1
        new_id = f"{prefix}-{counter}"
        used.add(new_id)
        seen.add(new_id)
        result.append(item.model_copy(update={"id": new_id}))
    return result


def _overlap(a: str, b: str) -> int:
    return len(set(extract_keywords(a)) & set(extract_keywords(b)))


def _ground_timestamp(texts: list[str | None], transcript: Transcript) -> float | None:
    for text in texts:
        if not text:
            continue
        segment = find_matching_segment(text, transcript.segments)
        if segment is not None:
            return segment.start
    return None


def _nearest_agenda(
    timestamp: float | None,
    text: str,
    agenda: list[AgendaItem],
    transcript_end: float,
    window: float,
) -> str | None:
    """Agenda item whose span (its start until the next item starts) is nearest."""
    if timestamp is None:
        return None
    timed = sorted(
        ((a.timestamp, order, a) for order, a in enumerate(agenda) if a.timestamp is not None),
        key=lambda t: (t[0], t[1]),
    )
    candidates = []
    for i, (start, order, item) in enumerate(timed):
        end = timed[i + 1][0] if i + 1 < len(timed) else max(transcript_end, start)
        if start <= timestamp < end or (i + 1 == len(timed) and start <= timestamp <= end):
            distance = 0.0
        else:
            distance = min(abs(timestamp - start), abs(timestamp - end))
        if distance <= window:
            candidates.append((distance, -_overlap(text, f"{item.topic} {item.context or ''}"), order, item.id))
    if not candidates:
        return None
    return min(candidates)[3]


def _nearest_decision(
    timestamp: float | None, text: str, decisions: list[Decision], window: float
) -> str | None:
    if timestamp is None:
        return None
    candidates = [
        (abs(timestamp - d.timestamp), -_overlap(text, d.decision), order, d.id)
        for order, d in enumerate(decisions)
        if d.timestamp is not None and abs(timestamp - d.timestamp) <= window
    ]
    if not candidates:
        return None
    return min(candidates)[3]


def _fill_evidence(
    template: Template,
    sections: list[AnalysisSection],
    transcript: Transcript,
    top_n: int,
) -> list[AnalysisSection]:
    filled: list[AnalysisSection] = []
    for wanted, section in zip(template.sections, sections):
        if not wanted.extract_evidence:
            filled.append(section.model_copy(update={"evidence": []}))
            continue
        if section.evidence:
            filled.append(section.model_copy(deep=True))
            continue
        keywords = extract_prompt_keywords(wanted.prompt)
        keywords += extract_keywords(section.content)[:MAX_CONTENT_KEYWORDS]
        evidence = extract_evidence(transcript.segments, keywords, top_n=top_n)
        filled.append(section.model_copy(update={"evidence": evidence}))
    return filled


def link(
    draft: Draft,
    template: Template,
    transcript: Transcript,
    settings: Settings,
) -> AnalysisResults:
    """Assemble a pipeline draft into validated, cross-linked results.

    Raises:
        RelationshipValidationError: If a reference still does not resolve.
    """
    window = settings.link_window_seconds
    transcript_end = max((s.end for s in transcript.segments), default=0.0)

    agenda = ensure_unique_ids(
        [AgendaItem(**a.model_dump(exclude={"id"}), id=a.id or "") for a in draft.agenda_items],
        "agenda",
    )
    decisions = ensure_unique_ids(
        [Decision(**d.model_dump(exclude={"id"}), id=d.id or "") for d in draft.decisions],
        "decision",
    )
    actions = ensure_unique_ids(
        [ActionItem(**a.model_dump(exclude={"id"}), id=a.id or "") for a in draft.action_items],
        "action",
    )
    quotes = ensure_unique_ids(
        [Quote(**q.model_dump(exclude={"id"}), id=q.id or "") for q in draft.quotes],
        "quote",
    )

    wants_decisions = template.wants(OutputType.DECISIONS)
    if not wants_decisions:
        decisions = []
        for action in actions:
            action.related_decision_ids = []

    # Ground missing timestamps (and quote speakers) in the transcript.
    for agenda_item in agenda:
        if agenda_item.timestamp is None:
            agenda_item.timestamp = _ground_timestamp(
                [agenda_item.context, agenda_item.topic], transcript
            )
    for decision in decisions:
        if decision.timestamp is None:
            decision.timestamp = _ground_timestamp([decision.context, decision.decision], transcript)
    for action in actions:
        if action.timestamp is None:
            action.timestamp = _ground_timestamp([action.task], transcript)
    for quote in quotes:
        if quote.timestamp is None or quote.speaker is None:
            segment = find_matching_segment(quote.text, transcript.segments)
            if segment is not None:
                if quote.timestamp is None:
                    quote.timestamp = segment.start
                if quote.speaker is None:
                    quote.speaker = segment.speaker

    for decision in decisions:
        if decision.related_agenda_item_id is None:
            decision.related_agenda_item_id = _nearest_agenda(
                decision.timestamp, decision.decision, agenda, transcript_end, window
            )

    decisions_by_id = {d.id: d for d in decisions}
    for action in actions:
        if not action.related_decision_ids and decisions:
            nearest = _nearest_decision(action.timestamp, action.task, decisions, window)
            if nearest is not None:
                action.related_decision_ids = [nearest]
        if action.related_agenda_item_id is None:
            inherited = next(
                (
                    decisions_by_id[ref].related_agenda_item_id
                    for ref in action.related_decision_ids
                    if ref in decisions_by_id and decisions_by_id[ref].related_agenda_item_id
                ),
                None,
            )
            action.related_agenda_item_id = inherited or _nearest_agenda(
                action.timestamp, action.task, agenda, transcript_end, window
            )

    results = AnalysisResults(
        summary=draft.summary if template.wants(OutputType.SUMMARY) else None,
        sections=_fill_evidence(template, draft.sections, transcript, settings.evidence_top_n),
        agenda_items=agenda,
        decisions=decisions if wants_decisions else None,
        action_items=actions if template.wants(OutputType.ACTION_ITEMS) else None,
        quotes=quotes if template.wants(OutputType.QUOTES) else None,
    )
    validate_relationships(results)
    return results


def validate_relationships(results: AnalysisResults) -> None:
    """Raise if any back-reference does not resolve within ``results``."""
    agenda_ids = {a.id for a in results.agenda_items or []}
    decision_ids = {d.id for d in results.decisions or []}
    dangling: list[str] = []
    for decision in results.decisions or []:
        ref = decision.related_agenda_item_id
        if ref is not None and ref not in agenda_ids:
            dangling.append(f"{decision.id} -> {ref}")
    for action in results.action_items or []:
        ref = action.related_agenda_item_id
        if ref is not None and ref not in agenda_ids:
            dangling.append(f"{action.id} -> {ref}")
        dangling.extend(f"{action.id} -> {r}" for r in action.related_decision_ids if r not in decision_ids)
    if dangling:
        raise RelationshipValidationError(
            "Dangling references: " + ", ".join(dangling), phase="linking"
        )


def find_orphaned_items(results: AnalysisResults) -> OrphanedItems:
    """Items missing the links a complete analysis would normally have."""
    decisions = results.decisions or []
    linked_agenda = {d.related_agenda_item_id for d in decisions if d.related_agenda_item_id}
    return OrphanedItems(
        decisions_without_agenda=[d.id for d in decisions if not d.related_agenda_item_id],
        action_items_without_decisions=(
            [a.id for a in results.action_items or [] if not a.related_decision_ids]
            if results.decisions is not None
            else []
        ),
        agenda_items_without_decisions=(
            [a.id for a in results.agenda_items or [] if a.id not in linked_agenda]
            if results.decisions is not None
            else []
        ),
    )
