"""Advanced strategy: per-section extraction, then a cascade of linked synthesis calls.

Sections are extracted level by level in dependency order; sections within a
level are independent and run concurrently under the run's concurrency bound.
The cascade (agenda -> decisions -> action items -> summary and quotes) is
strictly sequential because each call references ids from the previous one.
"""

from __future__ import annotations

import asyncio
import math

from meeting_analysis.analysis import prompts
from meeting_analysis.analysis.client import CallStep
from meeting_analysis.analysis.context import RunContext
from meeting_analysis.analysis.errors import InvalidTemplateError
from meeting_analysis.analysis.linker import ensure_unique_ids
from meeting_analysis.analysis.models import (
    AnalysisSection,
    Template,
    TemplateSection,
    Transcript,
)
from meeting_analysis.analysis.pipelines.common import (
    Draft,
    align_sections,
    check_references,
    section_payload,
)
from meeting_analysis.analysis.progress import (
    PHASE_ACTION_ITEMS,
    PHASE_AGENDA,
    PHASE_DECISIONS,
    PHASE_FINALIZE,
    PHASE_SECTIONS,
)
from meeting_analysis.analysis.schemas import (
    ActionItemOutput,
    ActionItemsOutput,
    AgendaItemOutput,
    AgendaOutput,
    DecisionOutput,
    DecisionsOutput,
    FinalizeOutput,
    SectionBatchOutput,
)
from meeting_analysis.config import Settings

SECTION_TOOL = "record_sections"
AGENDA_TOOL = "record_agenda"
DECISIONS_TOOL = "record_decisions"
ACTION_ITEMS_TOOL = "record_action_items"
FINALIZE_TOOL = "record_final_outputs"


def dependency_levels(sections: list[TemplateSection]) -> list[list[TemplateSection]]:
    """Group sections into levels with Kahn's algorithm.

    Every section's dependencies sit in an earlier level. Template order is
    kept within a level.

    Raises:
        InvalidTemplateError: On unknown dependency ids or a dependency cycle.
    """
    ids = {s.id for s in sections}
    if len(ids) != len(sections):
        raise InvalidTemplateError("Section ids must be unique", phase="validation")
    for section in sections:
        unknown = [d for d in section.dependencies if d not in ids]
        if unknown:
            raise InvalidTemplateError(
                f"Section {section.name!r} depends on unknown sections: {', '.join(unknown)}",
                phase="validation",
            )
        if section.id in section.dependencies:
            raise InvalidTemplateError(
                f"Section {section.name!r} depends on itself", phase="validation"
            )

    remaining = {s.id: set(s.dependencies) for s in sections}
    levels: list[list[TemplateSection]] = []
    while remaining:
        ready = [s for s in sections if s.id in remaining and not remaining[s.id]]
        if not ready:
            cycle = ", ".join(s.name for s in sections if s.id in remaining)
            raise InvalidTemplateError(
                f"Circular section dependencies between: {cycle}", phase="validation"
            )
        levels.append(ready)
        for section in ready:
            del remaining[section.id]
        for deps in remaining.values():
            deps.difference_update(s.id for s in ready)
    return levels


def plan_section_groups(
    sections: list[TemplateSection], max_calls: int
) -> list[list[list[TemplateSection]]]:
    """Per dependency level, the section groups that get one call each.

    With at most ``max_calls`` sections every section is its own call;
    beyond that sections are chunked so the call count stays near the cap.
    """
    levels = dependency_levels(sections)
    group_size = max(1, math.ceil(len(sections) / max_calls))
    return [
        [level[i : i + group_size] for i in range(0, len(level), group_size)]
        for level in levels
    ]


def step_counts(template: Template, settings: Settings) -> dict[str, int]:
    groups = plan_section_groups(template.sections, settings.advanced_max_section_calls)
    return {
        PHASE_SECTIONS: sum(len(level) for level in groups),
        PHASE_AGENDA: 1,
        PHASE_DECISIONS: 1,
        PHASE_ACTION_ITEMS: 1,
        PHASE_FINALIZE: 1,
    }


def _first_error(group: BaseExceptionGroup) -> BaseException:
    first = group.exceptions[0]
    if isinstance(first, BaseExceptionGroup):
        return _first_error(first)
    return first


async def _extract_sections(
    ctx: RunContext, template: Template, transcript: Transcript
) -> list[AnalysisSection]:
    groups = plan_section_groups(template.sections, ctx.settings.advanced_max_section_calls)
    total = sum(len(level) for level in groups)
    done: dict[str, AnalysisSection] = {}
    number = 0

    for level in groups:
        tasks = []
        try:
            async with asyncio.TaskGroup() as tg:
                for group in level:
                    number += 1
                    dependency_ids = {d for s in group for d in s.dependencies}
                    dependencies = [
                        done[s.id] for s in template.sections if s.id in dependency_ids
                    ]
                    names = ", ".join(s.name for s in group)
                    step = CallStep(
                        name=f"section {names}",
                        phase=PHASE_SECTIONS,
                        tool_name=SECTION_TOOL,
                        tool_description="Record the in-depth analysis of the requested sections.",
                        output_model=SectionBatchOutput,
                        prompt=prompts.dependent_sections_prompt(
                            template, group, transcript, section_payload(dependencies)
                        ),
                        convert=lambda out, group=group: align_sections(
                            group, out.sections, transcript.segments, PHASE_SECTIONS
                        ),
                    )
                    message = f"Extracting section {number} of {total}: {names}"
                    tasks.append((group, tg.create_task(ctx.call(step, message))))
        except ExceptionGroup as group_error:
            raise _first_error(group_error) from None

        for group, task in tasks:
            for section, result in zip(group, task.result()):
                done[section.id] = result

    return [done[s.id] for s in template.sections]


async def run(ctx: RunContext, template: Template, transcript: Transcript) -> Draft:
    sections = await _extract_sections(ctx, template, transcript)
    payload = section_payload(sections)

    agenda: list[AgendaItemOutput] = await ctx.call(
        CallStep(
            name="agenda",
            phase=PHASE_AGENDA,
            tool_name=AGENDA_TOOL,
            tool_description="Record the meeting agenda items with ids and timestamps.",
            output_model=AgendaOutput,
            prompt=prompts.agenda_prompt(payload, transcript),
            convert=lambda out: ensure_unique_ids(out.agenda_items, "agenda"),
        ),
        "Identifying agenda items",
    )
    agenda_ids = {a.id for a in agenda if a.id}

    def accept_decisions(out: DecisionsOutput) -> list[DecisionOutput]:
        decisions = ensure_unique_ids(out.decisions, "decision")
        check_references(PHASE_DECISIONS, decisions=decisions, known_agenda_ids=agenda_ids)
        return decisions

    decisions: list[DecisionOutput] = await ctx.call(
        CallStep(
            name="decisions",
            phase=PHASE_DECISIONS,
            tool_name=DECISIONS_TOOL,
            tool_description="Record the decisions made, linked to agenda item ids.",
            output_model=DecisionsOutput,
            prompt=prompts.decisions_prompt(agenda, payload, transcript),
            convert=accept_decisions,
        ),
        "Extracting decisions",
    )
    decision_ids = {d.id for d in decisions if d.id}

    def accept_actions(out: ActionItemsOutput) -> list[ActionItemOutput]:
        actions = ensure_unique_ids(out.action_items, "action")
        check_references(
            PHASE_ACTION_ITEMS,
            action_items=actions,
            known_agenda_ids=agenda_ids,
            known_decision_ids=decision_ids,
        )
        return actions

    actions: list[ActionItemOutput] = await ctx.call(
        CallStep(
            name="action items",
            phase=PHASE_ACTION_ITEMS,
            tool_name=ACTION_ITEMS_TOOL,
            tool_description="Record the action items, linked to decision and agenda item ids.",
            output_model=ActionItemsOutput,
            prompt=prompts.action_items_prompt(agenda, decisions, transcript),
            convert=accept_actions,
        ),
        "Extracting action items",
    )

    final: FinalizeOutput = await ctx.call(
        CallStep(
            name="finalize",
            phase=PHASE_FINALIZE,
            tool_name=FINALIZE_TOOL,
            tool_description="Record the executive summary and notable quotes.",
            output_model=FinalizeOutput,
            prompt=prompts.finalize_prompt(
                template,
                {
                    "sections": payload,
                    "agendaItems": [a.model_dump(by_alias=True, exclude_none=True) for a in agenda],
                    "decisions": [d.model_dump(by_alias=True, exclude_none=True) for d in decisions],
                    "actionItems": [a.model_dump(by_alias=True, exclude_none=True) for a in actions],
                },
                transcript,
            ),
        ),
        "Writing summary and selecting quotes",
    )

    return Draft(
        sections=sections,
        summary=final.summary,
        agenda_items=agenda,
        decisions=decisions,
        action_items=actions,
        quotes=final.quotes,
    )
