"""Data models for analysis inputs, results and run metadata.

All models serialise with camelCase keys (``by_alias=True``) to match the
HTTP contract, and accept either camelCase or snake_case on input.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from meeting_analysis.pipeline_config import AnalysisStrategy


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OutputFormat(StrEnum):
    """How a section's content is laid out."""

    BULLET_POINTS = "bullet_points"
    PARAGRAPH = "paragraph"
    TABLE = "table"


class OutputType(StrEnum):
    """Cross-cutting outputs a template may request."""

    SUMMARY = "summary"
    ACTION_ITEMS = "action_items"
    QUOTES = "quotes"
    DECISIONS = "decisions"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class TemplateSection(CamelModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    prompt: str
    extract_evidence: bool = True
    output_format: OutputFormat = OutputFormat.BULLET_POINTS
    dependencies: list[str] = Field(default_factory=list)


class Template(CamelModel):
    """User-defined analysis template.

    ``sections`` may be empty at the model level so the orchestrator can
    reject it with a dedicated invalid-template error before any call.
    """

    name: str
    sections: list[TemplateSection] = Field(default_factory=list, max_length=20)
    outputs: list[OutputType] = Field(min_length=1, max_length=4)

    @model_validator(mode="after")
    def _dedupe_outputs(self) -> Template:
        seen: list[OutputType] = []
        for output in self.outputs:
            if output not in seen:
                seen.append(output)
        self.outputs = seen
        return self

    def wants(self, output: OutputType) -> bool:
        return output in self.outputs


class TranscriptSegment(CamelModel):
    index: int
    start: float
    end: float
    text: str
    speaker: str | None = None


class Transcript(CamelModel):
    text: str
    segments: list[TranscriptSegment] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class Evidence(CamelModel):
    """A verbatim transcript quote supporting a section."""

    text: str
    start: float
    end: float
    relevance: float = Field(default=1.0, ge=0.0, le=1.0)


class AnalysisSection(CamelModel):
    name: str
    content: str
    evidence: list[Evidence] = Field(default_factory=list)


class AgendaItem(CamelModel):
    id: str
    topic: str
    timestamp: float | None = None
    context: str | None = None


class Decision(CamelModel):
    id: str
    decision: str
    context: str | None = None
    timestamp: float | None = None
    related_agenda_item_id: str | None = None


class ActionItem(CamelModel):
    id: str
    task: str
    owner: str | None = None
    deadline: str | None = None
    timestamp: float | None = None
    related_agenda_item_id: str | None = None
    related_decision_ids: list[str] = Field(default_factory=list)


class Quote(CamelModel):
    id: str
    text: str
    speaker: str | None = None
    timestamp: float | None = None


class AnalysisResults(CamelModel):
    summary: str | None = None
    sections: list[AnalysisSection] = Field(default_factory=list)
    agenda_items: list[AgendaItem] | None = None
    action_items: list[ActionItem] | None = None
    decisions: list[Decision] | None = None
    quotes: list[Quote] | None = None


class OrphanedItems(CamelModel):
    decisions_without_agenda: list[str] = Field(default_factory=list)
    action_items_without_decisions: list[str] = Field(default_factory=list)
    agenda_items_without_decisions: list[str] = Field(default_factory=list)


class EvaluationMetadata(CamelModel):
    # None when the draft could not be scored
    quality_score: float | None = Field(default=None, ge=0.0, le=10.0)
    was_revised: bool = False
    notes: str | None = None
    improvements: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    orphaned_items: OrphanedItems | None = None


class RunMetadata(CamelModel):
    was_auto_selected: bool
    deployment_used: str
    token_estimate: int
    call_count: int
    is_extended_context: bool = False
    evaluation_call_count: int = 0
    evaluation_error: str | None = None


class AnalysisRunResult(CamelModel):
    strategy: AnalysisStrategy
    draft_results: AnalysisResults | None = None
    evaluation: EvaluationMetadata | None = None
    results: AnalysisResults
    metadata: RunMetadata
