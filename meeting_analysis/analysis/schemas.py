"""Expected JSON shapes of each model call step.

Every call step forces a single tool whose ``input_schema`` is generated from
one of these models, and the tool input is validated against the same model
on receipt. Item ids are optional here; they are assigned during linking.
"""

from __future__ import annotations

from pydantic import Field, field_validator

from meeting_analysis.analysis.models import (
    ActionItem,
    AgendaItem,
    CamelModel,
    Decision,
    Quote,
)


class EvidenceOutput(CamelModel):
    text: str = Field(description="Verbatim quote copied from the transcript.")
    start: float | None = Field(default=None, description="Start time in seconds.")
    end: float | None = Field(default=None, description="End time in seconds.")
    relevance: float = Field(default=1.0, description="Relevance to the section, 0-1.")

    @field_validator("relevance", mode="before")
    @classmethod
    def _clamp_relevance(cls, value: object) -> float:
        try:
            score = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 1.0
        return max(0.0, min(1.0, score))


class SectionOutput(CamelModel):
    section_id: str | None = Field(default=None, description="Id of the template section.")
    name: str = Field(description="Name of the template section.")
    content: str = Field(description="Section content in the requested format.")
    evidence: list[EvidenceOutput] = Field(default_factory=list)


class AgendaItemOutput(AgendaItem):
    id: str | None = None


class DecisionOutput(Decision):
    id: str | None = None

    @field_validator("related_agenda_item_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        return value or None


class ActionItemOutput(ActionItem):
    id: str | None = None

    @field_validator("related_agenda_item_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        return value or None

    @field_validator("related_decision_ids", mode="before")
    @classmethod
    def _drop_blank_ids(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            return [v for v in value if v]
        return value


class QuoteOutput(Quote):
    id: str | None = None


# ---------------------------------------------------------------------------
# Step outputs
# ---------------------------------------------------------------------------


class SectionBatchOutput(CamelModel):
    sections: list[SectionOutput]


class SynthesisOutput(CamelModel):
    summary: str | None = None
    agenda_items: list[AgendaItemOutput] = Field(default_factory=list)
    decisions: list[DecisionOutput] = Field(default_factory=list)
    action_items: list[ActionItemOutput] = Field(default_factory=list)
    quotes: list[QuoteOutput] = Field(default_factory=list)


class FullAnalysisOutput(SynthesisOutput):
    """Single-call analysis: every section plus every cross-cutting output."""

    sections: list[SectionOutput]


class AgendaOutput(CamelModel):
    agenda_items: list[AgendaItemOutput]


class DecisionsOutput(CamelModel):
    decisions: list[DecisionOutput]


class ActionItemsOutput(CamelModel):
    action_items: list[ActionItemOutput]


class FinalizeOutput(CamelModel):
    summary: str
    quotes: list[QuoteOutput] = Field(default_factory=list)


class EvaluationOutput(CamelModel):
    quality_score: float = Field(description="Overall quality from 0 (unusable) to 10 (excellent).")
    reasoning: str = ""
    improvements: list[str] = Field(default_factory=list)
    additions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @field_validator("quality_score", mode="before")
    @classmethod
    def _clamp_score(cls, value: object) -> float:
        score = float(value)  # type: ignore[arg-type]
        return max(0.0, min(10.0, score))
