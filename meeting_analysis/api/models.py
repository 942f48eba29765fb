"""Pydantic request/response schemas for the Meeting Analysis API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator

from meeting_analysis.analysis.models import (
    AnalysisResults,
    CamelModel,
    EvaluationMetadata,
    RunMetadata,
    Template,
    Transcript,
)
from meeting_analysis.pipeline_config import AnalysisConfig, AnalysisStrategy, StrategyOption


class AnalyzeRequest(CamelModel):
    """Request body for POST /api/analyze."""

    transcript_id: str = Field(min_length=1)
    template_id: str = Field(min_length=1)
    transcript: Transcript
    template: Template
    strategy: StrategyOption = StrategyOption.AUTO
    run_evaluation: bool = True
    config: Any = None

    @field_validator("transcript")
    @classmethod
    def _transcript_text_required(cls, value: Transcript) -> Transcript:
        if not value.text.strip():
            raise ValueError("transcript text must not be empty")
        return value

    def analysis_config(self) -> AnalysisConfig:
        return AnalysisConfig(strategy=self.strategy, run_evaluation=self.run_evaluation)

    @field_validator("config")
    @classmethod
    def _config_reserved(cls, value: Any) -> Any:
        if value is not None:
            raise ValueError("config is reserved and not supported")
        return value


class AnalysisRecord(CamelModel):
    """A completed analysis as returned to the caller."""

    id: str
    transcript_id: str
    template_id: str
    created_at: str
    strategy: AnalysisStrategy
    draft_results: AnalysisResults | None = None
    evaluation: EvaluationMetadata | None = None
    results: AnalysisResults
    metadata: RunMetadata


class AnalyzeResponse(CamelModel):
    success: Literal[True] = True
    data: AnalysisRecord


class ErrorResponse(CamelModel):
    success: Literal[False] = False
    error: str
    type: str
    errors: list[dict[str, Any]] | None = None


class StrategyDescription(CamelModel):
    name: str
    description: str
    speed: str
    api_calls: str
    quality: str
    min_tokens: int
    max_tokens: int | None = None


class AnalyzeInfoResponse(CamelModel):
    """Response body for GET /api/analyze."""

    endpoint: str
    method: str
    strategies: dict[str, StrategyDescription]
    default_strategy: StrategyOption
    evaluation_quality_threshold: float
