"""Analysis endpoint: run the strategy engine over a transcript and template."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from meeting_analysis.analysis.errors import (
    AnalysisError,
    ConfigurationError,
    InvalidTemplateError,
    InvalidTranscriptError,
)
from meeting_analysis.analysis.orchestrator import execute_analysis
from meeting_analysis.analysis.progress import ProgressEvent
from meeting_analysis.analysis.strategy import build_thresholds
from meeting_analysis.api.models import (
    AnalysisRecord,
    AnalyzeInfoResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    ErrorResponse,
    StrategyDescription,
)
from meeting_analysis.config import settings
from meeting_analysis.pipeline_config import STRATEGY_INFO, StrategyOption

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, error: str, error_type: str) -> JSONResponse:
    body = ErrorResponse(error=error, type=error_type)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True))


def _log_progress(event: ProgressEvent) -> None:
    logger.debug("[%d/%d] %s: %s", event.step, event.total_steps, event.phase, event.message)


@router.post(
    "/api/analyze",
    response_model=AnalyzeResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def analyze(request: AnalyzeRequest) -> AnalyzeResponse | JSONResponse:
    """Analyse a transcript against a template.

    Empty transcripts and templates are rejected before any model call is made.
    """
    if not request.transcript.segments:
        return _error(400, "Transcript has no segments to analyse", "invalid_transcript")
    if not request.template.sections:
        return _error(400, "Template has no sections", "invalid_template")

    config = request.analysis_config()
    try:
        run = await execute_analysis(
            request.template,
            request.transcript,
            strategy=config.strategy,
            run_evaluation=config.run_evaluation,
            settings=settings,
            progress=_log_progress,
        )
    except InvalidTranscriptError as exc:
        return _error(400, exc.message, "invalid_transcript")
    except InvalidTemplateError as exc:
        return _error(400, exc.message, "invalid_template")
    except ConfigurationError:
        logger.exception("Analysis configuration error")
        # Upstream detail stays in the logs.
        return _error(
            500,
            "Analysis service is not configured correctly. Please contact an administrator.",
            "configuration_error",
        )
    except AnalysisError as exc:
        logger.warning("Analysis failed: %s", exc)
        phase = exc.phase or "unknown"
        return _error(500, f"Analysis failed during {phase} phase: {exc.message}", "analysis_error")
    except Exception:
        logger.exception("Unexpected analysis failure")
        return _error(500, "Analysis failed due to an unexpected error", "analysis_error")

    return AnalyzeResponse(
        data=AnalysisRecord(
            id=str(uuid.uuid4()),
            transcript_id=request.transcript_id,
            template_id=request.template_id,
            created_at=datetime.now(UTC).isoformat(),
            strategy=run.strategy,
            draft_results=run.draft_results,
            evaluation=run.evaluation,
            results=run.results,
            metadata=run.metadata,
        )
    )


@router.get("/api/analyze", response_model=AnalyzeInfoResponse, response_model_by_alias=True)
async def analyze_info() -> AnalyzeInfoResponse:
    """Describe the available strategies and the thresholds ``auto`` uses."""
    thresholds = {t.strategy: t for t in build_thresholds(settings)}
    return AnalyzeInfoResponse(
        endpoint="/api/analyze",
        method="POST",
        strategies={
            strategy.value: StrategyDescription(
                name=info.name,
                description=info.description,
                speed=info.speed,
                api_calls=info.api_calls,
                quality=info.quality,
                min_tokens=thresholds[strategy].min_tokens,
                max_tokens=thresholds[strategy].max_tokens,
            )
            for strategy, info in STRATEGY_INFO.items()
        },
        default_strategy=StrategyOption.AUTO,
        evaluation_quality_threshold=settings.evaluation_quality_threshold,
    )
