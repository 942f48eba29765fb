"""Tests for API endpoints (no external API keys required)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from meeting_analysis.analysis.errors import (
    ConfigurationError,
    InvalidTemplateError,
    StepFailedError,
)
from meeting_analysis.analysis.models import (
    AnalysisResults,
    AnalysisRunResult,
    AnalysisSection,
    RunMetadata,
)
from meeting_analysis.api.main import app
from meeting_analysis.pipeline_config import AnalysisStrategy

client = TestClient(app)
client_no_raise = TestClient(app, raise_server_exceptions=False)

EXECUTE = "meeting_analysis.api.routes.analyze.execute_analysis"


def _body(**overrides) -> dict:
    body = {
        "transcriptId": "t-1",
        "templateId": "tpl-1",
        "transcript": {
            "text": "We should approve the budget today.",
            "segments": [
                {"index": 0, "start": 0, "end": 4, "text": "We should approve the budget today.", "speaker": "Bob"}
            ],
        },
        "template": {
            "name": "Team sync",
            "sections": [
                {
                    "id": "s1",
                    "name": "Decisions",
                    "prompt": "List decisions",
                    "extractEvidence": True,
                    "outputFormat": "bullet_points",
                }
            ],
            "outputs": ["summary"],
        },
    }
    body.update(overrides)
    return body


def _run_result() -> AnalysisRunResult:
    return AnalysisRunResult(
        strategy=AnalysisStrategy.BASIC,
        results=AnalysisResults(
            summary="Approved.",
            sections=[AnalysisSection(name="Decisions", content="- Budget approved")],
            agenda_items=[],
        ),
        metadata=RunMetadata(
            was_auto_selected=True,
            deployment_used="claude-standard",
            token_estimate=9,
            call_count=1,
        ),
    )


def test_health():
    response = client.get("/health")
    assert response.status_code == 200


# ---------------------------------------------------------------------------
# POST /api/analyze
# ---------------------------------------------------------------------------


class TestAnalyzeValidation:
    def test_missing_fields_returns_400(self) -> None:
        response = client.post("/api/analyze", json={})
        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["type"] == "validation_error"
        assert data["errors"]

    def test_empty_transcript_id(self) -> None:
        response = client.post("/api/analyze", json=_body(transcriptId=""))
        assert response.status_code == 400
        assert response.json()["type"] == "validation_error"

    def test_unknown_strategy(self) -> None:
        response = client.post("/api/analyze", json=_body(strategy="turbo"))
        assert response.status_code == 400

    def test_reserved_config_rejected(self) -> None:
        response = client.post("/api/analyze", json=_body(config={"temperature": 0}))
        assert response.status_code == 400
        assert response.json()["type"] == "validation_error"

    def test_outputs_required(self) -> None:
        body = _body()
        body["template"]["outputs"] = []
        response = client.post("/api/analyze", json=body)
        assert response.status_code == 400

    def test_empty_segments_before_any_call(self) -> None:
        body = _body()
        body["transcript"]["segments"] = []
        with patch(EXECUTE, new_callable=AsyncMock) as mock_execute:
            response = client.post("/api/analyze", json=body)
        assert response.status_code == 400
        assert response.json()["type"] == "invalid_transcript"
        mock_execute.assert_not_called()

    def test_empty_sections_before_any_call(self) -> None:
        body = _body()
        body["template"]["sections"] = []
        with patch(EXECUTE, new_callable=AsyncMock) as mock_execute:
            response = client.post("/api/analyze", json=body)
        assert response.status_code == 400
        assert response.json()["type"] == "invalid_template"
        mock_execute.assert_not_called()


class TestAnalyzeExecution:
    def test_success(self) -> None:
        with patch(EXECUTE, new_callable=AsyncMock, return_value=_run_result()) as mock_execute:
            response = client.post("/api/analyze", json=_body(strategy="basic", runEvaluation=False))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        record = data["data"]
        assert record["transcriptId"] == "t-1"
        assert record["templateId"] == "tpl-1"
        assert record["id"]
        assert record["createdAt"]
        assert record["strategy"] == "basic"
        assert record["results"]["sections"][0]["name"] == "Decisions"
        assert record["metadata"]["wasAutoSelected"] is True
        assert record["metadata"]["callCount"] == 1
        assert "draftResults" not in record
        assert "evaluation" not in record
        assert "decisions" not in record["results"]
        assert "quotes" not in record["results"]
        assert record["results"]["agendaItems"] == []

        kwargs = mock_execute.call_args.kwargs
        assert kwargs["strategy"] == "basic"
        assert kwargs["run_evaluation"] is False

    def test_configuration_error_hides_detail(self) -> None:
        error = ConfigurationError("upstream said: key sk-123 invalid", phase="analysis")
        with patch(EXECUTE, new_callable=AsyncMock, side_effect=error):
            response = client.post("/api/analyze", json=_body())
        assert response.status_code == 500
        data = response.json()
        assert data["type"] == "configuration_error"
        assert "sk-123" not in data["error"]

    def test_step_failure_names_phase(self) -> None:
        error = StepFailedError("decisions failed after 3 attempts", phase="decisions")
        with patch(EXECUTE, new_callable=AsyncMock, side_effect=error):
            response = client.post("/api/analyze", json=_body())
        assert response.status_code == 500
        data = response.json()
        assert data["type"] == "analysis_error"
        assert "decisions" in data["error"]

    def test_invalid_dependencies_are_template_errors(self) -> None:
        error = InvalidTemplateError("Circular section dependencies", phase="validation")
        with patch(EXECUTE, new_callable=AsyncMock, side_effect=error):
            response = client.post("/api/analyze", json=_body())
        assert response.status_code == 400
        assert response.json()["type"] == "invalid_template"

    def test_unexpected_error(self) -> None:
        with patch(EXECUTE, new_callable=AsyncMock, side_effect=RuntimeError("kaboom")):
            response = client_no_raise.post("/api/analyze", json=_body())
        assert response.status_code == 500
        data = response.json()
        assert data["type"] == "analysis_error"
        assert "kaboom" not in data["error"]


# ---------------------------------------------------------------------------
# GET /api/analyze
# ---------------------------------------------------------------------------


class TestAnalyzeInfo:
    def test_lists_strategies(self) -> None:
        response = client.get("/api/analyze")
        assert response.status_code == 200
        data = response.json()
        assert set(data["strategies"]) == {"basic", "hybrid", "advanced"}
        assert data["strategies"]["basic"]["minTokens"] == 0
        assert data["strategies"]["advanced"]["maxTokens"] is None
        assert data["strategies"]["hybrid"]["apiCalls"] == "3"
        assert data["defaultStrategy"] == "auto"
