"""Exception hierarchy for the analysis core."""

from __future__ import annotations


class AnalysisError(Exception):
    """Base class for every failure raised by an analysis run.

    ``phase`` names the logical pipeline phase that failed, when known.
    """

    def __init__(self, message: str, phase: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase

    def __str__(self) -> str:
        if self.phase:
            return f"{self.message} (phase: {self.phase})"
        return self.message


class ConfigurationError(AnalysisError):
    """Missing or unusable model deployment / credentials. Never retried."""


class InvalidInputError(AnalysisError):
    """Request input that cannot be analysed. Raised before any model call."""


class InvalidTemplateError(InvalidInputError):
    pass


class InvalidTranscriptError(InvalidInputError):
    pass


class OutputValidationError(AnalysisError):
    """A model response did not match the step's expected shape."""


class RelationshipValidationError(OutputValidationError):
    """A result references an id that is not present in the same result."""


class TransientCallError(AnalysisError):
    """Network, timeout, rate-limit or 5xx failure from the model API."""


class StepFailedError(AnalysisError):
    """A call step failed for good (retries exhausted or non-retryable)."""


class AnalysisCancelledError(AnalysisError):
    """The caller cancelled the run."""

    def __init__(self, message: str = "Analysis cancelled", phase: str | None = None) -> None:
        super().__init__(message, phase)


class EvaluationError(AnalysisError):
    """The evaluation or revision pass failed. Recovered by the orchestrator."""
