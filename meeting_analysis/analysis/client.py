"""Structured model invocation primitive.

Each call step forces Claude to answer through a single tool whose input
schema is generated from the step's pydantic output model. The tool input is
validated on receipt and optionally converted by the step; anything that does
not fit is an ``OutputValidationError``.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from anthropic import (
    APIConnectionError,
    APIStatusError,
    AsyncAnthropic,
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
)
from pydantic import BaseModel, ValidationError

from meeting_analysis.analysis.errors import (
    ConfigurationError,
    OutputValidationError,
    StepFailedError,
    TransientCallError,
)
from meeting_analysis.analysis.prompts import SYSTEM_PROMPT
from meeting_analysis.config import Settings

OutputT = TypeVar("OutputT", bound=BaseModel)

TRANSIENT_STATUS_CODES = frozenset({408, 409, 429, 529})


@dataclass(frozen=True)
class CallStep(Generic[OutputT]):
    """One structured model call.

    ``convert`` turns the validated output into the value the pipeline folds
    into its draft; it raises ``OutputValidationError`` for semantic problems
    (missing sections, unknown ids) so they are retried like shape errors.
    """

    name: str
    phase: str
    tool_name: str
    tool_description: str
    output_model: type[OutputT]
    prompt: str
    convert: Callable[[OutputT], Any] | None = None

    @property
    def tool(self) -> dict[str, Any]:
        return {
            "name": self.tool_name,
            "description": self.tool_description,
            "input_schema": self.output_model.model_json_schema(),
        }


def get_anthropic_client(settings: Settings) -> AsyncAnthropic:
    """Build the async SDK client with its own retries disabled.

    Raises:
        ConfigurationError: If no API key is configured.
    """
    if not settings.anthropic_api_key:
        raise ConfigurationError("Model API key is not configured", phase="deployment")
    return AsyncAnthropic(api_key=settings.anthropic_api_key, max_retries=0)


def classify_api_error(exc: Exception, phase: str) -> Exception:
    """Map an SDK exception onto the analysis error taxonomy."""
    if isinstance(exc, APIConnectionError):
        # includes APITimeoutError
        return TransientCallError(f"Connection to model API failed: {exc}", phase=phase)
    if isinstance(exc, AuthenticationError | PermissionDeniedError | NotFoundError):
        return ConfigurationError(
            "Model deployment rejected the request; check credentials and deployment",
            phase=phase,
        )
    if isinstance(exc, APIStatusError):
        if exc.status_code in TRANSIENT_STATUS_CODES or exc.status_code >= 500:
            return TransientCallError(
                f"Model API returned {exc.status_code}", phase=phase
            )
        return StepFailedError(
            f"Model API rejected the request ({exc.status_code})", phase=phase
        )
    return exc


def parse_tool_response(response: Any, step: CallStep[OutputT]) -> Any:
    """Extract, validate and convert the step's tool input from a response."""
    for block in response.content:
        if block.type != "tool_use":
            continue
        if block.name != step.tool_name:
            continue

        data = block.input
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as exc:
                raise OutputValidationError(
                    f"{step.name}: tool input is not valid JSON", phase=step.phase
                ) from exc

        try:
            output = step.output_model.model_validate(data)
        except ValidationError as exc:
            raise OutputValidationError(
                f"{step.name}: output does not match expected shape "
                f"({exc.error_count()} errors)",
                phase=step.phase,
            ) from exc

        if step.convert is None:
            return output
        return step.convert(output)

    raise OutputValidationError(
        f"{step.name}: response contained no {step.tool_name} tool call", phase=step.phase
    )


class ModelClient:
    """Issues single structured calls against one deployment."""

    def __init__(self, client: AsyncAnthropic, deployment: str, max_output_tokens: int) -> None:
        self._client = client
        self.deployment = deployment
        self.max_output_tokens = max_output_tokens

    async def invoke(self, step: CallStep[OutputT]) -> Any:
        try:
            response = await self._client.messages.create(
                model=self.deployment,
                max_tokens=self.max_output_tokens,
                system=SYSTEM_PROMPT,
                tools=[step.tool],
                tool_choice={"type": "tool", "name": step.tool_name},
                messages=[{"role": "user", "content": step.prompt}],
            )
        except (APIConnectionError, APIStatusError) as exc:
            raise classify_api_error(exc, step.phase) from exc

        if response.stop_reason == "max_tokens":
            # Truncated output will not fit in a retry either.
            raise StepFailedError(
                f"{step.name}: response truncated at {self.max_output_tokens} tokens",
                phase=step.phase,
            )
        return parse_tool_response(response, step)
