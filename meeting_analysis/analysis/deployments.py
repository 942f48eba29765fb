"""Token-budget driven deployment selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from meeting_analysis.analysis.errors import ConfigurationError
from meeting_analysis.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Deployment:
    """A configured model endpoint and its context-length budget."""

    name: str
    token_limit: int


@dataclass(frozen=True)
class DeploymentInfo:
    deployment: str
    token_limit: int
    estimated_tokens: int
    utilization_percentage: float
    is_extended: bool


def configured_deployments(settings: Settings) -> list[Deployment]:
    """Return configured deployments ordered by token limit (smallest first).

    Raises:
        ConfigurationError: If no deployment is configured at all.
    """
    candidates = [
        Deployment(settings.standard_deployment.strip(), settings.standard_token_limit),
        Deployment(settings.extended_deployment.strip(), settings.extended_token_limit),
    ]
    deployments = sorted(
        (d for d in candidates if d.name),
        key=lambda d: d.token_limit,
    )
    if not deployments:
        raise ConfigurationError("No model deployment is configured", phase="deployment")
    return deployments


def select_deployment(estimated_tokens: int, deployments: list[Deployment]) -> DeploymentInfo:
    """Pick the smallest deployment whose limit covers the estimate.

    When the estimate exceeds every limit the largest deployment is used
    anyway and the result is marked ``is_extended``. Any deployment other than
    the smallest one also counts as extended context.
    """
    if not deployments:
        raise ConfigurationError("No model deployment is configured", phase="deployment")

    ordered = sorted(deployments, key=lambda d: d.token_limit)
    chosen = next((d for d in ordered if d.token_limit >= estimated_tokens), None)
    over_budget = chosen is None
    if chosen is None:
        chosen = ordered[-1]
        logger.warning(
            "Estimate of %d tokens exceeds every deployment limit; using %s (%d)",
            estimated_tokens,
            chosen.name,
            chosen.token_limit,
        )

    return DeploymentInfo(
        deployment=chosen.name,
        token_limit=chosen.token_limit,
        estimated_tokens=estimated_tokens,
        utilization_percentage=round(estimated_tokens / chosen.token_limit * 100, 2),
        is_extended=over_budget or chosen is not ordered[0],
    )
