"""Pipeline configuration: strategy enums, threshold rows and AnalysisConfig."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AnalysisStrategy(str, Enum):
    """Concrete call pipelines a run can execute."""

    BASIC = "basic"
    HYBRID = "hybrid"
    ADVANCED = "advanced"


class StrategyOption(str, Enum):
    """Strategy values a caller may request; ``auto`` defers to thresholds."""

    AUTO = "auto"
    BASIC = "basic"
    HYBRID = "hybrid"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class StrategyThreshold:
    """Token range ``[min_tokens, max_tokens)`` served by one strategy.

    ``max_tokens=None`` means the range is open-ended.
    """

    strategy: AnalysisStrategy
    min_tokens: int
    max_tokens: int | None = None

    def covers(self, tokens: int) -> bool:
        if tokens < self.min_tokens:
            return False
        return self.max_tokens is None or tokens < self.max_tokens


@dataclass(frozen=True)
class StrategyInfo:
    """Indicative cost profile shown to callers choosing a strategy."""

    name: str
    description: str
    speed: str
    api_calls: str
    quality: str


@dataclass(frozen=True)
class AnalysisConfig:
    """Immutable per-request analysis configuration."""

    strategy: StrategyOption = StrategyOption.AUTO
    run_evaluation: bool = True


STRATEGY_INFO: dict[AnalysisStrategy, StrategyInfo] = {
    AnalysisStrategy.BASIC: StrategyInfo(
        name="Basic",
        description="Single call covering every section and output.",
        speed="~30-60 seconds",
        api_calls="1",
        quality="Good for short meetings",
    ),
    AnalysisStrategy.HYBRID: StrategyInfo(
        name="Hybrid",
        description="Sections in up to two batches, then one synthesis call.",
        speed="~2-3 minutes",
        api_calls="3",
        quality="Balanced quality and speed",
    ),
    AnalysisStrategy.ADVANCED: StrategyInfo(
        name="Advanced",
        description=(
            "One call per section, then cascading agenda, decision, "
            "action item and summary calls with explicit links."
        ),
        speed="~4-5 minutes",
        api_calls="9-10",
        quality="Highest grounding and relationship quality",
    ),
}
