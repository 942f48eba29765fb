"""Strategy selection driven by an explicit token threshold table."""

from __future__ import annotations

from dataclasses import dataclass

from meeting_analysis.analysis.errors import ConfigurationError
from meeting_analysis.config import Settings
from meeting_analysis.pipeline_config import (
    STRATEGY_INFO,
    AnalysisStrategy,
    StrategyInfo,
    StrategyOption,
    StrategyThreshold,
)


@dataclass(frozen=True)
class StrategySelection:
    strategy: AnalysisStrategy
    was_auto_selected: bool
    reason: str


def build_thresholds(settings: Settings) -> list[StrategyThreshold]:
    """Build the ``strategy -> [min, max)`` table from settings."""
    thresholds = [
        StrategyThreshold(AnalysisStrategy.BASIC, 0, settings.basic_max_tokens),
        StrategyThreshold(
            AnalysisStrategy.HYBRID, settings.basic_max_tokens, settings.hybrid_max_tokens
        ),
        StrategyThreshold(AnalysisStrategy.ADVANCED, settings.hybrid_max_tokens, None),
    ]
    validate_thresholds(thresholds)
    return thresholds


def validate_thresholds(thresholds: list[StrategyThreshold]) -> None:
    """Check the table starts at zero, is contiguous and ends open-ended.

    Raises:
        ConfigurationError: If the table leaves a gap, overlaps or is empty.
    """
    if not thresholds:
        raise ConfigurationError("Strategy threshold table is empty", phase="strategy")
    if thresholds[0].min_tokens != 0:
        raise ConfigurationError("Strategy thresholds must start at 0 tokens", phase="strategy")
    for current, nxt in zip(thresholds, thresholds[1:]):
        if current.max_tokens is None or current.max_tokens != nxt.min_tokens:
            raise ConfigurationError(
                f"Strategy thresholds are not contiguous between "
                f"{current.strategy.value} and {nxt.strategy.value}",
                phase="strategy",
            )
        if current.max_tokens <= current.min_tokens:
            raise ConfigurationError(
                f"Empty token range for {current.strategy.value}", phase="strategy"
            )
    if thresholds[-1].max_tokens is not None:
        raise ConfigurationError(
            "The last strategy threshold must be open-ended", phase="strategy"
        )


def strategy_for_tokens(tokens: int, thresholds: list[StrategyThreshold]) -> AnalysisStrategy:
    for row in thresholds:
        if row.covers(tokens):
            return row.strategy
    # validate_thresholds guarantees coverage of every non-negative count
    return thresholds[-1].strategy


def resolve_strategy(
    requested: StrategyOption | str,
    token_estimate: int,
    thresholds: list[StrategyThreshold],
) -> StrategySelection:
    """Resolve ``auto`` through the threshold table; explicit choices pass through."""
    requested = StrategyOption(requested)
    if requested is not StrategyOption.AUTO:
        strategy = AnalysisStrategy(requested.value)
        return StrategySelection(
            strategy=strategy,
            was_auto_selected=False,
            reason=f"{strategy.value} strategy requested explicitly",
        )

    strategy = strategy_for_tokens(token_estimate, thresholds)
    row = next(t for t in thresholds if t.strategy is strategy)
    if row.max_tokens is None:
        bounds = f">= {row.min_tokens:,} tokens"
    else:
        bounds = f"{row.min_tokens:,}-{row.max_tokens - 1:,} tokens"
    return StrategySelection(
        strategy=strategy,
        was_auto_selected=True,
        reason=f"Transcript is ~{token_estimate:,} tokens ({bounds}); using {strategy.value}",
    )


def strategy_info(strategy: AnalysisStrategy) -> StrategyInfo:
    return STRATEGY_INFO[strategy]
