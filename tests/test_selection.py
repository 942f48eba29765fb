"""Tests for token estimation, deployment selection and strategy selection."""

from __future__ import annotations

import pytest

from meeting_analysis.analysis.deployments import (
    Deployment,
    configured_deployments,
    select_deployment,
)
from meeting_analysis.analysis.errors import ConfigurationError
from meeting_analysis.analysis.strategy import (
    build_thresholds,
    resolve_strategy,
    strategy_for_tokens,
    validate_thresholds,
)
from meeting_analysis.analysis.tokens import estimate_tokens
from meeting_analysis.pipeline_config import (
    AnalysisStrategy,
    StrategyOption,
    StrategyThreshold,
)

DEPLOYMENTS = [
    Deployment("claude-extended", 1_000_000),
    Deployment("claude-standard", 200_000),
]

# ---------------------------------------------------------------------------
# Token estimator
# ---------------------------------------------------------------------------


class TestEstimateTokens:
    def test_empty_text(self) -> None:
        assert estimate_tokens("") == 0

    def test_rounds_up(self) -> None:
        assert estimate_tokens("abc") == 1
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_deterministic(self) -> None:
        text = "The quarterly budget was approved. " * 50
        assert estimate_tokens(text) == estimate_tokens(text)

    def test_monotonic_in_length(self) -> None:
        estimates = [estimate_tokens("x" * n) for n in range(0, 200, 7)]
        assert estimates == sorted(estimates)


# ---------------------------------------------------------------------------
# Deployment selector
# ---------------------------------------------------------------------------


class TestSelectDeployment:
    def test_smallest_covering_deployment(self) -> None:
        info = select_deployment(50_000, DEPLOYMENTS)
        assert info.deployment == "claude-standard"
        assert info.token_limit == 200_000
        assert info.estimated_tokens == 50_000
        assert info.utilization_percentage == 25.0
        assert info.is_extended is False

    def test_exact_limit_fits(self) -> None:
        assert select_deployment(200_000, DEPLOYMENTS).deployment == "claude-standard"

    def test_larger_estimate_uses_extended(self) -> None:
        info = select_deployment(300_000, DEPLOYMENTS)
        assert info.deployment == "claude-extended"
        assert info.is_extended is True

    def test_estimate_beyond_every_limit_degrades(self) -> None:
        """An oversize transcript gets the largest deployment instead of an error."""
        info = select_deployment(5_000_000, DEPLOYMENTS)
        assert info.deployment == "claude-extended"
        assert info.is_extended is True
        assert info.utilization_percentage == 500.0

    def test_single_deployment_over_limit(self) -> None:
        info = select_deployment(300_000, [Deployment("claude-standard", 200_000)])
        assert info.deployment == "claude-standard"
        assert info.is_extended is True

    def test_no_deployments_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            select_deployment(10, [])


class TestConfiguredDeployments:
    def test_both_configured_sorted_by_limit(self, make_settings) -> None:
        deployments = configured_deployments(make_settings())
        assert [d.name for d in deployments] == ["claude-standard", "claude-extended"]

    def test_blank_names_are_skipped(self, make_settings) -> None:
        deployments = configured_deployments(make_settings(extended_deployment="  "))
        assert [d.name for d in deployments] == ["claude-standard"]

    def test_nothing_configured_raises(self, make_settings) -> None:
        settings = make_settings(standard_deployment="", extended_deployment="")
        with pytest.raises(ConfigurationError) as exc_info:
            configured_deployments(settings)
        assert exc_info.value.phase == "deployment"


# ---------------------------------------------------------------------------
# Strategy selector
# ---------------------------------------------------------------------------


class TestThresholds:
    def test_table_from_settings(self, make_settings) -> None:
        table = build_thresholds(make_settings(basic_max_tokens=100, hybrid_max_tokens=500))
        assert table == [
            StrategyThreshold(AnalysisStrategy.BASIC, 0, 100),
            StrategyThreshold(AnalysisStrategy.HYBRID, 100, 500),
            StrategyThreshold(AnalysisStrategy.ADVANCED, 500, None),
        ]

    def test_inverted_thresholds_rejected(self, make_settings) -> None:
        with pytest.raises(ConfigurationError):
            build_thresholds(make_settings(basic_max_tokens=500, hybrid_max_tokens=100))

    def test_gap_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            validate_thresholds(
                [
                    StrategyThreshold(AnalysisStrategy.BASIC, 0, 100),
                    StrategyThreshold(AnalysisStrategy.ADVANCED, 200, None),
                ]
            )

    def test_closed_last_row_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            validate_thresholds([StrategyThreshold(AnalysisStrategy.BASIC, 0, 100)])

    def test_empty_table_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            validate_thresholds([])


class TestResolveStrategy:
    @pytest.fixture
    def table(self, make_settings):
        return build_thresholds(make_settings(basic_max_tokens=100, hybrid_max_tokens=500))

    @pytest.mark.parametrize(
        ("tokens", "expected"),
        [
            (0, AnalysisStrategy.BASIC),
            (99, AnalysisStrategy.BASIC),
            (100, AnalysisStrategy.HYBRID),
            (499, AnalysisStrategy.HYBRID),
            (500, AnalysisStrategy.ADVANCED),
            (10_000_000, AnalysisStrategy.ADVANCED),
        ],
    )
    def test_auto_uses_thresholds(self, table, tokens, expected) -> None:
        selection = resolve_strategy(StrategyOption.AUTO, tokens, table)
        assert selection.strategy is expected
        assert selection.was_auto_selected is True

    def test_auto_is_deterministic(self, table) -> None:
        first = resolve_strategy("auto", 250, table)
        second = resolve_strategy("auto", 250, table)
        assert first == second

    def test_auto_is_monotonic(self, table) -> None:
        order = list(AnalysisStrategy)
        ranks = [order.index(strategy_for_tokens(t, table)) for t in range(0, 1000, 25)]
        assert ranks == sorted(ranks)

    def test_explicit_strategy_bypasses_thresholds(self, table) -> None:
        selection = resolve_strategy("advanced", 5, table)
        assert selection.strategy is AnalysisStrategy.ADVANCED
        assert selection.was_auto_selected is False

    def test_unknown_strategy_raises(self, table) -> None:
        with pytest.raises(ValueError):
            resolve_strategy("turbo", 5, table)
