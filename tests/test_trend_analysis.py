"""
tests/test_trend_analysis.py
────────────────────────────
OLS trend and STL decomposition.
"""

import pytest

from trend_analysis import analyze_trend, decompose_series, fit_linear_trend


def test_linear_trend_recovers_slope(linear_prices):
    ols = fit_linear_trend(linear_prices)
    intercept, slope = ols.params
    assert slope == pytest.approx(0.5)
    assert intercept == pytest.approx(99.5)


def test_decomposition_components_add_up(well_behaved_prices):
    parts = decompose_series(well_behaved_prices, period=5)
    recomposed = parts['trend'] + parts['seasonal'] + parts['remainder']
    assert list(parts.columns) == ['observed', 'trend', 'seasonal', 'remainder']
    assert (recomposed - parts['observed']).abs().max() < 1e-8


def test_decomposition_needs_two_periods(linear_prices):
    with pytest.raises(ValueError):
        decompose_series(linear_prices, period=100)


def test_analyze_trend_records_skipped_decomposition(linear_prices):
    report = analyze_trend(linear_prices, period=252)
    assert report.decomposition is None
    assert report.notes
    assert report.slope == pytest.approx(0.5)
