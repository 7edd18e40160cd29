"""
Apple Price Forecaster - Trend and Seasonality
----------------------------------------------
Descriptive characterization of the series: an OLS trend line against a
synthetic time index and an additive STL decomposition. Nothing downstream
depends on these results.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tsa.seasonal import STL


@dataclass(frozen=True)
class TrendReport:
    slope: float
    intercept: float
    slope_pvalue: float
    r_squared: float
    period: int
    decomposition: Optional[pd.DataFrame]
    notes: Tuple[str, ...] = ()


def fit_linear_trend(series: pd.Series):
    """
    Regress the series on t = 1..n.

    Returns:
    --------
    RegressionResults
        Fitted statsmodels OLS results
    """
    values = np.asarray(series, dtype=float)
    time_index = np.arange(1, len(values) + 1, dtype=float)
    return sm.OLS(values, sm.add_constant(time_index)).fit()


def decompose_series(series: pd.Series, period: int = 252) -> pd.DataFrame:
    """Additive STL decomposition into trend, seasonal and remainder columns."""
    if len(series) < 2 * period:
        raise ValueError(f"STL needs at least two full periods ({2 * period} observations), got {len(series)}")
    result = STL(np.asarray(series, dtype=float), period=period, robust=True).fit()
    return pd.DataFrame({
        'observed': np.asarray(series, dtype=float),
        'trend': np.asarray(result.trend),
        'seasonal': np.asarray(result.seasonal),
        'remainder': np.asarray(result.resid),
    }, index=series.index)


def analyze_trend(series: pd.Series, period: int = 252) -> TrendReport:
    print("\nFitting linear trend against time index...")
    ols = fit_linear_trend(series)
    intercept, slope = (float(v) for v in ols.params)
    slope_pvalue = float(ols.pvalues[1])
    print(f"Slope: {slope:.6f} per observation (p-value: {slope_pvalue:.4g}), R²: {ols.rsquared:.4f}")
    if slope_pvalue <= 0.05:
        print("Indication: Significant linear trend.")
    else:
        print("Indication: No significant linear trend.")

    notes = []
    decomposition = None
    print(f"\nPerforming STL decomposition (period={period})...")
    try:
        decomposition = decompose_series(series, period=period)
        seasonal_share = decomposition['seasonal'].var() / max(decomposition['observed'].var(), 1e-12)
        print(f"Seasonal component explains {seasonal_share:.1%} of the variance.")
    except ValueError as e:
        notes.append(f"Decomposition skipped: {e}")
        print(f"Skipping decomposition: {e}")

    return TrendReport(
        slope=slope,
        intercept=intercept,
        slope_pvalue=slope_pvalue,
        r_squared=float(ols.rsquared),
        period=period,
        decomposition=decomposition,
        notes=tuple(notes),
    )
