"""
Apple Price Forecaster - Stationarity Assessment
------------------------------------------------
Joint ADF / KPSS testing and differencing until both tests agree the series
is stationary.

ADF has a unit root as its null hypothesis, KPSS has stationarity as its null.
A series is only declared stationary when ADF rejects and KPSS does not.
"""

import warnings
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import InterpolationWarning
from statsmodels.tsa.stattools import adfuller, kpss

from exceptions import NonStationaryAfterMaxDiff


@dataclass(frozen=True)
class StationarityTest:
    adf_statistic: float
    adf_pvalue: float
    adf_critical_value: float
    kpss_statistic: float
    kpss_pvalue: float
    kpss_critical_value: float
    adf_stationary: bool
    kpss_stationary: bool
    n_obs: int

    @property
    def is_stationary(self) -> bool:
        return self.adf_stationary and self.kpss_stationary


@dataclass(frozen=True)
class DifferencingResult:
    series: pd.Series
    order: int
    tests: Tuple[StationarityTest, ...]
    converged: bool


def _critical_value(critical_values: dict, alpha: float) -> Optional[float]:
    key = f"{alpha * 100:g}%"
    return critical_values.get(key)


def _is_constant(values: np.ndarray) -> bool:
    scale = max(1.0, float(np.abs(values).mean()))
    return float(np.ptp(values)) <= 1e-10 * scale


def check_stationarity(series: pd.Series, alpha: float = 0.05, verbose: bool = True) -> StationarityTest:
    """
    Run the ADF and KPSS tests on a series.

    Parameters:
    -----------
    series : pd.Series
        Series to test
    alpha : float
        Significance level used to pick the decision threshold
    verbose : bool
        Whether to print the test results

    Returns:
    --------
    StationarityTest
        Statistics, thresholds and the combined verdict
    """
    values = np.asarray(pd.Series(series).dropna(), dtype=float)

    if _is_constant(values):
        # A constant series is trivially stationary and breaks both regressions
        if verbose:
            print("Series is constant: treating it as stationary without testing.")
        return StationarityTest(
            adf_statistic=np.nan, adf_pvalue=0.0, adf_critical_value=np.nan,
            kpss_statistic=np.nan, kpss_pvalue=1.0, kpss_critical_value=np.nan,
            adf_stationary=True, kpss_stationary=True, n_obs=len(values),
        )

    adf_stat, adf_p, _, _, adf_crit, _ = adfuller(values, autolag='AIC')
    with warnings.catch_warnings():
        # KPSS p-values are clipped to its lookup table
        warnings.simplefilter('ignore', InterpolationWarning)
        kpss_stat, kpss_p, _, kpss_crit = kpss(values, regression='c', nlags='auto')

    adf_threshold = _critical_value(adf_crit, alpha)
    kpss_threshold = _critical_value(kpss_crit, alpha)

    adf_stationary = bool(adf_stat < adf_threshold) if adf_threshold is not None else bool(adf_p < alpha)
    kpss_stationary = bool(kpss_stat < kpss_threshold) if kpss_threshold is not None else bool(kpss_p > alpha)

    result = StationarityTest(
        adf_statistic=float(adf_stat), adf_pvalue=float(adf_p),
        adf_critical_value=float(adf_threshold) if adf_threshold is not None else np.nan,
        kpss_statistic=float(kpss_stat), kpss_pvalue=float(kpss_p),
        kpss_critical_value=float(kpss_threshold) if kpss_threshold is not None else np.nan,
        adf_stationary=adf_stationary, kpss_stationary=kpss_stationary, n_obs=len(values),
    )

    if verbose:
        print(f"ADF Statistic: {result.adf_statistic:.4f} (p-value: {result.adf_pvalue:.4f}, "
              f"critical value: {result.adf_critical_value:.4f}) -> "
              f"{'Stationary' if adf_stationary else 'Non-stationary'}")
        print(f"KPSS Statistic: {result.kpss_statistic:.4f} (p-value: {result.kpss_pvalue:.4f}, "
              f"critical value: {result.kpss_critical_value:.4f}) -> "
              f"{'Stationary' if kpss_stationary else 'Non-stationary'}")
    return result


def difference_until_stationary(series: pd.Series, max_diff: int = 2, alpha: float = 0.05,
                                warn: bool = True, verbose: bool = True) -> DifferencingResult:
    """
    Difference a series until ADF and KPSS agree it is stationary.

    Parameters:
    -----------
    series : pd.Series
        Series to difference (typically log prices)
    max_diff : int
        Maximum differencing order
    alpha : float
        Significance level for both tests
    warn : bool
        Whether to emit NonStationaryAfterMaxDiff when the limit is reached

    Returns:
    --------
    DifferencingResult
        The final series, its differencing order, the test at every order and
        whether the tests ended up agreeing
    """
    current = pd.Series(series).dropna()
    tests = []

    for order in range(max_diff + 1):
        if verbose:
            print(f"\nStationarity test at d={order}:")
        result = check_stationarity(current, alpha=alpha, verbose=verbose)
        tests.append(result)
        if result.is_stationary:
            if verbose:
                print(f"Result: Stationary after {order} difference(s)")
            return DifferencingResult(series=current, order=order, tests=tuple(tests), converged=True)
        if order < max_diff:
            current = current.diff().dropna()

    message = (f"Series is still non-stationary after {max_diff} difference(s); "
               f"continuing with the d={max_diff} series")
    if verbose:
        print(f"WARNING: {message}")
    if warn:
        warnings.warn(message, NonStationaryAfterMaxDiff, stacklevel=2)
    return DifferencingResult(series=current, order=max_diff, tests=tuple(tests), converged=False)


def select_differencing_order(series: pd.Series, max_diff: int = 2, alpha: float = 0.05) -> int:
    """Differencing order for ARIMA estimation, silently capped at max_diff."""
    return difference_until_stationary(series, max_diff=max_diff, alpha=alpha,
                                       warn=False, verbose=False).order
