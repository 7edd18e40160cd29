"""
Apple Price Forecaster - Variance Stabilization
-----------------------------------------------
Log and Box-Cox transforms used to stabilize the variance of the price series.

The Box-Cox parameter is estimated once per run from the raw series and the
same value is used for every forward and inverse transform of that run.
"""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import pandas as pd
from scipy import special, stats
from statsmodels.base.transform import BoxCox

from exceptions import TransformError

ArrayLike = Union[pd.Series, np.ndarray]


@dataclass(frozen=True)
class BoxCoxResult:
    lmbda: float
    transformed: pd.Series
    method: str
    is_log_equivalent: bool


def check_positive(series: ArrayLike, label: str = 'series') -> None:
    """Raise TransformError if any value is zero or negative."""
    values = np.asarray(series, dtype=float)
    bad = values <= 0
    if bad.any():
        raise TransformError(
            f"Cannot transform {label}: {int(bad.sum())} non-positive value(s), minimum {np.nanmin(values):.4f}"
        )


def log_transform(series: pd.Series) -> pd.Series:
    """Natural log of a strictly positive series."""
    check_positive(series, label=series.name or 'series')
    return np.log(series).rename(f"log_{series.name}" if series.name else None)


def _guerrero_window(n: int, seasonal_period: Optional[int]) -> int:
    # Subseries length for the Guerrero coefficient-of-variation criterion
    if seasonal_period and n >= 2 * seasonal_period:
        return seasonal_period
    return max(2, n // 10)


def estimate_boxcox_lambda(series: ArrayLike, method: str = 'guerrero',
                           seasonal_period: Optional[int] = None) -> float:
    """
    Estimate the Box-Cox parameter.

    Parameters:
    -----------
    series : pd.Series or np.ndarray
        Strictly positive observations
    method : str
        'guerrero' (statsmodels BoxCox, minimizes the coefficient of variation
        of subseries) or 'mle' (scipy maximum likelihood)
    seasonal_period : int, optional
        Subseries length for the Guerrero method

    Returns:
    --------
    float
        Estimated lambda
    """
    check_positive(series)
    values = np.asarray(series, dtype=float)

    if method not in ('guerrero', 'mle'):
        raise ValueError(f"Unknown lambda estimation method: {method}")

    try:
        if method == 'guerrero':
            _, lmbda = BoxCox().transform_boxcox(values, method='guerrero',
                                                 window_length=_guerrero_window(len(values), seasonal_period))
        else:
            lmbda = stats.boxcox_normmax(values, method='mle')
    except (ValueError, FloatingPointError, np.linalg.LinAlgError) as e:
        raise TransformError(f"Box-Cox lambda estimation ({method}) failed: {e}") from e

    if not np.isfinite(lmbda):
        raise TransformError(f"Box-Cox lambda estimation returned {lmbda}")
    return float(lmbda)


def boxcox_transform(series: ArrayLike, lmbda: float) -> ArrayLike:
    """(x^lambda - 1) / lambda, or log(x) at lambda = 0."""
    check_positive(series)
    transformed = special.boxcox(np.asarray(series, dtype=float), lmbda)
    if isinstance(series, pd.Series):
        return pd.Series(transformed, index=series.index, name=series.name)
    return transformed


def inverse_boxcox(series: ArrayLike, lmbda: float, variance: Optional[ArrayLike] = None) -> ArrayLike:
    """
    Invert the Box-Cox transform.

    Parameters:
    -----------
    series : pd.Series or np.ndarray
        Values on the transformed scale
    lmbda : float
        The lambda used for the forward transform
    variance : array-like, optional
        Forecast variance on the transformed scale. When given, the result is
        the bias-adjusted mean rather than the median.

    Returns:
    --------
    pd.Series or np.ndarray
        Values on the original scale
    """
    values = np.asarray(series, dtype=float)
    original = special.inv_boxcox(values, lmbda)

    if variance is not None:
        variance = np.asarray(variance, dtype=float)
        original = original * (1 + 0.5 * variance * (1 - lmbda) / np.power(original, 2 * lmbda))

    if isinstance(series, pd.Series):
        return pd.Series(original, index=series.index, name=series.name)
    return original


def is_log_equivalent(lmbda: float, tolerance: float = 0.15) -> bool:
    """Whether lambda is close enough to 0 to report the transform as a log."""
    return abs(lmbda) < tolerance


def stabilize_variance(series: pd.Series, method: str = 'guerrero', tolerance: float = 0.15,
                       seasonal_period: Optional[int] = None) -> BoxCoxResult:
    """
    Estimate lambda on the raw series and transform it.

    Raises:
    -------
    TransformError
        If the series contains non-positive values or lambda cannot be estimated
    """
    print(f"\nEstimating Box-Cox lambda ({method} method)...")
    lmbda = estimate_boxcox_lambda(series, method=method, seasonal_period=seasonal_period)
    transformed = boxcox_transform(series, lmbda).rename(f"boxcox_{series.name}" if series.name else None)
    log_like = is_log_equivalent(lmbda, tolerance)

    print(f"Box-Cox lambda: {lmbda:.4f}")
    if log_like:
        print(f"Indication: |lambda| < {tolerance}, the transform is effectively a log transform.")

    return BoxCoxResult(lmbda=lmbda, transformed=transformed, method=method, is_log_equivalent=log_like)
