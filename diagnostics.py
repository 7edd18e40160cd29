"""
Apple Price Forecaster - Residual Diagnostics
---------------------------------------------
Portmanteau (Ljung-Box) and normality (Shapiro-Wilk) checks of in-sample
residuals. Results are informational: a model that fails a test stays in the
bank and is still evaluated.
"""

import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.diagnostic import acorr_ljungbox

from exceptions import DiagnosticComputationError
from model import FittedModel


@dataclass(frozen=True)
class ResidualDiagnostic:
    model_name: str
    n_residuals: int
    ljung_box_lag: Optional[int]
    ljung_box_stat: float
    ljung_box_pvalue: float
    shapiro_stat: float
    shapiro_pvalue: float
    errors: Tuple[str, ...] = ()


def _clean(residuals) -> np.ndarray:
    values = np.asarray(pd.Series(residuals, dtype=float).dropna(), dtype=float)
    return values[np.isfinite(values)]


def ljung_box_test(residuals, lag: Optional[int] = None) -> Tuple[int, float, float]:
    """
    Ljung-Box test for residual autocorrelation.

    Parameters:
    -----------
    residuals : array-like
        In-sample residuals
    lag : int, optional
        Number of lags; defaults to floor(sqrt(n))

    Returns:
    --------
    tuple
        (lag, statistic, p-value)
    """
    values = _clean(residuals)
    n = len(values)
    if lag is None:
        lag = int(math.floor(math.sqrt(n)))
    if lag < 1 or n <= lag:
        raise DiagnosticComputationError(f"Ljung-Box needs more than {max(lag, 1)} residuals, got {n}")
    if np.ptp(values) == 0:
        raise DiagnosticComputationError("Ljung-Box is undefined for constant residuals")
    table = acorr_ljungbox(values, lags=[lag])
    return lag, float(table['lb_stat'].iloc[0]), float(table['lb_pvalue'].iloc[0])


def normality_test(residuals) -> Tuple[float, float]:
    """Shapiro-Wilk test; returns (statistic, p-value)."""
    values = _clean(residuals)
    if len(values) < 3:
        raise DiagnosticComputationError(f"Shapiro-Wilk needs at least 3 residuals, got {len(values)}")
    if np.ptp(values) == 0:
        raise DiagnosticComputationError("Shapiro-Wilk is undefined for constant residuals")
    stat, pvalue = stats.shapiro(values)
    return float(stat), float(pvalue)


def check_residuals(fitted: FittedModel, alpha: float = 0.05, verbose: bool = True) -> ResidualDiagnostic:
    """Run both residual tests for one model; failures are recorded as missing values."""
    if verbose:
        print(f"\n--- Residual Diagnostics ({fitted.name}) ---")

    errors = []
    lag, lb_stat, lb_pvalue = None, np.nan, np.nan
    sw_stat, sw_pvalue = np.nan, np.nan
    residuals = fitted.residuals if fitted.has_residuals else pd.Series(dtype=float)

    try:
        lag, lb_stat, lb_pvalue = ljung_box_test(residuals)
        if verbose:
            print(f"Ljung-Box test p-value (lag {lag}): {lb_pvalue:.4f}")
            if lb_pvalue <= alpha:
                print("Indication: Significant autocorrelation present in residuals.")
            else:
                print("Indication: No significant autocorrelation detected in residuals.")
    except DiagnosticComputationError as e:
        errors.append(f"ljung_box: {e}")
        if verbose:
            print(f"Skipping Ljung-Box test: {e}")

    try:
        sw_stat, sw_pvalue = normality_test(residuals)
        if verbose:
            print(f"Shapiro-Wilk test p-value: {sw_pvalue:.4f}")
            if sw_pvalue <= alpha:
                print("Indication: Residuals may not be normally distributed.")
            else:
                print("Indication: Residuals appear to be normally distributed.")
    except DiagnosticComputationError as e:
        errors.append(f"shapiro: {e}")
        if verbose:
            print(f"Skipping normality check: {e}")

    return ResidualDiagnostic(
        model_name=fitted.name,
        n_residuals=len(_clean(residuals)),
        ljung_box_lag=lag,
        ljung_box_stat=lb_stat,
        ljung_box_pvalue=lb_pvalue,
        shapiro_stat=sw_stat,
        shapiro_pvalue=sw_pvalue,
        errors=tuple(errors),
    )


def run_diagnostics(fitted_models: Dict[str, FittedModel], alpha: float = 0.05,
                    verbose: bool = True) -> Dict[str, ResidualDiagnostic]:
    return {name: check_residuals(model, alpha=alpha, verbose=verbose) for name, model in fitted_models.items()}
