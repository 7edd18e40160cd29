"""
Apple Price Forecaster - Benchmark Methods
------------------------------------------
Naive, drift and mean forecasts. Every other model in the bank has to beat
these to be worth its complexity.
"""

from typing import Dict

import numpy as np
import pandas as pd
from scipy import stats

from exceptions import InsufficientHistoryError
from model import BenchmarkSpec, FittedModel, residual_series


def _z_value(level: float) -> float:
    return float(stats.norm.ppf(0.5 + level / 2))


def _values(train: pd.Series, minimum: int, name: str) -> np.ndarray:
    y = np.asarray(train, dtype=float)
    if len(y) < minimum:
        raise InsufficientHistoryError(f"{name} needs at least {minimum} observations, got {len(y)}")
    return y


def naive_spec(config: Dict[str, object] = None) -> BenchmarkSpec:
    """Random walk: every future value equals the last observation."""

    def fit(train: pd.Series) -> FittedModel:
        y = _values(train, 2, 'Naive')
        residuals = np.diff(y)
        sigma = float(np.sqrt(np.mean(residuals ** 2)))
        return FittedModel(
            name='Naive',
            family='benchmark',
            description=f"Naive (last value {y[-1]:.2f})",
            estimator={'last': float(y[-1]), 'sigma': sigma},
            params={},
            residuals=residual_series(residuals, train.index),
            train_index=train.index,
        )

    def forecast(fitted: FittedModel, steps: int, level: float):
        state = fitted.estimator
        h = np.arange(1, steps + 1)
        mean = np.full(steps, state['last'])
        se = state['sigma'] * np.sqrt(h)
        z = _z_value(level)
        return mean, mean - z * se, mean + z * se

    return BenchmarkSpec(name='Naive', fit=fit, forecast=forecast, cross_validate=True)


def drift_spec(config: Dict[str, object] = None) -> BenchmarkSpec:
    """
    Random walk with drift: the line through the first and last observations,
    extended into the future.
    """

    def fit(train: pd.Series) -> FittedModel:
        y = _values(train, 3, 'Drift')
        n = len(y)
        drift = float((y[-1] - y[0]) / (n - 1))
        residuals = np.diff(y) - drift
        sigma = float(np.sqrt(np.sum(residuals ** 2) / (n - 2)))
        return FittedModel(
            name='Drift',
            family='benchmark',
            description=f"Random walk with drift ({drift:+.4f} per step)",
            estimator={'last': float(y[-1]), 'drift': drift, 'sigma': sigma, 'n': n},
            params={'drift': drift},
            residuals=residual_series(residuals, train.index),
            train_index=train.index,
        )

    def forecast(fitted: FittedModel, steps: int, level: float):
        state = fitted.estimator
        h = np.arange(1, steps + 1)
        mean = state['last'] + state['drift'] * h
        se = state['sigma'] * np.sqrt(h * (1 + h / (state['n'] - 1)))
        z = _z_value(level)
        return mean, mean - z * se, mean + z * se

    return BenchmarkSpec(name='Drift', fit=fit, forecast=forecast, cross_validate=True)


def mean_spec(config: Dict[str, object] = None) -> BenchmarkSpec:
    """Historical mean of the training window."""

    def fit(train: pd.Series) -> FittedModel:
        y = _values(train, 2, 'Mean')
        mu = float(np.mean(y))
        return FittedModel(
            name='Mean',
            family='benchmark',
            description=f"Historical mean ({mu:.2f})",
            estimator={'mean': mu, 'sigma': float(np.std(y, ddof=1)), 'n': len(y)},
            params={'mean': mu},
            residuals=residual_series(y - mu, train.index),
            train_index=train.index,
        )

    def forecast(fitted: FittedModel, steps: int, level: float):
        state = fitted.estimator
        mean = np.full(steps, state['mean'])
        se = state['sigma'] * np.sqrt(1 + 1 / state['n'])
        z = _z_value(level)
        return mean, mean - z * se, mean + z * se

    return BenchmarkSpec(name='Mean', fit=fit, forecast=forecast, cross_validate=True)
