"""
Apple Price Forecaster - Exponential Smoothing Models
-----------------------------------------------------
ETS state space models (automatic selection and constrained variants), the
STL + ETS hybrid, and the Holt / Holt-Winters benchmarks.
"""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.exponential_smoothing.ets import ETSModel
from statsmodels.tsa.holtwinters import ExponentialSmoothing
from statsmodels.tsa.seasonal import STL

from exceptions import InsufficientHistoryError, ModelConvergenceFailure
from model import BenchmarkSpec, EtsSpec, FittedModel, residual_series, scalar_params

# Seasonal ETS states grow with the period; long periods are left to STL
MAX_ETS_SEASONAL_PERIOD = 24

_LETTERS = {None: 'N', 'add': 'A', 'mul': 'M'}


def ets_label(error: str, trend: Optional[str], damped: bool, seasonal: Optional[str]) -> str:
    trend_letter = _LETTERS[trend] + ('d' if damped else '')
    return f"ETS({_LETTERS[error]},{trend_letter},{_LETTERS[seasonal]})"


def fit_ets(y, error: str = 'add', trend: Optional[str] = None, damped: bool = False,
            seasonal: Optional[str] = None, seasonal_period: Optional[int] = None):
    """
    Fit one ETS model by maximum likelihood.

    Raises:
    -------
    ModelConvergenceFailure
        If the likelihood is not finite or the optimizer does not converge
    """
    # Positional index; out-of-sample prediction needs a pandas endog
    model = ETSModel(
        pd.Series(np.asarray(y, dtype=float)),
        error=error,
        trend=trend,
        damped_trend=damped,
        seasonal=seasonal,
        seasonal_periods=seasonal_period if seasonal else None,
        initialization_method='estimated',
    )
    result = model.fit(disp=False)
    label = ets_label(error, trend, damped, seasonal)
    if not np.isfinite(result.llf) or not np.all(np.isfinite(np.asarray(result.params, dtype=float))):
        raise ModelConvergenceFailure(f"{label}: non-finite likelihood or parameters")
    retvals = getattr(result, 'mle_retvals', None) or {}
    if retvals.get('converged') is False:
        raise ModelConvergenceFailure(f"{label}: optimizer did not converge")
    return result


def ets_candidates(y: np.ndarray, seasonal_period: Optional[int] = None):
    """
    Model forms searched by automatic ETS selection.

    Multiplicative errors need strictly positive data; seasonal forms need a
    short period and at least two full cycles.
    """
    errors = ('add', 'mul') if np.all(y > 0) else ('add',)
    trends = ((None, False), ('add', False), ('add', True))
    seasonals = [None]
    if seasonal_period and 2 <= seasonal_period <= MAX_ETS_SEASONAL_PERIOD and len(y) >= 2 * seasonal_period:
        seasonals.append('add')

    for error in errors:
        for trend, damped in trends:
            for seasonal in seasonals:
                yield error, trend, damped, seasonal


def select_ets(y: np.ndarray, seasonal_period: Optional[int] = None, criterion: str = 'aicc') -> Tuple[object, str]:
    """Fit every candidate form and keep the one with the lowest information criterion."""
    best = None
    for error, trend, damped, seasonal in ets_candidates(y, seasonal_period):
        try:
            result = fit_ets(y, error, trend, damped, seasonal, seasonal_period)
        except Exception:
            continue
        score = getattr(result, criterion)
        if not np.isfinite(score):
            continue
        if best is None or score < best[0]:
            best = (score, result, ets_label(error, trend, damped, seasonal))

    if best is None:
        raise ModelConvergenceFailure("None of the ETS candidate forms could be estimated")
    return best[1], best[2]


def ets_forecast_arrays(result, nobs: int, steps: int, level: float, random_state: int = 42):
    """Point forecast and prediction interval; multiplicative models use seeded simulation."""
    kwargs = {}
    if result.model.error == 'mul':
        kwargs['random_state'] = random_state
    prediction = result.get_prediction(start=nobs, end=nobs + steps - 1, **kwargs)
    frame = prediction.summary_frame(alpha=1 - level)
    return frame['mean'].to_numpy(), frame['pi_lower'].to_numpy(), frame['pi_upper'].to_numpy()


def _ets_params(result) -> Dict[str, float]:
    names = getattr(result, 'param_names', None) or result.model.param_names
    return scalar_params(dict(zip(names, np.asarray(result.params, dtype=float))))


def _fitted_ets(name: str, result, label: str, train: pd.Series, criterion: str) -> FittedModel:
    return FittedModel(
        name=name,
        family='ets',
        description=f"{label} ({criterion.upper()}={getattr(result, criterion):.2f})",
        estimator=result,
        params=_ets_params(result),
        residuals=residual_series(result.resid, train.index),
        train_index=train.index,
    )


def auto_ets_spec(config: Dict[str, object]) -> EtsSpec:
    criterion = config['information_criterion']

    def fit(train: pd.Series) -> FittedModel:
        result, label = select_ets(np.asarray(train, dtype=float), config['seasonal_period'], criterion)
        return _fitted_ets('ETS-Auto', result, label, train, criterion)

    def forecast(fitted: FittedModel, steps: int, level: float):
        return ets_forecast_arrays(fitted.estimator, fitted.nobs, steps, level, config['random_state'])

    return EtsSpec(name='ETS-Auto', fit=fit, forecast=forecast)


def fixed_ets_spec(config: Dict[str, object], trend: Optional[str] = None,
                   cross_validate: bool = False) -> EtsSpec:
    """Additive-error ETS with a fixed form: ETS(A,A,N) when trend='add', ETS(A,N,N) otherwise."""
    label = ets_label('add', trend, False, None)
    name = 'ETS-AAN' if trend == 'add' else 'ETS-ANN'
    criterion = config['information_criterion']

    def fit(train: pd.Series) -> FittedModel:
        result = fit_ets(np.asarray(train, dtype=float), error='add', trend=trend)
        return _fitted_ets(name, result, label, train, criterion)

    def forecast(fitted: FittedModel, steps: int, level: float):
        return ets_forecast_arrays(fitted.estimator, fitted.nobs, steps, level, config['random_state'])

    return EtsSpec(name=name, fit=fit, forecast=forecast, cross_validate=cross_validate)


def stl_ets_spec(config: Dict[str, object]) -> EtsSpec:
    """
    STL decomposition + ETS hybrid.

    The seasonal component is removed with STL, the seasonally adjusted series
    is forecast with automatic non-seasonal ETS, and the last seasonal cycle is
    added back (seasonal naive).
    """
    period = config['seasonal_period']
    criterion = config['information_criterion']

    def fit(train: pd.Series) -> FittedModel:
        y = np.asarray(train, dtype=float)
        if len(y) < 2 * period:
            raise InsufficientHistoryError(f"STL needs at least {2 * period} observations, got {len(y)}")
        stl = STL(y, period=period, robust=True).fit()
        seasonal = np.asarray(stl.seasonal, dtype=float)
        result, label = select_ets(y - seasonal, None, criterion)
        return FittedModel(
            name='STL-ETS',
            family='ets',
            description=f"STL(period={period}) + {label} ({criterion.upper()}={getattr(result, criterion):.2f})",
            estimator={'stl': stl, 'ets': result, 'seasonal_cycle': seasonal[-period:]},
            params=_ets_params(result),
            residuals=residual_series(result.resid, train.index),
            train_index=train.index,
        )

    def forecast(fitted: FittedModel, steps: int, level: float):
        mean, lower, upper = ets_forecast_arrays(fitted.estimator['ets'], fitted.nobs, steps, level,
                                                 config['random_state'])
        seasonal = np.resize(fitted.estimator['seasonal_cycle'], steps)
        return mean + seasonal, lower + seasonal, upper + seasonal

    return EtsSpec(name='STL-ETS', fit=fit, forecast=forecast)


def _simulated_interval(result, steps: int, level: float, repetitions: int, random_state: int):
    simulations = result.simulate(steps, anchor='end', repetitions=repetitions, error='add',
                                  random_state=random_state)
    simulations = np.reshape(np.asarray(simulations, dtype=float), (steps, -1))
    tail = (1 - level) / 2
    return np.quantile(simulations, tail, axis=1), np.quantile(simulations, 1 - tail, axis=1)


def holt_spec(config: Dict[str, object], seasonal: bool = False) -> BenchmarkSpec:
    """
    Holt's linear trend (or additive Holt-Winters when `seasonal`).

    Intervals are quantiles of simulated future paths from the fitted state.
    """
    name = 'Holt-Winters' if seasonal else 'Holt'
    period = config['seasonal_period']

    def fit(train: pd.Series) -> FittedModel:
        y = np.asarray(train, dtype=float)
        if seasonal:
            if len(y) < 2 * period:
                raise InsufficientHistoryError(f"Holt-Winters needs at least {2 * period} observations, got {len(y)}")
            model = ExponentialSmoothing(
                y, trend='add', seasonal='add', seasonal_periods=period,
                initialization_method='heuristic' if period > MAX_ETS_SEASONAL_PERIOD else 'estimated',
            )
        else:
            model = ExponentialSmoothing(y, trend='add', initialization_method='estimated')
        result = model.fit()
        if not np.isfinite(result.sse):
            raise ModelConvergenceFailure(f"{name}: non-finite sum of squared errors")
        params = scalar_params(result.params)
        return FittedModel(
            name=name,
            family='benchmark',
            description=(f"Holt-Winters additive (period={period})" if seasonal else "Holt's linear trend")
                        + f" alpha={params.get('smoothing_level', np.nan):.3f}",
            estimator=result,
            params=params,
            residuals=residual_series(result.resid, train.index),
            train_index=train.index,
        )

    def forecast(fitted: FittedModel, steps: int, level: float):
        result = fitted.estimator
        mean = np.asarray(result.forecast(steps), dtype=float)
        lower, upper = _simulated_interval(result, steps, level, config['n_simulations'], config['random_state'])
        return mean, lower, upper

    return BenchmarkSpec(name=name, fit=fit, forecast=forecast)
