"""
ARIMA Modeling using the Box-Jenkins Methodology
------------------------------------------------
ARIMA specifications for the model bank:

1. Automatic order selection: the differencing order comes from the joint
   ADF/KPSS test, then a grid over (p, q) and the deterministic term is
   searched by information criterion
2. Fixed orders chosen from ACF/PACF inspection
3. Seasonal variant: the automatic search extended with seasonal (P, Q) terms
4. Automatic ARIMA on the Box-Cox transformed series, back-transformed at
   forecast time
"""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.arima.model import ARIMA

from exceptions import InsufficientHistoryError, ModelConvergenceFailure, TransformError
from model import ArimaSpec, FittedModel, residual_series, scalar_params
from stationarity import select_differencing_order
from transforms import boxcox_transform, inverse_boxcox

Order = Tuple[int, int, int]
SeasonalOrder = Tuple[int, int, int, int]

NO_SEASON = (0, 0, 0, 0)


def candidate_trends(d: int) -> Tuple[str, ...]:
    """Deterministic terms that survive d differences: mean for d=0, drift for d=1."""
    if d == 0:
        return ('n', 'c')
    if d == 1:
        return ('n', 't')
    return ('n',)


def describe_arima(order: Order, seasonal_order: SeasonalOrder = NO_SEASON, trend: str = 'n') -> str:
    label = f"ARIMA({order[0]},{order[1]},{order[2]})"
    if seasonal_order[3]:
        label += f"({seasonal_order[0]},{seasonal_order[1]},{seasonal_order[2]})[{seasonal_order[3]}]"
    if trend == 't':
        label += " with drift"
    elif trend == 'c':
        label += " with non-zero mean"
    return label


def fit_arima(y: np.ndarray, order: Order, seasonal_order: SeasonalOrder = NO_SEASON,
              trend: str = 'n', maxiter: int = 200):
    """
    Fit one ARIMA model by maximum likelihood.

    Raises:
    -------
    ModelConvergenceFailure
        If the optimizer does not converge or the likelihood is not finite
    """
    result = ARIMA(y, order=order, seasonal_order=seasonal_order, trend=trend).fit(
        method_kwargs={'maxiter': maxiter}
    )
    label = describe_arima(order, seasonal_order, trend)
    if not np.isfinite(result.llf) or not np.all(np.isfinite(result.params)):
        raise ModelConvergenceFailure(f"{label}: non-finite likelihood or parameters")
    retvals = getattr(result, 'mle_retvals', None) or {}
    if retvals.get('converged') is False:
        raise ModelConvergenceFailure(f"{label}: optimizer did not converge in {maxiter} iterations")
    return result


def search_arima(y: np.ndarray, d: int, max_p: int = 3, max_q: int = 3, criterion: str = 'aicc',
                 seasonal_period: Optional[int] = None, maxiter: int = 200):
    """
    Grid search for the ARIMA order minimizing an information criterion.

    Parameters:
    -----------
    y : np.ndarray
        Series to model
    d : int
        Differencing order (fixed for the whole search)
    max_p, max_q : int
        Maximum AR and MA orders
    criterion : str
        'aic', 'aicc' or 'bic'
    seasonal_period : int, optional
        When given, seasonal (P, Q) in {0, 1} are added to the best
        non-seasonal order and kept if they improve the criterion

    Returns:
    --------
    tuple
        (results, order, seasonal_order, trend) of the best model
    """
    best = None

    for p in range(max_p + 1):
        for q in range(max_q + 1):
            for trend in candidate_trends(d):
                try:
                    result = fit_arima(y, (p, d, q), trend=trend, maxiter=maxiter)
                except Exception:
                    continue
                score = getattr(result, criterion)
                if best is None or score < best[0]:
                    best = (score, result, (p, d, q), NO_SEASON, trend)

    if best is None:
        raise ModelConvergenceFailure(f"None of the ARIMA candidates with d={d} could be estimated")

    if seasonal_period:
        if len(y) < 2 * seasonal_period:
            raise InsufficientHistoryError(
                f"Seasonal ARIMA needs at least {2 * seasonal_period} observations, got {len(y)}"
            )
        _, _, order, _, trend = best
        for P, Q in ((1, 0), (0, 1), (1, 1)):
            seasonal_order = (P, 0, Q, seasonal_period)
            try:
                result = fit_arima(y, order, seasonal_order, trend=trend, maxiter=maxiter)
            except Exception:
                continue
            score = getattr(result, criterion)
            if score < best[0]:
                best = (score, result, order, seasonal_order, trend)

    _, result, order, seasonal_order, trend = best
    return result, order, seasonal_order, trend


def arima_forecast_arrays(result, steps: int, level: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Point forecast, interval bounds and forecast variance."""
    prediction = result.get_forecast(steps=steps)
    mean = np.asarray(prediction.predicted_mean, dtype=float)
    intervals = np.asarray(prediction.conf_int(alpha=1 - level), dtype=float)
    variance = np.asarray(prediction.var_pred_mean, dtype=float)
    return mean, intervals[:, 0], intervals[:, 1], variance


def _fitted_arima(name: str, result, train: pd.Series, order: Order, seasonal_order: SeasonalOrder,
                  trend: str, criterion: str, boxcox_lambda: Optional[float] = None) -> FittedModel:
    params = scalar_params(dict(zip(result.model.param_names, np.asarray(result.params))))
    description = f"{describe_arima(order, seasonal_order, trend)} ({criterion.upper()}={getattr(result, criterion):.2f})"
    if boxcox_lambda is not None:
        description += f" on Box-Cox(lambda={boxcox_lambda:.3f})"
    skip = order[1] + seasonal_order[1] * seasonal_order[3]
    return FittedModel(
        name=name,
        family='arima',
        description=description,
        estimator=result,
        params=params,
        residuals=residual_series(result.resid, train.index, skip=skip),
        train_index=train.index,
        boxcox_lambda=boxcox_lambda,
    )


def _price_scale_forecast(fitted: FittedModel, steps: int, level: float):
    mean, lower, upper, _ = arima_forecast_arrays(fitted.estimator, steps, level)
    return mean, lower, upper


def manual_arima_spec(order: Order, config: Dict[str, object], cross_validate: bool = False) -> ArimaSpec:
    """ARIMA with a fixed (p, d, q) order; a mean is included only when d = 0."""
    order = tuple(int(o) for o in order)
    trend = 'c' if order[1] == 0 else 'n'
    name = f"ARIMA({order[0]},{order[1]},{order[2]})"
    criterion = config['information_criterion']

    def fit(train: pd.Series) -> FittedModel:
        result = fit_arima(np.asarray(train, dtype=float), order, trend=trend, maxiter=config['arima_maxiter'])
        return _fitted_arima(name, result, train, order, NO_SEASON, trend, criterion)

    return ArimaSpec(name=name, fit=fit, forecast=_price_scale_forecast, cross_validate=cross_validate)


def auto_arima_spec(config: Dict[str, object], seasonal: bool = False) -> ArimaSpec:
    """Automatic order selection, optionally with seasonal terms."""
    name = 'SARIMA-Auto' if seasonal else 'ARIMA-Auto'
    criterion = config['information_criterion']

    def fit(train: pd.Series) -> FittedModel:
        y = np.asarray(train, dtype=float)
        d = select_differencing_order(train, max_diff=config['max_diff'], alpha=config['alpha'])
        result, order, seasonal_order, trend = search_arima(
            y, d,
            max_p=config['arima_max_p'],
            max_q=config['arima_max_q'],
            criterion=criterion,
            seasonal_period=config['seasonal_period'] if seasonal else None,
            maxiter=config['arima_maxiter'],
        )
        return _fitted_arima(name, result, train, order, seasonal_order, trend, criterion)

    return ArimaSpec(name=name, fit=fit, forecast=_price_scale_forecast)


def boxcox_arima_spec(config: Dict[str, object], boxcox_lambda: Optional[float],
                      transform_error: Optional[str] = None) -> ArimaSpec:
    """
    Automatic ARIMA on the Box-Cox series.

    Point forecasts are back-transformed with the mean bias adjustment (when
    config['biasadj'] is set); interval bounds are back-transformed directly,
    which preserves their coverage because the transform is monotonic.
    """
    name = 'ARIMA-BoxCox'
    criterion = config['information_criterion']

    def fit(train: pd.Series) -> FittedModel:
        if boxcox_lambda is None:
            raise TransformError(transform_error or "No Box-Cox lambda available for this run")
        transformed = boxcox_transform(train, boxcox_lambda)
        d = select_differencing_order(transformed, max_diff=config['max_diff'], alpha=config['alpha'])
        result, order, seasonal_order, trend = search_arima(
            np.asarray(transformed, dtype=float), d,
            max_p=config['arima_max_p'],
            max_q=config['arima_max_q'],
            criterion=criterion,
            maxiter=config['arima_maxiter'],
        )
        return _fitted_arima(name, result, train, order, seasonal_order, trend, criterion,
                             boxcox_lambda=boxcox_lambda)

    def forecast(fitted: FittedModel, steps: int, level: float):
        mean, lower, upper, variance = arima_forecast_arrays(fitted.estimator, steps, level)
        lmbda = fitted.boxcox_lambda
        price_mean = inverse_boxcox(mean, lmbda, variance=variance if config['biasadj'] else None)
        return price_mean, inverse_boxcox(lower, lmbda), inverse_boxcox(upper, lmbda)

    return ArimaSpec(name=name, fit=fit, forecast=forecast)
