"""
Apple Price Forecaster - Model Estimation Bank
----------------------------------------------
Shared model types and the two per-model loops of the pipeline:

1. fit_model_bank: estimate every candidate specification on the training window
2. generate_forecasts: produce an h-step forecast (on the price scale) from
   every model that survived estimation

Each specification is a tagged variant (ArimaSpec, EtsSpec, BenchmarkSpec)
carrying its own fit and forecast closures, so both loops treat every model
family the same way. A failure in one model never stops the others.
"""

import warnings
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

ForecastArrays = Tuple[np.ndarray, np.ndarray, np.ndarray]


@dataclass(frozen=True)
class FittedModel:
    """An estimator bound to one training series. Never mutated after fitting."""
    name: str
    family: str
    description: str
    estimator: object
    params: Dict[str, float]
    residuals: Optional[pd.Series]
    train_index: pd.Index
    boxcox_lambda: Optional[float] = None

    @property
    def has_residuals(self) -> bool:
        return self.residuals is not None and len(self.residuals.dropna()) > 0

    @property
    def has_coefficients(self) -> bool:
        return bool(self.params)

    @property
    def nobs(self) -> int:
        return len(self.train_index)


@dataclass(frozen=True)
class Forecast:
    model_name: str
    mean: pd.Series
    lower: pd.Series
    upper: pd.Series
    level: float
    scale: str = 'price'


@dataclass(frozen=True)
class ModelFailure:
    model_name: str
    stage: str
    error_type: str
    message: str


@dataclass(frozen=True)
class ModelRecord:
    """Everything the run produced for one evaluated model."""
    model: FittedModel
    diagnostics: object
    forecast: Forecast
    metrics: Dict[str, float]


@dataclass(frozen=True)
class ArimaSpec:
    name: str
    fit: Callable[[pd.Series], FittedModel]
    forecast: Callable[[FittedModel, int, float], ForecastArrays]
    cross_validate: bool = False
    family: str = field(default='arima', init=False)


@dataclass(frozen=True)
class EtsSpec:
    name: str
    fit: Callable[[pd.Series], FittedModel]
    forecast: Callable[[FittedModel, int, float], ForecastArrays]
    cross_validate: bool = False
    family: str = field(default='ets', init=False)


@dataclass(frozen=True)
class BenchmarkSpec:
    name: str
    fit: Callable[[pd.Series], FittedModel]
    forecast: Callable[[FittedModel, int, float], ForecastArrays]
    cross_validate: bool = False
    family: str = field(default='benchmark', init=False)


ModelSpec = Union[ArimaSpec, EtsSpec, BenchmarkSpec]


def residual_series(residuals, index: pd.Index, skip: int = 0) -> pd.Series:
    """Wrap estimator residuals with the training dates, dropping the first `skip` points."""
    values = np.asarray(residuals, dtype=float)
    offset = len(index) - len(values)
    return pd.Series(values[skip:], index=index[offset + skip:], name='residuals')


def scalar_params(params) -> Dict[str, float]:
    """Keep the scalar entries of a parameter mapping as plain floats."""
    return {str(k): float(v) for k, v in params.items() if v is not None and np.isscalar(v)}


def fit_single_model(spec: ModelSpec, train: pd.Series) -> FittedModel:
    with warnings.catch_warnings():
        # Optimizer chatter from statsmodels; convergence is checked explicitly
        warnings.simplefilter('ignore')
        return spec.fit(train)


def fit_model_bank(specs: List[ModelSpec], train: pd.Series) -> Tuple[Dict[str, FittedModel], List[ModelFailure]]:
    """
    Fit every specification independently on the training window.

    Parameters:
    -----------
    specs : list of ModelSpec
        Candidate models; names must be unique
    train : pd.Series
        Training window

    Returns:
    --------
    tuple
        Fitted models keyed by name (in specification order) and the list of
        models that could not be estimated
    """
    fitted = {}
    failures = []

    print(f"\nFitting {len(specs)} candidate models on {len(train)} observations...")
    for spec in specs:
        try:
            model = fit_single_model(spec, train)
        except Exception as e:
            failures.append(ModelFailure(spec.name, 'fit', type(e).__name__, str(e)))
            print(f"  {spec.name:<14} FAILED ({type(e).__name__}: {e})")
            continue
        fitted[spec.name] = model
        print(f"  {spec.name:<14} {model.description}")

    print(f"Estimated {len(fitted)} of {len(specs)} models")
    return fitted, failures


def generate_forecasts(specs: List[ModelSpec], fitted: Dict[str, FittedModel], steps: int,
                       index: Optional[pd.Index] = None,
                       level: float = 0.95) -> Tuple[Dict[str, Forecast], List[ModelFailure]]:
    """
    Produce an h-step forecast with prediction intervals from every fitted model.

    Parameters:
    -----------
    specs : list of ModelSpec
        Specifications the models were fitted from
    fitted : dict
        Output of fit_model_bank
    steps : int
        Forecast horizon
    index : pd.Index, optional
        Dates of the forecast window; defaults to 1..steps
    level : float
        Prediction interval coverage

    Returns:
    --------
    tuple
        Forecasts keyed by model name and the models whose forecast failed
    """
    if index is None:
        index = pd.RangeIndex(1, steps + 1)
    if len(index) != steps:
        raise ValueError(f"Forecast index has {len(index)} entries for {steps} steps")

    forecasts = {}
    failures = []
    for spec in specs:
        if spec.name not in fitted:
            continue
        try:
            with warnings.catch_warnings():
                warnings.simplefilter('ignore')
                mean, lower, upper = spec.forecast(fitted[spec.name], steps, level)
            mean, lower, upper = (np.asarray(a, dtype=float) for a in (mean, lower, upper))
            if not np.all(np.isfinite(mean)):
                raise ValueError("Forecast contains non-finite values")
        except Exception as e:
            failures.append(ModelFailure(spec.name, 'forecast', type(e).__name__, str(e)))
            print(f"  Forecast for {spec.name} FAILED ({type(e).__name__}: {e})")
            continue

        forecasts[spec.name] = Forecast(
            model_name=spec.name,
            mean=pd.Series(mean, index=index, name='forecast'),
            lower=pd.Series(lower, index=index, name='lower'),
            upper=pd.Series(upper, index=index, name='upper'),
            level=level,
        )
    return forecasts, failures
