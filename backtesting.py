"""
Apple Price Forecaster - Rolling-Origin Cross-Validation
--------------------------------------------------------
Expanding-window, one-step-ahead evaluation: for each origin the model is
re-fitted on every observation up to that point and forecasts the next one.
Complements the single holdout window with an accuracy estimate that does not
hinge on one split.
"""

from typing import List

import numpy as np
import pandas as pd
from sklearn.model_selection import TimeSeriesSplit

from model import ModelSpec, fit_single_model


def create_origins(n_obs: int, n_origins: int = 20):
    """
    Expanding training windows, each followed by a single test point.

    Returns:
    --------
    list of tuple
        (train_indices, test_indices) pairs in chronological order
    """
    if n_origins < 2:
        raise ValueError("Rolling-origin cross-validation needs at least 2 origins")
    if n_obs <= n_origins + 2:
        raise ValueError(f"{n_obs} observations are too few for {n_origins} origins")
    splitter = TimeSeriesSplit(n_splits=n_origins, test_size=1)
    return list(splitter.split(np.arange(n_obs)))


def rolling_origin_cv(series: pd.Series, specs: List[ModelSpec], n_origins: int = 20,
                      level: float = 0.95) -> pd.DataFrame:
    """
    One-step-ahead cross-validation for the specs flagged `cross_validate`.

    Parameters:
    -----------
    series : pd.Series
        Series to cross-validate on (the training window)
    specs : list of ModelSpec
        Model bank; only flagged specs are evaluated
    n_origins : int
        Number of forecast origins
    level : float
        Interval level passed through to the forecast functions

    Returns:
    --------
    pd.DataFrame
        CV_MAE, CV_RMSE, the number of successful origins per model and the
        last error raised at a failed origin (empty when none failed)
    """
    selected = [spec for spec in specs if spec.cross_validate]
    columns = ['CV_MAE', 'CV_RMSE', 'n_origins', 'error']
    if not selected:
        return pd.DataFrame(columns=columns).rename_axis('Model')

    origins = create_origins(len(series), n_origins)
    first_end = len(origins[0][0])
    print(f"\nRolling-origin cross-validation: {len(origins)} origins, "
          f"training windows of {first_end} to {first_end + len(origins) - 1} observations")

    rows = {}
    for spec in selected:
        errors = []
        last_error = ''
        for train_idx, test_idx in origins:
            train = series.iloc[train_idx]
            actual = float(series.iloc[test_idx[0]])
            try:
                fitted = fit_single_model(spec, train)
                mean, _, _ = spec.forecast(fitted, 1, level)
                prediction = float(np.asarray(mean, dtype=float)[0])
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"
                continue
            if np.isfinite(prediction):
                errors.append(actual - prediction)
            else:
                last_error = "non-finite forecast"

        errors = np.asarray(errors, dtype=float)
        if len(errors):
            rows[spec.name] = {
                'CV_MAE': float(np.mean(np.abs(errors))),
                'CV_RMSE': float(np.sqrt(np.mean(errors ** 2))),
                'n_origins': len(errors),
                'error': last_error,
            }
        else:
            rows[spec.name] = {'CV_MAE': np.nan, 'CV_RMSE': np.nan, 'n_origins': 0, 'error': last_error}
        print(f"  {spec.name:<14} CV_MAE={rows[spec.name]['CV_MAE']:.4f}, "
              f"CV_RMSE={rows[spec.name]['CV_RMSE']:.4f} ({rows[spec.name]['n_origins']}/{len(origins)} origins)")
        if last_error:
            print(f"    last failed origin: {last_error}")

    table = pd.DataFrame.from_dict(rows, orient='index', columns=columns)
    table.index.name = 'Model'
    return table
