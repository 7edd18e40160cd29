"""
Apple Price Forecaster - Forecast Evaluation
--------------------------------------------
Holdout accuracy metrics and the ranked comparison table.
"""

from typing import Dict, Optional

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error

METRIC_COLUMNS = ['MAE', 'RMSE', 'MAPE', 'MASE', 'TheilU']


def mean_absolute_percentage_error(y_true, y_pred):
    """Calculate Mean Absolute Percentage Error (MAPE)"""
    y_true, y_pred = np.array(y_true, dtype=float), np.array(y_pred, dtype=float)
    # Avoid division by zero
    mask = y_true != 0
    if not mask.any():
        return np.nan
    return float(np.mean(np.abs((y_true[mask] - y_pred[mask]) / y_true[mask])) * 100)


def mean_absolute_scaled_error(y_true, y_pred, y_train):
    """
    Mean Absolute Scaled Error.

    The scale is the in-sample mean absolute error of the one-step naive
    forecast over the training window, so MASE = 1 means the forecast is as
    accurate as naive on the training data.
    """
    y_true, y_pred = np.array(y_true, dtype=float), np.array(y_pred, dtype=float)
    scale = np.mean(np.abs(np.diff(np.asarray(y_train, dtype=float))))
    if not np.isfinite(scale) or scale == 0:
        return np.nan
    return float(np.mean(np.abs(y_true - y_pred)) / scale)


def theils_u(y_true, y_pred):
    """Theil's U: RMSE / (RMS(forecast) + RMS(actual)), 0 for a perfect forecast, at most 1."""
    y_true, y_pred = np.array(y_true, dtype=float), np.array(y_pred, dtype=float)
    rmse = np.sqrt(np.mean((y_true - y_pred) ** 2))
    if rmse == 0:
        return 0.0
    denominator = np.sqrt(np.mean(y_pred ** 2)) + np.sqrt(np.mean(y_true ** 2))
    return float(rmse / denominator)


def eval_metrics(actual, forecast, train) -> Dict[str, float]:
    """
    Accuracy of one forecast against the holdout window.

    Parameters:
    -----------
    actual : array-like
        Observed test values
    forecast : array-like
        Point forecasts aligned with `actual`
    train : array-like
        Training window (MASE scale)

    Returns:
    --------
    dict
        MAE, RMSE, MAPE, MASE and TheilU
    """
    actual = np.asarray(actual, dtype=float)
    forecast = np.asarray(forecast, dtype=float)
    if actual.shape != forecast.shape:
        raise ValueError(f"Forecast has shape {forecast.shape}, holdout has {actual.shape}")

    return {
        'MAE': float(mean_absolute_error(actual, forecast)),
        'RMSE': float(np.sqrt(mean_squared_error(actual, forecast))),
        'MAPE': mean_absolute_percentage_error(actual, forecast),
        'MASE': mean_absolute_scaled_error(actual, forecast, train),
        'TheilU': theils_u(actual, forecast),
    }


def build_accuracy_table(metrics: Dict[str, Dict[str, float]], diagnostics: Optional[Dict[str, object]] = None,
                         rank_by: str = 'RMSE') -> pd.DataFrame:
    """
    Rank models by one accuracy metric.

    Ties keep the insertion order of `metrics`; models whose score is missing
    are ranked last. Residual test p-values are attached for reference only.
    """
    if rank_by not in METRIC_COLUMNS:
        raise ValueError(f"Unknown ranking metric '{rank_by}'. Expected one of {METRIC_COLUMNS}")

    table = pd.DataFrame.from_dict(metrics, orient='index')
    table = table.reindex(columns=METRIC_COLUMNS)
    table.index.name = 'Model'

    if diagnostics:
        table['LjungBox_p'] = [getattr(diagnostics.get(name), 'ljung_box_pvalue', np.nan) for name in table.index]
        table['Shapiro_p'] = [getattr(diagnostics.get(name), 'shapiro_pvalue', np.nan) for name in table.index]

    table = table.sort_values(rank_by, kind='mergesort', na_position='last')
    table.insert(0, 'Rank', np.arange(1, len(table) + 1))
    return table


def print_accuracy_table(table: pd.DataFrame, rank_by: str = 'RMSE'):
    print(f"\nModel accuracy on the holdout window (ranked by {rank_by}):")
    print("-" * 80)
    with pd.option_context('display.float_format', '{:.4f}'.format, 'display.width', 120):
        print(table.to_string())
    print("-" * 80)
    if len(table):
        print(f"Best model: {table.index[0]}")
