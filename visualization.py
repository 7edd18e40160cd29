"""
Apple Price Forecaster - Visualizations
---------------------------------------
Charts for every stage of the run. Plots only observe results; nothing here
feeds back into the pipeline.
"""

import os
import re
from typing import Dict, Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
import statsmodels.api as sm
from statsmodels.graphics.tsaplots import plot_acf, plot_pacf

from model import FittedModel, Forecast

sns.set_style('whitegrid')


def slugify(name: str) -> str:
    return re.sub(r'[^a-z0-9]+', '_', name.lower()).strip('_')


def _histogram_bins(residuals: pd.Series) -> int:
    return int(np.clip(np.sqrt(len(residuals)), 10, 50))


def _save(fig, plot_dir: str, filename: str) -> str:
    os.makedirs(plot_dir, exist_ok=True)
    path = os.path.join(plot_dir, filename)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path


def plot_price_series(prices: pd.Series, log_prices: Optional[pd.Series] = None,
                      boxcox_series: Optional[pd.Series] = None, boxcox_lambda: Optional[float] = None,
                      plot_dir: str = 'visualizations/forecasting', ticker: str = 'AAPL') -> str:
    """Adjusted close alongside its log and Box-Cox transforms."""
    panels = [(prices, f'{ticker} Adjusted Close', 'Price')]
    if log_prices is not None:
        panels.append((log_prices, f'Log {ticker} Adjusted Close', 'Log price'))
    if boxcox_series is not None:
        panels.append((boxcox_series, f'Box-Cox (lambda={boxcox_lambda:.3f})', 'Transformed'))

    fig, axes = plt.subplots(len(panels), 1, figsize=(12, 4 * len(panels)), sharex=True, squeeze=False)
    for ax, (series, title, ylabel) in zip(axes[:, 0], panels):
        ax.plot(series.index, series.values)
        ax.set_title(title)
        ax.set_ylabel(ylabel)
    axes[-1, 0].set_xlabel('Date')
    return _save(fig, plot_dir, f'{slugify(ticker)}_price_series.png')


def plot_acf_pacf(series: pd.Series, series_name: str, lags: int = 40,
                  plot_dir: str = 'visualizations/forecasting') -> Optional[str]:
    """Plots ACF and PACF charts."""
    print(f"\nPlotting ACF and PACF for {series_name}...")
    values = series.dropna()
    max_lags = min(lags, len(values) // 2 - 1)
    if max_lags < 1:
        print(f"Skipping ACF/PACF plot for {series_name}: not enough observations.")
        return None
    fig, axes = plt.subplots(1, 2, figsize=(16, 6))
    plot_acf(values, lags=max_lags, ax=axes[0], title=f'ACF - {series_name}')
    plot_pacf(values, lags=max_lags, ax=axes[1], title=f'PACF - {series_name}')
    return _save(fig, plot_dir, f'acf_pacf_{slugify(series_name)}.png')


def plot_decomposition(decomposition: pd.DataFrame, series_name: str,
                       plot_dir: str = 'visualizations/forecasting') -> str:
    fig, axes = plt.subplots(4, 1, figsize=(12, 10), sharex=True)
    for ax, column in zip(axes, ['observed', 'trend', 'seasonal', 'remainder']):
        ax.plot(decomposition.index, decomposition[column])
        ax.set_title(column.capitalize())
    fig.suptitle(f'STL Decomposition of {series_name}', y=1.02)
    return _save(fig, plot_dir, f'decomposition_{slugify(series_name)}.png')


def plot_residual_diagnostics(fitted: FittedModel, lags: int = 40,
                              plot_dir: str = 'visualizations/forecasting') -> Optional[str]:
    """
    Residual panel for one model: time plot, histogram, ACF and Q-Q plot.
    """
    if not fitted.has_residuals:
        return None
    residuals = fitted.residuals.dropna()
    fig, axes = plt.subplots(2, 2, figsize=(14, 10))

    axes[0, 0].plot(residuals.index, residuals.values)
    axes[0, 0].set_title('Residuals')
    axes[0, 0].set_xlabel('Date')
    axes[0, 0].set_ylabel('Residual Value')
    axes[0, 0].axhline(y=0, color='r', linestyle='-')

    axes[0, 1].hist(residuals.values, bins=_histogram_bins(residuals), density=True, alpha=0.7)
    axes[0, 1].set_title('Residual Histogram')
    axes[0, 1].set_xlabel('Residual Value')
    axes[0, 1].set_ylabel('Density')

    plot_acf(residuals.values, lags=max(1, min(lags, len(residuals) // 2 - 1)), ax=axes[1, 0], alpha=0.05)
    axes[1, 0].set_title('ACF of Residuals')

    sm.qqplot(residuals.values, line='s', ax=axes[1, 1])
    axes[1, 1].set_title('Q-Q Plot of Residuals')

    fig.suptitle(f'Residual Diagnostics - {fitted.name}', y=1.02)
    return _save(fig, plot_dir, f'residuals_{slugify(fitted.name)}.png')


def plot_forecasts(train: pd.Series, test: pd.Series, forecasts: Dict[str, Forecast],
                   history: int = 120, plot_dir: str = 'visualizations/forecasting') -> str:
    """Holdout forecasts of every model with their prediction intervals."""
    fig, ax = plt.subplots(figsize=(14, 8))
    recent = train.iloc[-history:]
    ax.plot(recent.index, recent.values, color='black', label='Training')
    ax.plot(test.index, test.values, color='black', linestyle='--', marker='o', label='Actual')

    palette = sns.color_palette('tab20', n_colors=max(len(forecasts), 1))
    for color, (name, forecast) in zip(palette, forecasts.items()):
        ax.plot(forecast.mean.index, forecast.mean.values, color=color, label=name)
        ax.fill_between(forecast.mean.index, forecast.lower.values, forecast.upper.values, color=color, alpha=0.08)

    ax.set_title('Holdout Forecasts with Prediction Intervals')
    ax.set_xlabel('Date')
    ax.set_ylabel('Adjusted Close')
    ax.legend(loc='upper left', fontsize='small', ncol=2)
    return _save(fig, plot_dir, 'holdout_forecasts.png')


def plot_accuracy(accuracy: pd.DataFrame, metric: str = 'RMSE',
                  plot_dir: str = 'visualizations/forecasting') -> Optional[str]:
    """Bar chart of one accuracy metric across the ranked models."""
    data = accuracy[metric].dropna().reset_index()
    if data.empty:
        return None
    fig, ax = plt.subplots(figsize=(12, 6))
    sns.barplot(data=data, x=metric, y='Model', ax=ax, color=sns.color_palette()[0])
    ax.set_title(f'Holdout {metric} by Model')
    return _save(fig, plot_dir, f'accuracy_{slugify(metric)}.png')
