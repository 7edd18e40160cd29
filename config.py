"""
Apple Price Forecaster - Configuration
--------------------------------------
Project defaults and the loader that validates overrides.

The five externally meaningful options (ticker, start_date, end_date, horizon,
seasonal_period) may also be set from the environment or a .env file using the
FORECAST_ prefix, e.g. FORECAST_TICKER=MSFT.
"""

import os
import copy
from typing import Dict, Optional

import pandas as pd
from dotenv import load_dotenv

# Project configuration
CONFIG = {
    # Series and holdout
    'ticker': 'AAPL',
    'start_date': '2015-01-01',
    'end_date': '2024-12-31',
    'horizon': 12,
    'seasonal_period': 252,  # trading days per year

    # Stationarity and transforms
    'alpha': 0.05,
    'max_diff': 2,
    'lambda_method': 'guerrero',
    'log_lambda_tolerance': 0.15,
    'biasadj': True,

    # Model bank
    'manual_arima_orders': [(1, 1, 0), (0, 1, 1), (1, 1, 2)],
    'arima_max_p': 3,
    'arima_max_q': 3,
    'information_criterion': 'aicc',
    'arima_maxiter': 200,
    'interval_level': 0.95,
    'n_simulations': 1000,
    'random_state': 42,

    # Evaluation
    'rank_by': 'RMSE',
    'cv_origins': 20,

    # I/O
    'data_file': None,
    'data_dir': 'data/raw',
    'snapshot_path': 'outputs/forecast_snapshot.joblib',
    'record_path': 'outputs/pipeline_record.json',
    'plot_dir': 'visualizations/forecasting',
    'make_plots': True,
    'fetch_retries': 3,
    'fetch_backoff': 2.0,
}

RECOGNIZED_OPTIONS = ('ticker', 'start_date', 'end_date', 'horizon', 'seasonal_period')

ENV_PREFIX = 'FORECAST_'

_INT_OPTIONS = ('horizon', 'seasonal_period')


def _env_overrides() -> Dict[str, object]:
    """Collect FORECAST_* overrides for the recognized options."""
    load_dotenv()
    overrides = {}
    for option in RECOGNIZED_OPTIONS:
        value = os.environ.get(ENV_PREFIX + option.upper(), '').strip()
        if not value:
            continue
        if option in _INT_OPTIONS:
            try:
                overrides[option] = int(value)
            except ValueError as e:
                raise ValueError(
                    f"Environment variable '{ENV_PREFIX + option.upper()}' must be an integer, got '{value}'."
                ) from e
        else:
            overrides[option] = value
    return overrides


def validate_config(config: Dict[str, object]) -> Dict[str, object]:
    """
    Check option values and raise ValueError on the first inconsistency.

    Parameters:
    -----------
    config : dict
        Fully merged configuration

    Returns:
    --------
    dict
        The same configuration, for chaining
    """
    if not isinstance(config['horizon'], int) or config['horizon'] < 1:
        raise ValueError(f"horizon must be a positive integer, got {config['horizon']!r}")
    if not isinstance(config['seasonal_period'], int) or config['seasonal_period'] < 2:
        raise ValueError(f"seasonal_period must be an integer >= 2, got {config['seasonal_period']!r}")
    if not str(config['ticker']).strip():
        raise ValueError("ticker must not be empty")

    try:
        start = pd.Timestamp(config['start_date'])
        end = pd.Timestamp(config['end_date'])
    except (TypeError, ValueError) as e:
        raise ValueError(f"Could not parse date range: {e}") from e
    if start >= end:
        raise ValueError(f"start_date ({config['start_date']}) must precede end_date ({config['end_date']})")

    if not 0 < config['interval_level'] < 1:
        raise ValueError(f"interval_level must lie in (0, 1), got {config['interval_level']}")
    if not 0 < config['alpha'] < 1:
        raise ValueError(f"alpha must lie in (0, 1), got {config['alpha']}")
    if config['max_diff'] < 0:
        raise ValueError(f"max_diff must be non-negative, got {config['max_diff']}")
    if config['lambda_method'] not in ('guerrero', 'mle'):
        raise ValueError(f"lambda_method must be 'guerrero' or 'mle', got {config['lambda_method']!r}")
    if config['information_criterion'] not in ('aic', 'aicc', 'bic'):
        raise ValueError(f"Unknown information criterion {config['information_criterion']!r}")
    return config


def load_config(overrides: Optional[Dict[str, object]] = None, use_env: bool = True) -> Dict[str, object]:
    """
    Build a run configuration from the defaults.

    Parameters:
    -----------
    overrides : dict, optional
        Explicit option values; these win over environment values
    use_env : bool
        Whether to read FORECAST_* variables (and a .env file)

    Returns:
    --------
    dict
        Validated configuration
    """
    config = copy.deepcopy(CONFIG)

    if use_env:
        config.update(_env_overrides())

    if overrides:
        unknown = sorted(set(overrides) - set(CONFIG))
        if unknown:
            raise ValueError(f"Unknown configuration option(s): {', '.join(unknown)}")
        config.update(overrides)

    return validate_config(config)


def create_output_directories(config: Dict[str, object]) -> None:
    """Create the data, output and plot directories used by a run."""
    directories = [
        config['data_dir'],
        os.path.dirname(config['snapshot_path']),
        os.path.dirname(config['record_path']),
    ]
    if config['make_plots']:
        directories.append(config['plot_dir'])

    for directory in directories:
        if directory:
            os.makedirs(directory, exist_ok=True)
