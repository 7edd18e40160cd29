"""
tests/conftest.py
─────────────────
Shared pytest fixtures: small synthetic price series and a fast run
configuration that writes only under the pytest tmp directory.

No test touches the network; price downloads are replaced by monkeypatching
``collectors.price_collector.yf``.
"""

import numpy as np
import pandas as pd
import pytest

from config import load_config


def _business_days(n: int) -> pd.DatetimeIndex:
    return pd.bdate_range('2020-01-01', periods=n, name='date')


@pytest.fixture
def well_behaved_prices() -> pd.Series:
    """Upward trend, a short weekly cycle and mild noise; strictly positive."""
    n = 160
    rng = np.random.default_rng(7)
    t = np.arange(n)
    values = 100 + 0.3 * t + 1.5 * np.sin(2 * np.pi * t / 5) + rng.normal(0, 0.6, n)
    return pd.Series(values, index=_business_days(n), name='adj_close')


@pytest.fixture
def linear_prices() -> pd.Series:
    n = 120
    return pd.Series(100 + 0.5 * np.arange(n), index=_business_days(n), name='adj_close')


@pytest.fixture
def random_walk() -> pd.Series:
    rng = np.random.default_rng(11)
    values = 50 + np.cumsum(rng.normal(0, 1, 300))
    return pd.Series(values, index=_business_days(300), name='adj_close')


@pytest.fixture
def fast_config(tmp_path):
    """Configuration sized for the synthetic fixtures: weekly season, small grids."""
    return load_config(
        overrides={
            'seasonal_period': 5,
            'arima_max_p': 2,
            'arima_max_q': 2,
            'cv_origins': 5,
            'n_simulations': 200,
            'make_plots': False,
            'data_dir': str(tmp_path / 'data'),
            'snapshot_path': str(tmp_path / 'outputs' / 'snapshot.joblib'),
            'record_path': str(tmp_path / 'outputs' / 'record.json'),
            'plot_dir': str(tmp_path / 'plots'),
        },
        use_env=False,
    )
