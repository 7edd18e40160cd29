"""
Apple Price Forecaster - Data Preparation
-----------------------------------------
This module loads the adjusted close series, cleans it into a strictly
increasing daily series and splits off the holdout window.
"""

import os
from dataclasses import dataclass
from typing import Dict

import pandas as pd

from collectors.price_collector import fetch_adjusted_close, load_price_csv, save_price_csv
from exceptions import DataFetchError


@dataclass(frozen=True)
class Split:
    """Contiguous, non-overlapping training prefix and test suffix."""
    train: pd.Series
    test: pd.Series

    @property
    def horizon(self) -> int:
        return len(self.test)


def load_prices(config: Dict[str, object]) -> pd.Series:
    """
    Load the raw price series for a run.

    A configured local data file wins; otherwise prices are fetched from the
    provider and cached as CSV under the data directory.

    Parameters:
    -----------
    config : dict
        Run configuration (see config.CONFIG)

    Returns:
    --------
    pd.Series
        Raw adjusted close prices
    """
    if config.get('data_file'):
        return load_price_csv(config['data_file'])

    prices = fetch_adjusted_close(
        ticker=config['ticker'],
        start_date=config['start_date'],
        end_date=config['end_date'],
        retries=config['fetch_retries'],
        backoff=config['fetch_backoff'],
    )
    cache_name = f"{str(config['ticker']).lower()}_adj_close.csv"
    save_price_csv(prices, os.path.join(config['data_dir'], cache_name))
    return prices


def prepare_price_series(series: pd.Series, name: str = 'adj_close') -> pd.Series:
    """
    Clean a raw price series.

    Sorts chronologically, drops duplicate timestamps (the last observation
    wins) and fills interior gaps forward, then backward for a leading gap.
    Values are not checked for positivity here; the transform stage reports
    non-positive prices.

    Parameters:
    -----------
    series : pd.Series
        Raw prices indexed by timestamp
    name : str
        Name of the returned series

    Returns:
    --------
    pd.Series
        Float series with a strictly increasing 'date' index
    """
    if series is None or len(series) == 0:
        raise DataFetchError("Price series is empty")

    cleaned = pd.Series(pd.to_numeric(series, errors='coerce').to_numpy(dtype=float),
                        index=pd.DatetimeIndex(series.index), name=name)
    cleaned = cleaned.sort_index(kind='mergesort')

    duplicates = cleaned.index.duplicated(keep='last')
    if duplicates.any():
        print(f"Dropping {duplicates.sum()} duplicate timestamps")
        cleaned = cleaned[~duplicates]

    missing = int(cleaned.isna().sum())
    if missing:
        if missing == len(cleaned):
            raise DataFetchError("Price series contains no numeric values")
        print(f"Imputing {missing} missing values using ffill method...")
        cleaned = cleaned.ffill().bfill()

    cleaned.index.name = 'date'
    return cleaned


def train_test_split(series: pd.Series, horizon: int = 12) -> Split:
    """
    Reserve the final `horizon` observations as the test window.

    Parameters:
    -----------
    series : pd.Series
        Series to split
    horizon : int
        Length of the holdout window

    Returns:
    --------
    Split
        train + test reconstructs `series`; len(test) == horizon
    """
    if horizon < 1:
        raise ValueError(f"horizon must be positive, got {horizon}")
    if len(series) <= horizon:
        raise ValueError(f"Series of length {len(series)} is too short for a holdout of {horizon}")

    split = Split(train=series.iloc[:-horizon], test=series.iloc[-horizon:])
    print(f"Training on {len(split.train)} observations, testing on {len(split.test)} observations")
    return split
