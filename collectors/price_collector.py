# collectors/price_collector.py

import time
from pathlib import Path

import pandas as pd
import yfinance as yf

from exceptions import DataFetchError

# Tolerated distance between the requested window edges and the first/last
# returned trading day (weekends and holidays).
MAX_EDGE_GAP_DAYS = 10


def _strip_timezone(index: pd.Index) -> pd.DatetimeIndex:
    index = pd.DatetimeIndex(index)
    if index.tz is not None:
        index = index.tz_localize(None)
    return index.normalize()


def fetch_adjusted_close(ticker: str = 'AAPL', start_date: str = '2015-01-01',
                         end_date: str = '2024-12-31', retries: int = 3,
                         backoff: float = 2.0) -> pd.Series:
    """
    Fetches daily dividend/split-adjusted closing prices from Yahoo Finance.

    Parameters:
    -----------
    ticker : str
        Ticker symbol, e.g. 'AAPL'
    start_date, end_date : str
        Inclusive date range (YYYY-MM-DD)
    retries : int
        Number of attempts before giving up
    backoff : float
        Seconds to wait after the first failed attempt; grows linearly

    Returns:
    --------
    pd.Series
        Adjusted close named 'adj_close' with a 'date' index

    Raises:
    -------
    DataFetchError
        If the source keeps failing or returns an empty or partial range
    """
    start = pd.Timestamp(start_date)
    end = pd.Timestamp(end_date)
    # yfinance treats 'end' as exclusive
    end_exclusive = (end + pd.Timedelta(days=1)).strftime('%Y-%m-%d')

    history = None
    last_error = None
    for attempt in range(1, max(retries, 1) + 1):
        try:
            print(f"Fetching {ticker} prices {start_date} to {end_date} (attempt {attempt}/{retries})...")
            history = yf.Ticker(ticker).history(
                start=start.strftime('%Y-%m-%d'),
                end=end_exclusive,
                interval='1d',
                auto_adjust=False,
                actions=False,
            )
            break
        except Exception as e:
            last_error = e
            print(f"Warning: fetch attempt {attempt} failed: {e}")
            if attempt < retries:
                time.sleep(backoff * attempt)

    if history is None:
        raise DataFetchError(f"Could not fetch {ticker} after {retries} attempts: {last_error}") from last_error

    if history.empty:
        raise DataFetchError(f"No price data returned for ticker '{ticker}' between {start_date} and {end_date}")

    if 'Adj Close' not in history.columns:
        raise DataFetchError(f"Price data for '{ticker}' has no 'Adj Close' column")

    prices = pd.Series(
        pd.to_numeric(history['Adj Close'], errors='coerce').to_numpy(),
        index=_strip_timezone(history.index),
        name='adj_close',
    ).dropna()
    prices.index.name = 'date'

    if prices.empty:
        raise DataFetchError(f"All adjusted close values for '{ticker}' are missing")

    first_gap = (prices.index.min() - start).days
    last_gap = (end - prices.index.max()).days
    if first_gap > MAX_EDGE_GAP_DAYS or last_gap > MAX_EDGE_GAP_DAYS:
        raise DataFetchError(
            f"Partial range for '{ticker}': got {prices.index.min().date()} to "
            f"{prices.index.max().date()}, requested {start_date} to {end_date}"
        )

    print(f"Fetched {len(prices)} observations from {prices.index.min().date()} to {prices.index.max().date()}")
    return prices


def save_price_csv(prices: pd.Series, save_path: Path = Path("data/raw/aapl_adj_close.csv")) -> Path:
    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)
    prices.rename('adj_close').rename_axis('date').to_csv(save_path, header=True)
    print(f"Saved price data to {save_path}")
    return save_path


def load_price_csv(file_path: Path = Path("data/raw/aapl_adj_close.csv")) -> pd.Series:
    """Load a cached 'date,adj_close' CSV as a price series."""
    print(f"Loading price data from {file_path}...")
    try:
        df = pd.read_csv(file_path)
    except FileNotFoundError as e:
        raise DataFetchError(f"Price data file not found at {file_path}") from e

    df.columns = [col.lower().strip().replace(' ', '_') for col in df.columns]
    if 'date' not in df.columns or 'adj_close' not in df.columns:
        raise DataFetchError(f"{file_path} must contain 'date' and 'adj_close' columns, found {list(df.columns)}")

    df['date'] = pd.to_datetime(df['date'], errors='coerce')
    df = df.dropna(subset=['date'])
    prices = pd.Series(pd.to_numeric(df['adj_close'], errors='coerce').to_numpy(),
                       index=pd.DatetimeIndex(df['date'], name='date'), name='adj_close')

    if prices.dropna().empty:
        raise DataFetchError(f"No usable prices in {file_path}")

    print(f"Loaded {len(prices)} observations from {prices.index.min().date()} to {prices.index.max().date()}")
    return prices
