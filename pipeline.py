"""
Apple Price Forecaster - Pipeline
---------------------------------
This module runs the complete Box-Jenkins forecasting workflow for one ticker:

1. Data ingestion
2. Variance stabilization (log and Box-Cox)
3. Stationarity assessment
4. Trend and seasonality analysis
5. Train/test split
6. Model estimation
7. Residual diagnostics
8. Forecasting on the holdout window
9. Evaluation and rolling-origin cross-validation
10. Persistence of the run snapshot
"""

import dataclasses
import json
import os
import time
import warnings
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import joblib
import numpy as np
import pandas as pd

import visualization
from arima_model import auto_arima_spec, boxcox_arima_spec, manual_arima_spec
from backtesting import rolling_origin_cv
from benchmarks import drift_spec, mean_spec, naive_spec
from config import create_output_directories, load_config
from data_preparation import Split, load_prices, prepare_price_series, train_test_split
from diagnostics import run_diagnostics
from evaluation import build_accuracy_table, eval_metrics, print_accuracy_table
from exceptions import NonStationaryAfterMaxDiff, TransformError
from model import ModelFailure, ModelRecord, ModelSpec, fit_model_bank, generate_forecasts
from smoothing_models import auto_ets_spec, fixed_ets_spec, holt_spec, stl_ets_spec
from stationarity import DifferencingResult, StationarityTest, check_stationarity, difference_until_stationary
from transforms import BoxCoxResult, log_transform, stabilize_variance
from trend_analysis import TrendReport, analyze_trend

SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class PipelineResult:
    config: Dict[str, object]
    prices: pd.Series
    log_prices: Optional[pd.Series]
    boxcox: Optional[BoxCoxResult]
    raw_stationarity: Optional[StationarityTest]
    differencing: Optional[DifferencingResult]
    trend: Optional[TrendReport]
    split: Split
    records: Dict[str, ModelRecord]
    failures: Tuple[ModelFailure, ...]
    accuracy: pd.DataFrame
    cross_validation: Optional[pd.DataFrame]
    warnings: Tuple[str, ...]

    @property
    def best_model(self) -> Optional[str]:
        return self.accuracy.index[0] if len(self.accuracy) else None


def build_model_specs(config: Dict[str, object], boxcox_lambda: Optional[float] = None,
                      transform_error: Optional[str] = None) -> List[ModelSpec]:
    """
    The candidate model bank, in reporting order.

    The first manual ARIMA order joins ETS(A,N,N) and the naive, drift and
    mean benchmarks in rolling-origin cross-validation.
    """
    manual = [manual_arima_spec(order, config, cross_validate=(i == 0))
              for i, order in enumerate(config['manual_arima_orders'])]
    return [
        auto_arima_spec(config),
        *manual,
        auto_arima_spec(config, seasonal=True),
        boxcox_arima_spec(config, boxcox_lambda, transform_error),
        auto_ets_spec(config),
        fixed_ets_spec(config, trend='add'),
        fixed_ets_spec(config, cross_validate=True),
        stl_ets_spec(config),
        naive_spec(config),
        drift_spec(config),
        holt_spec(config),
        holt_spec(config, seasonal=True),
        mean_spec(config),
    ]


def _assess_stationarity(series: pd.Series, config: Dict[str, object], run_warnings: List[str]):
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always', NonStationaryAfterMaxDiff)
        differencing = difference_until_stationary(series, max_diff=config['max_diff'], alpha=config['alpha'])
    for warning in caught:
        if issubclass(warning.category, NonStationaryAfterMaxDiff):
            run_warnings.append(str(warning.message))
        else:
            warnings.warn_explicit(warning.message, warning.category, warning.filename, warning.lineno)
    return differencing


def _make_plots(result: PipelineResult, forecasts: Dict[str, object]):
    config = result.config
    plot_dir = config['plot_dir']
    print(f"\nSaving plots to {plot_dir}/...")
    visualization.plot_price_series(
        result.prices, result.log_prices,
        result.boxcox.transformed if result.boxcox else None,
        result.boxcox.lmbda if result.boxcox else None,
        plot_dir=plot_dir, ticker=config['ticker'],
    )
    if result.differencing is not None:
        visualization.plot_acf_pacf(result.differencing.series,
                                    f"{config['ticker']} differenced d={result.differencing.order}",
                                    plot_dir=plot_dir)
    if result.trend is not None and result.trend.decomposition is not None:
        visualization.plot_decomposition(result.trend.decomposition, config['ticker'], plot_dir=plot_dir)
    for record in result.records.values():
        visualization.plot_residual_diagnostics(record.model, plot_dir=plot_dir)
    visualization.plot_forecasts(result.split.train, result.split.test, forecasts, plot_dir=plot_dir)
    visualization.plot_accuracy(result.accuracy, metric=config['rank_by'], plot_dir=plot_dir)
    print("Plots saved.")


def run_pipeline(config: Optional[Dict[str, object]] = None, prices: Optional[pd.Series] = None,
                 specs: Optional[List[ModelSpec]] = None) -> PipelineResult:
    """
    Run every stage of the forecasting workflow.

    Parameters:
    -----------
    config : dict, optional
        Run configuration; defaults to load_config()
    prices : pd.Series, optional
        Price series to use instead of fetching one
    specs : list of ModelSpec, optional
        Model bank to use instead of build_model_specs()

    Returns:
    --------
    PipelineResult
        Every artifact of the run. Only DataFetchError (and invalid
        configuration) abort the run; other failures are isolated to their
        model or stage and reported in the result.
    """
    config = config if config is not None else load_config()
    run_warnings = []

    print("=" * 80)
    print(f"APPLE PRICE FORECASTER - {config['ticker']} BOX-JENKINS PIPELINE")
    print("=" * 80)

    # Step 1: Data ingestion
    print("\nSTEP 1: DATA INGESTION")
    if prices is None:
        prices = load_prices(config)
    prices = prepare_price_series(prices)
    print(f"Loaded {len(prices)} observations from {prices.index.min().date()} to {prices.index.max().date()}")

    # Step 2: Variance stabilization
    print("\nSTEP 2: VARIANCE STABILIZATION")
    log_prices = None
    boxcox = None
    transform_error = None
    try:
        log_prices = log_transform(prices)
    except TransformError as e:
        run_warnings.append(f"Log transform failed: {e}")
        print(f"Error in log transform: {e}")
        print("Stationarity is assessed on raw prices.")
    try:
        boxcox = stabilize_variance(prices, method=config['lambda_method'],
                                    tolerance=config['log_lambda_tolerance'],
                                    seasonal_period=config['seasonal_period'])
    except (TransformError, ValueError) as e:
        transform_error = str(e)
        run_warnings.append(f"Box-Cox transform failed: {e}")
        print(f"Error in Box-Cox transform: {e}")
        print("The Box-Cox ARIMA model is disabled.")

    # Step 3: Stationarity
    print("\nSTEP 3: STATIONARITY ASSESSMENT")
    raw_stationarity = None
    differencing = None
    try:
        print("\nRaw prices:")
        raw_stationarity = check_stationarity(prices, alpha=config['alpha'])
        target = log_prices if log_prices is not None else prices
        print(f"\nDifferencing {'log' if log_prices is not None else 'raw'} prices:")
        differencing = _assess_stationarity(target, config, run_warnings)
    except Exception as e:
        run_warnings.append(f"Stationarity assessment failed: {e}")
        print(f"Error in stationarity assessment: {e}")

    # Step 4: Trend and seasonality
    print("\nSTEP 4: TREND AND SEASONALITY")
    trend = None
    try:
        trend = analyze_trend(log_prices if log_prices is not None else prices, period=config['seasonal_period'])
        run_warnings.extend(trend.notes)
    except Exception as e:
        run_warnings.append(f"Trend analysis failed: {e}")
        print(f"Error in trend analysis: {e}")

    # Step 5: Train/test split
    print("\nSTEP 5: TRAIN/TEST SPLIT")
    split = train_test_split(prices, horizon=config['horizon'])

    # Step 6: Model estimation
    print("\nSTEP 6: MODEL ESTIMATION")
    if specs is None:
        specs = build_model_specs(config, boxcox.lmbda if boxcox else None, transform_error)
    names = [spec.name for spec in specs]
    if len(set(names)) != len(names):
        raise ValueError(f"Model names must be unique, got {names}")
    fitted, failures = fit_model_bank(specs, split.train)

    # Step 7: Residual diagnostics
    print("\nSTEP 7: RESIDUAL DIAGNOSTICS")
    diagnostics = run_diagnostics(fitted, alpha=config['alpha'])

    # Step 8: Forecasting
    print("\nSTEP 8: FORECASTING")
    forecasts, forecast_failures = generate_forecasts(
        specs, fitted, config['horizon'], index=split.test.index, level=config['interval_level']
    )
    failures.extend(forecast_failures)
    print(f"Generated {len(forecasts)} forecasts of {config['horizon']} steps")

    # Step 9: Evaluation
    print("\nSTEP 9: EVALUATION")
    records = {}
    for name, forecast in forecasts.items():
        metrics = eval_metrics(split.test.values, forecast.mean.values, split.train.values)
        records[name] = ModelRecord(model=fitted[name], diagnostics=diagnostics.get(name),
                                    forecast=forecast, metrics=metrics)
    accuracy = build_accuracy_table({name: record.metrics for name, record in records.items()},
                                    diagnostics, rank_by=config['rank_by'])
    print_accuracy_table(accuracy, rank_by=config['rank_by'])

    cross_validation = None
    if config['cv_origins']:
        try:
            cross_validation = rolling_origin_cv(split.train, specs, n_origins=config['cv_origins'],
                                                 level=config['interval_level'])
            for name, row in cross_validation.iterrows():
                if row['error']:
                    run_warnings.append(f"Cross-validation of {name}: {row['n_origins']}/{config['cv_origins']} "
                                        f"origins succeeded, last error {row['error']}")
        except Exception as e:
            run_warnings.append(f"Cross-validation skipped: {e}")
            print(f"Error in cross-validation: {e}")

    result = PipelineResult(
        config=dict(config),
        prices=prices,
        log_prices=log_prices,
        boxcox=boxcox,
        raw_stationarity=raw_stationarity,
        differencing=differencing,
        trend=trend,
        split=split,
        records=records,
        failures=tuple(failures),
        accuracy=accuracy,
        cross_validation=cross_validation,
        warnings=tuple(run_warnings),
    )

    if config['make_plots']:
        try:
            _make_plots(result, forecasts)
        except Exception as e:
            print(f"Warning: Could not create plots: {e}")

    if failures:
        print(f"\n{len(failures)} model(s) excluded:")
        for failure in failures:
            print(f"  {failure.model_name} ({failure.stage}): {failure.error_type}: {failure.message}")
    return result


def save_snapshot(result: PipelineResult, path: str) -> str:
    """
    Persist every artifact of a run as one joblib bundle.

    Model specifications hold closures and are not saved; fitted estimators,
    forecasts, metrics and diagnostics are.
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    bundle = {
        'version': SNAPSHOT_VERSION,
        'saved_at': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        'artifacts': {field.name: getattr(result, field.name) for field in dataclasses.fields(result)},
    }
    joblib.dump(bundle, path)
    print(f"Snapshot saved to {path}")
    return path


def load_snapshot(path: str) -> PipelineResult:
    bundle = joblib.load(path)
    if bundle.get('version') != SNAPSHOT_VERSION:
        raise ValueError(f"Unsupported snapshot version {bundle.get('version')!r} in {path}")
    return PipelineResult(**bundle['artifacts'])


def _json_float(value) -> Optional[float]:
    value = float(value)
    return value if np.isfinite(value) else None


def write_run_record(result: PipelineResult, path: str, elapsed: float) -> str:
    """Save a small JSON summary of the run next to the snapshot."""
    best = result.best_model
    record = {
        'timestamp': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        'ticker': result.config['ticker'],
        'observations': len(result.prices),
        'horizon': result.split.horizon,
        'boxcox_lambda': _json_float(result.boxcox.lmbda) if result.boxcox else None,
        'differencing_order': result.differencing.order if result.differencing else None,
        'models_evaluated': list(result.records),
        'failures': [dataclasses.asdict(failure) for failure in result.failures],
        'best_model': best,
        'best_metrics': ({k: _json_float(v) for k, v in result.records[best].metrics.items()}
                         if best is not None else None),
        'warnings': list(result.warnings),
        'execution_time_seconds': elapsed,
        'status': 'completed',
    }
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(record, f, indent=2)
    return path


def main():
    """Main function to run the pipeline."""
    start_time = time.time()
    config = load_config()
    create_output_directories(config)

    result = run_pipeline(config)
    save_snapshot(result, config['snapshot_path'])

    elapsed_time = time.time() - start_time
    write_run_record(result, config['record_path'], elapsed_time)

    print("\n" + "=" * 80)
    print(f"PIPELINE COMPLETED IN {elapsed_time:.2f} SECONDS")
    if result.best_model is not None:
        print(f"Best model by {config['rank_by']}: {result.best_model}")
    print("=" * 80)
    return result


if __name__ == "__main__":
    main()
