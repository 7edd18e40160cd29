"""
tests/test_models.py
────────────────────
Fitting and forecasting for every model family in the bank.
"""

import numpy as np
import pandas as pd
import pytest

from arima_model import auto_arima_spec, boxcox_arima_spec, candidate_trends, describe_arima, manual_arima_spec
from benchmarks import drift_spec, mean_spec, naive_spec
from exceptions import InsufficientHistoryError, ModelConvergenceFailure, TransformError
from model import BenchmarkSpec, fit_model_bank, fit_single_model, generate_forecasts
from smoothing_models import auto_ets_spec, ets_label, fixed_ets_spec, holt_spec, stl_ets_spec

HORIZON = 12


@pytest.fixture
def train(well_behaved_prices):
    return well_behaved_prices.iloc[:-HORIZON]


def _check_forecast(spec, fitted, steps=HORIZON, level=0.95):
    mean, lower, upper = (np.asarray(a, dtype=float) for a in spec.forecast(fitted, steps, level))
    assert mean.shape == lower.shape == upper.shape == (steps,)
    assert np.all(np.isfinite(mean))
    assert np.all(lower <= upper)
    return mean, lower, upper


def _broken_spec(name='Broken'):
    def fit(train):
        raise ModelConvergenceFailure('optimizer diverged')

    return BenchmarkSpec(name=name, fit=fit, forecast=lambda fitted, steps, level: None)


# ── ARIMA ─────────────────────────────────────────────────────────────────────


def test_describe_arima_labels():
    assert describe_arima((1, 1, 0), trend='t') == 'ARIMA(1,1,0) with drift'
    assert describe_arima((1, 0, 1), (1, 0, 0, 5), 'c') == 'ARIMA(1,0,1)(1,0,0)[5] with non-zero mean'


def test_candidate_trends_follow_differencing():
    assert candidate_trends(0) == ('n', 'c')
    assert candidate_trends(1) == ('n', 't')
    assert candidate_trends(2) == ('n',)


def test_manual_arima(fast_config, train):
    spec = manual_arima_spec((1, 1, 0), fast_config, cross_validate=True)
    fitted = fit_single_model(spec, train)

    assert spec.name == 'ARIMA(1,1,0)'
    assert spec.family == 'arima'
    assert spec.cross_validate
    assert fitted.has_coefficients
    assert 'ar.L1' in fitted.params
    # first residual belongs to the differencing warm-up
    assert len(fitted.residuals) == len(train) - 1
    _check_forecast(spec, fitted)


def test_auto_arima(fast_config, train):
    spec = auto_arima_spec(fast_config)
    fitted = fit_single_model(spec, train)
    assert fitted.name == 'ARIMA-Auto'
    assert fitted.description.startswith('ARIMA(')
    assert 'AICC=' in fitted.description
    _check_forecast(spec, fitted)


def test_seasonal_arima(fast_config, train):
    spec = auto_arima_spec(fast_config, seasonal=True)
    fitted = fit_single_model(spec, train)
    assert fitted.name == 'SARIMA-Auto'
    _check_forecast(spec, fitted)


def test_boxcox_arima_forecasts_on_price_scale(fast_config, train):
    spec = boxcox_arima_spec(fast_config, boxcox_lambda=0.5)
    fitted = fit_single_model(spec, train)
    mean, lower, upper = _check_forecast(spec, fitted)
    assert fitted.boxcox_lambda == 0.5
    # back on the price scale, not the transformed one
    assert abs(mean[0] - train.iloc[-1]) < 0.2 * train.iloc[-1]
    assert np.all(lower > 0)


def test_boxcox_arima_without_lambda_raises_transform_error(fast_config, train):
    spec = boxcox_arima_spec(fast_config, boxcox_lambda=None, transform_error='non-positive prices')
    with pytest.raises(TransformError, match='non-positive'):
        fit_single_model(spec, train)


# ── Exponential smoothing ─────────────────────────────────────────────────────


def test_ets_labels():
    assert ets_label('add', None, False, None) == 'ETS(A,N,N)'
    assert ets_label('mul', 'add', True, 'add') == 'ETS(M,Ad,A)'


def test_auto_ets(fast_config, train):
    spec = auto_ets_spec(fast_config)
    fitted = fit_single_model(spec, train)
    assert fitted.family == 'ets'
    assert fitted.description.startswith('ETS(')
    _check_forecast(spec, fitted)


@pytest.mark.parametrize('trend, name', [('add', 'ETS-AAN'), (None, 'ETS-ANN')])
def test_fixed_ets(fast_config, train, trend, name):
    spec = fixed_ets_spec(fast_config, trend=trend)
    fitted = fit_single_model(spec, train)
    assert spec.name == name
    assert 'smoothing_level' in fitted.params
    assert ('smoothing_trend' in fitted.params) == (trend == 'add')
    _check_forecast(spec, fitted)


def test_stl_ets(fast_config, train):
    spec = stl_ets_spec(fast_config)
    fitted = fit_single_model(spec, train)
    assert fitted.description.startswith('STL(period=5)')
    assert len(fitted.estimator['seasonal_cycle']) == 5
    _check_forecast(spec, fitted)


def test_stl_ets_needs_two_cycles(fast_config, train):
    spec = stl_ets_spec(dict(fast_config, seasonal_period=252))
    with pytest.raises(InsufficientHistoryError):
        fit_single_model(spec, train)


@pytest.mark.parametrize('seasonal, name', [(False, 'Holt'), (True, 'Holt-Winters')])
def test_holt_models_have_reproducible_intervals(fast_config, train, seasonal, name):
    spec = holt_spec(fast_config, seasonal=seasonal)
    fitted = fit_single_model(spec, train)
    assert spec.name == name
    assert spec.family == 'benchmark'
    first = _check_forecast(spec, fitted)
    second = _check_forecast(spec, fitted)
    np.testing.assert_array_equal(first[1], second[1])
    np.testing.assert_array_equal(first[2], second[2])


# ── Benchmarks ────────────────────────────────────────────────────────────────


def test_naive_repeats_last_value(train):
    spec = naive_spec()
    fitted = fit_single_model(spec, train)
    mean, lower, upper = _check_forecast(spec, fitted)
    assert np.all(mean == train.iloc[-1])
    assert not fitted.has_coefficients
    # random walk intervals widen with the horizon
    assert np.all(np.diff(upper - lower) > 0)


def test_drift_extrapolates_line(linear_prices):
    train = linear_prices.iloc[:-HORIZON]
    spec = drift_spec()
    fitted = fit_single_model(spec, train)
    mean, _, _ = spec.forecast(fitted, HORIZON, 0.95)
    np.testing.assert_allclose(mean, linear_prices.iloc[-HORIZON:].values)
    assert fitted.params['drift'] == pytest.approx(0.5)


def test_mean_forecast(train):
    spec = mean_spec()
    fitted = fit_single_model(spec, train)
    mean, lower, upper = _check_forecast(spec, fitted)
    assert mean[0] == pytest.approx(train.mean())
    # constant width: the mean method has no horizon dependence
    assert np.ptp(upper - lower) == pytest.approx(0)


@pytest.mark.parametrize('make_spec', [naive_spec, drift_spec, mean_spec])
def test_benchmarks_flagged_for_cross_validation(make_spec):
    assert make_spec().cross_validate


def test_benchmark_needs_enough_observations():
    with pytest.raises(InsufficientHistoryError):
        fit_single_model(drift_spec(), pd.Series([1.0, 2.0]))


# ── Bank loops ────────────────────────────────────────────────────────────────


def test_failing_model_is_isolated(train):
    specs = [naive_spec(), _broken_spec(), mean_spec()]
    fitted, failures = fit_model_bank(specs, train)

    assert list(fitted) == ['Naive', 'Mean']
    assert len(failures) == 1
    assert failures[0].model_name == 'Broken'
    assert failures[0].stage == 'fit'
    assert failures[0].error_type == 'ModelConvergenceFailure'


def test_generate_forecasts_uses_holdout_dates(well_behaved_prices, train):
    specs = [naive_spec(), drift_spec()]
    fitted, _ = fit_model_bank(specs, train)
    test_index = well_behaved_prices.index[-HORIZON:]

    forecasts, failures = generate_forecasts(specs, fitted, HORIZON, index=test_index)

    assert not failures
    assert set(forecasts) == {'Naive', 'Drift'}
    for forecast in forecasts.values():
        assert forecast.mean.index.equals(test_index)
        assert forecast.scale == 'price'
        assert forecast.level == 0.95


def test_forecast_failure_is_recorded(train):
    def bad_forecast(fitted, steps, level):
        return np.full(steps, np.nan), np.zeros(steps), np.zeros(steps)

    spec = BenchmarkSpec(name='Unstable', fit=naive_spec().fit, forecast=bad_forecast)
    fitted, _ = fit_model_bank([spec], train)
    forecasts, failures = generate_forecasts([spec], fitted, HORIZON)

    assert forecasts == {}
    assert failures[0].stage == 'forecast'


def test_forecast_index_length_must_match_steps(train):
    fitted, _ = fit_model_bank([naive_spec()], train)
    with pytest.raises(ValueError):
        generate_forecasts([naive_spec()], fitted, HORIZON, index=pd.RangeIndex(3))


def test_every_ets_model_forecasts_the_holdout(fast_config, well_behaved_prices, train):
    specs = [auto_ets_spec(fast_config), fixed_ets_spec(fast_config, trend='add'),
             fixed_ets_spec(fast_config, trend=None), stl_ets_spec(fast_config)]
    fitted, fit_failures = fit_model_bank(specs, train)
    test_index = well_behaved_prices.index[-HORIZON:]

    forecasts, failures = generate_forecasts(specs, fitted, HORIZON, index=test_index)

    assert not fit_failures
    assert not failures
    assert list(forecasts) == ['ETS-Auto', 'ETS-AAN', 'ETS-ANN', 'STL-ETS']
    for forecast in forecasts.values():
        assert forecast.mean.index.equals(test_index)
        assert np.all(forecast.lower.values <= forecast.upper.values)


def test_short_history_is_reported_as_insufficient(fast_config, train):
    spec = holt_spec(dict(fast_config, seasonal_period=252), seasonal=True)
    _, failures = fit_model_bank([spec], train)
    assert failures[0].error_type == 'InsufficientHistoryError'
    assert failures[0].stage == 'fit'
