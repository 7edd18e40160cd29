"""
tests/test_backtesting.py
─────────────────────────
Rolling-origin cross-validation.
"""

import numpy as np
import pytest

from backtesting import create_origins, rolling_origin_cv
from benchmarks import drift_spec, mean_spec, naive_spec
from model import BenchmarkSpec
from smoothing_models import holt_spec


def test_origins_expand_one_step_at_a_time():
    origins = create_origins(50, n_origins=5)
    assert len(origins) == 5
    train_sizes = [len(train) for train, _ in origins]
    assert train_sizes == [45, 46, 47, 48, 49]
    for train, test in origins:
        assert len(test) == 1
        assert test[0] == train[-1] + 1


def test_too_few_observations_for_origins():
    with pytest.raises(ValueError):
        create_origins(10, n_origins=20)


def test_only_flagged_specs_are_cross_validated(well_behaved_prices, fast_config):
    specs = [naive_spec(), holt_spec(fast_config), mean_spec()]
    table = rolling_origin_cv(well_behaved_prices, specs, n_origins=5)
    assert list(table.index) == ['Naive', 'Mean']
    assert (table['n_origins'] == 5).all()
    assert (table['CV_RMSE'] >= table['CV_MAE']).all()


def test_drift_is_exact_on_a_line(linear_prices):
    table = rolling_origin_cv(linear_prices, [drift_spec()], n_origins=4)
    assert table.loc['Drift', 'CV_MAE'] == pytest.approx(0, abs=1e-9)


def test_no_flagged_specs_returns_empty_table(well_behaved_prices, fast_config):
    table = rolling_origin_cv(well_behaved_prices, [holt_spec(fast_config)], n_origins=5)
    assert table.empty
    assert list(table.columns) == ['CV_MAE', 'CV_RMSE', 'n_origins', 'error']


def test_failing_origins_keep_their_error(well_behaved_prices):
    def forecast(fitted, steps, level):
        raise RuntimeError('state space blew up')

    spec = BenchmarkSpec(name='Unstable', fit=naive_spec().fit, forecast=forecast, cross_validate=True)
    table = rolling_origin_cv(well_behaved_prices, [spec, naive_spec()], n_origins=5)

    assert table.loc['Unstable', 'n_origins'] == 0
    assert np.isnan(table.loc['Unstable', 'CV_MAE'])
    assert table.loc['Unstable', 'error'] == 'RuntimeError: state space blew up'
    assert table.loc['Naive', 'error'] == ''
