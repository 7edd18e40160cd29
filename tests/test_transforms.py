"""
tests/test_transforms.py
────────────────────────
Log and Box-Cox transforms.
"""

import numpy as np
import pandas as pd
import pytest

from exceptions import TransformError
from transforms import (boxcox_transform, estimate_boxcox_lambda, inverse_boxcox, is_log_equivalent,
                        log_transform, stabilize_variance)


@pytest.mark.parametrize('lmbda', [-0.5, 0.0, 0.1, 0.5, 1.0, 1.7])
def test_boxcox_round_trip(well_behaved_prices, lmbda):
    restored = inverse_boxcox(boxcox_transform(well_behaved_prices, lmbda), lmbda)
    np.testing.assert_allclose(restored.values, well_behaved_prices.values, atol=1e-6)


def test_lambda_zero_is_log(well_behaved_prices):
    np.testing.assert_allclose(boxcox_transform(well_behaved_prices, 0.0).values,
                               np.log(well_behaved_prices.values))


@pytest.mark.parametrize('method', ['guerrero', 'mle'])
def test_estimated_lambda_is_finite(well_behaved_prices, method):
    assert np.isfinite(estimate_boxcox_lambda(well_behaved_prices, method=method, seasonal_period=5))


def test_unknown_lambda_method(well_behaved_prices):
    with pytest.raises(ValueError):
        estimate_boxcox_lambda(well_behaved_prices, method='median')


@pytest.mark.parametrize('bad_value', [0.0, -1.0])
def test_non_positive_values_raise_transform_error(well_behaved_prices, bad_value):
    prices = well_behaved_prices.copy()
    prices.iloc[10] = bad_value
    with pytest.raises(TransformError):
        log_transform(prices)
    with pytest.raises(TransformError):
        stabilize_variance(prices)


def test_bias_adjustment_raises_mean_for_log():
    median = np.array([np.log(100.0)])
    adjusted = inverse_boxcox(median, 0.0, variance=np.array([0.04]))
    assert adjusted[0] == pytest.approx(100 * 1.02)


def test_zero_variance_bias_adjustment_is_plain_inverse():
    values = np.array([2.0, 3.0])
    np.testing.assert_allclose(inverse_boxcox(values, 0.5, variance=np.zeros(2)), inverse_boxcox(values, 0.5))


def test_log_equivalence_tolerance():
    assert is_log_equivalent(0.05)
    assert not is_log_equivalent(0.5)
    assert is_log_equivalent(0.2, tolerance=0.25)


def test_stabilize_variance_result(well_behaved_prices):
    result = stabilize_variance(well_behaved_prices, seasonal_period=5)
    assert isinstance(result.transformed, pd.Series)
    assert result.transformed.index.equals(well_behaved_prices.index)
    assert result.method == 'guerrero'
    assert result.is_log_equivalent == is_log_equivalent(result.lmbda)


def test_stabilize_variance_with_default_method(well_behaved_prices):
    result = stabilize_variance(well_behaved_prices)
    assert result.method == 'guerrero'
    assert -1 <= result.lmbda <= 2
    np.testing.assert_allclose(result.transformed.values,
                               boxcox_transform(well_behaved_prices, result.lmbda).values)


def test_lambda_estimation_error_is_a_transform_error(well_behaved_prices, monkeypatch):
    import transforms

    class FailingBoxCox:
        def transform_boxcox(self, x, lmbda=None, method='guerrero', **kwargs):
            raise ValueError('optimizer failed')

    monkeypatch.setattr(transforms, 'BoxCox', FailingBoxCox)
    with pytest.raises(TransformError, match='guerrero'):
        estimate_boxcox_lambda(well_behaved_prices)
