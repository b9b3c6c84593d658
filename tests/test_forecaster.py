import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
import pandas as pd

from errors import NoConvergedModel
from garch.estimator import ArmaGarchEstimator
from garch.forecaster import ArmaGarchForecaster, arma_recursion, rolling_table
from models import FittedModel, ModelSpec


@pytest.fixture(scope='module')
def estimator():
    return ArmaGarchEstimator(show_progress=False)


@pytest.fixture(scope='module')
def forecaster(estimator):
    """Forecaster with a reduced simulation count for testing"""
    return ArmaGarchForecaster(
        estimator=estimator,
        n_simulations=500,
        random_seed=42,
        n_refits=2,
        show_progress=False
    )


@pytest.fixture(scope='module')
def fitted(estimator, synthetic_returns):
    model = estimator.fit(synthetic_returns.iloc[:800], ModelSpec(1, 0))
    assert model.converged
    return model


def test_forecast_shape(forecaster, fitted):
    result = forecaster.forecast(fitted, 20)

    assert result.horizon == 20
    assert list(result.steps.index) == list(range(1, 21))
    assert result.steps.index.name == 'step'
    assert list(result.steps.columns) == ['mean', 'volatility']
    assert np.isfinite(result.steps.values).all()
    assert (result.volatility > 0).all()
    assert result.origin == fitted.end_date
    assert result.spec == fitted.spec


def test_forecast_is_deterministic(forecaster, fitted):
    first = forecaster.forecast(fitted, 20)
    second = forecaster.forecast(fitted, 20)
    pd.testing.assert_frame_equal(first.steps, second.steps)


def test_forecast_units(forecaster, fitted, synthetic_returns):
    """Forecasts come back in log-return units, not percent"""
    result = forecaster.forecast(fitted, 5)
    sample_std = synthetic_returns.std()

    assert abs(result.mean.iloc[-1]) < 0.01
    assert 0.2 * sample_std < result.volatility.iloc[0] < 5 * sample_std


def test_one_step_variance_matches_arch(forecaster, fitted):
    result = forecaster.forecast(fitted, 1)
    arch_forecast = fitted._vol_result.forecast(horizon=1, reindex=False)
    expected = np.sqrt(arch_forecast.variance.values[-1, 0]) / fitted.scale

    assert result.volatility.iloc[0] == pytest.approx(expected)


def test_mean_matches_ar_recursion(forecaster, fitted):
    """AR(1) forecast decays geometrically towards the constant"""
    result = forecaster.forecast(fitted, 10)
    const = fitted.params['const']
    phi = fitted.params['ar.L1']
    last = fitted._endog[-1]

    expected = [(const + phi ** h * (last - const)) / fitted.scale for h in range(1, 11)]
    np.testing.assert_allclose(result.mean.values, expected, rtol=1e-6, atol=1e-10)

    # Same path from the simulation recursion with zero shocks
    paths = arma_recursion(fitted.params, np.zeros((1, 10)), fitted._endog - const, np.zeros(1))
    np.testing.assert_allclose(paths[0] / fitted.scale, expected, rtol=1e-6, atol=1e-10)


def test_arma_recursion_by_hand():
    params = {'const': 1.0, 'ar.L1': 0.5, 'ma.L1': 0.2}
    shocks = np.array([[1.0, -1.0, 0.0]])
    # last demeaned value 2.0, last residual 0.5
    path = arma_recursion(params, shocks, np.array([2.0]), np.array([0.5]))

    # y1 - c = 0.5*2 + 1 + 0.2*0.5 = 2.1
    # y2 - c = 0.5*2.1 - 1 + 0.2*1 = 0.25
    # y3 - c = 0.5*0.25 + 0 + 0.2*(-1) = -0.075
    np.testing.assert_allclose(path[0], [3.1, 1.25, 0.925])


@pytest.mark.parametrize("kwargs", [
    {'horizon': 0},
    {'mode': 'half'},
    {'n_paths': 0},
    {'quantiles': (0.05, 1.5)},
])
def test_bootstrap_invalid_arguments(forecaster, fitted, kwargs):
    with pytest.raises(ValueError):
        forecaster.bootstrap_forecast(fitted, **{'horizon': 5, 'n_paths': 10, **kwargs})


def test_forecast_rejects_failed_fit(forecaster):
    failed = FittedModel.failed(ModelSpec(1, 1), 800, "did not converge")
    with pytest.raises(ValueError):
        forecaster.forecast(failed, 5)
    with pytest.raises(ValueError):
        forecaster.forecast(failed, 0)


def test_partial_bootstrap_bands(forecaster, fitted):
    boot = forecaster.bootstrap_forecast(fitted, horizon=20, n_paths=500, mode='partial')

    assert boot.mode == 'partial'
    assert boot.n_paths == 500
    assert boot.n_refits == 0
    assert boot.sigma_bands.shape == (20, len(boot.quantiles))
    assert list(boot.return_bands.index) == list(range(1, 21))

    # Quantile columns are ordered within every step
    assert (np.diff(boot.return_bands.values, axis=1) >= 0).all()
    assert (np.diff(boot.sigma_bands.values, axis=1) >= 0).all()

    # One-step variance is known at the origin, later steps spread out
    sigma_width = boot.band_width('sigma')
    assert sigma_width.iloc[0] == pytest.approx(0.0, abs=1e-12)
    assert sigma_width.iloc[-1] > sigma_width.iloc[0]

    # Uncertainty in the cumulative return compounds with the horizon
    width = boot.band_width('cumulative')
    assert (np.diff(width.values) >= 0).mean() >= 0.8
    assert width.iloc[-1] > 2 * width.iloc[0]
    np.testing.assert_allclose(boot.cumulative_bands.iloc[0], boot.return_bands.iloc[0])

    frame = boot.to_frame()
    assert 'return_q0.05' in frame.columns
    assert 'sigma_q0.95' in frame.columns
    assert 'cumulative_q0.5' in frame.columns


def test_bootstrap_is_reproducible(forecaster, fitted):
    first = forecaster.bootstrap_forecast(fitted, horizon=5, n_paths=200, mode='partial')
    second = forecaster.bootstrap_forecast(fitted, horizon=5, n_paths=200, mode='partial')
    pd.testing.assert_frame_equal(first.return_bands, second.return_bands)


def test_full_bootstrap(forecaster, fitted):
    boot = forecaster.bootstrap_forecast(fitted, horizon=5, n_paths=100, mode='Full')

    assert boot.mode == 'full'
    assert boot.n_refits == 2
    assert boot.n_paths == 100
    assert np.isfinite(boot.sigma_bands.values).all()
    assert (boot.sigma_bands.values > 0).all()
    # Parameter uncertainty already spreads the first step
    assert boot.band_width('sigma').iloc[0] > 0


def test_full_bootstrap_all_refits_fail(forecaster, fitted, monkeypatch):
    monkeypatch.setattr(
        forecaster.estimator, 'fit',
        lambda train, spec: FittedModel.failed(spec, len(train), "forced failure")
    )
    with pytest.raises(NoConvergedModel):
        forecaster.bootstrap_forecast(fitted, horizon=5, n_paths=20, mode='full')


def test_rolling_forecast(forecaster, synthetic_returns):
    returns = synthetic_returns.iloc[:900]
    results = forecaster.rolling_forecast(ModelSpec(1, 0), returns, holdout_size=100, horizon=1, n_rolls=3)

    assert len(results) == 3
    for i, result in enumerate(results):
        assert result.origin == returns.index[800 + i - 1]
        assert result.steps['realized'].iloc[0] == returns.iloc[800 + i]
        assert result.volatility.iloc[0] > 0

    table = rolling_table(results)
    assert len(table) == 3
    assert {'origin', 'step', 'mean', 'volatility', 'realized'} <= set(table.columns)


def test_rolling_expanding_window(forecaster, synthetic_returns):
    returns = synthetic_returns.iloc[:900]
    results = forecaster.rolling_forecast(
        ModelSpec(0, 0), returns, holdout_size=100, horizon=3, n_rolls=2, window='expanding'
    )

    assert [r.horizon for r in results] == [3, 3]
    assert results[1].steps['realized'].notna().all()


@pytest.mark.parametrize("kwargs", [
    {'holdout_size': 0},
    {'holdout_size': 900},
    {'holdout_size': 10, 'n_rolls': 11},
    {'holdout_size': 10, 'window': 'fixed'},
])
def test_rolling_invalid_arguments(forecaster, synthetic_returns, kwargs):
    with pytest.raises(ValueError):
        forecaster.rolling_forecast(ModelSpec(0, 0), synthetic_returns.iloc[:900], **kwargs)


if __name__ == '__main__':
    pytest.main([__file__])
