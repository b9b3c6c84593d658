from typing import Callable, Dict, List, Optional, Sequence, Tuple
import math
import numpy as np
import pandas as pd
import logging
from arch.univariate import EGARCH, Normal, StudentsT

from config import model_config
from errors import NoConvergedModel
from models import BootstrapForecast, FittedModel, ForecastResult, ModelSpec
from utils.progress import ProgressMonitor
from .estimator import ArmaGarchEstimator

logger = logging.getLogger(__name__)

BOOTSTRAP_MODES = ('partial', 'full')


def arma_recursion(params: Dict[str, float], shocks: np.ndarray,
                   dev_history: np.ndarray, eps_history: np.ndarray) -> np.ndarray:
    """
    Push shocks through the ARMA mean equation.

    y[t] - c = sum ar_i (y[t-i] - c) + e[t] + sum ma_j e[t-j], statsmodels
    sign convention. shocks has shape (n_paths, steps); dev_history holds the
    last demeaned observations, eps_history the last residuals, oldest first.
    """
    const = params.get('const', 0.0)
    p = sum(1 for name in params if name.startswith('ar.L'))
    q = sum(1 for name in params if name.startswith('ma.L'))
    ar = [params[f'ar.L{i}'] for i in range(1, p + 1)]
    ma = [params[f'ma.L{j}'] for j in range(1, q + 1)]

    n_paths, steps = shocks.shape
    dev = np.zeros((n_paths, p + steps))
    eps = np.zeros((n_paths, q + steps))
    if p:
        dev[:, :p] = np.asarray(dev_history, dtype=float)[-p:]
    if q:
        eps[:, :q] = np.asarray(eps_history, dtype=float)[-q:]

    for s in range(steps):
        value = shocks[:, s].copy()
        for i in range(1, p + 1):
            value += ar[i - 1] * dev[:, p + s - i]
        for j in range(1, q + 1):
            value += ma[j - 1] * eps[:, q + s - j]
        dev[:, p + s] = value
        eps[:, q + s] = shocks[:, s]

    return const + dev[:, p:]


def innovation_sampler(vol_result, random_state: np.random.RandomState) -> Callable:
    """Seeded standardized innovation generator for simulation forecasts"""
    distribution = vol_result.model.distribution
    dist_params = [vol_result.params[name] for name in distribution.parameter_names()]

    if isinstance(distribution, StudentsT):
        nu = dist_params[0]
        scale = np.sqrt((nu - 2) / nu)
        return lambda size: random_state.standard_t(nu, size=size) * scale
    if isinstance(distribution, Normal):
        return lambda size: random_state.standard_normal(size)

    # Other families use arch's own generator, unseeded
    logger.warning(f"No seeded sampler for {distribution.name}, forecasts are not reproducible")
    return distribution.simulate(dist_params)


class ArmaGarchForecaster:
    """Point, rolling and bootstrap forecasts from fitted ARMA-GARCH models"""

    def __init__(self, estimator: Optional[ArmaGarchEstimator] = None,
                 n_simulations: int = model_config.N_SIMULATIONS,
                 random_seed: int = model_config.RANDOM_SEED,
                 quantiles: Sequence[float] = model_config.BOOTSTRAP_QUANTILES,
                 n_refits: int = model_config.BOOTSTRAP_REFITS,
                 show_progress: bool = True):
        """
        Initialize forecaster

        Args:
            estimator: Estimator used for rolling and full-bootstrap refits
            n_simulations: Paths behind multi-step variance forecasts
            random_seed: Seed for every simulated or resampled path
            quantiles: Quantiles reported by bootstrap forecasts
            n_refits: Refits pooled by full bootstrap forecasts
            show_progress: Show progress bars for rolling and refit loops
        """
        self.estimator = estimator or ArmaGarchEstimator(show_progress=False)
        self.n_simulations = n_simulations
        self.random_seed = random_seed
        self.quantiles = tuple(quantiles)
        self.n_refits = n_refits
        self.show_progress = show_progress
        self.logger = logging.getLogger('garch.forecaster')

    @staticmethod
    def _check_model(model: FittedModel):
        if not model.converged or model._mean_result is None or model._vol_result is None:
            raise ValueError(f"Cannot forecast from failed fit {model.label}")

    @staticmethod
    def _check_horizon(horizon: int):
        if horizon < 1:
            raise ValueError(f"Forecast horizon must be >= 1, got {horizon}")

    def _variance_forecast(self, vol_result, horizon: int) -> np.ndarray:
        """Conditional variance path, scaled units"""
        # EGARCH has no closed form beyond one step
        if horizon == 1 or not isinstance(vol_result.model.volatility, EGARCH):
            forecast = vol_result.forecast(horizon=horizon, method='analytic', reindex=False)
        else:
            random_state = np.random.RandomState(self.random_seed)
            forecast = vol_result.forecast(
                horizon=horizon,
                method='simulation',
                simulations=self.n_simulations,
                rng=innovation_sampler(vol_result, random_state),
                reindex=False
            )
        return np.asarray(forecast.variance.values[-1], dtype=float)

    def forecast(self, model: FittedModel, horizon: int = model_config.FORECAST_HORIZON) -> ForecastResult:
        """Mean return and conditional volatility for steps 1..horizon"""
        self._check_model(model)
        self._check_horizon(horizon)

        mean = np.asarray(model._mean_result.forecast(steps=horizon), dtype=float)
        variance = self._variance_forecast(model._vol_result, horizon)

        steps = pd.DataFrame(
            {
                'mean': mean / model.scale,
                'volatility': np.sqrt(variance) / model.scale,
            },
            index=pd.RangeIndex(1, horizon + 1, name='step')
        )

        if not np.all(np.isfinite(steps.values)):
            self.logger.warning(f"Non-finite values in {model.label} forecast")

        self.logger.info(
            f"Forecast {model.label} for {horizon} steps:\n"
            f"  Mean return (avg): {steps['mean'].mean():.6f}\n"
            f"  Volatility: {steps['volatility'].iloc[0]:.6f} (step 1) to "
            f"{steps['volatility'].iloc[-1]:.6f} (step {horizon})"
        )
        return ForecastResult(spec=model.spec, origin=model.end_date, steps=steps)

    def rolling_forecast(self, spec: ModelSpec, returns: pd.Series, holdout_size: int,
                         horizon: int = 1, n_rolls: Optional[int] = None,
                         window: str = model_config.ROLLING_WINDOW) -> List[ForecastResult]:
        """
        Refit and forecast from successive origins through the held-out tail.

        Roll i estimates on returns ending at len(returns) - holdout_size + i;
        a moving window keeps the estimation length fixed, an expanding one
        keeps the first observation. Realised returns are attached where the
        holdout has them.
        """
        self._check_horizon(horizon)
        if window not in ('moving', 'expanding'):
            raise ValueError(f"Unknown rolling window {window}, expected 'moving' or 'expanding'")
        n = len(returns)
        if not 1 <= holdout_size < n:
            raise ValueError(f"holdout_size must be in [1, {n - 1}], got {holdout_size}")
        n_rolls = holdout_size if n_rolls is None else n_rolls
        if not 1 <= n_rolls <= holdout_size:
            raise ValueError(f"n_rolls must be in [1, {holdout_size}], got {n_rolls}")

        base = n - holdout_size
        self.logger.info(
            f"Rolling {spec.label}: {n_rolls} rolls, {window} window of {base} returns, horizon {horizon}"
        )

        results = []
        monitor = ProgressMonitor(total=n_rolls, desc="Rolling forecast",
                                  logger=self.logger, disable=not self.show_progress)
        try:
            for i in range(n_rolls):
                end = base + i
                start = i if window == 'moving' else 0
                window_returns = returns.iloc[start:end]

                fitted = self.estimator.fit(window_returns, spec)
                monitor.update()
                if not fitted.converged:
                    self.logger.warning(f"Roll {i} ending {window_returns.index[-1]} failed: {fitted.message}")
                    continue

                result = self.forecast(fitted, horizon)
                realized = np.full(horizon, np.nan)
                actual = returns.iloc[end:end + horizon].to_numpy(dtype=float)
                realized[:len(actual)] = actual

                steps = result.steps.copy()
                steps['realized'] = realized
                results.append(ForecastResult(spec=spec, origin=window_returns.index[-1], steps=steps))
        finally:
            monitor.close()

        if not results:
            raise NoConvergedModel(f"Every roll of {spec.label} failed to converge")
        if len(results) < n_rolls:
            self.logger.warning(f"{n_rolls - len(results)}/{n_rolls} rolls skipped")
        return results

    def _simulate_paths(self, mean_params: Dict[str, float], endog: np.ndarray, residuals: np.ndarray,
                        vol_model, vol_params, horizon: int, n_paths: int,
                        random_state: np.random.RandomState) -> Tuple[np.ndarray, np.ndarray]:
        """Bootstrap return and variance paths, scaled units, shape (n_paths, horizon)"""
        forecast = vol_model.forecast(
            vol_params,
            horizon=horizon,
            method='bootstrap',
            simulations=n_paths,
            random_state=random_state,
            reindex=False
        )
        shocks = np.asarray(forecast.simulations.values[-1], dtype=float)
        variances = np.asarray(forecast.simulations.variances[-1], dtype=float)

        const = mean_params.get('const', 0.0)
        paths = arma_recursion(mean_params, shocks, endog - const, residuals)
        return paths, variances

    def _synthetic_returns(self, model: FittedModel, random_state: np.random.RandomState,
                           burn: int = 500) -> pd.Series:
        """Training-length series driven by resampled standardized residuals"""
        vol_result = model._vol_result
        std_resid = np.asarray(vol_result.std_resid, dtype=float)
        std_resid = std_resid[np.isfinite(std_resid)]

        volatility = vol_result.model.volatility
        vol_params = np.asarray(vol_result.params, dtype=float)[:volatility.num_params]

        def resample(size):
            return random_state.choice(std_resid, size=size, replace=True)

        shocks, _ = volatility.simulate(vol_params, model.n_obs, resample, burn=burn)
        shocks = np.asarray(shocks, dtype=float).reshape(1, -1)

        # Start the mean equation at its unconditional level
        history = np.zeros(max(model.spec.ar_order, model.spec.ma_order, 1))
        synthetic = arma_recursion(model.params, shocks, history, history)[0]
        return pd.Series(synthetic / model.scale, name='log_return')

    def _full_paths(self, model: FittedModel, horizon: int, n_paths: int,
                    n_refits: int) -> Tuple[np.ndarray, np.ndarray, int]:
        """Pool bootstrap paths across refits on synthetic series"""
        per_refit = int(math.ceil(n_paths / n_refits))
        return_paths, variance_paths = [], []
        refits = 0
        attempts = 0
        monitor = ProgressMonitor(total=n_refits, desc="Bootstrap refits",
                                  logger=self.logger, disable=not self.show_progress)
        try:
            # Allow a failed refit to be replaced once
            while refits < n_refits and attempts < 2 * n_refits:
                random_state = np.random.RandomState(self.random_seed + 1 + attempts)
                attempts += 1

                synthetic = self._synthetic_returns(model, random_state)
                refit = self.estimator.fit(synthetic, model.spec)
                if not refit.converged:
                    self.logger.warning(f"Bootstrap refit {attempts} failed: {refit.message}")
                    continue

                # Real history filtered with the refit mean parameters
                filtered = model._mean_result.model.filter(refit._mean_result.params)
                residuals = np.asarray(filtered.resid, dtype=float)
                vol_model = self.estimator.variance_model(residuals, model.spec)

                paths, variances = self._simulate_paths(
                    refit.params, model._endog, residuals, vol_model,
                    refit._vol_result.params, horizon, per_refit, random_state
                )
                return_paths.append(paths)
                variance_paths.append(variances)
                refits += 1
                monitor.update()
        finally:
            monitor.close()

        if not refits:
            raise NoConvergedModel(f"Every bootstrap refit of {model.label} failed to converge")

        return (np.vstack(return_paths)[:n_paths],
                np.vstack(variance_paths)[:n_paths],
                refits)

    def bootstrap_forecast(self, model: FittedModel, horizon: int = model_config.FORECAST_HORIZON,
                           n_paths: int = model_config.BOOTSTRAP_PATHS,
                           mode: str = model_config.BOOTSTRAP_MODE,
                           quantiles: Optional[Sequence[float]] = None,
                           n_refits: Optional[int] = None) -> BootstrapForecast:
        """
        Forecast distribution by resampling standardized residuals.

        'partial' resamples innovations only, with the fitted parameters.
        'full' also refits the model on synthetic series built from resampled
        innovations, so parameter uncertainty widens the bands.

        Returns:
            BootstrapForecast with quantile bands for returns, cumulative
            returns and sigma per step. Cumulative bands widen with the
            horizon as return uncertainty compounds.
        """
        self._check_model(model)
        self._check_horizon(horizon)
        if n_paths < 1:
            raise ValueError(f"n_paths must be >= 1, got {n_paths}")
        mode = mode.lower()
        if mode not in BOOTSTRAP_MODES:
            raise ValueError(f"Unknown bootstrap mode {mode}, expected one of {BOOTSTRAP_MODES}")
        quantiles = tuple(sorted(quantiles or self.quantiles))
        if not all(0 < q < 1 for q in quantiles):
            raise ValueError(f"Quantiles must be in (0, 1), got {quantiles}")
        n_refits = self.n_refits if n_refits is None else n_refits

        if mode == 'partial':
            random_state = np.random.RandomState(self.random_seed)
            vol_result = model._vol_result
            return_paths, variance_paths = self._simulate_paths(
                model.params, model._endog, np.asarray(model._mean_result.resid, dtype=float),
                vol_result.model, vol_result.params, horizon, n_paths, random_state
            )
            refits = 0
        else:
            if n_refits < 1:
                raise ValueError(f"n_refits must be >= 1 for full bootstrap, got {n_refits}")
            return_paths, variance_paths, refits = self._full_paths(model, horizon, n_paths, n_refits)

        index = pd.RangeIndex(1, horizon + 1, name='step')
        returns = return_paths / model.scale
        sigma = np.sqrt(variance_paths) / model.scale
        return_bands = pd.DataFrame(np.quantile(returns, quantiles, axis=0).T, index=index, columns=list(quantiles))
        sigma_bands = pd.DataFrame(np.quantile(sigma, quantiles, axis=0).T, index=index, columns=list(quantiles))
        cumulative = np.cumsum(returns, axis=1)
        cumulative_bands = pd.DataFrame(
            np.quantile(cumulative, quantiles, axis=0).T, index=index, columns=list(quantiles)
        )

        self.logger.info(
            f"Bootstrap ({mode}) {model.label}: {len(returns)} paths, {refits} refits, "
            f"sigma band {sigma_bands.iloc[0, 0]:.6f}-{sigma_bands.iloc[0, -1]:.6f} (step 1) to "
            f"{sigma_bands.iloc[-1, 0]:.6f}-{sigma_bands.iloc[-1, -1]:.6f} (step {horizon})"
        )
        return BootstrapForecast(
            spec=model.spec,
            mode=mode,
            n_paths=len(returns),
            quantiles=quantiles,
            return_bands=return_bands,
            sigma_bands=sigma_bands,
            cumulative_bands=cumulative_bands,
            n_refits=refits,
        )


def rolling_table(results: List[ForecastResult]) -> pd.DataFrame:
    """Flatten rolling forecasts to one row per (origin, step)"""
    if not results:
        raise ValueError("No rolling forecasts available")
    return pd.concat([result.to_frame().reset_index() for result in results], ignore_index=True)
