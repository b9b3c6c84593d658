from typing import Dict, List, Optional
import numpy as np
import pandas as pd
from arch import arch_model
from statsmodels.tsa.arima.model import ARIMA
from concurrent.futures import ProcessPoolExecutor
import warnings
import logging

from config import model_config
from errors import FitFailure, InsufficientData, NoConvergedModel
from models import FittedModel, ModelSpec
from utils.progress import ProgressMonitor

logger = logging.getLogger(__name__)

CRITERIA = ('aic', 'bic', 'hqic')


def information_criteria(loglikelihood: float, n_params: int, n_obs: int) -> Dict[str, float]:
    """AIC, BIC and Hannan-Quinn for a fitted likelihood"""
    return {
        'aic': -2 * loglikelihood + 2 * n_params,
        'bic': -2 * loglikelihood + n_params * np.log(n_obs),
        'hqic': -2 * loglikelihood + 2 * n_params * np.log(np.log(n_obs)),
    }


def _fit_one(args) -> FittedModel:
    estimator, train, spec = args
    return estimator.fit(train, spec)


class ArmaGarchEstimator:
    """Fits ARMA-mean / GARCH-variance candidates and ranks them"""

    def __init__(self, min_observations: int = model_config.MIN_OBSERVATIONS,
                 criterion: str = model_config.INFORMATION_CRITERION,
                 scale: float = model_config.RETURN_SCALE,
                 max_iterations: int = model_config.MAX_ITERATIONS,
                 n_jobs: int = 1,
                 show_progress: bool = True):
        """
        Initialize estimator

        Args:
            min_observations: Minimum number of training returns
            criterion: Information criterion used as score ('aic', 'bic', 'hqic')
            scale: Factor applied to returns before fitting (100 = percent)
            max_iterations: Optimizer iteration budget for each step
            n_jobs: Worker processes for the grid search, 1 runs sequentially
            show_progress: Show a progress bar over the grid
        """
        if criterion not in CRITERIA:
            raise ValueError(f"Unknown information criterion {criterion}, expected one of {CRITERIA}")
        self.min_observations = min_observations
        self.criterion = criterion
        self.scale = scale
        self.max_iterations = max_iterations
        self.n_jobs = n_jobs
        self.show_progress = show_progress
        self.logger = logging.getLogger('garch.estimator')

    def _prepare(self, train: pd.Series) -> np.ndarray:
        values = np.asarray(train, dtype=float)
        if len(values) < self.min_observations:
            raise InsufficientData(
                f"Insufficient observations: {len(values)} < {self.min_observations}"
            )
        if not np.all(np.isfinite(values)):
            raise ValueError("Training returns contain missing or infinite values")
        return values * self.scale

    def _fit_mean(self, endog: np.ndarray, spec: ModelSpec):
        """ARMA(p,q) with constant by exact maximum likelihood"""
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            model = ARIMA(endog, order=(spec.ar_order, 0, spec.ma_order), trend='c')
            result = model.fit(method_kwargs={'maxiter': self.max_iterations})

        retvals = getattr(result, 'mle_retvals', None) or {}
        if not retvals.get('converged', True):
            raise FitFailure(spec.label, "ARMA mean optimizer did not converge")
        if not np.all(np.isfinite(result.params)):
            raise FitFailure(spec.label, "ARMA mean parameters are not finite")
        return result

    def variance_model(self, residuals: np.ndarray, spec: ModelSpec):
        p, q = spec.garch_order
        vol = spec.vol_model.upper()
        # Asymmetry term for EGARCH and GJR
        o = 1 if vol in ('EGARCH', 'GJR') else 0
        return arch_model(
            residuals,
            mean='Zero',
            vol='GARCH' if vol == 'GJR' else vol,
            p=p,
            o=o,
            q=q,
            dist=spec.distribution,
            rescale=False
        )

    def _fit_variance(self, residuals: np.ndarray, spec: ModelSpec):
        """Variance equation on the ARMA residuals"""
        model = self.variance_model(residuals, spec)
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            result = model.fit(
                disp='off',
                show_warning=False,
                options={'maxiter': self.max_iterations}
            )

        if result.convergence_flag != 0:
            raise FitFailure(spec.label, f"variance optimizer flag {result.convergence_flag}")
        if not np.isfinite(result.loglikelihood):
            raise FitFailure(spec.label, "non-finite variance log-likelihood")
        return result

    def fit(self, train: pd.Series, spec: ModelSpec) -> FittedModel:
        """
        Fit one specification to the training returns.

        Non-convergence never raises: the result comes back with
        converged=False and score=inf so it can't be selected.
        """
        endog = self._prepare(train)
        n_obs = len(endog)
        end_date = train.index[-1] if isinstance(train, pd.Series) else None

        try:
            mean_result = self._fit_mean(endog, spec)
            residuals = np.asarray(mean_result.resid, dtype=float)
            vol_result = self._fit_variance(residuals, spec)
        except FitFailure as e:
            self.logger.warning(f"Fit failed for {e.label}: {e.reason}")
            return FittedModel.failed(spec, n_obs, e.reason, scale=self.scale)
        except Exception as e:
            self.logger.error(f"Error fitting {spec.label}: {str(e)}")
            return FittedModel.failed(spec, n_obs, f"{type(e).__name__}: {e}", scale=self.scale)

        # Mean parameters without the ARMA innovation variance
        mean_names = [name for name in mean_result.model.param_names if name != 'sigma2']
        mean_params = dict(zip(mean_result.model.param_names, np.asarray(mean_result.params)))
        params = {name: float(mean_params[name]) for name in mean_names}
        params.update({name: float(value) for name, value in vol_result.params.items()})

        n_params = len(params)
        # Likelihood of the unscaled returns
        loglikelihood = float(vol_result.loglikelihood) + n_obs * np.log(self.scale)
        criteria = information_criteria(loglikelihood, n_params, n_obs)

        fitted = FittedModel(
            spec=spec,
            params=params,
            loglikelihood=loglikelihood,
            aic=float(criteria['aic']),
            bic=float(criteria['bic']),
            hqic=float(criteria['hqic']),
            score=float(criteria[self.criterion]),
            converged=True,
            n_obs=n_obs,
            n_params=n_params,
            scale=self.scale,
            end_date=end_date,
            _mean_result=mean_result,
            _vol_result=vol_result,
            _endog=endog,
        )
        self.logger.info(
            f"Fitted {spec.label}: loglik={loglikelihood:.2f}, "
            f"{self.criterion.upper()}={fitted.score:.2f}, k={n_params}"
        )
        return fitted

    def fit_grid(self, train: pd.Series, grid: Optional[List[ModelSpec]] = None) -> List[FittedModel]:
        """Fit every specification in grid order, each fit independent"""
        grid = list(grid) if grid is not None else list(model_config.DEFAULT_MODEL_GRID)
        if not grid:
            raise ValueError("Model grid is empty")

        # Fail fast on short data instead of once per spec
        self._prepare(train)

        self.logger.info(f"Estimating {len(grid)} candidate models on {len(train)} returns")
        monitor = ProgressMonitor(total=len(grid), desc="Fitting models",
                                  logger=self.logger, disable=not self.show_progress)
        results = []
        try:
            if self.n_jobs > 1:
                with ProcessPoolExecutor(max_workers=self.n_jobs) as executor:
                    for fitted in executor.map(_fit_one, [(self, train, spec) for spec in grid]):
                        results.append(fitted)
                        monitor.update(status=f"{fitted.label} converged={fitted.converged}")
            else:
                for spec in grid:
                    fitted = self.fit(train, spec)
                    results.append(fitted)
                    monitor.update(status=f"{fitted.label} converged={fitted.converged}")
        finally:
            monitor.close()

        n_failed = sum(not r.converged for r in results)
        if n_failed:
            self.logger.warning(f"{n_failed}/{len(results)} candidate models failed to converge")
        return results


def select_model(fitted: List[FittedModel], criterion: Optional[str] = None) -> FittedModel:
    """
    Pick the converged model with the lowest score.

    Ties go to the first model in grid order. criterion re-ranks on
    'aic', 'bic' or 'hqic' instead of the score computed at fit time.

    Raises:
        NoConvergedModel: no candidate converged
    """
    if criterion is not None and criterion not in CRITERIA:
        raise ValueError(f"Unknown information criterion {criterion}")

    best = None
    best_score = np.inf
    for model in fitted:
        if not model.converged:
            continue
        score = getattr(model, criterion) if criterion else model.score
        if not np.isfinite(score):
            continue
        if best is None or score < best_score:
            best, best_score = model, score

    if best is None:
        raise NoConvergedModel(f"None of {len(fitted)} candidate models converged")

    logger.info(f"Selected {best.label} with score {best_score:.2f}")
    return best


def comparison_table(fitted: List[FittedModel]) -> pd.DataFrame:
    """Model label -> score table in grid order"""
    records = []
    for model in fitted:
        records.append({
            'model': model.label,
            'ar_order': model.spec.ar_order,
            'ma_order': model.spec.ma_order,
            'score': model.score,
            'aic': model.aic,
            'bic': model.bic,
            'hqic': model.hqic,
            'loglikelihood': model.loglikelihood,
            'n_params': model.n_params,
            'converged': model.converged,
            'message': model.message,
        })
    return pd.DataFrame(records).set_index('model')
