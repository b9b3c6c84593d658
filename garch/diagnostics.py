"""
Exploratory diagnostics on prices and log returns.

Every test here is advisory: results are reported, model fitting runs
regardless of the outcome.
"""

import inspect
import logging
from typing import Dict

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.tsa.stattools import acf, adfuller, pacf

from models import DiagnosticsReport, TestResult

logger = logging.getLogger(__name__)

# statsmodels 0.15 warns about the tuple result unless result_object=False
_ADF_KWARGS = {'result_object': False} if 'result_object' in inspect.signature(adfuller).parameters else {}


def _clean(series: pd.Series) -> np.ndarray:
    values = np.asarray(series, dtype=float)
    values = values[np.isfinite(values)]
    if len(values) < 3:
        raise ValueError(f"Need at least 3 finite observations, got {len(values)}")
    return values


def stationarity_test(series: pd.Series, alpha: float = 0.05, autolag: str = 'AIC') -> TestResult:
    """Augmented Dickey-Fuller test, p_value > alpha signals a unit root"""
    result = adfuller(_clean(series), autolag=autolag, **_ADF_KWARGS)
    stat, p_value, used_lag, nobs, critical_values = result[:5]
    return TestResult(
        name='adf',
        statistic=float(stat),
        p_value=float(p_value),
        alpha=alpha,
        details={
            'lags': int(used_lag),
            'nobs': int(nobs),
            'critical_values': {k: float(v) for k, v in critical_values.items()},
        },
    )


def autocorrelation_profile(series: pd.Series, max_lag: int = 20) -> pd.DataFrame:
    """ACF and PACF for lags 1..max_lag"""
    values = _clean(series)
    # pacf needs fewer lags than half the sample
    max_lag = min(max_lag, len(values) // 2 - 1)
    if max_lag < 1:
        raise ValueError("Series too short for an autocorrelation profile")

    acf_values = acf(values, nlags=max_lag, fft=True)
    pacf_values = pacf(values, nlags=max_lag, method='ywm')
    return pd.DataFrame({
        'lag': np.arange(1, max_lag + 1),
        'acf': acf_values[1:],
        'pacf': pacf_values[1:],
    })


def normality_test(series: pd.Series, alpha: float = 0.05) -> TestResult:
    """Jarque-Bera test, null is normally distributed data"""
    values = _clean(series)
    result = stats.jarque_bera(values)
    return TestResult(
        name='jarque_bera',
        statistic=float(result[0]),
        p_value=float(result[1]),
        alpha=alpha,
        details={
            'skewness': float(stats.skew(values)),
            'excess_kurtosis': float(stats.kurtosis(values)),
        },
    )


def independence_test(series: pd.Series, lags: int = 10, alpha: float = 0.05) -> TestResult:
    """Ljung-Box test, null is no autocorrelation up to lags"""
    values = _clean(series)
    table = acorr_ljungbox(values, lags=[lags], return_df=True)
    return TestResult(
        name='ljung_box',
        statistic=float(table['lb_stat'].iloc[-1]),
        p_value=float(table['lb_pvalue'].iloc[-1]),
        alpha=alpha,
        details={'lags': lags},
    )


def arch_effect_test(series: pd.Series, lags: int = 10, alpha: float = 0.05) -> TestResult:
    """Ljung-Box on squared demeaned returns (volatility clustering)"""
    values = _clean(series)
    squared = (values - values.mean()) ** 2
    result = independence_test(squared, lags=lags, alpha=alpha)
    return TestResult(
        name='ljung_box_squared',
        statistic=result.statistic,
        p_value=result.p_value,
        alpha=alpha,
        details=result.details,
    )


def describe_returns(series: pd.Series) -> Dict[str, float]:
    values = _clean(series)
    return {
        'n': float(len(values)),
        'mean': float(np.mean(values)),
        'std': float(np.std(values, ddof=1)),
        'skewness': float(stats.skew(values)),
        'excess_kurtosis': float(stats.kurtosis(values)),
        'min': float(np.min(values)),
        'max': float(np.max(values)),
    }


def run_diagnostics(prices: pd.Series, returns: pd.Series, max_lag: int = 20,
                    lags: int = 10, alpha: float = 0.05) -> DiagnosticsReport:
    """Run the full diagnostic battery on close prices and log returns"""
    report = DiagnosticsReport(
        price_stationarity=stationarity_test(prices, alpha=alpha),
        return_stationarity=stationarity_test(returns, alpha=alpha),
        normality=normality_test(returns, alpha=alpha),
        independence=independence_test(returns, lags=lags, alpha=alpha),
        arch_effect=arch_effect_test(returns, lags=lags, alpha=alpha),
        autocorrelation=autocorrelation_profile(returns, max_lag=max_lag),
        summary=describe_returns(returns),
    )

    logger.info(
        f"Diagnostics:\n"
        f"  ADF close:      stat={report.price_stationarity.statistic:.3f} p={report.price_stationarity.p_value:.4f}\n"
        f"  ADF returns:    stat={report.return_stationarity.statistic:.3f} p={report.return_stationarity.p_value:.4f}\n"
        f"  Jarque-Bera:    stat={report.normality.statistic:.1f} p={report.normality.p_value:.4f}\n"
        f"  Ljung-Box:      stat={report.independence.statistic:.2f} p={report.independence.p_value:.4f}\n"
        f"  Ljung-Box r^2:  stat={report.arch_effect.statistic:.2f} p={report.arch_effect.p_value:.4f}"
    )
    if not report.returns_stationary:
        logger.warning("Returns look non-stationary (ADF p-value above alpha), fitting anyway")

    return report
