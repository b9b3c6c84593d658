#!/usr/bin/env python
"""
Volatility report pipeline for a single equity.
Coordinates data acquisition, diagnostics, ARMA-eGARCH model search and forecasting.
"""
import sys
from pathlib import Path
import logging
from datetime import datetime
import pandas as pd
from typing import Any, Dict, Optional
from contextlib import contextmanager
import time
import psutil
import traceback

# Add project root to path
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

from config import model_config
from data_manager.data_loader import PriceLoader
from garch.data_prep import split_returns, to_log_returns
from garch.diagnostics import run_diagnostics
from garch.estimator import ArmaGarchEstimator, comparison_table, select_model
from garch.forecaster import ArmaGarchForecaster, rolling_table
from models import AnalysisReport


class PerformanceMonitor:
    """Wall time and resident memory of each pipeline stage"""
    def __init__(self):
        self.process = psutil.Process()
        self.start_time = time.time()
        self.stages: Dict[str, Dict[str, float]] = {}

    def _memory_mb(self) -> float:
        return self.process.memory_info().rss / 1024 / 1024

    @contextmanager
    def stage(self, name: str):
        """Time one stage, the entry is recorded even when the stage raises"""
        started = time.time()
        memory_before = self._memory_mb()
        try:
            yield
        finally:
            memory_after = self._memory_mb()
            self.stages[name] = {
                'seconds': time.time() - started,
                'memory_mb': memory_after,
                'memory_delta_mb': memory_after - memory_before,
            }

    def summary(self) -> Dict[str, Dict[str, float]]:
        """Stage name -> statistics, in execution order"""
        return {name: dict(stats) for name, stats in self.stages.items()}

    def format_summary(self) -> str:
        lines = ["Stage timings:"]
        for name, stats in self.stages.items():
            lines.append(
                f"  {name:<14} {stats['seconds']:8.2f}s  "
                f"{stats['memory_mb']:8.1f} MB ({stats['memory_delta_mb']:+.1f})"
            )
        lines.append(f"  {'total':<14} {time.time() - self.start_time:8.2f}s")
        return "\n".join(lines)


def setup_logging(output_dir: Optional[Path] = None) -> logging.Logger:
    """
    Configure logging with a console handler and an optional file handler

    Parameters:
    -----------
    output_dir : Path, optional
        Directory for the log file, no file logging when None

    Returns:
    --------
    logging.Logger
        Configured logger
    """
    logger = logging.getLogger("volatility_report")
    logger.setLevel(logging.INFO)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in logger.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        logger.addHandler(console_handler)

    if output_dir is not None:
        log_dir = Path(output_dir) / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"volatility_report_{timestamp}.log"

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )
        logger.addHandler(file_handler)

    return logger


def initialize_components(logger: logging.Logger = None, **overrides) -> Dict:
    """Initialize all analysis components"""
    if logger is None:
        logger = logging.getLogger('volatility_report')

    show_progress = overrides.get('show_progress', True)

    logger.info("Creating price loader...")
    loader = PriceLoader(provider=overrides.get('provider'))

    logger.info("Creating ARMA-GARCH estimator...")
    estimator = ArmaGarchEstimator(
        min_observations=overrides.get('min_observations', model_config.MIN_OBSERVATIONS),
        criterion=overrides.get('criterion', model_config.INFORMATION_CRITERION),
        scale=overrides.get('scale', model_config.RETURN_SCALE),
        n_jobs=overrides.get('n_jobs', 1),
        show_progress=show_progress
    )

    logger.info("Creating forecaster...")
    forecaster = ArmaGarchForecaster(
        estimator=estimator,
        n_simulations=overrides.get('n_simulations', model_config.N_SIMULATIONS),
        random_seed=overrides.get('random_seed', model_config.RANDOM_SEED),
        quantiles=overrides.get('quantiles', model_config.BOOTSTRAP_QUANTILES),
        n_refits=overrides.get('n_refits', model_config.BOOTSTRAP_REFITS),
        show_progress=show_progress
    )

    return {
        'loader': loader,
        'estimator': estimator,
        'forecaster': forecaster,
        'grid': overrides.get('grid', model_config.DEFAULT_MODEL_GRID),
    }


def run_analysis(components: Dict, ticker: str, start: Any, end: Any,
                 logger: logging.Logger = None,
                 prices: Optional[pd.DataFrame] = None,
                 split_ratio: float = model_config.SPLIT_RATIO,
                 horizon: int = model_config.FORECAST_HORIZON,
                 bootstrap_paths: int = model_config.BOOTSTRAP_PATHS,
                 bootstrap_mode: str = model_config.BOOTSTRAP_MODE,
                 rolling_rolls: int = model_config.ROLLING_ROLLS,
                 rolling_window: str = model_config.ROLLING_WINDOW,
                 output_dir: Optional[Path] = None) -> AnalysisReport:
    """
    Run the four pipeline stages in order and collect their results.

    Diagnostics are reported but never gate the model search. prices skips
    the fetch (already loaded data); bootstrap_paths=0 and rolling_rolls=0
    switch those forecasts off.
    """
    if logger is None:
        logger = logging.getLogger('volatility_report')
    monitor = PerformanceMonitor()
    logger.info(f"Starting analysis pipeline for {ticker}...")

    try:
        loader = components['loader']
        estimator = components['estimator']
        forecaster = components['forecaster']
        grid = components.get('grid', model_config.DEFAULT_MODEL_GRID)

        with monitor.stage('acquisition'):
            if prices is None:
                prices = loader.fetch(ticker, start, end)

        with monitor.stage('diagnostics'):
            logger.info("Computing log returns and diagnostics...")
            returns = to_log_returns(prices, column=model_config.PRICE_COLUMN)
            split = split_returns(returns, split_ratio)
            diagnostics = run_diagnostics(
                prices[model_config.PRICE_COLUMN],
                returns,
                max_lag=model_config.MAX_ACF_LAG,
                lags=model_config.LJUNG_BOX_LAGS,
                alpha=model_config.SIGNIFICANCE_LEVEL
            )

        with monitor.stage('model_search'):
            logger.info("Fitting candidate models...")
            fitted = estimator.fit_grid(split.train, grid)
            comparison = comparison_table(fitted)
            logger.info(f"Model comparison:\n{comparison[['score', 'loglikelihood', 'converged']].to_string()}")

        with monitor.stage('forecast'):
            selected = select_model(fitted)
            forecast = forecaster.forecast(selected, horizon)

            bootstrap = None
            if bootstrap_paths > 0:
                logger.info(f"Bootstrapping {bootstrap_paths} paths ({bootstrap_mode})...")
                bootstrap = forecaster.bootstrap_forecast(selected, horizon, bootstrap_paths, bootstrap_mode)

            rolling = []
            if rolling_rolls > 0:
                logger.info(f"Rolling forecast over the {len(split.test)} held-out returns...")
                rolling = forecaster.rolling_forecast(
                    selected.spec,
                    returns,
                    holdout_size=len(split.test),
                    horizon=1,
                    n_rolls=min(rolling_rolls, len(split.test)),
                    window=rolling_window
                )

        report = AnalysisReport(
            ticker=ticker,
            start=prices.index[0],
            end=prices.index[-1],
            n_prices=len(prices),
            n_train=len(split.train),
            n_test=len(split.test),
            diagnostics=diagnostics,
            comparison=comparison,
            selected=selected,
            forecast=forecast,
            bootstrap=bootstrap,
            rolling=rolling,
            performance=monitor.summary(),
        )

        if output_dir is not None:
            export_report(report, output_dir)

        logger.info(monitor.format_summary())
        logger.info(f"Pipeline completed successfully, selected {selected.label}")
        return report

    except Exception as e:
        logger.error(f"Error in analysis pipeline: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise


def export_report(report: AnalysisReport, output_dir: Path) -> Dict[str, Path]:
    """Write the report tables as CSV files"""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    prefix = report.ticker.replace('^', '').replace('/', '_')

    tables = {
        'diagnostics': report.diagnostics.to_frame(),
        'autocorrelation': report.diagnostics.autocorrelation,
        'model_comparison': report.comparison,
        'forecast': report.forecast_table(),
    }
    if report.rolling:
        tables['rolling_forecast'] = rolling_table(report.rolling)

    paths = {}
    for name, table in tables.items():
        path = output_dir / f"{prefix}_{name}.csv"
        table.to_csv(path)
        paths[name] = path
    return paths


def main():
    """Main entry point, run parameters come from config.model_config"""
    logger = setup_logging()
    try:
        logger.info("Starting volatility report pipeline...")

        output_dir = Path(__file__).parent / "results"
        output_dir.mkdir(parents=True, exist_ok=True)
        setup_logging(output_dir)

        components = initialize_components(logger)
        report = run_analysis(
            components,
            ticker=model_config.TICKER,
            start=model_config.START_DATE,
            end=model_config.END_DATE,
            logger=logger,
            output_dir=output_dir
        )

        logger.info(f"\nSelected model: {report.selected_spec.label}")
        logger.info(f"\nForecast:\n{report.forecast_table().to_string()}")
        return report

    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise


if __name__ == '__main__':
    main()
