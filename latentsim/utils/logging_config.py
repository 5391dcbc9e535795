"""
Structured Logging for the Simulation Study
===========================================

Provides consistent logging across the simulation and estimation code.

Usage:
    from latentsim.utils.logging_config import get_logger, StudyLogger

    # Simple logging
    logger = get_logger(__name__)
    logger.info("Starting condition")

    # Structured study logging
    study_log = StudyLogger(n_conditions=54, n_replications=1000)
    study_log.start()
    study_log.condition_done(key, failure_rates, elapsed=12.3)
"""

import logging
import sys
import warnings
from datetime import datetime, timezone
from typing import Optional, Dict
import json


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    format_style: str = "standard"
) -> None:
    """
    Configure logging for the latentsim package.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
        format_style: "standard", "detailed", or "json"
    """
    formats = {
        "standard": "%(asctime)s | %(levelname)-8s | %(message)s",
        "detailed": "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        "json": None  # Handled by JsonFormatter
    }

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if format_style == "json":
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter(formats.get(format_style, formats["standard"]),
                              datefmt="%Y-%m-%d %H:%M:%S")
        )
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter(formats["detailed"], datefmt="%Y-%m-%d %H:%M:%S")
        )
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module."""
    return logging.getLogger(name)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


# =============================================================================
# STUDY LOGGER
# =============================================================================

class StudyLogger:
    """
    Structured logger for Monte Carlo study progress.

    Example:
        log = StudyLogger(n_conditions=54, n_replications=1000)
        log.start()
        log.condition_done("L0.80_I6_E0.50_N1000", {"sem": 0.0}, elapsed=41.2)
        log.finished(total_time=2210.0)
    """

    def __init__(self, n_conditions: int, n_replications: int, verbose: bool = True):
        self.n_conditions = n_conditions
        self.n_replications = n_replications
        self.verbose = verbose
        self.start_time: Optional[datetime] = None
        self.n_done = 0
        self._logger = get_logger("latentsim.study")

    def _emit(self, message: str, level: int = logging.INFO) -> None:
        if self.verbose:
            self._logger.log(level, message)
        else:
            self._logger.debug(message)

    def start(self, n_workers: int = 1, n_skipped: int = 0) -> None:
        """Log study start."""
        self.start_time = datetime.now()
        self._emit("=" * 60)
        self._emit(f"Monte Carlo study: {self.n_conditions} conditions x "
                   f"{self.n_replications} replications ({n_workers} worker(s))")
        if n_skipped:
            self._emit(f"Resuming: {n_skipped} condition(s) already checkpointed")
        self._emit("=" * 60)

    def condition_done(self, key: str, failure_rates: Dict[str, float],
                       elapsed: float = 0.0) -> None:
        """Log completion of one condition with its failure rates."""
        self.n_done += 1
        rates = " | ".join(f"{m}={r:.1%}" for m, r in failure_rates.items())
        self._emit(f"[{self.n_done}/{self.n_conditions}] {key} done in "
                   f"{elapsed:.1f}s | failures: {rates}")

    def failure(self, key: str, replicate_index: int, method: str, reason: str) -> None:
        """Log an isolated per-replicate estimation failure."""
        self._logger.debug(f"{key} rep {replicate_index}: {method} failed ({reason})")

    def finished(self, total_time: float) -> None:
        """Log study completion."""
        self._emit("=" * 60)
        self._emit(f"Study complete in {total_time:.1f}s")
        self._emit("=" * 60)


# =============================================================================
# WARNING CONFIGURATION
# =============================================================================

def configure_warnings(debug_mode: bool = False) -> None:
    """
    Configure warning filters for repeated estimation.

    By default, suppresses expected warnings from the optimizers that are
    called tens of thousands of times over a grid.
    Set debug_mode=True to see all warnings for troubleshooting.

    Suppressed warnings (when debug_mode=False):
        - FutureWarning: library API deprecation warnings
        - ConvergenceWarning: scikit-learn factor analysis iteration cap
        - overflow / divide by zero / invalid value: numerical noise in
          early optimizer iterations on weakly identified models
    """
    if debug_mode:
        warnings.filterwarnings('default')
        logging.info("Debug mode: All warnings enabled")
    else:
        from sklearn.exceptions import ConvergenceWarning

        warnings.filterwarnings('ignore', category=FutureWarning)
        warnings.filterwarnings('ignore', category=ConvergenceWarning)
        warnings.filterwarnings('ignore', message='.*overflow.*')
        warnings.filterwarnings('ignore', message='.*divide by zero.*')
        warnings.filterwarnings('ignore', message='.*invalid value.*')
