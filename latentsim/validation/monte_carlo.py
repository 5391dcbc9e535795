"""
Monte Carlo Study
=================

Drives the factorial simulation grid:

1. Enumerate conditions (loading x items x effect x sample size)
2. For every (condition, replicate) pair, generate data and estimate all
   four methods with an independent seed derived from the pair
3. Regroup results by condition key
4. Aggregate each condition (bias, RMSE, three coverages, failure rates)
5. Checkpoint each finished condition so long grids can resume

Units of work share no mutable state, so they run sequentially or on a
process pool with identical results.

Example:
    >>> settings = StudySettings(n_replications=100, sample_sizes=[100, 500])
    >>> study = MonteCarloStudy(settings)
    >>> result = study.run()
    >>> result.wide_table()
"""

import time
from collections import defaultdict
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Callable

import pandas as pd

from latentsim import constants as C
from latentsim.config import StudySettings, settings_to_dict
from latentsim.estimation.runner import Estimate, ReplicateResult, run_replicate, replicate_frame
from latentsim.simulation.conditions import Condition, conditions_from_settings
from latentsim.simulation.generator import derive_seed
from latentsim.utils.logging_config import get_logger, StudyLogger
from latentsim.validation.aggregate import ConditionSummary, summarize_condition
from latentsim.validation import checkpoint

logger = get_logger(__name__)


@dataclass
class StudyResult:
    """Container for Monte Carlo study results."""
    settings: StudySettings
    summaries: List[ConditionSummary] = field(default_factory=list)
    restored: pd.DataFrame = field(default_factory=pd.DataFrame)
    replicates: List[ReplicateResult] = field(default_factory=list)

    # Timing
    total_time: float = 0.0
    time_per_rep: float = 0.0

    def summary_table(self) -> pd.DataFrame:
        """Long table: one row per condition x method (restored rows included)."""
        records = [rec for s in self.summaries for rec in s.to_long_records()]
        fresh = pd.DataFrame(records)
        frames = [df for df in (self.restored, fresh) if not df.empty]
        if not frames:
            return pd.DataFrame()
        df = pd.concat(frames, ignore_index=True)
        df = df.drop_duplicates(subset=['condition', 'method'], keep='last')
        return df.sort_values(['index', 'method']).reset_index(drop=True)

    def wide_table(self) -> pd.DataFrame:
        """One row per condition with <method>_<statistic> columns."""
        return checkpoint.long_to_wide(self.summary_table())

    def replicate_table(self) -> pd.DataFrame:
        """Raw per-replicate records retained during this run."""
        return replicate_frame(self.replicates)

    def failure_table(self) -> pd.DataFrame:
        """Failure rate per condition (rows) and method (columns)."""
        df = self.summary_table()
        if df.empty:
            return df
        return df.pivot(index='condition', columns='method', values='failure_rate')

    def summary_for(self, key: str) -> Optional[ConditionSummary]:
        return next((s for s in self.summaries if s.condition.key == key), None)


def _failed_result(condition: Condition, seed: int, replicate_index: int,
                   reason: str) -> ReplicateResult:
    result = ReplicateResult(
        condition_key=condition.key,
        condition_index=condition.index,
        replicate_index=replicate_index,
        seed=seed,
    )
    for method in C.METHODS:
        result.estimates[method] = Estimate.failed(method, reason)
    return result


def replicate_task(condition: Condition, replicate_index: int, base_seed: int,
                   item_index: int, sem_timeout: Optional[float],
                   sem_fitter: Optional[Callable] = None) -> ReplicateResult:
    """
    One unit of work. Module-level so it can be shipped to worker processes.

    Unexpected errors are recorded as a fully failed replicate so that the
    grid always completes.
    """
    seed = derive_seed(base_seed, condition.index, replicate_index)
    try:
        return run_replicate(condition, seed, replicate_index,
                             item_index=item_index, sem_timeout=sem_timeout,
                             sem_fitter=sem_fitter)
    except Exception as e:
        logger.warning(f"{condition.key} rep {replicate_index} failed: "
                       f"{type(e).__name__}: {e}")
        return _failed_result(condition, seed, replicate_index, f"{type(e).__name__}: {e}")


class MonteCarloStudy:
    """
    Monte Carlo simulation study over the condition grid.

    Runs multiple replications of:
    1. Generate data from the one-factor DGP
    2. Estimate single-item, sum-score, factor-score and SEM models
    3. Record estimates, SEs and convergence
    4. Compute per-condition summary statistics
    """

    def __init__(self,
                 settings: Optional[StudySettings] = None,
                 checkpoint_dir: Optional[Path] = None,
                 keep_replicates: bool = False,
                 sem_fitter: Optional[Callable] = None,
                 verbose: bool = True):
        """
        Initialize Monte Carlo study.

        Args:
            settings: Study settings (reference defaults if None)
            checkpoint_dir: Directory for checkpoint files (None = no checkpointing)
            keep_replicates: Keep per-replicate results in memory
            sem_fitter: Replacement SEM fitter (must be picklable for n_workers > 1)
            verbose: Log progress at INFO level
        """
        self.settings = settings or StudySettings()
        self.checkpoint_dir = Path(checkpoint_dir) if checkpoint_dir is not None else None
        self.keep_replicates = keep_replicates or self.settings.save_replicates
        self.sem_fitter = sem_fitter
        self.verbose = verbose

    def _task_args(self, condition: Condition, rep: int) -> tuple:
        s = self.settings
        return (condition, rep, s.seed, s.single_item_index, s.sem_timeout, self.sem_fitter)

    def _finish_condition(self, condition: Condition, results: List[ReplicateResult],
                          result: StudyResult, study_log: StudyLogger,
                          elapsed: float) -> ConditionSummary:
        summary = summarize_condition(condition, results)
        result.summaries.append(summary)

        if self.keep_replicates:
            result.replicates.extend(sorted(results, key=lambda r: r.replicate_index))

        if self.checkpoint_dir is not None:
            checkpoint.save_condition(
                self.checkpoint_dir, summary,
                results if self.settings.save_replicates else None
            )

        for r in results:
            for est in r.estimates.values():
                if not est.converged:
                    study_log.failure(condition.key, r.replicate_index, est.method, est.error)

        study_log.condition_done(condition.key, summary.failure_rates, elapsed)
        return summary

    def _run_sequential(self, conditions: List[Condition], result: StudyResult,
                        study_log: StudyLogger) -> None:
        for condition in conditions:
            start = time.time()
            results = [replicate_task(*self._task_args(condition, rep))
                       for rep in range(self.settings.n_replications)]
            self._finish_condition(condition, results, result, study_log,
                                   time.time() - start)

    def _run_parallel(self, conditions: List[Condition], result: StudyResult,
                      study_log: StudyLogger) -> None:
        n_rep = self.settings.n_replications
        by_key = {c.key: c for c in conditions}
        grouped: Dict[str, List[ReplicateResult]] = defaultdict(list)
        started: Dict[str, float] = {}

        with ProcessPoolExecutor(max_workers=self.settings.n_workers) as executor:
            futures = []
            for condition in conditions:
                started[condition.key] = time.time()
                for rep in range(n_rep):
                    futures.append(executor.submit(replicate_task,
                                                   *self._task_args(condition, rep)))

            # Completion order is arbitrary; results are grouped by condition key
            for future in as_completed(futures):
                rep_result = future.result()
                key = rep_result.condition_key
                grouped[key].append(rep_result)
                if len(grouped[key]) == n_rep:
                    self._finish_condition(by_key[key], grouped.pop(key), result,
                                           study_log, time.time() - started[key])

        # Keep summaries in grid order
        result.summaries.sort(key=lambda s: s.condition.index)

    def run(self, conditions: Optional[List[Condition]] = None,
            resume: bool = True) -> StudyResult:
        """
        Run the Monte Carlo study.

        Args:
            conditions: Conditions to run (default: full grid from settings)
            resume: Skip conditions already present in the checkpoint

        Returns:
            StudyResult with per-condition summaries
        """
        start_time = time.time()
        conditions = conditions if conditions is not None else conditions_from_settings(self.settings)
        result = StudyResult(settings=self.settings)

        pending = conditions
        if self.checkpoint_dir is not None:
            if resume:
                previous = checkpoint.read_meta(self.checkpoint_dir)
                if previous is not None and not checkpoint.same_design(
                        previous.get('settings', {}), settings_to_dict(self.settings)):
                    logger.warning(f"Checkpoint in {self.checkpoint_dir} was written with "
                                   f"different study settings; restored conditions may "
                                   f"not be comparable (use resume=False to start over)")
                done = checkpoint.completed_keys(self.checkpoint_dir)
                wanted = {c.key for c in conditions}
                restored = checkpoint.load_summaries(self.checkpoint_dir)
                if not restored.empty:
                    result.restored = restored[restored['condition'].isin(wanted)]
                pending = [c for c in conditions if c.key not in done]
            else:
                checkpoint.clear_checkpoint(self.checkpoint_dir)
            checkpoint.write_meta(self.checkpoint_dir, {
                'settings': settings_to_dict(self.settings),
                'conditions': [c.key for c in conditions],
            })

        study_log = StudyLogger(len(conditions), self.settings.n_replications,
                                verbose=self.verbose)
        study_log.n_done = len(conditions) - len(pending)
        study_log.start(self.settings.n_workers, n_skipped=len(conditions) - len(pending))

        if pending:
            if self.settings.n_workers > 1:
                self._run_parallel(pending, result, study_log)
            else:
                self._run_sequential(pending, result, study_log)

        if self.checkpoint_dir is not None:
            wide = result.wide_table()
            if not wide.empty:
                wide.to_csv(self.checkpoint_dir / C.SUMMARY_WIDE_FILE, index=False)

        total_time = time.time() - start_time
        result.total_time = total_time
        n_units = len(pending) * self.settings.n_replications
        result.time_per_rep = total_time / n_units if n_units else 0.0

        study_log.finished(total_time)
        return result


def run_study(settings: Optional[StudySettings] = None,
              checkpoint_dir: Optional[Path] = None,
              resume: bool = True,
              verbose: bool = True) -> StudyResult:
    """Convenience wrapper: run the full grid described by settings."""
    settings = settings or StudySettings()
    study = MonteCarloStudy(settings, checkpoint_dir=checkpoint_dir, verbose=verbose)
    return study.run(resume=resume)
