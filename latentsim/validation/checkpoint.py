"""
Checkpointing of study results.

Each completed condition is appended to `summaries.csv` (one row per
condition x method) as soon as it is aggregated, so an interrupted grid can
be resumed by skipping conditions whose keys are already on disk.
"""

import json
from pathlib import Path
from typing import Dict, List, Set, Any, Optional

import pandas as pd

from latentsim import constants as C
from latentsim.utils.logging_config import get_logger

logger = get_logger(__name__)

ID_COLUMNS = ['condition', 'index', 'mean_loading', 'n_items', 'effect_size',
              'sample_size', 'factor_variance', 'n_replications', 'mean_reliability']


def append_records(path: Path, records: List[Dict[str, Any]]) -> None:
    """Append records to a CSV file, writing the header on first use."""
    if not records:
        return
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(records)
    write_header = not path.exists() or path.stat().st_size == 0
    df.to_csv(path, mode='a', header=write_header, index=False)


def save_condition(output_dir: Path, summary, replicate_results: Optional[list] = None) -> None:
    """
    Checkpoint one aggregated condition.

    Args:
        output_dir: Results directory
        summary: ConditionSummary
        replicate_results: Optional ReplicateResult list to store raw records
    """
    output_dir = Path(output_dir)
    append_records(output_dir / C.SUMMARY_FILE, summary.to_long_records())

    if replicate_results:
        records = [rec for r in replicate_results for rec in r.to_records()]
        append_records(output_dir / C.REPLICATES_FILE, records)


def load_summaries(output_dir: Path) -> pd.DataFrame:
    """Checkpointed long summaries (empty DataFrame if none)."""
    path = Path(output_dir) / C.SUMMARY_FILE
    if not path.exists() or path.stat().st_size == 0:
        return pd.DataFrame()
    return pd.read_csv(path)


def completed_keys(output_dir: Path) -> Set[str]:
    """Condition keys already present in the checkpoint."""
    df = load_summaries(output_dir)
    if df.empty or 'condition' not in df.columns:
        return set()
    return set(df['condition'].unique())


def clear_checkpoint(output_dir: Path) -> None:
    """Remove checkpoint files so a study starts from scratch."""
    output_dir = Path(output_dir)
    for name in (C.SUMMARY_FILE, C.SUMMARY_WIDE_FILE, C.REPLICATES_FILE, C.META_FILE):
        path = output_dir / name
        if path.exists():
            path.unlink()
            logger.info(f"Removed checkpoint file {path}")


def write_meta(output_dir: Path, meta: Dict[str, Any]) -> None:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    with open(output_dir / C.META_FILE, 'w') as f:
        json.dump(meta, f, indent=2)


def read_meta(output_dir: Path) -> Optional[Dict[str, Any]]:
    path = Path(output_dir) / C.META_FILE
    if not path.exists():
        return None
    with open(path) as f:
        return json.load(f)


def same_design(previous: Dict[str, Any], current: Dict[str, Any]) -> bool:
    """
    Whether two nested settings dicts produce comparable summaries.

    Worker count and output options do not change results and are ignored.
    """
    ignored = {'n_workers'}
    prev_study = {k: v for k, v in previous.get('study', {}).items() if k not in ignored}
    curr_study = {k: v for k, v in current.get('study', {}).items() if k not in ignored}
    return prev_study == curr_study and previous.get('grid') == current.get('grid')


def long_to_wide(summary_long: pd.DataFrame) -> pd.DataFrame:
    """
    Pivot a long summary (condition x method rows) into one row per condition
    with `<method>_<statistic>` columns.
    """
    if summary_long.empty:
        return pd.DataFrame()

    id_cols = [c for c in ID_COLUMNS if c in summary_long.columns]
    stat_cols = [c for c in summary_long.columns if c not in id_cols and c != 'method']

    ids = summary_long[id_cols].drop_duplicates(subset='condition').set_index('condition')
    wide = summary_long.pivot(index='condition', columns='method', values=stat_cols)
    wide.columns = [f'{method}_{stat}' for stat, method in wide.columns]

    method_order = [m for m in C.METHODS if m in summary_long['method'].unique()]
    ordered_cols = [f'{m}_{s}' for m in method_order for s in stat_cols]
    wide = ids.join(wide[ordered_cols]).reset_index()

    if 'index' in wide.columns:
        wide = wide.sort_values('index').reset_index(drop=True)
    return wide
