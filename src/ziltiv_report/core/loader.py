"""
Data loading for the Ziltiv Trial Report.

Reads the four study tables (baseline, week 13, week 32, adverse events)
from CSV files, or accepts in-memory DataFrames, and normalises their
column types against the table registry.

The category sentinels "None" and "N/A" are real values in this study,
so CSVs are read with pandas' default NA strings switched off.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd

from .study_registry import TableRegistry, TableSpec, get_registry

logger = logging.getLogger(__name__)

# Only blank cells and explicit NULLs count as missing
MISSING_MARKERS = ["", "NULL", "null"]


@dataclass
class TrialTables:
    """The four source tables of the study."""
    baseline: pd.DataFrame
    week13: pd.DataFrame
    week32: pd.DataFrame
    adverse_events: pd.DataFrame

    @classmethod
    def from_frames(
        cls,
        baseline: pd.DataFrame,
        week13: pd.DataFrame,
        week32: pd.DataFrame,
        adverse_events: pd.DataFrame,
        registry: Optional[TableRegistry] = None,
    ) -> "TrialTables":
        """Build from in-memory frames, applying the same checks as the CSV loader."""
        registry = registry or get_registry()
        return cls(
            baseline=prepare_table(baseline, registry.get_spec("baseline")),
            week13=prepare_table(week13, registry.get_spec("week13")),
            week32=prepare_table(week32, registry.get_spec("week32")),
            adverse_events=prepare_table(adverse_events, registry.get_spec("adverse_events")),
        )

    def row_counts(self) -> Dict[str, int]:
        return {
            "baseline": len(self.baseline),
            "week13": len(self.week13),
            "week32": len(self.week32),
            "adverse_events": len(self.adverse_events),
        }


def prepare_table(df: pd.DataFrame, spec: TableSpec) -> pd.DataFrame:
    """
    Validate and type a raw table.

    Args:
        df: Raw table
        spec: Specification the table must satisfy

    Returns:
        Copy of the table with date and numeric columns converted

    Raises:
        ValueError: If required columns are missing or the primary key repeats
    """
    missing = spec.missing_columns(df.columns)
    if missing:
        raise ValueError(f"Table '{spec.name}' is missing required columns: {missing}")

    table = df.copy()

    for col in spec.date_columns:
        table[col] = pd.to_datetime(table[col], errors="coerce")
    for col in spec.numeric_columns:
        table[col] = pd.to_numeric(table[col], errors="coerce")

    if spec.primary_key:
        duplicated = table[spec.primary_key].duplicated(keep=False)
        if duplicated.any():
            dupes = sorted(table.loc[duplicated, spec.primary_key].astype(str).unique())
            raise ValueError(
                f"Duplicate {spec.primary_key} values in '{spec.name}': {dupes[:10]}"
            )

    unparsed = {
        col: int(table[col].isna().sum() - df[col].isna().sum())
        for col in spec.date_columns + spec.numeric_columns
    }
    unparsed = {col: n for col, n in unparsed.items() if n > 0}
    if unparsed:
        logger.warning(f"  {spec.name}: unparseable values set to missing: {unparsed}")

    return table


def load_table(path: Union[str, Path], spec: TableSpec) -> pd.DataFrame:
    """Read one CSV table and prepare it."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    raw = pd.read_csv(
        path,
        dtype=str,
        keep_default_na=False,
        na_values=MISSING_MARKERS,
    )
    table = prepare_table(raw, spec)
    logger.info(f"  Loaded {spec.name}: {len(table):,} rows from {path.name}")
    return table


def load_trial_tables(
    data_dir: Union[str, Path],
    registry: Optional[TableRegistry] = None,
) -> TrialTables:
    """
    Load all four study tables from a directory.

    Args:
        data_dir: Directory holding the CSV files
        registry: Table registry (global registry if None)

    Returns:
        TrialTables with typed DataFrames
    """
    registry = registry or get_registry()
    data_dir = Path(data_dir)

    tables = {
        name: load_table(data_dir / registry.get_spec(name).file_name, registry.get_spec(name))
        for name in ("baseline", "week13", "week32", "adverse_events")
    }
    return TrialTables(**tables)
