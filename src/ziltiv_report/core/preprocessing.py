"""
One-time derivations applied before any report is produced.

- Age at enrollment (year difference, no month/day adjustment)
- reason_notcomplete forced to "N/A" for completed participants

Both steps return augmented copies and are idempotent.
"""

from __future__ import annotations

import logging

import pandas as pd

from .loader import TrialTables
from .trial_schema import CompletionStatus, NOT_APPLICABLE

logger = logging.getLogger(__name__)


def derive_age(baseline: pd.DataFrame) -> pd.DataFrame:
    """
    Add an integer ``Age`` column: year(enrollment_date) - year(dob).

    Missing dates give a missing Age. A negative difference (dob after
    enrollment) is invalid and is also set to missing.
    """
    table = baseline.copy()
    enrolled = pd.to_datetime(table["enrollment_date"], errors="coerce")
    born = pd.to_datetime(table["dob"], errors="coerce")

    age = (enrolled.dt.year - born.dt.year).astype("Int64")

    negative = (age < 0).fillna(False).astype(bool)
    n_negative = int(negative.sum())
    if n_negative:
        logger.warning(f"  {n_negative} participants with dob after enrollment_date; Age set to missing")
        age = age.mask(negative)

    table["Age"] = age
    return table


def normalize_reason_notcomplete(week32: pd.DataFrame) -> pd.DataFrame:
    """Set reason_notcomplete to "N/A" wherever completion_status is Completed."""
    table = week32.copy()
    completed = table["completion_status"] == CompletionStatus.COMPLETED.value

    stale = completed & (table["reason_notcomplete"] != NOT_APPLICABLE)
    if stale.any():
        logger.info(f"  Normalising reason_notcomplete for {int(stale.sum())} completed participants")

    table.loc[completed, "reason_notcomplete"] = NOT_APPLICABLE
    return table


def completion_consistency(week32: pd.DataFrame) -> pd.DataFrame:
    """
    Count rows per (completion_status, reason_notcomplete).

    Used to inspect the raw table before normalisation; missing reasons are
    kept as their own group.
    """
    return (
        week32.groupby(["completion_status", "reason_notcomplete"], dropna=False)
        .size()
        .reset_index(name="Count")
        .sort_values(["completion_status", "reason_notcomplete"], na_position="last")
        .reset_index(drop=True)
    )


def preprocess_tables(tables: TrialTables) -> TrialTables:
    """Return a copy of the tables with Age derived and reasons normalised."""
    return TrialTables(
        baseline=derive_age(tables.baseline),
        week13=tables.week13.copy(),
        week32=normalize_reason_notcomplete(tables.week32),
        adverse_events=tables.adverse_events.copy(),
    )
