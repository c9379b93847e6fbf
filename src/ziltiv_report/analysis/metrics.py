"""
Descriptive Metrics for the Ziltiv Trial Report.

Each metric is a read-only function of the (pre-processed) study tables and
returns a tidy DataFrame with the group keys and computed columns of one
report table. Metrics never depend on each other's output.

Reports:
    1. Enrollment counts by treatment group
    2. Age at enrollment
    3. Demographics (age summary, age bands, race)
    4. Completion rates (by arm and sex, by arm two ways, by site)
    5. Reasons for not completing
    6. Biomarker percent change (hsCRP, fibrinogen, SAA) at week 13
    7. ECG effect classification at week 32
    8. Blood pressure percent change at week 32
    9. Adverse and severe adverse events

Percentages are rounded half-up to 1 decimal place.

Version: 1.0.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..core.loader import TrialTables
from ..core.study_registry import BIOMARKERS, BLOOD_PRESSURE
from ..core.trial_schema import (
    AGE_BAND_ORDER,
    ECG_EFFECT_ORDER,
    CompletionStatus,
    EcgEffectClassifier,
    NOT_APPLICABLE,
    NO_EVENT,
    assign_age_band,
)

logger = logging.getLogger(__name__)

COMPLETED = CompletionStatus.COMPLETED.value


# =============================================================================
# Helpers
# =============================================================================

def round_half_up(value: float, decimals: int = 1) -> float:
    """Round like SQL ROUND (ties away from zero); NaN passes through."""
    if value is None or pd.isna(value):
        return np.nan
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _round_series(series: pd.Series, decimals: int = 1) -> pd.Series:
    return series.map(lambda v: round_half_up(v, decimals)).astype(float)


def _require(df: pd.DataFrame, columns: List[str], table: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        hint = " (run preprocess_tables first)" if "Age" in missing else ""
        raise ValueError(f"Table '{table}' lacks columns {missing}{hint}")


def inner_join(
    left: pd.DataFrame,
    right: pd.DataFrame,
    left_name: str,
    right_name: str,
    on: str = "participant_id",
) -> pd.DataFrame:
    """
    Inner join two visit tables, logging participants without a partner.

    Unmatched rows are excluded, never an error.
    """
    left_keys = set(left[on].dropna())
    right_keys = set(right[on].dropna())
    only_left = len(left_keys - right_keys)
    only_right = len(right_keys - left_keys)
    if only_left or only_right:
        logger.info(
            f"  {left_name}/{right_name} join: excluded {only_left} {left_name}-only "
            f"and {only_right} {right_name}-only participants"
        )
    return left.merge(right, on=on, how="inner")


def _share_of_group(counts: pd.DataFrame, group_col: str, count_col: str = "Count") -> pd.Series:
    """Percent of each row's count within its group, each rounded half-up on its own."""
    totals = counts.groupby(group_col)[count_col].transform("sum")
    return _round_series(counts[count_col] * 100.0 / totals)


def _apportioned_share(counts: pd.DataFrame, group_col: str, count_col: str = "Count") -> pd.Series:
    """
    Percent of each row's count within its group, in 0.1 steps summing to 100.0.

    Largest-remainder apportionment: every share is floored to 0.1 and the
    leftover steps go to the rows with the largest remainders (first row
    wins a tie). Used for distributions shown as composition of a group.
    """
    groups = counts[group_col]
    scaled = counts[count_col].astype("int64") * 1000
    totals = counts.groupby(group_col)[count_col].transform("sum").astype("int64")

    tenths = scaled // totals
    remainder = scaled % totals
    leftover = 1000 - tenths.groupby(groups).transform("sum")
    rank = remainder.groupby(groups).rank(method="first", ascending=False)

    return (tenths + (rank <= leftover).astype("int64")) / 10.0


# =============================================================================
# 1. Enrollment
# =============================================================================

def enrollment_counts(tables: TrialTables) -> pd.DataFrame:
    """Participants enrolled per treatment group."""
    return (
        tables.baseline.groupby("treatment_group")
        .size()
        .reset_index(name="Total_Participants")
        .rename(columns={"treatment_group": "Treatment_Group"})
    )


# =============================================================================
# 2-3. Age and demographics
# =============================================================================

def age_at_enrollment(tables: TrialTables) -> pd.DataFrame:
    """Per-participant listing of the derived Age."""
    baseline = tables.baseline
    _require(baseline, ["Age"], "baseline")
    return baseline[["participant_id", "treatment_group", "dob", "enrollment_date", "Age"]].copy()


def age_summary(tables: TrialTables, by_sex: bool = False) -> pd.DataFrame:
    """
    Count and mean/min/max Age per treatment group (optionally per sex).

    Missing ages are counted in ``Count`` but ignored by the aggregates.
    """
    baseline = tables.baseline
    _require(baseline, ["Age"], "baseline")

    keys = ["treatment_group", "sex"] if by_sex else ["treatment_group"]
    ages = baseline.assign(Age=baseline["Age"].astype(float))
    summary = (
        ages.groupby(keys)
        .agg(
            Count=("participant_id", "size"),
            Average_Age=("Age", "mean"),
            Min_Age=("Age", "min"),
            Max_Age=("Age", "max"),
        )
        .reset_index()
    )
    summary["Average_Age"] = _round_series(summary["Average_Age"])
    summary["Min_Age"] = summary["Min_Age"].astype("Int64")
    summary["Max_Age"] = summary["Max_Age"].astype("Int64")
    return summary.rename(columns={"treatment_group": "Treatment_Group", "sex": "Sex"})


def age_band_distribution(tables: TrialTables) -> pd.DataFrame:
    """Age-band histogram as a percentage of each treatment group."""
    baseline = tables.baseline
    _require(baseline, ["Age"], "baseline")

    banded = baseline.assign(Age_Band=baseline["Age"].map(assign_age_band))
    counts = (
        banded.groupby(["treatment_group", "Age_Band"])
        .size()
        .reset_index(name="Count")
    )
    counts["Pct"] = _apportioned_share(counts, "treatment_group")

    counts["Age_Band"] = pd.Categorical(counts["Age_Band"], categories=AGE_BAND_ORDER, ordered=True)
    counts = counts.sort_values(["treatment_group", "Age_Band"]).reset_index(drop=True)
    counts["Age_Band"] = counts["Age_Band"].astype(str)
    return counts


def race_distribution(tables: TrialTables) -> pd.DataFrame:
    """Participants per (treatment group, race)."""
    return (
        tables.baseline.groupby(["treatment_group", "race"])
        .size()
        .reset_index(name="Count")
        .sort_values(["treatment_group", "race"])
        .reset_index(drop=True)
    )


# =============================================================================
# 4. Completion
# =============================================================================

def _completed_flag(week32: pd.DataFrame) -> pd.Series:
    return (week32["completion_status"] == COMPLETED).astype(int)


def completion_by_sex(tables: TrialTables) -> pd.DataFrame:
    """Percent Completed per (week 32 treatment group, sex)."""
    joined = inner_join(
        tables.week32, tables.baseline[["participant_id", "sex"]], "week32", "baseline"
    )
    joined = joined.assign(_completed=_completed_flag(joined))
    result = (
        joined.groupby(["treatment_group", "sex"])["_completed"]
        .agg(["sum", "size"])
        .reset_index()
    )
    result["Percent_Completion"] = _round_series(result["sum"] * 100.0 / result["size"])
    return (
        result.rename(columns={"treatment_group": "Treatment_Group", "sex": "Sex"})
        [["Sex", "Treatment_Group", "Percent_Completion"]]
        .sort_values(["Treatment_Group", "Sex"])
        .reset_index(drop=True)
    )


def completion_by_group_window(tables: TrialTables) -> pd.DataFrame:
    """
    Percent per (treatment group, completion status) of the group total.

    Group first, then divide each count by the sum over its treatment group.
    """
    counts = (
        tables.week32.groupby(["treatment_group", "completion_status"])
        .size()
        .reset_index(name="Count")
    )
    counts["Percent_Completion"] = _share_of_group(counts, "treatment_group")
    return (
        counts.rename(columns={"treatment_group": "Treatment_Group", "completion_status": "Completion_Status"})
        [["Treatment_Group", "Completion_Status", "Percent_Completion"]]
        .sort_values(["Completion_Status", "Treatment_Group"])
        .reset_index(drop=True)
    )


def completion_by_group(tables: TrialTables) -> pd.DataFrame:
    """Percent Completed per treatment group as conditional sum over count."""
    week32 = tables.week32.assign(_completed=_completed_flag(tables.week32))
    result = week32.groupby("treatment_group")["_completed"].agg(["sum", "size"]).reset_index()
    result["Percent_Completion"] = _round_series(result["sum"] * 100.0 / result["size"])
    return (
        result.rename(columns={"treatment_group": "Treatment_Group"})
        [["Treatment_Group", "Percent_Completion"]]
        .sort_values("Percent_Completion")
        .reset_index(drop=True)
    )


def completed_share_from_window(window: pd.DataFrame) -> pd.DataFrame:
    """
    Reduce the window result to the Completed share per group.

    Groups without a Completed row report 0.0, matching the conditional sum.
    """
    groups = window["Treatment_Group"].unique()
    completed = window[window["Completion_Status"] == COMPLETED].set_index("Treatment_Group")
    share = completed["Percent_Completion"].reindex(groups).fillna(0.0)
    return share.rename_axis("Treatment_Group").reset_index()


def completion_by_site(tables: TrialTables) -> pd.DataFrame:
    """Percent Completed per study site."""
    week32 = tables.week32.assign(_completed=_completed_flag(tables.week32))
    result = week32.groupby("site_name")["_completed"].agg(["sum", "size"]).reset_index()
    result["Pct_Completion"] = _round_series(result["sum"] * 100.0 / result["size"])
    return result.rename(columns={"site_name": "Location"})[["Location", "Pct_Completion"]]


# =============================================================================
# 5. Dropout reasons
# =============================================================================

def dropout_reasons(tables: TrialTables) -> pd.DataFrame:
    """Reasons for not completing per treatment group, "N/A" excluded."""
    week32 = tables.week32
    reasons = week32[week32["reason_notcomplete"].notna() & (week32["reason_notcomplete"] != NOT_APPLICABLE)]
    return (
        reasons.groupby(["treatment_group", "reason_notcomplete"])
        .size()
        .reset_index(name="Count")
        .sort_values(["treatment_group", "reason_notcomplete"])
        .reset_index(drop=True)
    )


# =============================================================================
# 6 & 8. Percent change
# =============================================================================

def percent_change_rows(
    joined: pd.DataFrame,
    measures: Dict[str, Tuple[str, str]],
) -> pd.DataFrame:
    """
    Per-row percent change ``(after - before) / before * 100``.

    For each measure adds ``<name>_pct_change`` and ``<name>_undefined``.
    A zero baseline makes the row's change undefined (NaN, flag True);
    a missing value gives NaN without the flag.
    """
    rows = joined[["participant_id", "treatment_group"]].copy()
    for name, (before_col, after_col) in measures.items():
        before = joined[before_col].astype(float)
        after = joined[after_col].astype(float)
        undefined = before == 0
        with np.errstate(divide="ignore", invalid="ignore"):
            change = (after - before) / before * 100
        rows[f"{name}_pct_change"] = change.where(~undefined)
        rows[f"{name}_undefined"] = undefined

        n_undefined = int(undefined.sum())
        if n_undefined:
            logger.warning(f"  {name}: {n_undefined} rows with zero baseline, percent change undefined")
    return rows


def summarize_percent_change(rows: pd.DataFrame, measures: List[str]) -> pd.DataFrame:
    """Mean percent change per treatment group, with undefined-row counts."""
    grouped = rows.groupby("treatment_group")
    summary = pd.DataFrame({"N": grouped.size()})
    for name in measures:
        summary[f"Avg_{name}_PctChange"] = _round_series(grouped[f"{name}_pct_change"].mean())
        summary[f"{name}_n_undefined"] = grouped[f"{name}_undefined"].sum().astype(int)
    return summary.reset_index()


def biomarker_change_rows(tables: TrialTables) -> pd.DataFrame:
    """Per-participant percent change from baseline to week 13."""
    base_cols = ["participant_id", "treatment_group"] + [b for b, _ in BIOMARKERS.values()]
    joined = inner_join(tables.baseline[base_cols], tables.week13, "baseline", "week13")
    return percent_change_rows(joined, BIOMARKERS)


def biomarker_percent_change(tables: TrialTables) -> pd.DataFrame:
    """Mean percent change in hsCRP, fibrinogen and SAA per treatment group."""
    return summarize_percent_change(biomarker_change_rows(tables), list(BIOMARKERS))


def blood_pressure_change_rows(tables: TrialTables) -> pd.DataFrame:
    """Per-participant percent change in SBP/DBP from baseline to week 32."""
    base_cols = ["participant_id", "treatment_group"] + [b for b, _ in BLOOD_PRESSURE.values()]
    week_cols = ["participant_id"] + [a for _, a in BLOOD_PRESSURE.values()]
    joined = inner_join(tables.baseline[base_cols], tables.week32[week_cols], "baseline", "week32")
    return percent_change_rows(joined, BLOOD_PRESSURE)


def blood_pressure_change(tables: TrialTables) -> pd.DataFrame:
    """Mean percent change in systolic and diastolic pressure per treatment group."""
    return summarize_percent_change(blood_pressure_change_rows(tables), list(BLOOD_PRESSURE))


# =============================================================================
# 7. ECG effect
# =============================================================================

def ecg_effect_rows(
    tables: TrialTables,
    classifier: Optional[EcgEffectClassifier] = None,
) -> pd.DataFrame:
    """Classify each participant's baseline -> week 32 ECG transition."""
    classifier = classifier or EcgEffectClassifier()
    joined = inner_join(
        tables.baseline[["participant_id", "treatment_group", "baseline_ECG"]],
        tables.week32[["participant_id", "wk32_ECG"]],
        "baseline",
        "week32",
    )
    joined["ECG_Effect"] = [
        classifier.classify(before, after).value
        for before, after in zip(joined["baseline_ECG"], joined["wk32_ECG"])
    ]
    if classifier.unknown_readings:
        logger.warning(f"  {classifier.report_unknown_readings()}")
    return joined


def ecg_effect_summary(tables: TrialTables) -> pd.DataFrame:
    """Count and percentage of each ECG effect within each treatment group."""
    rows = ecg_effect_rows(tables)
    counts = (
        rows.groupby(["treatment_group", "ECG_Effect"])
        .size()
        .reset_index(name="Count")
    )
    counts["Pct"] = _apportioned_share(counts, "treatment_group")

    counts["ECG_Effect"] = pd.Categorical(counts["ECG_Effect"], categories=ECG_EFFECT_ORDER, ordered=True)
    counts = counts.sort_values(["treatment_group", "ECG_Effect"]).reset_index(drop=True)
    counts["ECG_Effect"] = counts["ECG_Effect"].astype(str)
    return counts.rename(columns={"treatment_group": "Treatment_Group"})


# =============================================================================
# 9. Adverse events
# =============================================================================

def _event_counts(events: pd.DataFrame, type_col: str, count_col: str) -> pd.DataFrame:
    reported = events[events[type_col].notna() & (events[type_col] != NO_EVENT)]
    return (
        reported.groupby(["treatment_group", type_col])
        .size()
        .reset_index(name=count_col)
        .sort_values(["treatment_group", type_col])
        .reset_index(drop=True)
    )


def adverse_event_counts(tables: TrialTables) -> pd.DataFrame:
    """AE counts per (treatment group, AE type), "None" excluded."""
    return _event_counts(tables.adverse_events, "AE_type", "AE_Count")


def severe_adverse_event_counts(tables: TrialTables) -> pd.DataFrame:
    """SAE counts per (treatment group, SAE type), "None" excluded."""
    return _event_counts(tables.adverse_events, "SAE_type", "SAE_Count")


# =============================================================================
# Report catalogue
# =============================================================================

MetricFunc = Callable[[TrialTables], pd.DataFrame]


@dataclass
class ReportDefinition:
    """A numbered report and the tables it produces."""
    number: int
    name: str
    title: str
    tables: Dict[str, MetricFunc] = field(default_factory=dict)


REPORTS: Dict[int, ReportDefinition] = {
    1: ReportDefinition(1, "enrollment", "Participants by treatment group", {
        "enrollment_counts": enrollment_counts,
    }),
    2: ReportDefinition(2, "age", "Age at enrollment", {
        "age_at_enrollment": age_at_enrollment,
    }),
    3: ReportDefinition(3, "demographics", "Demographics", {
        "age_by_group": age_summary,
        "age_by_group_sex": lambda t: age_summary(t, by_sex=True),
        "age_bands": age_band_distribution,
        "race_by_group": race_distribution,
    }),
    4: ReportDefinition(4, "completion", "Completion status", {
        "completion_by_sex": completion_by_sex,
        "completion_by_group_window": completion_by_group_window,
        "completion_by_group": completion_by_group,
        "completion_by_site": completion_by_site,
    }),
    5: ReportDefinition(5, "dropout", "Reasons for not completing", {
        "dropout_reasons": dropout_reasons,
    }),
    6: ReportDefinition(6, "biomarkers", "Percent change in hsCRP, fibrinogen and SAA", {
        "biomarker_change": biomarker_percent_change,
        "biomarker_change_rows": biomarker_change_rows,
    }),
    7: ReportDefinition(7, "ecg", "Effect of treatment on ECG", {
        "ecg_effect": ecg_effect_summary,
        "ecg_effect_rows": ecg_effect_rows,
    }),
    8: ReportDefinition(8, "blood_pressure", "Percent change in blood pressure", {
        "blood_pressure_change": blood_pressure_change,
        "blood_pressure_change_rows": blood_pressure_change_rows,
    }),
    9: ReportDefinition(9, "adverse_events", "Adverse events", {
        "adverse_events": adverse_event_counts,
        "severe_adverse_events": severe_adverse_event_counts,
    }),
}


def get_report(number: int) -> ReportDefinition:
    """
    Look up a report by number.

    Raises:
        ValueError: If no report has that number
    """
    if number not in REPORTS:
        raise ValueError(f"Unknown report: {number}. Available reports: {sorted(REPORTS)}")
    return REPORTS[number]
