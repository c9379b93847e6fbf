"""Shared fixtures: a small study with hand-checked expected values."""

import pandas as pd
import pytest

from ziltiv_report.core.loader import TrialTables
from ziltiv_report.core.preprocessing import preprocess_tables

PLACEBO = "Placebo"
Z15 = "Ziltivekimab 15 mg"
Z30 = "Ziltivekimab 30 mg"

CS = "Abnormal, clinically significant"
NCS = "Abnormal, not clinically significant"


def _baseline() -> pd.DataFrame:
    columns = [
        "participant_id", "dob", "enrollment_date", "sex", "race", "treatment_group",
        "baseline_hsCRP", "baseline_fibrinogen", "baseline_SAA", "baseline_ECG",
        "baseline_SBP", "baseline_DBP",
    ]
    rows = [
        ("P01", "1970-05-01", "2023-03-01", "Male", "White", PLACEBO, 100, 400, 10, CS, 140, 90),
        ("P02", "1985-01-01", "2023-06-01", "Female", "Asian", PLACEBO, 4, 300, 0, "Normal", 120, 80),
        ("P03", "1950-07-15", "2023-02-01", "Female", "White", PLACEBO, 5, 400, 20, "Normal", 0, 70),
        ("P04", "1960-12-31", "2023-01-01", "Male", "Black or African American", Z15, 10, 500, 10, NCS, 150, 100),
        ("P05", "2010-03-03", "2023-04-01", "Female", "White", Z15, 8, 400, 4, "Indeterminate", 130, 85),
        ("P06", None, "2023-04-01", "Male", "White", Z15, 6, 420, 12, "Normal", 125, 75),
        ("P07", "1975-09-09", "2023-05-01", "Female", "Asian", Z30, 20, 450, 30, NCS, 160, 100),
        ("P08", "1980-02-02", "2023-05-01", "Male", "White", Z30, 10, 400, 10, CS, 145, 92),
    ]
    return pd.DataFrame(rows, columns=columns)


def _week13() -> pd.DataFrame:
    # P06 has no week 13 visit; P99 has no baseline record
    rows = [
        ("P01", 120, 380, 8),
        ("P02", 3, 330, 5),
        ("P03", 5, 400, 10),
        ("P04", 2, 400, 5),
        ("P05", 2, 300, 2),
        ("P07", 2, 360, 6),
        ("P08", 1, 280, 3),
        ("P99", 1, 100, 1),
    ]
    return pd.DataFrame(rows, columns=["participant_id", "wk13_hsCRP", "wk13_fibrinogen", "wk13_SAA"])


def _week32() -> pd.DataFrame:
    # P08 has no week 32 visit; P02 carries a stale reason despite completing
    columns = [
        "participant_id", "treatment_group", "completion_status", "reason_notcomplete",
        "site_name", "wk32_ECG", "wk32_SBP", "wk32_DBP",
    ]
    rows = [
        ("P01", PLACEBO, "Completed", None, "Site A", "Normal", 126, 81),
        ("P02", PLACEBO, "Completed", "Lost to follow-up", "Site A", NCS, 132, 80),
        ("P03", PLACEBO, "Not Completed", "Adverse event", "Site B", "Normal", 130, 63),
        ("P04", Z15, "Completed", None, "Site A", CS, 135, 100),
        ("P05", Z15, "Not Completed", "Withdrawal by participant", "Site B", "Normal", 130, 85),
        ("P06", Z15, "Not Completed", "Adverse event", "Site B", "Unknown", 125, 60),
        ("P07", Z30, "Completed", None, "Site B", NCS, 144, 90),
    ]
    return pd.DataFrame(rows, columns=columns)


def _adverse_events() -> pd.DataFrame:
    rows = [
        (PLACEBO, "Headache", "None"),
        (PLACEBO, "None", "None"),
        (PLACEBO, "Headache", "Pneumonia"),
        (Z15, "Neutropenia", "None"),
        (Z15, "None", "None"),
        (Z30, "Headache", "Sepsis"),
        (Z30, "None", "None"),
    ]
    return pd.DataFrame(rows, columns=["treatment_group", "AE_type", "SAE_type"])


@pytest.fixture
def raw_frames():
    """Untyped source frames, keyed by table name."""
    return {
        "baseline": _baseline(),
        "week13": _week13(),
        "week32": _week32(),
        "adverse_events": _adverse_events(),
    }


@pytest.fixture
def raw_tables(raw_frames):
    return TrialTables.from_frames(**raw_frames)


@pytest.fixture
def tables(raw_tables):
    """Pre-processed tables (Age derived, reasons normalised)."""
    return preprocess_tables(raw_tables)
