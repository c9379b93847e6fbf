"""Tests for CSV loading and table validation."""

import pandas as pd
import pytest

from ziltiv_report.core.loader import TrialTables, load_table, load_trial_tables, prepare_table
from ziltiv_report.core.study_registry import TableSpec, get_registry, get_table_spec


@pytest.fixture
def data_dir(tmp_path, raw_frames):
    for name, df in raw_frames.items():
        df.to_csv(tmp_path / f"{name}.csv", index=False)
    return tmp_path


def test_load_trial_tables(data_dir, raw_frames):
    tables = load_trial_tables(data_dir)

    assert tables.row_counts() == {name: len(df) for name, df in raw_frames.items()}
    assert pd.api.types.is_datetime64_any_dtype(tables.baseline["enrollment_date"])
    assert pd.api.types.is_numeric_dtype(tables.week32["wk32_SBP"])


def test_sentinels_survive_csv_round_trip(data_dir):
    tables = load_trial_tables(data_dir)

    assert (tables.adverse_events["AE_type"] == "None").sum() == 3
    assert tables.adverse_events["AE_type"].notna().all()


def test_na_reason_is_kept_as_text(tmp_path):
    spec = get_table_spec("week32")
    week32 = pd.DataFrame([{
        "participant_id": "P01", "treatment_group": "Placebo", "completion_status": "Completed",
        "reason_notcomplete": "N/A", "site_name": "Site A", "wk32_ECG": "Normal",
        "wk32_SBP": 120, "wk32_DBP": 80,
    }])
    path = tmp_path / "week32.csv"
    week32.to_csv(path, index=False)

    loaded = load_table(path, spec)
    assert loaded.loc[0, "reason_notcomplete"] == "N/A"


def test_blank_and_null_cells_are_missing(tmp_path):
    path = tmp_path / "adverse_events.csv"
    path.write_text("treatment_group,AE_type,SAE_type\nPlacebo,,NULL\n")

    loaded = load_table(path, get_table_spec("adverse_events"))
    assert pd.isna(loaded.loc[0, "AE_type"])
    assert pd.isna(loaded.loc[0, "SAE_type"])


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_table(tmp_path / "baseline.csv", get_table_spec("baseline"))


def test_missing_column_is_rejected(raw_frames):
    raw_frames["week13"] = raw_frames["week13"].drop(columns=["wk13_SAA"])
    with pytest.raises(ValueError, match="wk13_SAA"):
        TrialTables.from_frames(**raw_frames)


def test_duplicate_participant_is_rejected(raw_frames):
    baseline = raw_frames["baseline"]
    raw_frames["baseline"] = pd.concat([baseline, baseline.iloc[[0]]], ignore_index=True)
    with pytest.raises(ValueError, match="Duplicate participant_id"):
        TrialTables.from_frames(**raw_frames)


@pytest.mark.parametrize("table", ["week13", "week32"])
def test_duplicate_visit_row_is_rejected(raw_frames, table):
    visit = raw_frames[table]
    raw_frames[table] = pd.concat([visit, visit.iloc[[1]]], ignore_index=True)
    with pytest.raises(ValueError, match=f"Duplicate participant_id values in '{table}'"):
        TrialTables.from_frames(**raw_frames)


def test_duplicate_visit_row_is_rejected_from_csv(data_dir):
    week32 = pd.read_csv(data_dir / "week32.csv", dtype=str, keep_default_na=False)
    pd.concat([week32, week32.iloc[[0]]]).to_csv(data_dir / "week32.csv", index=False)
    with pytest.raises(ValueError, match="P01"):
        load_trial_tables(data_dir)


def test_unparseable_numbers_become_missing(raw_frames, caplog):
    raw_frames["week13"] = raw_frames["week13"].astype({"wk13_hsCRP": object})
    raw_frames["week13"].loc[0, "wk13_hsCRP"] = "<0.2"

    tables = TrialTables.from_frames(**raw_frames)

    assert pd.isna(tables.week13.loc[0, "wk13_hsCRP"])
    assert "unparseable" in caplog.text


def test_registry_file_name_override(tmp_path, raw_frames):
    for name, df in raw_frames.items():
        file_name = "visit_w32.csv" if name == "week32" else f"{name}.csv"
        df.to_csv(tmp_path / file_name, index=False)

    registry = get_registry().with_file_names({"week32": "visit_w32.csv"})
    tables = load_trial_tables(tmp_path, registry)

    assert len(tables.week32) == len(raw_frames["week32"])
    assert get_table_spec("week32").file_name == "week32.csv"


def test_unknown_table():
    with pytest.raises(ValueError, match="Unknown table"):
        get_table_spec("week52")


def test_typed_column_must_be_required():
    with pytest.raises(ValueError):
        TableSpec(
            name="labs",
            description="",
            file_name="labs.csv",
            required_columns=["participant_id"],
            numeric_columns=["crp"],
        )


def test_prepare_table_returns_copy(raw_frames):
    raw = raw_frames["week13"]
    prepare_table(raw, get_table_spec("week13"))
    assert list(raw.columns) == ["participant_id", "wk13_hsCRP", "wk13_fibrinogen", "wk13_SAA"]
