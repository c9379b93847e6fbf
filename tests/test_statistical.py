"""Tests for the arm comparison statistics."""

import numpy as np
import pandas as pd
import pytest

from ziltiv_report.analysis.statistical import StatisticalAnalyzer


@pytest.fixture
def change_rows():
    """Percent-change listing with a clear treatment effect."""
    rng = np.random.default_rng(7)
    frames = []
    for arm, mean in [("Placebo", -4.0), ("Ziltivekimab 15 mg", -77.0), ("Ziltivekimab 30 mg", -88.0)]:
        frames.append(pd.DataFrame({
            "participant_id": [f"{arm[:3]}-{i}" for i in range(40)],
            "treatment_group": arm,
            "hsCRP_pct_change": rng.normal(mean, 6.0, size=40),
            "hsCRP_undefined": False,
        }))
    return pd.concat(frames, ignore_index=True)


def test_compare_arms_detects_effect(change_rows):
    result = StatisticalAnalyzer().compare_arms(change_rows, "hsCRP_pct_change")

    assert result.omnibus.is_significant
    assert result.omnibus.n_groups == 3
    assert result.omnibus.n_total == 120
    assert len(result.pairwise) == 3

    placebo_pairs = [p for p in result.pairwise if "Placebo" in (p.group1, p.group2)]
    assert all(p.is_significant for p in placebo_pairs)
    assert all(p.effect_size_label == "large" for p in placebo_pairs)


def test_compare_arms_ignores_missing_values(change_rows):
    change_rows.loc[:4, "hsCRP_pct_change"] = np.nan
    result = StatisticalAnalyzer().compare_arms(change_rows, "hsCRP_pct_change")
    assert result.omnibus.n_total == 115


def test_compare_arms_to_dict(change_rows):
    payload = StatisticalAnalyzer().compare_arms(change_rows, "hsCRP_pct_change").to_dict()

    assert payload["outcome"] == "hsCRP_pct_change"
    assert payload["test"] in {"anova", "kruskal"}
    assert isinstance(payload["p_value"], float)
    assert len(payload["pairwise"]) == 3


def test_compare_arms_needs_two_arms(change_rows):
    one_arm = change_rows[change_rows["treatment_group"] == "Placebo"]
    with pytest.raises(ValueError, match="at least 2 arms"):
        StatisticalAnalyzer().compare_arms(one_arm, "hsCRP_pct_change")


def test_compare_arms_unknown_outcome(change_rows):
    with pytest.raises(ValueError, match="not found"):
        StatisticalAnalyzer().compare_arms(change_rows, "SAA_pct_change")


def test_small_arms_are_skipped_by_percent_change_comparison(tables):
    from ziltiv_report.analysis.metrics import biomarker_change_rows

    rows = biomarker_change_rows(tables)
    # Every arm has fewer than 5 participants here
    results = StatisticalAnalyzer(min_group_size=5).percent_change_comparison(rows)
    assert results == {}


def test_categorical_association():
    df = pd.DataFrame({
        "treatment_group": ["A"] * 50 + ["B"] * 50,
        "completion_status": ["Completed"] * 45 + ["Not Completed"] * 5
        + ["Completed"] * 10 + ["Not Completed"] * 40,
    })
    result = StatisticalAnalyzer().categorical_association(df, "treatment_group", "completion_status")

    assert result.is_significant
    assert result.dof == 1
    assert 0.5 < result.cramers_v <= 1.0
    assert result.contingency.shape == (2, 2)
    assert result.to_dict()["row_column"] == "treatment_group"


def test_categorical_association_needs_two_categories():
    df = pd.DataFrame({"treatment_group": ["A", "B"], "ECG_Effect": ["Other", "Other"]})
    with pytest.raises(ValueError, match="2x2"):
        StatisticalAnalyzer().categorical_association(df, "treatment_group", "ECG_Effect")
