"""Tests for the ECG effect classifier and the age bands."""

import itertools

import numpy as np
import pandas as pd
import pytest

from ziltiv_report.core.trial_schema import (
    AGE_BAND_ORDER,
    EcgEffect,
    EcgEffectClassifier,
    EcgReading,
    UNKNOWN_BAND,
    assign_age_band,
    classify_ecg_effect,
    is_missing,
)

CS = "Abnormal, clinically significant"
NCS = "Abnormal, not clinically significant"


class TestEcgReading:

    def test_abnormal_categories(self):
        assert EcgReading.ABNORMAL_CS.is_abnormal
        assert EcgReading.ABNORMAL_NCS.is_abnormal
        assert not EcgReading.NORMAL.is_abnormal
        assert not EcgReading.INDETERMINATE.is_abnormal

    def test_from_text_tolerates_case_and_whitespace(self):
        assert EcgReading.from_text("  normal ") is EcgReading.NORMAL
        assert EcgReading.from_text("ABNORMAL, CLINICALLY SIGNIFICANT") is EcgReading.ABNORMAL_CS

    @pytest.mark.parametrize("value", [None, "", "   ", np.nan, pd.NA, "Abnormal, borderline"])
    def test_from_text_unmapped(self, value):
        assert EcgReading.from_text(value) is None


class TestEcgEffectClassifier:

    @pytest.mark.parametrize("baseline, week32, expected", [
        (CS, "Normal", EcgEffect.POSITIVE),
        (NCS, "Normal", EcgEffect.POSITIVE),
        (CS, NCS, EcgEffect.POSITIVE),
        ("Normal", CS, EcgEffect.NEGATIVE),
        ("Normal", NCS, EcgEffect.NEGATIVE),
        (NCS, CS, EcgEffect.NEGATIVE),
        ("Normal", "Normal", EcgEffect.NO_CHANGE),
        (CS, CS, EcgEffect.NO_CHANGE),
        ("Indeterminate", "Indeterminate", EcgEffect.NO_CHANGE),
        ("Indeterminate", "Normal", EcgEffect.OTHER),
        ("Normal", "Non evaluable", EcgEffect.OTHER),
        ("Unknown", CS, EcgEffect.OTHER),
    ])
    def test_transitions(self, baseline, week32, expected):
        assert classify_ecg_effect(baseline, week32) is expected

    @pytest.mark.parametrize("baseline, week32", [
        (None, "Normal"),
        ("Normal", None),
        (np.nan, np.nan),
        ("", ""),
    ])
    def test_missing_values_are_other(self, baseline, week32):
        assert classify_ecg_effect(baseline, week32) is EcgEffect.OTHER

    def test_no_change_ignores_surrounding_whitespace(self):
        assert classify_ecg_effect("Normal ", "Normal") is EcgEffect.NO_CHANGE

    @pytest.mark.parametrize("baseline, week32", [
        ("normal", "Normal"),
        ("ABNORMAL, CLINICALLY SIGNIFICANT", CS),
        ("indeterminate", "Indeterminate"),
    ])
    def test_no_change_ignores_case_of_recognised_readings(self, baseline, week32):
        assert classify_ecg_effect(baseline, week32) is EcgEffect.NO_CHANGE

    def test_case_differences_still_classify_transitions(self):
        assert classify_ecg_effect("abnormal, clinically significant", "NORMAL") is EcgEffect.POSITIVE

    def test_every_pair_gets_exactly_one_effect(self):
        values = [r.value for r in EcgReading] + [None, "Abnormal, borderline"]
        classifier = EcgEffectClassifier()
        for baseline, week32 in itertools.product(values, repeat=2):
            assert classifier.classify(baseline, week32) in set(EcgEffect)

    def test_unrecognised_abnormal_text_is_not_treated_as_abnormal(self):
        classifier = EcgEffectClassifier()

        assert classifier.classify("Abnormal, borderline", "Normal") is EcgEffect.OTHER
        assert classifier.classify("Abnormal, borderline", "Abnormal, borderline") is EcgEffect.NO_CHANGE
        assert classifier.unknown_readings == {"Abnormal, borderline"}
        assert "Abnormal, borderline" in classifier.report_unknown_readings()

    def test_report_when_everything_mapped(self):
        classifier = EcgEffectClassifier()
        classifier.classify("Normal", CS)
        assert classifier.unknown_readings == set()
        assert classifier.report_unknown_readings() == "All ECG readings successfully mapped."


class TestAgeBands:

    @pytest.mark.parametrize("age, band", [
        (18, "18–40"),
        (40, "18–40"),
        (41, "41–50"),
        (50, "41–50"),
        (51, "51–60"),
        (60, "51–60"),
        (61, "61–70"),
        (70, "61–70"),
        (71, "71+"),
        (104, "71+"),
    ])
    def test_boundaries(self, age, band):
        assert assign_age_band(age) == band

    @pytest.mark.parametrize("age", [17, 0, -3, None, np.nan, pd.NA])
    def test_unknown_band(self, age):
        assert assign_age_band(age) == UNKNOWN_BAND

    def test_band_order_ends_with_unknown(self):
        assert AGE_BAND_ORDER == ["18–40", "41–50", "51–60", "61–70", "71+", "Unknown"]


@pytest.mark.parametrize("value, expected", [
    (None, True),
    ("", True),
    (" ", True),
    (np.nan, True),
    (pd.NA, True),
    (pd.NaT, True),
    ("None", False),
    ("N/A", False),
    (0, False),
])
def test_is_missing(value, expected):
    assert is_missing(value) is expected
