"""
Categorical Schema for the Ziltiv Trial Report

This module defines the closed categorical domains used by the report:
1. ECG readings recorded at baseline and at week 32
2. ECG effect categories (transition between the two readings)
3. Completion status and the sentinels used by the source tables
4. Age bands used by the demographics histogram

ECG reading hierarchy:
    Normal
    Abnormal
        - Abnormal, not clinically significant
        - Abnormal, clinically significant
    Not assessable
        - Indeterminate, Non evaluable, Unknown

Version: 1.0.0
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple, Any
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# Sentinels
# =============================================================================

NOT_APPLICABLE = "N/A"      # reason_notcomplete for completed participants
NO_EVENT = "None"           # AE_type / SAE_type when no event occurred
UNKNOWN_BAND = "Unknown"    # Age band for missing or under-age values


# =============================================================================
# Enumerations
# =============================================================================

class EcgReading(Enum):
    """
    ECG interpretation categories as recorded in the trial tables.
    """
    NORMAL = "Normal"
    ABNORMAL_NCS = "Abnormal, not clinically significant"
    ABNORMAL_CS = "Abnormal, clinically significant"
    INDETERMINATE = "Indeterminate"
    NON_EVALUABLE = "Non evaluable"
    UNKNOWN = "Unknown"

    @property
    def is_abnormal(self) -> bool:
        """True for both abnormal categories, regardless of significance."""
        return self in (EcgReading.ABNORMAL_NCS, EcgReading.ABNORMAL_CS)

    @property
    def is_normal(self) -> bool:
        return self is EcgReading.NORMAL

    @classmethod
    def from_text(cls, text: Any) -> Optional["EcgReading"]:
        """
        Parse a recorded reading.

        Args:
            text: Raw cell value from the baseline_ECG / wk32_ECG column

        Returns:
            Matching EcgReading, or None for missing or unrecognised text
        """
        if is_missing(text):
            return None
        return _READING_LOOKUP.get(str(text).strip().lower())


_READING_LOOKUP: Dict[str, EcgReading] = {r.value.lower(): r for r in EcgReading}


class EcgEffect(Enum):
    """Transition between baseline and week 32 ECG readings."""
    POSITIVE = "Positive"       # Abnormal -> Normal, or CS -> NCS
    NEGATIVE = "Negative"       # Normal -> Abnormal, or NCS -> CS
    NO_CHANGE = "No Change"     # Same recorded text
    OTHER = "Other"             # Indeterminate, Non evaluable, Unknown, ...


class CompletionStatus(Enum):
    """Week 32 completion status."""
    COMPLETED = "Completed"
    NOT_COMPLETED = "Not Completed"


@dataclass(frozen=True)
class AgeBand:
    """Closed age interval; upper=None means open-ended."""
    label: str
    lower: int
    upper: Optional[int] = None

    def contains(self, age: int) -> bool:
        if age < self.lower:
            return False
        return self.upper is None or age <= self.upper


AGE_BANDS: Tuple[AgeBand, ...] = (
    AgeBand("18–40", 18, 40),
    AgeBand("41–50", 41, 50),
    AgeBand("51–60", 51, 60),
    AgeBand("61–70", 61, 70),
    AgeBand("71+", 71, None),
)

AGE_BAND_ORDER: List[str] = [band.label for band in AGE_BANDS] + [UNKNOWN_BAND]

ECG_EFFECT_ORDER: List[str] = [effect.value for effect in EcgEffect]


# =============================================================================
# Helpers
# =============================================================================

def is_missing(value: Any) -> bool:
    """True for None, NaN, pandas NA/NaT and blank strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(value != value)
    except (TypeError, ValueError):
        # pandas.NA raises on bool()
        return True


def assign_age_band(age: Any) -> str:
    """
    Map an age to its histogram band.

    Ages below 18 and missing ages fall into the Unknown band.
    """
    if is_missing(age):
        return UNKNOWN_BAND
    age = int(age)
    for band in AGE_BANDS:
        if band.contains(age):
            return band.label
    return UNKNOWN_BAND


# =============================================================================
# ECG Effect Classifier
# =============================================================================

class EcgEffectClassifier:
    """
    Classifies baseline -> week 32 ECG transitions.

    Rules are evaluated in priority order, first match wins:
    Positive, Negative, No Change, Other.

    Usage:
        classifier = EcgEffectClassifier()
        effect = classifier.classify("Abnormal, clinically significant", "Normal")
        print(effect)  # EcgEffect.POSITIVE
    """

    def __init__(self):
        self._unknown_readings: Set[str] = set()

    def classify(self, baseline: Any, week32: Any) -> EcgEffect:
        """
        Classify a single transition.

        Args:
            baseline: Recorded baseline_ECG value
            week32: Recorded wk32_ECG value

        Returns:
            EcgEffect for the pair (never raises on unexpected values)
        """
        before = self._parse(baseline)
        after = self._parse(week32)

        if before is not None and after is not None:
            if before.is_abnormal and after.is_normal:
                return EcgEffect.POSITIVE
            if before is EcgReading.ABNORMAL_CS and after is EcgReading.ABNORMAL_NCS:
                return EcgEffect.POSITIVE

            if before.is_normal and after.is_abnormal:
                return EcgEffect.NEGATIVE
            if before is EcgReading.ABNORMAL_NCS and after is EcgReading.ABNORMAL_CS:
                return EcgEffect.NEGATIVE

            return EcgEffect.NO_CHANGE if before is after else EcgEffect.OTHER

        # Unrecognised readings: two identical recorded texts still match
        if (
            not is_missing(baseline)
            and not is_missing(week32)
            and str(baseline).strip() == str(week32).strip()
        ):
            return EcgEffect.NO_CHANGE

        return EcgEffect.OTHER

    def _parse(self, text: Any) -> Optional[EcgReading]:
        reading = EcgReading.from_text(text)
        if reading is None and not is_missing(text):
            self._unknown_readings.add(str(text))
        return reading

    @property
    def unknown_readings(self) -> Set[str]:
        """Get set of readings that couldn't be mapped."""
        return self._unknown_readings.copy()

    def report_unknown_readings(self) -> str:
        """Generate report of unknown readings."""
        if not self._unknown_readings:
            return "All ECG readings successfully mapped."
        return f"Unknown ECG readings ({len(self._unknown_readings)}): {sorted(self._unknown_readings)}"


def classify_ecg_effect(baseline: Any, week32: Any) -> EcgEffect:
    """Convenience function: classify one transition with a fresh classifier."""
    return EcgEffectClassifier().classify(baseline, week32)
