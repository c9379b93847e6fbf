"""
Ziltiv Trial Report Core Module

Table registry, categorical schema, loading and pre-processing of the
study tables.
"""

from .study_registry import (
    TableSpec,
    TableRegistry,
    get_registry,
    get_table_spec,
    BIOMARKERS,
    BLOOD_PRESSURE,
)

from .trial_schema import (
    EcgReading,
    EcgEffect,
    EcgEffectClassifier,
    CompletionStatus,
    AgeBand,
    AGE_BANDS,
    AGE_BAND_ORDER,
    NOT_APPLICABLE,
    NO_EVENT,
    assign_age_band,
    classify_ecg_effect,
)

from .loader import (
    TrialTables,
    load_trial_tables,
)

from .preprocessing import (
    derive_age,
    normalize_reason_notcomplete,
    completion_consistency,
    preprocess_tables,
)

__all__ = [
    # Table Registry
    "TableSpec",
    "TableRegistry",
    "get_registry",
    "get_table_spec",
    "BIOMARKERS",
    "BLOOD_PRESSURE",
    # Categorical Schema
    "EcgReading",
    "EcgEffect",
    "EcgEffectClassifier",
    "CompletionStatus",
    "AgeBand",
    "AGE_BANDS",
    "AGE_BAND_ORDER",
    "NOT_APPLICABLE",
    "NO_EVENT",
    "assign_age_band",
    "classify_ecg_effect",
    # Loading
    "TrialTables",
    "load_trial_tables",
    # Pre-processing
    "derive_age",
    "normalize_reason_notcomplete",
    "completion_consistency",
    "preprocess_tables",
]
