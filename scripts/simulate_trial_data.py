#!/usr/bin/env python3
"""
Ziltiv Trial Report: Simulated Dataset Generator

Generates the four study tables of a simulated RESCUE-style trial
(IL-6 inhibition with ziltivekimab in patients with elevated hsCRP):
baseline.csv, week13.csv, week32.csv and adverse_events.csv.

Effect sizes loosely follow the published week-12 results: hsCRP falls by
roughly 77% (15 mg) and 88% (30 mg) versus a few percent on placebo.

Usage:
    python scripts/simulate_trial_data.py --output data
    python scripts/simulate_trial_data.py --participants 600 --seed 7
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict

import numpy as np
import pandas as pd

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ============================================================================
# Configuration
# ============================================================================

NUM_PARTICIPANTS = 264
STUDY_START_DATE = datetime(2019, 6, 1)
ENROLLMENT_WINDOW_DAYS = 365

ARMS = ["Placebo", "Ziltivekimab 15 mg", "Ziltivekimab 30 mg"]

# Mean relative change at week 13 (fraction of baseline)
ARM_BIOMARKER_EFFECT = {
    "Placebo": {"hsCRP": -0.04, "fibrinogen": -0.02, "SAA": -0.05},
    "Ziltivekimab 15 mg": {"hsCRP": -0.77, "fibrinogen": -0.30, "SAA": -0.60},
    "Ziltivekimab 30 mg": {"hsCRP": -0.88, "fibrinogen": -0.35, "SAA": -0.68},
}

ARM_COMPLETION_RATE = {"Placebo": 0.90, "Ziltivekimab 15 mg": 0.88, "Ziltivekimab 30 mg": 0.86}

SEXES = ["Male", "Female"]
SEX_WEIGHTS = [0.58, 0.42]

RACES = ["White", "Black or African American", "Asian", "American Indian or Alaska Native", "Other"]
RACE_WEIGHTS = [0.62, 0.18, 0.12, 0.03, 0.05]

ECG_READINGS = [
    "Normal",
    "Abnormal, not clinically significant",
    "Abnormal, clinically significant",
    "Indeterminate",
    "Non evaluable",
    "Unknown",
]
ECG_BASELINE_WEIGHTS = [0.55, 0.28, 0.10, 0.03, 0.02, 0.02]

SITES = [
    "Boston Cardiology Center",
    "Chicago Renal Institute",
    "Houston Heart Clinic",
    "Atlanta Medical Research",
    "Seattle Kidney Center",
    "Denver Clinical Trials Unit",
]

DROPOUT_REASONS = [
    "Adverse event",
    "Withdrawal by participant",
    "Lost to follow-up",
    "Physician decision",
    "Protocol deviation",
    "Death",
]

AE_TYPES = ["Injection site reaction", "Upper respiratory infection", "Headache",
            "Neutropenia", "Thrombocytopenia", "Elevated ALT"]
SAE_TYPES = ["Pneumonia", "Sepsis", "Myocardial infarction", "Acute kidney injury"]
ARM_AE_RATE = {"Placebo": 0.35, "Ziltivekimab 15 mg": 0.45, "Ziltivekimab 30 mg": 0.50}
ARM_SAE_RATE = {"Placebo": 0.04, "Ziltivekimab 15 mg": 0.05, "Ziltivekimab 30 mg": 0.06}

# Fraction of participants without a week 13 visit
MISSED_WEEK13_RATE = 0.03


# ============================================================================
# Generators
# ============================================================================

def simulate_baseline(rng: np.random.Generator, n: int) -> pd.DataFrame:
    """Demographics, arm assignment and baseline measurements."""
    enrollment = [
        STUDY_START_DATE + timedelta(days=int(d))
        for d in rng.integers(0, ENROLLMENT_WINDOW_DAYS, size=n)
    ]
    ages = np.clip(rng.normal(68, 9, size=n).round(), 18, 90).astype(int)
    dob = [
        datetime(e.year - int(a), int(rng.integers(1, 13)), int(rng.integers(1, 29)))
        for e, a in zip(enrollment, ages)
    ]

    return pd.DataFrame({
        "participant_id": [f"ZR-{i:04d}" for i in range(1, n + 1)],
        "dob": [d.strftime("%Y-%m-%d") for d in dob],
        "enrollment_date": [e.strftime("%Y-%m-%d") for e in enrollment],
        "sex": rng.choice(SEXES, size=n, p=SEX_WEIGHTS),
        "race": rng.choice(RACES, size=n, p=RACE_WEIGHTS),
        "treatment_group": rng.choice(ARMS, size=n),
        "baseline_hsCRP": np.round(2.0 + rng.lognormal(1.0, 0.6, size=n), 2),
        "baseline_fibrinogen": np.round(rng.normal(420, 70, size=n), 1),
        "baseline_SAA": np.round(rng.lognormal(2.2, 0.5, size=n), 2),
        "baseline_ECG": rng.choice(ECG_READINGS, size=n, p=ECG_BASELINE_WEIGHTS),
        "baseline_SBP": rng.normal(138, 15, size=n).round().astype(int),
        "baseline_DBP": rng.normal(80, 9, size=n).round().astype(int),
    })


def simulate_week13(rng: np.random.Generator, baseline: pd.DataFrame) -> pd.DataFrame:
    """Week 13 biomarkers, driven by the arm effect with multiplicative noise."""
    rows = []
    for _, p in baseline.iterrows():
        if rng.random() < MISSED_WEEK13_RATE:
            continue
        effect = ARM_BIOMARKER_EFFECT[p["treatment_group"]]
        rows.append({
            "participant_id": p["participant_id"],
            "wk13_hsCRP": round(p["baseline_hsCRP"] * max(0.02, 1 + effect["hsCRP"] + rng.normal(0, 0.15)), 2),
            "wk13_fibrinogen": round(p["baseline_fibrinogen"] * max(0.3, 1 + effect["fibrinogen"] + rng.normal(0, 0.08)), 1),
            "wk13_SAA": round(p["baseline_SAA"] * max(0.05, 1 + effect["SAA"] + rng.normal(0, 0.15)), 2),
        })
    return pd.DataFrame(rows)


def _week32_ecg(rng: np.random.Generator, baseline_ecg: str, arm: str) -> str:
    """Week 32 reading: mostly unchanged, treated arms slightly more likely to improve."""
    improve = 0.25 if arm != "Placebo" else 0.12
    if baseline_ecg.startswith("Abnormal") and rng.random() < improve:
        return "Normal"
    if baseline_ecg == "Normal" and rng.random() < 0.08:
        return str(rng.choice(ECG_READINGS[1:3], p=[0.8, 0.2]))
    if rng.random() < 0.05:
        return str(rng.choice(ECG_READINGS[3:]))
    return baseline_ecg


def simulate_week32(rng: np.random.Generator, baseline: pd.DataFrame) -> pd.DataFrame:
    """Completion, site, ECG and blood pressure at week 32."""
    rows = []
    for _, p in baseline.iterrows():
        arm = p["treatment_group"]
        completed = rng.random() < ARM_COMPLETION_RATE[arm]
        bp_drop = 0.03 if arm != "Placebo" else 0.0
        rows.append({
            "participant_id": p["participant_id"],
            "treatment_group": arm,
            "completion_status": "Completed" if completed else "Not Completed",
            # Left blank for completed participants; normalised to N/A by the report
            "reason_notcomplete": "" if completed else str(rng.choice(DROPOUT_REASONS)),
            "site_name": str(rng.choice(SITES)),
            "wk32_ECG": _week32_ecg(rng, p["baseline_ECG"], arm),
            "wk32_SBP": int(round(p["baseline_SBP"] * (1 - bp_drop + rng.normal(0, 0.05)))),
            "wk32_DBP": int(round(p["baseline_DBP"] * (1 - bp_drop + rng.normal(0, 0.05)))),
        })
    return pd.DataFrame(rows)


def simulate_adverse_events(rng: np.random.Generator, baseline: pd.DataFrame) -> pd.DataFrame:
    """One row per participant; "None" marks no event."""
    rows = []
    for arm in baseline["treatment_group"]:
        rows.append({
            "treatment_group": arm,
            "AE_type": str(rng.choice(AE_TYPES)) if rng.random() < ARM_AE_RATE[arm] else "None",
            "SAE_type": str(rng.choice(SAE_TYPES)) if rng.random() < ARM_SAE_RATE[arm] else "None",
        })
    return pd.DataFrame(rows)


def simulate_trial(n_participants: int, seed: int) -> Dict[str, pd.DataFrame]:
    """Generate all four tables."""
    rng = np.random.default_rng(seed)
    baseline = simulate_baseline(rng, n_participants)
    return {
        "baseline": baseline,
        "week13": simulate_week13(rng, baseline),
        "week32": simulate_week32(rng, baseline),
        "adverse_events": simulate_adverse_events(rng, baseline),
    }


# ============================================================================
# Main
# ============================================================================

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate the simulated Ziltiv trial dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--output", "-o", default="data", help="Output directory for the CSV files")
    parser.add_argument("--participants", "-n", type=int, default=NUM_PARTICIPANTS,
                        help=f"Number of participants (default: {NUM_PARTICIPANTS})")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.participants < 1:
        parser.error("--participants must be >= 1")

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    tables = simulate_trial(args.participants, args.seed)
    for name, df in tables.items():
        path = output_dir / f"{name}.csv"
        df.to_csv(path, index=False)
        logger.info(f"Saved {name}: {len(df):,} rows -> {path}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
