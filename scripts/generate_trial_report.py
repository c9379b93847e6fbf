#!/usr/bin/env python3
"""
Ziltiv Trial Report: Report Generation Script

Runs the numbered trial reports over a directory of study CSVs and writes
CSV tables, a JSON summary, figures and an HTML report.

Usage:
    # All reports
    python scripts/generate_trial_report.py --data-dir data

    # Produce report 7 (ECG effect) only
    python scripts/generate_trial_report.py --data-dir data --report 7

    # Tables only (no figures, no HTML)
    python scripts/generate_trial_report.py --data-dir data --skip-viz --no-report

    # List the available reports
    python scripts/generate_trial_report.py --list
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from ziltiv_report.analysis.metrics import REPORTS
from ziltiv_report.analysis.pipeline import main as run_pipeline


def list_reports() -> None:
    print("Available reports:")
    for number, report in sorted(REPORTS.items()):
        print(f"  {number}  {report.title}")
        for name in report.tables:
            print(f"       - {name}")


if __name__ == '__main__':
    if "--list" in sys.argv[1:]:
        list_reports()
        sys.exit(0)
    sys.exit(run_pipeline())
