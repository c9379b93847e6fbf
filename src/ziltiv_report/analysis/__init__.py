"""
Ziltiv Trial Report Analysis Module

This module provides the descriptive report metrics, arm-comparison
statistics, figures and the report pipeline.
"""

from .metrics import REPORTS, ReportDefinition, get_report
from .statistical import StatisticalAnalyzer
from .visualization import TrialVisualizer
from .pipeline import TrialReportPipeline, ReportConfig, ReportResults

__all__ = [
    "REPORTS",
    "ReportDefinition",
    "get_report",
    "StatisticalAnalyzer",
    "TrialVisualizer",
    "TrialReportPipeline",
    "ReportConfig",
    "ReportResults",
]
