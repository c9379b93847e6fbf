"""
Ziltiv Trial Report

Descriptive reporting over the simulated RESCUE-style ziltivekimab trial:
demographics, completion, biomarker and blood-pressure change, ECG effect
and adverse events by treatment arm.
"""

__version__ = "1.0.0"
