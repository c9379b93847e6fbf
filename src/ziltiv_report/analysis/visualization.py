"""
Report Figures for the Ziltiv Trial Report.

Bar charts for the descriptive report tables:
- Enrollment and completion by treatment arm
- Age-band and ECG-effect composition per arm (stacked percentages)
- Mean percent change of biomarkers and blood pressure
- Adverse event counts

All plots use a consistent arm palette.

Version: 1.0.0
"""

from __future__ import annotations

import os
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
import seaborn as sns

from ..core.trial_schema import AGE_BAND_ORDER, ECG_EFFECT_ORDER


ECG_EFFECT_COLORS = {
    "Positive": "#2ecc71",   # Green - improvement
    "Negative": "#e74c3c",   # Red - worsening
    "No Change": "#3498db",  # Blue
    "Other": "#95a5a6",      # Gray - not assessable
}

ARM_PALETTE = ["#95a5a6", "#3498db", "#9b59b6", "#f39c12", "#1abc9c"]


class TrialVisualizer:
    """
    Figures for the trial report tables.

    Example:
        >>> viz = TrialVisualizer()
        >>> fig = viz.plot_group_counts(enrollment_counts(tables))
        >>> viz.save_figure(fig, 'enrollment')
    """

    def __init__(
        self,
        style: str = "whitegrid",
        context: str = "paper",
        figsize: Tuple[int, int] = (10, 6),
        dpi: int = 100,
    ):
        """
        Initialize the visualizer with style settings.

        Args:
            style: Seaborn style ('whitegrid', 'darkgrid', 'white', 'dark')
            context: Seaborn context ('paper', 'notebook', 'talk', 'poster')
            figsize: Default figure size (width, height)
            dpi: Figure resolution
        """
        self.figsize = figsize
        self.dpi = dpi

        sns.set_style(style)
        sns.set_context(context)

    def _arm_colors(self, arms: List[str]) -> Dict[str, str]:
        return {arm: ARM_PALETTE[i % len(ARM_PALETTE)] for i, arm in enumerate(sorted(arms))}

    def plot_group_counts(
        self,
        df: pd.DataFrame,
        group_col: str = "Treatment_Group",
        value_col: str = "Total_Participants",
        title: str = "Participants by Treatment Group",
        ylabel: str = "Participants",
    ) -> Figure:
        """Single bar per treatment arm, annotated with its value."""
        fig, ax = plt.subplots(figsize=self.figsize, dpi=self.dpi)
        order = sorted(df[group_col].astype(str).unique())
        colors = self._arm_colors(order)

        sns.barplot(
            data=df.assign(**{group_col: df[group_col].astype(str)}),
            x=group_col,
            y=value_col,
            order=order,
            hue=group_col,
            palette=colors,
            legend=False,
            ax=ax,
        )
        for container in ax.containers:
            ax.bar_label(container, fontsize=9)

        ax.set_xlabel("Treatment Group", fontsize=12)
        ax.set_ylabel(ylabel, fontsize=12)
        ax.set_title(title, fontsize=14)
        plt.tight_layout()
        return fig

    def plot_stacked_percentages(
        self,
        df: pd.DataFrame,
        category_col: str,
        category_order: List[str],
        group_col: str = "treatment_group",
        pct_col: str = "Pct",
        colors: Optional[Dict[str, str]] = None,
        title: Optional[str] = None,
    ) -> Figure:
        """
        Horizontal 100% stacked bars: composition of each arm.

        Args:
            df: Long table with group, category and percentage columns
            category_col: Category column (e.g. 'Age_Band', 'ECG_Effect')
            category_order: Stacking order of categories
            group_col: Treatment arm column
            pct_col: Percentage column
            colors: Optional category -> color mapping
            title: Plot title
        """
        pivot = (
            df.pivot_table(index=group_col, columns=category_col, values=pct_col, aggfunc="sum")
            .reindex(columns=[c for c in category_order if c in set(df[category_col])])
            .fillna(0.0)
        )

        fig, ax = plt.subplots(figsize=self.figsize, dpi=self.dpi)
        left = np.zeros(len(pivot))
        palette = sns.color_palette("Set2", len(pivot.columns))
        for i, category in enumerate(pivot.columns):
            values = pivot[category].values
            color = (colors or {}).get(category, palette[i])
            ax.barh(pivot.index.astype(str), values, left=left, color=color, label=category)
            left += values

        ax.set_xlim(0, 100)
        ax.set_xlabel("Percent of arm", fontsize=12)
        ax.set_title(title or f"{category_col} by Treatment Group", fontsize=14)
        ax.legend(loc="center left", bbox_to_anchor=(1.0, 0.5), fontsize=9, title=category_col)
        plt.tight_layout()
        return fig

    def plot_age_bands(self, age_bands: pd.DataFrame) -> Figure:
        return self.plot_stacked_percentages(
            age_bands, "Age_Band", AGE_BAND_ORDER, title="Age Bands by Treatment Group"
        )

    def plot_ecg_effects(self, ecg_effect: pd.DataFrame) -> Figure:
        return self.plot_stacked_percentages(
            ecg_effect,
            "ECG_Effect",
            ECG_EFFECT_ORDER,
            group_col="Treatment_Group",
            colors=ECG_EFFECT_COLORS,
            title="ECG Effect at Week 32 by Treatment Group",
        )

    def plot_completion_by_sex(self, completion: pd.DataFrame) -> Figure:
        """Grouped bars of percent completion, arms on x, sex as hue."""
        fig, ax = plt.subplots(figsize=self.figsize, dpi=self.dpi)
        sns.barplot(
            data=completion,
            x="Treatment_Group",
            y="Percent_Completion",
            hue="Sex",
            ax=ax,
        )
        ax.set_ylim(0, 100)
        ax.set_xlabel("Treatment Group", fontsize=12)
        ax.set_ylabel("Completed (%)", fontsize=12)
        ax.set_title("Study Completion by Treatment Group and Sex", fontsize=14)
        plt.tight_layout()
        return fig

    def plot_percent_change(
        self,
        summary: pd.DataFrame,
        title: str = "Mean Percent Change from Baseline",
    ) -> Figure:
        """Grouped bars of ``Avg_<measure>_PctChange`` columns per arm."""
        value_cols = [c for c in summary.columns if c.startswith("Avg_") and c.endswith("_PctChange")]
        long = summary.melt(
            id_vars="treatment_group",
            value_vars=value_cols,
            var_name="Measure",
            value_name="Mean_PctChange",
        )
        long["Measure"] = long["Measure"].str.replace("Avg_", "").str.replace("_PctChange", "")

        fig, ax = plt.subplots(figsize=self.figsize, dpi=self.dpi)
        sns.barplot(data=long, x="Measure", y="Mean_PctChange", hue="treatment_group", ax=ax)
        ax.axhline(0, color="black", linewidth=0.8)
        ax.set_xlabel("")
        ax.set_ylabel("Mean change (%)", fontsize=12)
        ax.set_title(title, fontsize=14)
        ax.legend(title="Treatment Group", fontsize=9)
        plt.tight_layout()
        return fig

    def plot_event_counts(
        self,
        events: pd.DataFrame,
        type_col: str = "AE_type",
        count_col: str = "AE_Count",
        title: str = "Adverse Events by Treatment Group",
    ) -> Figure:
        """Horizontal grouped bars: events per type, arms as hue."""
        n_types = max(events[type_col].nunique(), 1)
        figsize = (self.figsize[0], max(4, n_types * 0.5))
        fig, ax = plt.subplots(figsize=figsize, dpi=self.dpi)
        sns.barplot(data=events, y=type_col, x=count_col, hue="treatment_group", orient="h", ax=ax)
        ax.set_xlabel("Events", fontsize=12)
        ax.set_ylabel("")
        ax.set_title(title, fontsize=14)
        ax.legend(title="Treatment Group", fontsize=9)
        plt.tight_layout()
        return fig

    def save_figure(
        self,
        fig: Figure,
        filename: str,
        formats: Optional[List[str]] = None,
        output_dir: str = "reports",
    ) -> List[str]:
        """
        Save figure in multiple formats.

        Args:
            fig: Matplotlib Figure object
            filename: Base filename (without extension)
            formats: List of formats to save (default: png)
            output_dir: Output directory

        Returns:
            List of saved file paths
        """
        os.makedirs(output_dir, exist_ok=True)

        saved_paths = []
        for fmt in formats or ["png"]:
            path = os.path.join(output_dir, f"{filename}.{fmt}")
            fig.savefig(path, format=fmt, bbox_inches="tight", dpi=self.dpi)
            saved_paths.append(path)

        return saved_paths
