"""
Statistical Analysis Module for the Ziltiv Trial Report.

Complements the descriptive metrics with tests of whether treatment arms
differ: ANOVA or Kruskal-Wallis on percent-change values with Bonferroni
pairwise comparisons and Cohen's d, and chi-square tests of independence
for categorical outcomes (completion status, ECG effect).

Version: 1.0.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Any
import logging
import warnings

import numpy as np
import pandas as pd
from scipy import stats
from scipy.stats import chi2_contingency, f_oneway, kruskal, levene, mannwhitneyu, shapiro

logger = logging.getLogger(__name__)

# Shapiro-Wilk p-values are unreliable above this many observations
SHAPIRO_MAX_N = 5000


@dataclass
class OmnibusResult:
    """One-way test across all arms (ANOVA F or Kruskal-Wallis H)."""
    test: str
    statistic: float
    p_value: float
    n_groups: int
    n_total: int
    is_significant: bool

    @property
    def df_between(self) -> int:
        return self.n_groups - 1

    @property
    def df_within(self) -> int:
        return self.n_total - self.n_groups

    def __str__(self) -> str:
        stars = "***" if self.p_value < 0.001 else "**" if self.p_value < 0.01 else "*" if self.p_value < 0.05 else "ns"
        label = "F" if self.test == "anova" else "H"
        return (
            f"{self.test}: {label}({self.df_between}, {self.df_within}) = {self.statistic:.4f}, "
            f"p = {self.p_value:.2e} {stars} ({self.n_groups} arms, N={self.n_total})"
        )


@dataclass
class PairwiseComparison:
    """Two arms compared on one outcome."""
    group1: str
    group2: str
    mean_diff: float
    p_value: float
    cohens_d: float
    is_significant: bool

    @property
    def effect_size_label(self) -> str:
        d = abs(self.cohens_d)
        if d < 0.2:
            return "negligible"
        if d < 0.5:
            return "small"
        if d < 0.8:
            return "medium"
        return "large"


@dataclass
class ArmComparisonResult:
    """Complete results of comparing one numeric outcome across arms."""
    outcome: str
    group_column: str
    omnibus: OmnibusResult
    pairwise: List[PairwiseComparison]
    descriptive: pd.DataFrame

    @property
    def used_nonparametric(self) -> bool:
        return self.omnibus.test == "kruskal"

    def get_significant_pairs(self) -> List[PairwiseComparison]:
        return [p for p in self.pairwise if p.is_significant]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "outcome": self.outcome,
            "group_column": self.group_column,
            "test": self.omnibus.test,
            "statistic": float(self.omnibus.statistic),
            "p_value": float(self.omnibus.p_value),
            "df_between": self.omnibus.df_between,
            "df_within": self.omnibus.df_within,
            "is_significant": bool(self.omnibus.is_significant),
            "pairwise": [
                {
                    "group1": p.group1,
                    "group2": p.group2,
                    "mean_diff": float(p.mean_diff),
                    "p_value": float(p.p_value),
                    "cohens_d": float(p.cohens_d),
                    "effect_size": p.effect_size_label,
                    "is_significant": bool(p.is_significant),
                }
                for p in self.pairwise
            ],
        }


@dataclass
class AssociationResult:
    """Chi-square test of independence between two categorical columns."""
    row_column: str
    column_column: str
    chi2: float
    p_value: float
    dof: int
    cramers_v: float
    is_significant: bool
    contingency: pd.DataFrame = field(repr=False, default_factory=pd.DataFrame)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_column": self.row_column,
            "column_column": self.column_column,
            "chi2": float(self.chi2),
            "p_value": float(self.p_value),
            "dof": int(self.dof),
            "cramers_v": float(self.cramers_v),
            "is_significant": bool(self.is_significant),
        }


class StatisticalAnalyzer:
    """
    Statistical tests comparing outcomes across treatment arms.

    Example:
        >>> analyzer = StatisticalAnalyzer()
        >>> rows = biomarker_change_rows(tables)
        >>> result = analyzer.compare_arms(rows, 'hsCRP_pct_change')
        >>> print(result.omnibus)
    """

    def __init__(
        self,
        significance_level: float = 0.05,
        normality_threshold: float = 0.05,
        min_group_size: int = 3,
    ):
        """
        Args:
            significance_level: Alpha for the omnibus and pairwise tests
            normality_threshold: Alpha for the Shapiro-Wilk and Levene checks
            min_group_size: Arms with fewer values are left out
        """
        self.significance_level = significance_level
        self.normality_threshold = normality_threshold
        self.min_group_size = min_group_size

    def compare_arms(
        self,
        df: pd.DataFrame,
        outcome: str,
        group_col: str = "treatment_group",
    ) -> ArmComparisonResult:
        """
        Compare a numeric outcome across treatment arms.

        Uses one-way ANOVA, or Kruskal-Wallis when normality or equal
        variances are rejected.

        Raises:
            ValueError: If columns are missing or fewer than two arms are large enough
        """
        for col in (outcome, group_col):
            if col not in df.columns:
                raise ValueError(f"Column '{col}' not found in DataFrame")

        data = df[[group_col, outcome]].dropna()
        values_by_arm = {
            str(arm): values.astype(float).to_numpy()
            for arm, values in data.groupby(group_col)[outcome]
            if len(values) >= self.min_group_size
        }
        if len(values_by_arm) < 2:
            raise ValueError(f"Need at least 2 arms with >= {self.min_group_size} values for '{outcome}'")

        parametric = self._assumptions_hold(values_by_arm)

        return ArmComparisonResult(
            outcome=outcome,
            group_column=group_col,
            omnibus=self._omnibus_test(values_by_arm, parametric),
            pairwise=self._pairwise_comparisons(values_by_arm, parametric),
            descriptive=self._descriptive_stats(data, group_col, outcome, list(values_by_arm)),
        )

    def categorical_association(
        self,
        df: pd.DataFrame,
        row_col: str,
        col_col: str,
    ) -> AssociationResult:
        """
        Chi-square test of independence with Cramér's V.

        Raises:
            ValueError: If the contingency table is smaller than 2x2
        """
        contingency = pd.crosstab(df[row_col], df[col_col])
        if contingency.shape[0] < 2 or contingency.shape[1] < 2:
            raise ValueError(
                f"Contingency table {row_col} x {col_col} is {contingency.shape}, need at least 2x2"
            )

        chi2, p_value, dof, _ = chi2_contingency(contingency.values)
        n = contingency.values.sum()
        k = min(contingency.shape) - 1
        cramers_v = float(np.sqrt(chi2 / (n * k))) if n > 0 else 0.0

        return AssociationResult(
            row_column=row_col,
            column_column=col_col,
            chi2=chi2,
            p_value=p_value,
            dof=dof,
            cramers_v=cramers_v,
            is_significant=bool(p_value < self.significance_level),
            contingency=contingency,
        )

    def percent_change_comparison(
        self,
        rows: pd.DataFrame,
        group_col: str = "treatment_group",
    ) -> Dict[str, ArmComparisonResult]:
        """
        Compare every ``*_pct_change`` column of a percent-change listing.

        Outcomes that cannot be tested are logged and skipped.
        """
        results = {}
        for col in [c for c in rows.columns if c.endswith("_pct_change")]:
            try:
                results[col] = self.compare_arms(rows, col, group_col)
            except ValueError as e:
                logger.warning(f"  Could not compare arms on {col}: {e}")
        return results

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _assumptions_hold(self, values_by_arm: Dict[str, np.ndarray]) -> bool:
        """Shapiro-Wilk per arm and Levene across arms."""
        rng = np.random.default_rng(0)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            for values in values_by_arm.values():
                if len(values) > SHAPIRO_MAX_N:
                    values = rng.choice(values, SHAPIRO_MAX_N, replace=False)
                if shapiro(values).pvalue < self.normality_threshold:
                    return False
            return levene(*values_by_arm.values()).pvalue >= self.normality_threshold

    def _omnibus_test(self, values_by_arm: Dict[str, np.ndarray], parametric: bool) -> OmnibusResult:
        groups = list(values_by_arm.values())
        test, statistic, p_value = ("anova", *f_oneway(*groups)) if parametric else ("kruskal", *kruskal(*groups))
        return OmnibusResult(
            test=test,
            statistic=float(statistic),
            p_value=float(p_value),
            n_groups=len(groups),
            n_total=sum(len(g) for g in groups),
            is_significant=bool(p_value < self.significance_level),
        )

    def _pairwise_comparisons(
        self,
        values_by_arm: Dict[str, np.ndarray],
        parametric: bool,
    ) -> List[PairwiseComparison]:
        """All arm pairs, Bonferroni-adjusted, most significant first."""
        pairs = list(combinations(sorted(values_by_arm), 2))
        alpha = self.significance_level / len(pairs)

        results = []
        for arm1, arm2 in pairs:
            a, b = values_by_arm[arm1], values_by_arm[arm2]
            if parametric:
                p_value = stats.ttest_ind(a, b).pvalue
            else:
                p_value = mannwhitneyu(a, b, alternative="two-sided").pvalue
            results.append(PairwiseComparison(
                group1=arm1,
                group2=arm2,
                mean_diff=float(a.mean() - b.mean()),
                p_value=float(p_value),
                cohens_d=self._cohens_d(a, b),
                is_significant=bool(p_value < alpha),
            ))
        results.sort(key=lambda r: r.p_value)
        return results

    @staticmethod
    def _cohens_d(a: np.ndarray, b: np.ndarray) -> float:
        """Mean difference over the pooled standard deviation."""
        dof = len(a) + len(b) - 2
        pooled_var = ((len(a) - 1) * a.var(ddof=1) + (len(b) - 1) * b.var(ddof=1)) / dof
        if pooled_var == 0:
            return 0.0
        return float((a.mean() - b.mean()) / np.sqrt(pooled_var))

    @staticmethod
    def _descriptive_stats(data: pd.DataFrame, group_col: str, outcome: str, arms: List[str]) -> pd.DataFrame:
        tested = data[data[group_col].astype(str).isin(arms)]
        summary = tested.groupby(group_col)[outcome].agg(["count", "mean", "std", "median", "min", "max"])
        return summary.rename(columns={"count": "n"}).rename_axis("group").sort_index()
