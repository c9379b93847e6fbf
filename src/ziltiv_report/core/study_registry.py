"""
Table Registry for the Ziltiv Trial Report

Central configuration for the four source tables of the study.
Each table has its own specification including:
- Default file name
- Required columns
- Date and numeric columns (parsed on load)
- Primary key, where the table has one
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class TableSpec:
    """Specification for a single source table."""

    name: str
    description: str
    file_name: str
    required_columns: List[str]

    date_columns: List[str] = field(default_factory=list)
    numeric_columns: List[str] = field(default_factory=list)
    primary_key: Optional[str] = None

    def __post_init__(self):
        """Validate specification."""
        declared = set(self.required_columns)
        for col in self.date_columns + self.numeric_columns:
            if col not in declared:
                raise ValueError(
                    f"Column '{col}' of table '{self.name}' is typed but not listed as required"
                )
        if self.primary_key is not None and self.primary_key not in declared:
            raise ValueError(f"Primary key '{self.primary_key}' not in columns of '{self.name}'")

    def missing_columns(self, columns) -> List[str]:
        """Return required columns absent from ``columns``."""
        present = set(columns)
        return [c for c in self.required_columns if c not in present]


# Biomarkers measured at baseline and week 13: marker -> (baseline column, week 13 column)
BIOMARKERS: Dict[str, tuple] = {
    "hsCRP": ("baseline_hsCRP", "wk13_hsCRP"),
    "Fibrinogen": ("baseline_fibrinogen", "wk13_fibrinogen"),
    "SAA": ("baseline_SAA", "wk13_SAA"),
}

# Blood pressure measured at baseline and week 32
BLOOD_PRESSURE: Dict[str, tuple] = {
    "SBP": ("baseline_SBP", "wk32_SBP"),
    "DBP": ("baseline_DBP", "wk32_DBP"),
}


# =============================================================================
# Table Specifications
# =============================================================================

TABLE_SPECS: Dict[str, TableSpec] = {

    "baseline": TableSpec(
        name="baseline",
        description="Screening visit: demographics, arm assignment, baseline labs, ECG and BP",
        file_name="baseline.csv",
        required_columns=[
            "participant_id", "dob", "enrollment_date", "sex", "race",
            "treatment_group", "baseline_hsCRP", "baseline_fibrinogen",
            "baseline_SAA", "baseline_ECG", "baseline_SBP", "baseline_DBP",
        ],
        date_columns=["dob", "enrollment_date"],
        numeric_columns=[
            "baseline_hsCRP", "baseline_fibrinogen", "baseline_SAA",
            "baseline_SBP", "baseline_DBP",
        ],
        primary_key="participant_id",
    ),

    "week13": TableSpec(
        name="week13",
        description="Week 13 visit: inflammatory biomarkers",
        file_name="week13.csv",
        required_columns=["participant_id", "wk13_hsCRP", "wk13_fibrinogen", "wk13_SAA"],
        numeric_columns=["wk13_hsCRP", "wk13_fibrinogen", "wk13_SAA"],
        primary_key="participant_id",
    ),

    "week32": TableSpec(
        name="week32",
        description="Week 32 visit: completion, site, ECG and BP",
        file_name="week32.csv",
        required_columns=[
            "participant_id", "treatment_group", "completion_status",
            "reason_notcomplete", "site_name", "wk32_ECG", "wk32_SBP", "wk32_DBP",
        ],
        numeric_columns=["wk32_SBP", "wk32_DBP"],
        primary_key="participant_id",
    ),

    "adverse_events": TableSpec(
        name="adverse_events",
        description="Adverse and severe adverse events by arm",
        file_name="adverse_events.csv",
        required_columns=["treatment_group", "AE_type", "SAE_type"],
    ),
}


# =============================================================================
# Registry Class
# =============================================================================

class TableRegistry:
    """
    Central registry for the study's table specifications.

    Usage:
        registry = TableRegistry()
        spec = registry.get_spec("week32")
        print(spec.file_name)  # week32.csv
    """

    def __init__(self):
        self._specs = TABLE_SPECS.copy()

    @property
    def available_tables(self) -> List[str]:
        """List all registered table names."""
        return list(self._specs.keys())

    def get_spec(self, table_name: str) -> TableSpec:
        """
        Get specification for a table.

        Args:
            table_name: Name of the table (e.g., 'baseline', 'week13')

        Returns:
            TableSpec object

        Raises:
            ValueError: If table is not registered
        """
        name_lower = table_name.lower().strip()

        if name_lower not in self._specs:
            available = ", ".join(self.available_tables)
            raise ValueError(
                f"Unknown table: '{table_name}'. "
                f"Available tables: {available}"
            )

        return self._specs[name_lower]

    def register_table(self, spec: TableSpec) -> None:
        """
        Register or replace a table specification (e.g. to point at another file name).
        """
        name_lower = spec.name.lower().strip()
        if name_lower in self._specs:
            logger.warning(f"Overwriting existing table spec: {name_lower}")
        self._specs[name_lower] = spec
        logger.info(f"Registered table: {name_lower}")

    def with_file_names(self, file_names: Dict[str, str]) -> "TableRegistry":
        """Return a copy of the registry with some file names overridden."""
        registry = TableRegistry()
        registry._specs = self._specs.copy()
        for name, file_name in file_names.items():
            spec = registry.get_spec(name)
            registry._specs[spec.name] = TableSpec(
                name=spec.name,
                description=spec.description,
                file_name=file_name,
                required_columns=list(spec.required_columns),
                date_columns=list(spec.date_columns),
                numeric_columns=list(spec.numeric_columns),
                primary_key=spec.primary_key,
            )
        return registry

    def summary(self) -> str:
        """Get a summary of all registered tables."""
        lines = ["Registered Study Tables:", "=" * 50]
        for name, spec in self._specs.items():
            lines.append(
                f"  {name}: {spec.file_name}, {len(spec.required_columns)} columns"
                + (f", key={spec.primary_key}" if spec.primary_key else "")
            )
        return "\n".join(lines)


# Global registry instance
_registry = TableRegistry()


def get_registry() -> TableRegistry:
    """Get the global table registry instance."""
    return _registry


def get_table_spec(table_name: str) -> TableSpec:
    """Convenience function to get a table spec."""
    return _registry.get_spec(table_name)


# =============================================================================
# CLI Support
# =============================================================================

if __name__ == "__main__":
    print(get_registry().summary())
