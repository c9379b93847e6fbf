"""
Report Pipeline Orchestrator for the Ziltiv Trial Report.

This module runs the complete reporting workflow:
1. Load the four study tables
2. Check completion/reason consistency, derive Age, normalise reasons
3. Compute the selected numbered reports (each table independently)
4. Compare treatment arms statistically
5. Generate figures
6. Save CSV tables, a JSON summary and an HTML report

Usage:
    from ziltiv_report.analysis.pipeline import TrialReportPipeline
    pipeline = TrialReportPipeline(data_dir="data")
    results = pipeline.run()

Or from command line:
    python -m ziltiv_report.analysis.pipeline --data-dir data --report 7
"""

from __future__ import annotations

import os
import json
import logging
import base64
import html
from io import BytesIO
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Any

import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from ..core.loader import TrialTables, load_trial_tables
from ..core.preprocessing import completion_consistency, preprocess_tables
from ..core.trial_schema import CompletionStatus, NOT_APPLICABLE
from .metrics import REPORTS, get_report, completed_share_from_window
from .statistical import StatisticalAnalyzer
from .visualization import TrialVisualizer


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@dataclass
class ReportConfig:
    """Configuration for the trial report pipeline."""

    # Input/Output paths
    data_dir: str = "data"
    output_dir: str = "results"
    reports_dir: str = "reports"

    # Report selection (numbers 1-9, empty = all)
    reports: List[int] = field(default_factory=list)

    # Analysis parameters
    run_statistics: bool = True
    significance_level: float = 0.05

    # Visualization parameters
    generate_figures: bool = True
    figure_dpi: int = 150
    save_formats: List[str] = field(default_factory=lambda: ["png"])

    # Report parameters
    generate_html_report: bool = True
    report_filename: str = "trial_report.html"

    def __post_init__(self):
        """Validate report numbers and create output directories."""
        for number in self.reports:
            get_report(number)
        for dir_path in [self.output_dir, self.reports_dir]:
            os.makedirs(dir_path, exist_ok=True)

    @property
    def selected_reports(self) -> List[int]:
        return sorted(set(self.reports)) if self.reports else sorted(REPORTS)


@dataclass
class ReportResults:
    """Results from one pipeline execution."""

    # Metadata
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    config: Optional[ReportConfig] = None

    # Dataset info
    row_counts: Dict[str, int] = field(default_factory=dict)
    consistency: Optional[pd.DataFrame] = None

    # Report tables (table name -> DataFrame) and failures (table name -> error)
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    failed_metrics: Dict[str, str] = field(default_factory=dict)
    completion_methods_agree: Optional[bool] = None

    # Statistical results
    statistical_results: Dict[str, Any] = field(default_factory=dict)

    # Generated files
    output_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert results to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp,
            "row_counts": self.row_counts,
            "reports": self.config.selected_reports if self.config else [],
            "tables": {name: len(df) for name, df in self.tables.items()},
            "failed_metrics": self.failed_metrics,
            "completion_methods_agree": self.completion_methods_agree,
            "statistical_results": self.statistical_results,
            "output_files": self.output_files,
        }

    def save(self, path: str) -> None:
        """Save results to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


class TrialReportPipeline:
    """
    Orchestrator for the trial report.

    Executes the complete workflow:
    1. Load and validate data
    2. Pre-process (Age, reason normalisation)
    3. Compute report tables, isolating failures per table
    4. Run arm comparisons
    5. Generate figures
    6. Save tables, summary and HTML report

    Example:
        >>> pipeline = TrialReportPipeline("data")
        >>> results = pipeline.run()
        >>> print(results.tables["ecg_effect"])
    """

    def __init__(
        self,
        data_dir: Optional[str] = None,
        config: Optional[ReportConfig] = None,
        tables: Optional[TrialTables] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            data_dir: Directory with the study CSVs (overrides config)
            config: Pipeline configuration (uses defaults if None)
            tables: Already-loaded tables; skips reading from disk
        """
        self.config = config or ReportConfig()
        if data_dir:
            self.config.data_dir = data_dir

        self.results = ReportResults(config=self.config)

        self.analyzer = StatisticalAnalyzer(significance_level=self.config.significance_level)
        self.visualizer = TrialVisualizer(dpi=self.config.figure_dpi)

        self.raw_tables: Optional[TrialTables] = tables
        self.tables: Optional[TrialTables] = None

    def run(self) -> ReportResults:
        """
        Execute the pipeline.

        Returns:
            ReportResults with all tables and outputs
        """
        logger.info("="*60)
        logger.info("ZILTIV TRIAL REPORT")
        logger.info("="*60)

        try:
            # Step 1: Load data
            self._load_data()

            # Step 2: Pre-process
            self._preprocess()

            # Step 3: Report tables
            self._compute_reports()

            # Step 4: Statistics
            if self.config.run_statistics:
                self._run_statistical_analysis()

            # Step 5: Save tables and summary
            self._save_tables()
            self._save_results()

            # Step 6: Figures and HTML report
            figures = self._generate_figures() if self.config.generate_figures else {}
            if self.config.generate_html_report:
                self._generate_html_report(figures)

            logger.info("="*60)
            logger.info("REPORT COMPLETED")
            logger.info(f"Generated {len(self.results.output_files)} output files")
            if self.results.failed_metrics:
                logger.warning(f"Failed tables: {sorted(self.results.failed_metrics)}")
            logger.info("="*60)

        except Exception as e:
            logger.error(f"Report failed: {e}")
            raise

        return self.results

    def _load_data(self) -> None:
        """Load and validate input tables."""
        logger.info("Step 1: Loading data...")

        if self.raw_tables is None:
            if not os.path.isdir(self.config.data_dir):
                raise FileNotFoundError(f"Data directory not found: {self.config.data_dir}")
            self.raw_tables = load_trial_tables(self.config.data_dir)

        self.results.row_counts = self.raw_tables.row_counts()
        logger.info(f"  Row counts: {self.results.row_counts}")

    def _preprocess(self) -> None:
        """Inspect completion consistency, then derive Age and normalise reasons."""
        logger.info("Step 2: Pre-processing...")

        week32 = self.raw_tables.week32
        self.results.consistency = completion_consistency(week32)
        completed = week32["completion_status"] == CompletionStatus.COMPLETED.value
        inconsistent = int((completed & (week32["reason_notcomplete"] != NOT_APPLICABLE)).sum())
        logger.info(f"  Completed participants with a non-N/A reason before normalisation: {inconsistent}")

        self.tables = preprocess_tables(self.raw_tables)

        n_missing_age = int(self.tables.baseline["Age"].isna().sum())
        if n_missing_age:
            logger.warning(f"  {n_missing_age} participants without a derivable Age")

    def _compute_reports(self) -> None:
        """Compute every table of every selected report; one failure never stops the rest."""
        logger.info("Step 3: Computing report tables...")

        for number in self.config.selected_reports:
            report = get_report(number)
            logger.info(f"  #{number} {report.title}")
            for name, func in report.tables.items():
                try:
                    self.results.tables[name] = func(self.tables)
                    logger.info(f"    {name}: {len(self.results.tables[name])} rows")
                except Exception as e:
                    logger.error(f"    {name} failed: {e}")
                    self.results.failed_metrics[name] = str(e)

        self._check_completion_methods()

    def _check_completion_methods(self) -> None:
        """Both per-arm completion computations must give the same Completed share."""
        window = self.results.tables.get("completion_by_group_window")
        direct = self.results.tables.get("completion_by_group")
        if window is None or direct is None:
            return

        from_window = completed_share_from_window(window).set_index("Treatment_Group")["Percent_Completion"]
        from_sum = direct.set_index("Treatment_Group")["Percent_Completion"]
        agree = from_window.sort_index().equals(from_sum.sort_index())
        self.results.completion_methods_agree = bool(agree)
        if not agree:
            logger.warning("  Completion percentages disagree between the two methods")

    def _run_statistical_analysis(self) -> None:
        """Compare arms on percent change and on categorical outcomes."""
        logger.info("Step 4: Running statistical analysis...")

        stat_results: Dict[str, Any] = {}

        for rows_name in ("biomarker_change_rows", "blood_pressure_change_rows"):
            rows = self.results.tables.get(rows_name)
            if rows is None:
                continue
            for outcome, result in self.analyzer.percent_change_comparison(rows).items():
                stat_results[outcome] = result.to_dict()
                test = "Kruskal-Wallis" if result.used_nonparametric else "ANOVA"
                logger.info(f"  {outcome}: {test} stat={result.omnibus.statistic:.2f}, p={result.omnibus.p_value:.2e}")

        categorical = [
            ("ecg_effect_rows", "treatment_group", "ECG_Effect"),
        ]
        if 4 in self.config.selected_reports:
            categorical.append((None, "treatment_group", "completion_status"))

        for rows_name, row_col, col_col in categorical:
            df = self.results.tables.get(rows_name) if rows_name else self.tables.week32
            if df is None:
                continue
            try:
                result = self.analyzer.categorical_association(df, row_col, col_col)
                stat_results[f"{row_col}_x_{col_col}"] = result.to_dict()
                logger.info(f"  {row_col} x {col_col}: chi2={result.chi2:.2f}, p={result.p_value:.2e}")
            except ValueError as e:
                logger.warning(f"  Could not test {row_col} x {col_col}: {e}")

        self.results.statistical_results = stat_results

        if stat_results:
            output_path = os.path.join(self.config.output_dir, "statistical_results.json")
            with open(output_path, 'w') as f:
                json.dump(stat_results, f, indent=2, default=str)
            self.results.output_files.append(output_path)
            logger.info(f"  Saved: {output_path}")

    def _save_tables(self) -> None:
        """Write one CSV per report table."""
        logger.info("Step 5: Saving report tables...")

        tables = dict(self.results.tables)
        if self.results.consistency is not None:
            tables["completion_consistency"] = self.results.consistency

        for name, df in tables.items():
            path = os.path.join(self.config.output_dir, f"{name}.csv")
            df.to_csv(path, index=False)
            self.results.output_files.append(path)
        logger.info(f"  Saved {len(tables)} tables to {self.config.output_dir}")

    def _save_results(self) -> None:
        """Save pipeline results summary."""
        results_path = os.path.join(self.config.output_dir, "report_summary.json")
        self.results.output_files.append(results_path)
        self.results.save(results_path)
        logger.info(f"  Saved: {results_path}")

    def _generate_figures(self) -> Dict[str, str]:
        """Render figures for the available tables; returns base64 PNGs for the HTML report."""
        logger.info("Step 6: Generating figures...")

        tables = self.results.tables
        plots = [
            ("enrollment", "enrollment_counts", self.visualizer.plot_group_counts),
            ("age_bands", "age_bands", self.visualizer.plot_age_bands),
            ("completion_by_sex", "completion_by_sex", self.visualizer.plot_completion_by_sex),
            ("ecg_effect", "ecg_effect", self.visualizer.plot_ecg_effects),
            ("biomarker_change", "biomarker_change",
             lambda df: self.visualizer.plot_percent_change(df, "Mean Percent Change in Biomarkers at Week 13")),
            ("blood_pressure_change", "blood_pressure_change",
             lambda df: self.visualizer.plot_percent_change(df, "Mean Percent Change in Blood Pressure at Week 32")),
            ("adverse_events", "adverse_events", self.visualizer.plot_event_counts),
        ]

        figures = {}
        for key, table_name, plot in plots:
            df = tables.get(table_name)
            if df is None or df.empty:
                continue
            try:
                fig = plot(df)
                paths = self.visualizer.save_figure(
                    fig, key,
                    formats=self.config.save_formats,
                    output_dir=self.config.reports_dir,
                )
                self.results.output_files.extend(paths)
                figures[key] = self._fig_to_base64(fig)
                plt.close(fig)
            except Exception as e:
                logger.warning(f"  Could not plot {key}: {e}")

        logger.info(f"  Generated {len(figures)} figures")
        return figures

    def _fig_to_base64(self, fig: plt.Figure) -> str:
        """Convert matplotlib figure to base64 string for HTML embedding."""
        buf = BytesIO()
        fig.savefig(buf, format='png', dpi=100, bbox_inches='tight')
        buf.seek(0)
        encoded = base64.b64encode(buf.read()).decode('utf-8')
        buf.close()
        return encoded

    def _generate_html_report(self, figures: Dict[str, str]) -> None:
        """Write the self-contained HTML report."""
        path = os.path.join(self.config.reports_dir, self.config.report_filename)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self._build_html_report(figures))
        self.results.output_files.append(path)
        logger.info(f"  Saved: {path}")

    def _build_html_report(self, figures: Dict[str, str]) -> str:
        """Build HTML: one card per selected report with its tables and figure."""
        figure_for_table = {
            "enrollment_counts": "enrollment",
            "age_bands": "age_bands",
            "completion_by_sex": "completion_by_sex",
            "ecg_effect": "ecg_effect",
            "biomarker_change": "biomarker_change",
            "blood_pressure_change": "blood_pressure_change",
            "adverse_events": "adverse_events",
        }

        cards = ""
        for number in self.config.selected_reports:
            report = get_report(number)
            body = ""
            for name in report.tables:
                # Per-participant listings go to CSV only
                if name.endswith("_rows") or name == "age_at_enrollment":
                    continue
                if name in self.results.failed_metrics:
                    body += f"<p class='error'>{name}: {html.escape(self.results.failed_metrics[name])}</p>"
                    continue
                df = self.results.tables.get(name)
                if df is None:
                    continue
                body += f"<h4>{name.replace('_', ' ').title()}</h4>"
                body += df.to_html(index=False, na_rep="undefined", border=0)
                fig_key = figure_for_table.get(name)
                if fig_key and figures.get(fig_key):
                    body += (
                        f"<div class='figure'><img src='data:image/png;base64,{figures[fig_key]}' "
                        f"alt='{fig_key}'></div>"
                    )
            cards += f"""
        <div class="card">
            <div class="card-header">#{number} {report.title}</div>
            <div class="card-body">{body}</div>
        </div>"""

        agree = self.results.completion_methods_agree
        agree_str = "n/a" if agree is None else ("yes" if agree else "NO")
        counts = self.results.row_counts

        return f"""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Ziltiv Trial Report</title>
    <style>
        * {{ margin: 0; padding: 0; box-sizing: border-box; }}
        body {{
            font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;
            line-height: 1.6;
            color: #333;
            background: #f5f6fa;
        }}
        .container {{ max-width: 1200px; margin: 0 auto; padding: 20px; }}
        header {{
            background: linear-gradient(135deg, #2c3e50, #3498db);
            color: white;
            padding: 40px 20px;
            text-align: center;
            margin-bottom: 30px;
        }}
        .card {{
            background: white;
            border-radius: 10px;
            box-shadow: 0 2px 10px rgba(0,0,0,0.1);
            margin-bottom: 25px;
            overflow: hidden;
        }}
        .card-header {{
            background: #2c3e50;
            color: white;
            padding: 15px 20px;
            font-size: 1.2em;
            font-weight: 600;
        }}
        .card-body {{ padding: 20px; }}
        h4 {{ margin-top: 15px; }}
        table {{ width: 100%; border-collapse: collapse; margin: 15px 0; }}
        th, td {{ padding: 8px 12px; text-align: left; border-bottom: 1px solid #ddd; }}
        th {{ background: #ecf0f1; font-weight: 600; color: #2c3e50; }}
        .figure {{ text-align: center; margin: 20px 0; }}
        .figure img {{ max-width: 100%; }}
        .error {{ color: #c0392b; }}
        footer {{ text-align: center; padding: 30px; color: #666; }}
    </style>
</head>
<body>
    <header>
        <h1>Ziltiv Trial Report</h1>
        <p>Baseline: {counts.get('baseline', 0)} | Week 13: {counts.get('week13', 0)} |
           Week 32: {counts.get('week32', 0)} | Adverse events: {counts.get('adverse_events', 0)}</p>
        <p style="opacity: 0.7;">Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}</p>
    </header>
    <div class="container">
        <div class="card">
            <div class="card-header">Summary</div>
            <div class="card-body">
                <p>Reports: {', '.join(str(n) for n in self.config.selected_reports)}</p>
                <p>Completion methods agree: {agree_str}</p>
                <p>Failed tables: {', '.join(sorted(self.results.failed_metrics)) or 'none'}</p>
            </div>
        </div>
        {cards}
    </div>
    <footer>
        <p>Generated automatically by <code>TrialReportPipeline</code></p>
    </footer>
</body>
</html>
"""


def main(argv: Optional[List[str]] = None):
    """Command-line entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Ziltiv Trial Report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Reports:
  1 enrollment   2 age   3 demographics   4 completion   5 dropout
  6 biomarkers   7 ecg   8 blood pressure   9 adverse events

Examples:
  # All reports
  ziltiv-report --data-dir data

  # Only the ECG and adverse-event reports, no figures
  ziltiv-report --data-dir data --report 7 --report 9 --skip-viz
        """
    )
    parser.add_argument(
        "--data-dir", "-d",
        default="data",
        help="Directory with baseline.csv, week13.csv, week32.csv, adverse_events.csv"
    )
    parser.add_argument(
        "--output", "-o",
        default="results",
        help="Output directory for CSV/JSON results"
    )
    parser.add_argument(
        "--reports", "-r",
        default="reports",
        help="Output directory for figures and the HTML report"
    )
    parser.add_argument(
        "--report", "-n",
        type=int,
        action="append",
        default=[],
        help="Report number to produce (repeatable, default: all)"
    )
    parser.add_argument(
        "--skip-viz",
        action="store_true",
        help="Skip figure generation"
    )
    parser.add_argument(
        "--skip-stats",
        action="store_true",
        help="Skip arm-comparison statistics"
    )
    parser.add_argument(
        "--no-report",
        action="store_true",
        help="Skip HTML report generation"
    )
    parser.add_argument(
        "--report-name",
        default="trial_report.html",
        help="Filename for HTML report (default: trial_report.html)"
    )

    args = parser.parse_args(argv)

    try:
        config = ReportConfig(
            data_dir=args.data_dir,
            output_dir=args.output,
            reports_dir=args.reports,
            reports=args.report,
            run_statistics=not args.skip_stats,
            generate_figures=not args.skip_viz,
            generate_html_report=not args.no_report,
            report_filename=args.report_name,
        )
    except ValueError as e:
        parser.error(str(e))

    pipeline = TrialReportPipeline(config=config)
    results = pipeline.run()

    print(f"\nReport completed. Generated {len(results.output_files)} files.")
    if results.failed_metrics:
        print(f"Failed tables: {', '.join(sorted(results.failed_metrics))}")
    return 0


if __name__ == "__main__":
    main()
