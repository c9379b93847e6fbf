"""End-to-end tests of the report pipeline."""

import json

import pytest

from ziltiv_report.analysis import metrics
from ziltiv_report.analysis.pipeline import ReportConfig, TrialReportPipeline, main


@pytest.fixture
def config(tmp_path):
    return ReportConfig(
        data_dir=str(tmp_path / "data"),
        output_dir=str(tmp_path / "results"),
        reports_dir=str(tmp_path / "reports"),
        generate_figures=False,
    )


def test_run_all_reports(config, raw_tables, tmp_path):
    results = TrialReportPipeline(config=config, tables=raw_tables).run()

    assert results.failed_metrics == {}
    assert results.completion_methods_agree is True
    assert results.row_counts["week13"] == 8
    expected = {name for report in metrics.REPORTS.values() for name in report.tables}
    assert set(results.tables) == expected

    results_dir = tmp_path / "results"
    assert (results_dir / "ecg_effect.csv").exists()
    assert (results_dir / "completion_consistency.csv").exists()
    summary = json.loads((results_dir / "report_summary.json").read_text())
    assert summary["reports"] == list(range(1, 10))

    html = (tmp_path / "reports" / "trial_report.html").read_text(encoding="utf-8")
    assert "#7 Effect of treatment on ECG" in html


def test_selected_reports_only(config, raw_tables):
    config.reports = [7]
    results = TrialReportPipeline(config=config, tables=raw_tables).run()

    assert set(results.tables) == {"ecg_effect", "ecg_effect_rows"}
    assert results.completion_methods_agree is None


def test_failing_table_does_not_stop_the_others(config, raw_tables, monkeypatch):
    def broken(tables):
        raise RuntimeError("boom")

    monkeypatch.setitem(metrics.REPORTS[5].tables, "dropout_reasons", broken)
    results = TrialReportPipeline(config=config, tables=raw_tables).run()

    assert results.failed_metrics == {"dropout_reasons": "boom"}
    assert "ecg_effect" in results.tables
    assert "adverse_events" in results.tables


def test_failure_message_is_escaped_in_html(config, raw_tables, monkeypatch, tmp_path):
    def broken(tables):
        raise ValueError("bad value <script>alert(1)</script> & more")

    monkeypatch.setitem(metrics.REPORTS[5].tables, "dropout_reasons", broken)
    config.reports = [5]
    TrialReportPipeline(config=config, tables=raw_tables).run()

    html = (tmp_path / "reports" / "trial_report.html").read_text(encoding="utf-8")
    assert "<script>" not in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt; &amp; more" in html


def test_invalid_report_number(tmp_path):
    with pytest.raises(ValueError, match="Unknown report"):
        ReportConfig(output_dir=str(tmp_path / "r"), reports_dir=str(tmp_path / "f"), reports=[12])


def test_missing_data_dir(config):
    with pytest.raises(FileNotFoundError):
        TrialReportPipeline(config=config).run()


def test_figures_are_written(config, raw_tables, tmp_path):
    config.generate_figures = True
    config.reports = [1, 7]
    results = TrialReportPipeline(config=config, tables=raw_tables).run()

    assert (tmp_path / "reports" / "enrollment.png").exists()
    assert (tmp_path / "reports" / "ecg_effect.png").exists()
    assert any(path.endswith("ecg_effect.png") for path in results.output_files)


def test_cli_reads_csv_directory(tmp_path, raw_frames):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    for name, df in raw_frames.items():
        df.to_csv(data_dir / f"{name}.csv", index=False)

    code = main([
        "--data-dir", str(data_dir),
        "--output", str(tmp_path / "results"),
        "--reports", str(tmp_path / "reports"),
        "--report", "9",
        "--skip-viz",
        "--skip-stats",
    ])

    assert code == 0
    assert (tmp_path / "results" / "adverse_events.csv").exists()
    assert not (tmp_path / "results" / "ecg_effect.csv").exists()
