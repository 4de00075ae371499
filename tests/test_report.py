"""Tests for report text, sample dumps and artefact export."""

from __future__ import annotations

import json

import matplotlib
import pandas as pd
import pytest

from searchbench.benchmarks.aggregator import LatencyAggregator
from searchbench.benchmarks.charts import render_latency_histogram
from searchbench.benchmarks.report import (
    REPORT_HEADER,
    SAMPLE_HEADER,
    format_duration,
    format_histogram,
    format_report,
    format_sample_result,
    print_sample_result,
    report_to_dict,
    write_report_json,
    write_samples_csv,
)
from searchbench.benchmarks.runner import FinalReport, RunWindow
from searchbench.client import SearchHit, SearchResult


def _report(aggregator: LatencyAggregator, failures: dict[str, int] | None = None) -> FinalReport:
    snapshot = aggregator.snapshot()
    return FinalReport(
        window=RunWindow(started_at=0.0, deadline=60.0, wall_started_at=1_700_000_000.0),
        batches=3,
        trials=snapshot.observed + sum((failures or {}).values()),
        succeeded=snapshot.observed,
        failed=sum((failures or {}).values()),
        elapsed_s=2.0,
        snapshot=snapshot,
        failures=failures or {},
    )


@pytest.fixture
def filled() -> LatencyAggregator:
    aggregator = LatencyAggregator()
    for value in range(1, 101):
        aggregator.record(float(value))
    return aggregator


class TestFormatDuration:
    @pytest.mark.parametrize(
        "ms, expected",
        [
            (None, "n/a"),
            (0.85, "850.000µs"),
            (12.5, "12.500ms"),
            (1250.0, "1.250s"),
        ],
    )
    def test_units(self, ms, expected: str) -> None:
        assert format_duration(ms) == expected


class TestFormatReport:
    def test_empty_report_has_no_nan(self) -> None:
        text = format_report(_report(LatencyAggregator()))

        assert text.startswith(REPORT_HEADER)
        assert "Count:\t\t0" in text
        assert "P99.9:\t\tn/a" in text
        assert "nan" not in text.lower()

    def test_filled_report(self, filled) -> None:
        text = format_report(_report(filled, failures={"TimeoutError": 2}))

        assert "Count:\t\t100" in text
        assert "Max:\t\t100.000ms" in text
        assert "Min:\t\t1.000ms" in text
        assert "P95:\t\t95.000ms" in text
        assert "P99:\t\t99.000ms" in text
        assert "Failed:\t\t2" in text
        assert "  TimeoutError: 2" in text

    def test_histogram_is_appended(self, filled) -> None:
        text = format_report(_report(filled), filled.histogram(bins=4))
        assert "Histogram:" in text
        assert text.count("|") == 4

    def test_empty_histogram_renders_nothing(self) -> None:
        assert format_histogram([]) == ""


class TestSampleResult:
    def test_format(self) -> None:
        result = SearchResult(
            total=42,
            hits=(
                SearchHit(key="ad:1", fields=(("expected_ctr", "0.07"), ("search_term", "cat"))),
                SearchHit(key="ad:9", fields=()),
            ),
        )

        lines = format_sample_result(result).splitlines()

        assert lines == [
            SAMPLE_HEADER,
            "Total Results: 42",
            "Key: ad:1, Fields: [expected_ctr=0.07, search_term=cat]",
            "Key: ad:9, Fields: []",
        ]

    def test_print(self, capsys) -> None:
        print_sample_result(SearchResult(total=0))
        assert "Total Results: 0" in capsys.readouterr().out


class TestArtefacts:
    def test_report_dict_is_json_serialisable(self, filled) -> None:
        data = report_to_dict(_report(filled))
        encoded = json.dumps(data)
        assert json.loads(encoded)["latency_ms"]["p99"] == 99.0
        assert data["batches"] == 3
        assert data["duration_s"] == 60.0

    def test_write_json_and_csv(self, filled, tmp_path) -> None:
        report = _report(filled)

        json_path = write_report_json(report, tmp_path / "report.json")
        csv_path = write_samples_csv(filled, tmp_path / "samples.csv")

        assert json.loads(json_path.read_text())["succeeded"] == 100
        df = pd.read_csv(csv_path)
        assert len(df) == 100
        assert df["latency_ms"].max() == 100.0

    def test_chart_written(self, filled, tmp_path) -> None:
        path = render_latency_histogram(filled.to_dataframe(), filled.snapshot(), tmp_path / "chart.png")
        assert path is not None
        assert path.exists()
        assert path.stat().st_size > 0

    def test_chart_skipped_without_samples(self, tmp_path) -> None:
        empty = LatencyAggregator()
        path = render_latency_histogram(empty.to_dataframe(), empty.snapshot(), tmp_path / "chart.png")
        assert path is None
        assert not (tmp_path / "chart.png").exists()

    def test_chart_module_leaves_global_style_alone(self, filled, tmp_path) -> None:
        render_latency_histogram(filled.to_dataframe(), filled.snapshot(), tmp_path / "chart.png")
        assert matplotlib.rcParams["savefig.dpi"] == matplotlib.rcParamsDefault["savefig.dpi"]
        assert matplotlib.rcParams["font.size"] == matplotlib.rcParamsDefault["font.size"]
