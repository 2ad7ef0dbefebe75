import csv
import io
import json

import pytest

from conftest import make_record
from gateway_analyzer.detectors import run_detection
from gateway_analyzer.formatters import CSV_HEADER, format_csv, format_json, format_text, get_formatter
from gateway_analyzer.models import AnalysisResult, count_severities


@pytest.fixture
def result():
    records = [make_record(dlp_profiles=["PII"], http_host="example.com")]
    findings = run_detection(records)
    return AnalysisResult(job_id="job-1").complete(
        total_logs=1,
        anomalies=findings,
        timeline="## Security Event Timeline",
        summary=count_severities(findings),
        executive_summary="## Security Analysis Summary",
    )


class TestFormatters:
    def test_json(self, result):
        data = json.loads(format_json(result))
        assert data["jobId"] == "job-1"
        assert data["anomalies"][0]["rule"] == "dlp_violation"

    def test_csv(self, result):
        rows = list(csv.reader(io.StringIO(format_csv(result))))
        assert rows[0] == CSV_HEADER
        assert rows[1][0] == "dlp_violation"
        assert rows[1][2] == "100%"
        assert rows[1][5] == "alice@example.com"
        assert rows[1][7] == "example.com"

    def test_csv_header_only_without_findings(self):
        empty = AnalysisResult(job_id="job-2").complete(
            total_logs=0, anomalies=[], timeline="", summary=count_severities([])
        )
        assert list(csv.reader(io.StringIO(format_csv(empty)))) == [CSV_HEADER]

    def test_text(self, result):
        text = format_text(result)
        assert "Job job-1: complete" in text
        assert "1 critical" in text
        assert "dlp_violation" in text
        assert "## Security Analysis Summary" in text

    def test_get_formatter(self):
        assert get_formatter("csv") is format_csv
        with pytest.raises(KeyError):
            get_formatter("xml")
