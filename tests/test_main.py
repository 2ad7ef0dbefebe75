import json

from conftest import to_json_line
from gateway_analyzer.pipeline import AnalysisPipeline
from main import main


def write_log(tmp_path):
    path = tmp_path / "gateway.jsonl"
    path.write_text(to_json_line(
        Datetime="2024-01-15T10:30:00Z",
        Email="alice@example.com",
        SourceIP="10.0.0.1",
        URL="https://example.com/",
        HTTPStatusCode=200,
        Action="allow",
        DLPProfiles=["PII"],
    ))
    return path


class TestAnalyzeCommand:
    def test_json_report(self, tmp_path, capsys):
        path = write_log(tmp_path)
        code = main(["--config", str(tmp_path / "missing.yaml"), "analyze", str(path), "--no-ai", "--output", "json"])
        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["totalLogs"] == 1
        assert data["anomalies"][0]["rule"] == "dlp_violation"

    def test_pipeline_closed_after_run(self, tmp_path, monkeypatch):
        closed = []
        monkeypatch.setattr(AnalysisPipeline, "close", lambda self: closed.append(self))
        path = write_log(tmp_path)
        main(["--config", str(tmp_path / "missing.yaml"), "analyze", str(path), "--no-ai"])
        assert len(closed) == 1
