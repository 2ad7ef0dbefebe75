"""Analysis result formatters: text report, JSON, CSV of anomalies."""

import csv
import io
import json

from gateway_analyzer.models import AnalysisResult

CSV_HEADER = [
    "Rule",
    "Severity",
    "Confidence",
    "Explanation",
    "Time",
    "Actor",
    "Source IP",
    "Target Host",
    "URL",
    "Method",
    "Status",
    "Action",
]


def format_json(result: AnalysisResult) -> str:
    return json.dumps(result.to_dict(), indent=2)


def format_csv(result: AnalysisResult) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for finding in result.anomalies:
        log = finding.raw_log
        writer.writerow([
            finding.rule,
            finding.severity,
            f"{finding.confidence * 100:.0f}%",
            finding.explanation,
            log.datetime,
            log.email or log.source_ip,
            log.source_ip,
            log.http_host or "",
            log.url,
            log.http_method,
            log.http_status_code,
            log.action,
        ])
    return buf.getvalue()


def format_text(result: AnalysisResult) -> str:
    """Human-readable report."""
    summary = result.summary
    lines = [
        f"Job {result.job_id}: {result.status.value}",
        f"Total logs: {result.total_logs}",
        (
            f"Findings: {summary['criticalCount']} critical, {summary['highCount']} high, "
            f"{summary['mediumCount']} medium, {summary['lowCount']} low"
        ),
        "",
    ]

    if result.anomalies:
        lines.append(f"Top anomalies ({len(result.anomalies)}):")
        for f in result.anomalies:
            lines.append(f"  [{f.severity:8s}] {f.confidence:.2f} {f.rule:20s} row {f.row_index}: {f.explanation}")
        lines.append("")

    lines.append(result.timeline)
    if result.executive_summary:
        lines.append("")
        lines.append(result.executive_summary)
    return "\n".join(lines)


def get_formatter(fmt: str):
    """Return the formatter function for the given format string."""
    formatters = {
        "text": format_text,
        "json": format_json,
        "csv": format_csv,
    }
    return formatters[fmt]
