"""Gateway log record, anomaly finding and analysis result models."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

RULES = (
    "dlp_violation",
    "threat_detection",
    "suspicious_category",
    "repeated_blocks",
    "excessive_download",
    "burst_rate",
    "auth_failure",
)

SEVERITIES = ("critical", "high", "medium", "low")

ACTIONS = ("allow", "block", "isolate", "log")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

FRACTION_RE = re.compile(r"(:\d{2})\.(\d+)")


def _to_microseconds(match: re.Match) -> str:
    return f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}"


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO 8601 string into an aware UTC datetime, or None."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat on 3.10 only takes 3 or 6 fractional digits
    text = FRACTION_RE.sub(_to_microseconds, text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def severity_from_confidence(confidence: float) -> str:
    if confidence >= 0.9:
        return "critical"
    if confidence >= 0.7:
        return "high"
    if confidence >= 0.5:
        return "medium"
    return "low"


@dataclass
class GatewayRecord:
    datetime: str
    email: str
    source_ip: str
    url: str
    http_method: str = "GET"
    http_status_code: int = 0
    action: str = "allow"
    client_request_bytes: int = 0
    client_response_bytes: int = 0
    user_agent: str = ""
    categories: list[str] = field(default_factory=list)
    matched_detections: list[str] = field(default_factory=list)
    dlp_profiles: list[str] = field(default_factory=list)
    is_isolated: bool = False
    untrusted_certificate: bool = False
    device_id: str | None = None
    device_name: str | None = None
    destination_ip: str | None = None
    http_host: str | None = None
    policy_name: str | None = None
    policy_id: str | None = None
    request_id: str | None = None
    timestamp: datetime | None = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self.timestamp = parse_timestamp(self.datetime)

    @property
    def epoch_ms(self) -> int:
        """Milliseconds since the epoch. Only valid for validated records."""
        return (self.timestamp - EPOCH) // timedelta(milliseconds=1)

    def to_dict(self) -> dict:
        return {
            "datetime": self.datetime,
            "email": self.email,
            "source_ip": self.source_ip,
            "url": self.url,
            "http_method": self.http_method,
            "http_status_code": self.http_status_code,
            "action": self.action,
            "client_request_bytes": self.client_request_bytes,
            "client_response_bytes": self.client_response_bytes,
            "user_agent": self.user_agent,
            "categories": list(self.categories),
            "matched_detections": list(self.matched_detections),
            "dlp_profiles": list(self.dlp_profiles),
            "is_isolated": self.is_isolated,
            "untrusted_certificate": self.untrusted_certificate,
            "device_id": self.device_id,
            "device_name": self.device_name,
            "destination_ip": self.destination_ip,
            "http_host": self.http_host,
            "policy_name": self.policy_name,
            "policy_id": self.policy_id,
            "request_id": self.request_id,
        }


@dataclass(frozen=True)
class Finding:
    row_index: int
    rule: str
    confidence: float
    severity: str
    explanation: str
    raw_log: GatewayRecord

    def to_dict(self) -> dict:
        return {
            "row_index": self.row_index,
            "rule": self.rule,
            "confidence": self.confidence,
            "severity": self.severity,
            "explanation": self.explanation,
            "raw_log": self.raw_log.to_dict(),
        }


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


def count_severities(findings) -> dict:
    counts = Counter(f.severity for f in findings)
    return {
        "criticalCount": counts.get("critical", 0),
        "highCount": counts.get("high", 0),
        "mediumCount": counts.get("medium", 0),
        "lowCount": counts.get("low", 0),
    }


def count_totals(records) -> dict:
    """Record counts by action and by HTTP status code."""
    by_action = Counter(r.action for r in records)
    by_status = Counter(str(r.http_status_code) for r in records)
    return {
        "byAction": dict(by_action.most_common()),
        "byStatus": dict(sorted(by_status.items())),
    }


@dataclass
class AnalysisResult:
    """Outcome of one analysis job.

    Starts in ``processing`` and moves exactly once to ``complete`` or
    ``failed``; both are terminal.
    """

    job_id: str
    status: JobStatus = JobStatus.PROCESSING
    total_logs: int = 0
    anomalies: list[Finding] = field(default_factory=list)
    timeline: str = ""
    executive_summary: str = ""
    summary: dict = field(default_factory=lambda: count_severities([]))
    totals: dict = field(default_factory=lambda: {"byAction": {}, "byStatus": {}})

    def _ensure_processing(self):
        if self.status is not JobStatus.PROCESSING:
            raise ValueError(f"job {self.job_id} is already {self.status.value}")

    def complete(self, total_logs, anomalies, timeline, summary,
                 executive_summary="", totals=None):
        self._ensure_processing()
        self.status = JobStatus.COMPLETE
        self.total_logs = total_logs
        self.anomalies = list(anomalies)
        self.timeline = timeline
        self.summary = summary
        self.executive_summary = executive_summary
        if totals is not None:
            self.totals = totals
        return self

    def fail(self, timeline):
        self._ensure_processing()
        self.status = JobStatus.FAILED
        self.total_logs = 0
        self.anomalies = []
        self.timeline = timeline
        self.executive_summary = ""
        self.summary = count_severities([])
        self.totals = {"byAction": {}, "byStatus": {}}
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status is not JobStatus.PROCESSING

    def to_dict(self) -> dict:
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "totalLogs": self.total_logs,
            "anomalies": [f.to_dict() for f in self.anomalies],
            "timeline": self.timeline,
            "executiveSummary": self.executive_summary,
            "summary": dict(self.summary),
            "totals": self.totals,
        }
