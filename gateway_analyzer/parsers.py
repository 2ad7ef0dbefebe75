"""Gateway log line parsers: JSON and comma-delimited text, tried in order."""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field

from gateway_analyzer.models import GatewayRecord
from gateway_analyzer.validator import RecordValidator

logger = logging.getLogger(__name__)

# canonical field -> PascalCase alias emitted by Gateway log exports
FIELD_ALIASES = {
    "datetime": "Datetime",
    "device_id": "DeviceID",
    "device_name": "DeviceName",
    "email": "Email",
    "source_ip": "SourceIP",
    "destination_ip": "DestinationIP",
    "url": "URL",
    "http_host": "HTTPHost",
    "http_method": "HTTPMethod",
    "http_status_code": "HTTPStatusCode",
    "action": "Action",
    "policy_name": "PolicyName",
    "policy_id": "PolicyID",
    "categories": "Categories",
    "client_request_bytes": "ClientRequestBytes",
    "client_response_bytes": "ClientResponseBytes",
    "user_agent": "UserAgent",
    "matched_detections": "MatchedDetections",
    "dlp_profiles": "DLPProfiles",
    "is_isolated": "IsIsolated",
    "untrusted_certificate": "UntrustedCertificate",
    "request_id": "RequestID",
}

MIN_DELIMITED_COLUMNS = 9


@dataclass
class ParseReport:
    records: list = field(default_factory=list)
    total_lines: int = 0
    skipped: int = 0
    invalid: int = 0
    unparseable: int = 0
    by_format: dict = field(default_factory=dict)


def _pick(data: dict, name: str, default=None):
    """Return the PascalCase value if present, else the snake_case one."""
    value = data.get(FIELD_ALIASES[name])
    if value is None:
        value = data.get(name)
    return default if value is None else value


def _as_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(";") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item not in (None, "")]
    return [str(value)]


def _as_int(value):
    """Coerce numeric strings; leave anything else for the validator to reject."""
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _int_or_zero(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        return 0


def _split_list(text: str) -> list[str]:
    return [item.strip() for item in text.split(";") if item.strip()]


def parse_json_line(line: str) -> GatewayRecord | None:
    """Parse a JSON log line. Returns None if the line is not a JSON object."""
    # ValueError covers JSONDecodeError and the int digit limit
    try:
        data = json.loads(line)
    except (ValueError, TypeError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None

    url = _pick(data, "url")
    host = _pick(data, "http_host")
    if not url and host:
        url = f"https://{host}{data.get('HTTPPath') or data.get('http_path') or ''}"

    return GatewayRecord(
        datetime=_pick(data, "datetime", ""),
        email=_pick(data, "email", ""),
        source_ip=_pick(data, "source_ip", ""),
        url=url or "",
        http_method=str(_pick(data, "http_method", "GET")),
        http_status_code=_as_int(_pick(data, "http_status_code", 0)),
        action=str(_pick(data, "action", "allow")).lower(),
        client_request_bytes=_as_int(_pick(data, "client_request_bytes", 0)),
        client_response_bytes=_as_int(_pick(data, "client_response_bytes", 0)),
        user_agent=_pick(data, "user_agent", ""),
        categories=_as_list(_pick(data, "categories")),
        matched_detections=_as_list(_pick(data, "matched_detections")),
        dlp_profiles=_as_list(_pick(data, "dlp_profiles")),
        is_isolated=bool(_pick(data, "is_isolated", False)),
        untrusted_certificate=bool(_pick(data, "untrusted_certificate", False)),
        device_id=_pick(data, "device_id"),
        device_name=_pick(data, "device_name"),
        destination_ip=_pick(data, "destination_ip"),
        http_host=host,
        policy_name=_pick(data, "policy_name"),
        policy_id=_pick(data, "policy_id"),
        request_id=_pick(data, "request_id"),
    )


def parse_delimited_line(line: str) -> GatewayRecord | None:
    """Parse a comma-delimited gateway line.

    Column order:
        datetime,email,source_ip,url,method,status,action,bytes_in,bytes_out,
        user_agent,categories;...,detections;...,dlp;...
    """
    parts = [p.strip() for p in line.split(",")]
    if len(parts) < MIN_DELIMITED_COLUMNS:
        return None

    def column(i: int) -> str:
        return parts[i] if i < len(parts) else ""

    return GatewayRecord(
        datetime=parts[0],
        email=parts[1],
        source_ip=parts[2],
        url=parts[3],
        http_method=parts[4] or "GET",
        http_status_code=_int_or_zero(parts[5]),
        action=(parts[6] or "allow").lower(),
        client_request_bytes=_int_or_zero(parts[7]),
        client_response_bytes=_int_or_zero(parts[8]),
        user_agent=column(9),
        categories=_split_list(column(10)),
        matched_detections=_split_list(column(11)),
        dlp_profiles=_split_list(column(12)),
    )


# Tried in this order; the first strategy returning a record wins.
PARSE_STRATEGIES = (
    ("json", parse_json_line),
    ("delimited", parse_delimited_line),
)


def parse_line(line: str) -> tuple[str, GatewayRecord] | None:
    """Return (format, record) for a log line, or None if no strategy applies.

    Blank lines and '#' comments also return None.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    for name, strategy in PARSE_STRATEGIES:
        record = strategy(stripped)
        if record is not None:
            return name, record
    return None


def parse_log_text(text: str, validator: RecordValidator | None = None) -> ParseReport:
    """Parse a whole log file, keeping only valid records in file order."""
    validator = validator or RecordValidator()
    report = ParseReport()
    formats = Counter()

    lines = text.splitlines()
    report.total_lines = len(lines)
    for line_num, line in enumerate(lines, 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            report.skipped += 1
            continue

        parsed = parse_line(stripped)
        if parsed is None:
            report.unparseable += 1
            logger.debug("Unparseable line %d: %.80s", line_num, stripped)
            continue

        fmt, record = parsed
        is_valid, errors = validator.validate(record)
        if not is_valid:
            report.invalid += 1
            logger.warning("Invalid log data at line %d: %s", line_num, "; ".join(errors))
            continue

        formats[fmt] += 1
        report.records.append(record)

    report.by_format = dict(formats)
    logger.info(
        "Parsed %d valid gateway logs from %d lines (%d invalid, %d unparseable)",
        len(report.records), report.total_lines, report.invalid, report.unparseable,
    )
    return report


def parse_log_bytes(data: bytes, validator: RecordValidator | None = None) -> ParseReport:
    text = data.decode("utf-8-sig", errors="replace")
    return parse_log_text(text, validator)


def sort_records_by_timestamp(records: list[GatewayRecord]) -> list[GatewayRecord]:
    """Stable ascending sort by timestamp; ties keep their original order."""
    return sorted(records, key=lambda r: r.timestamp)
