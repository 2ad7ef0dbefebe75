"""Anomaly detectors over a timestamp-sorted sequence of gateway records.

Every detector takes the same sorted list and reports findings by position in
that list, so ``row_index`` values from different detectors line up. None of
them mutate their input or raise on empty or degenerate batches.
"""

import logging
import math
from collections import defaultdict

from gateway_analyzer.models import Finding, GatewayRecord

logger = logging.getLogger(__name__)

MB = 1024 * 1024
FIVE_MINUTES_MS = 5 * 60 * 1000

SUSPICIOUS_CATEGORIES = frozenset({
    "Malware", "Phishing", "Spyware", "Botnets", "Spam",
    "Newly Seen Domains", "Parked Domains", "Command and Control",
    "Cryptomining", "Anonymizer", "Proxy", "VPN",
    "DNS Tunneling", "Remote Access", "P2P", "Torrent",
})

REPEATED_BLOCK_THRESHOLD = 5
DOWNLOAD_FLOOR_BYTES = 100 * MB
BURST_MIN_BUCKETS = 3
BURST_Z_THRESHOLD = 3
BURST_COUNT_THRESHOLD = 100
AUTH_FAILURE_THRESHOLD = 3
AUTH_FAILURE_STATUSES = (401, 403)


def detect_dlp_violations(records: list[GatewayRecord]) -> list[Finding]:
    findings = []
    for index, record in enumerate(records):
        if record.dlp_profiles:
            findings.append(Finding(
                row_index=index,
                rule="dlp_violation",
                confidence=1.0,
                severity="critical",
                explanation=(
                    f"DLP violation detected: {', '.join(record.dlp_profiles)} "
                    f"- User: {record.email} to {record.url}"
                ),
                raw_log=record,
            ))
    return findings


def detect_threat_detections(records: list[GatewayRecord]) -> list[Finding]:
    findings = []
    for index, record in enumerate(records):
        if record.matched_detections:
            findings.append(Finding(
                row_index=index,
                rule="threat_detection",
                confidence=0.95,
                severity="critical",
                explanation=(
                    f"Threat detected: {', '.join(record.matched_detections)} "
                    f"from {record.source_ip} ({record.email})"
                ),
                raw_log=record,
            ))
    return findings


def detect_suspicious_categories(records: list[GatewayRecord]) -> list[Finding]:
    findings = []
    for index, record in enumerate(records):
        suspicious = [c for c in record.categories if c in SUSPICIOUS_CATEGORIES]
        if not suspicious:
            continue

        confidence = min(1.0, 0.7 + 0.1 * len(suspicious))
        if confidence > 0.9:
            severity = "high"
        elif confidence > 0.8:
            severity = "medium"
        else:
            severity = "low"

        findings.append(Finding(
            row_index=index,
            rule="suspicious_category",
            confidence=confidence,
            severity=severity,
            explanation=f"Access to suspicious category: {', '.join(suspicious)} by {record.email}",
            raw_log=record,
        ))
    return findings


def _group_by_actor(records, predicate) -> dict[str, list[tuple[int, int]]]:
    """Map actor -> [(epoch_ms, index), ...] for records matching predicate."""
    groups = defaultdict(list)
    for index, record in enumerate(records):
        if predicate(record):
            groups[record.email].append((record.epoch_ms, index))
    return groups


def _count_window(events: list[tuple[int, int]], start: int, window_ms: int) -> int:
    """Events from ``start`` onward within ``window_ms`` of the anchor, inclusive."""
    anchor = events[start][0]
    end = start + 1
    while end < len(events) and events[end][0] - anchor <= window_ms:
        end += 1
    return end - start


def detect_repeated_blocks(records: list[GatewayRecord]) -> list[Finding]:
    """Report each actor's densest 5-minute window of blocks."""
    findings = []
    blocks_by_user = _group_by_actor(records, lambda r: r.action == "block")

    for user, blocks in blocks_by_user.items():
        max_blocks = 0
        window_start = 0
        for i in range(len(blocks)):
            count = _count_window(blocks, i, FIVE_MINUTES_MS)
            if count > max_blocks:
                max_blocks = count
                window_start = i

        if max_blocks < REPEATED_BLOCK_THRESHOLD:
            continue

        index = blocks[window_start][1]
        findings.append(Finding(
            row_index=index,
            rule="repeated_blocks",
            confidence=min(1.0, max_blocks / 10),
            severity="high" if max_blocks >= 10 else "medium",
            explanation=(
                f"User {user} triggered {max_blocks} blocks in 5 minutes "
                f"- possible compromise or policy violation"
            ),
            raw_log=records[index],
        ))
    return findings


def calculate_percentile(sorted_values: list[int], percentile: float) -> int:
    """Nearest-rank percentile of an ascending list; 0 for an empty list."""
    if not sorted_values:
        return 0
    index = math.ceil(percentile * len(sorted_values)) - 1
    return sorted_values[max(0, min(index, len(sorted_values) - 1))]


def download_threshold(records: list[GatewayRecord]) -> int | None:
    """max(p99 * 5, 100MB) over positive response sizes, or None if there are none."""
    sizes = sorted(r.client_response_bytes for r in records if r.client_response_bytes > 0)
    if not sizes:
        return None
    p95 = calculate_percentile(sizes, 0.95)
    p99 = calculate_percentile(sizes, 0.99)
    logger.debug("Response size p95=%d p99=%d over %d transfers", p95, p99, len(sizes))
    return max(p99 * 5, DOWNLOAD_FLOOR_BYTES)


def detect_excessive_downloads(records: list[GatewayRecord]) -> list[Finding]:
    findings = []
    threshold = download_threshold(records)
    if threshold is None:
        return findings

    for index, record in enumerate(records):
        size = record.client_response_bytes
        if size <= threshold:
            continue
        if size > 500 * MB:
            severity = "high"
        elif size > 200 * MB:
            severity = "medium"
        else:
            severity = "low"

        findings.append(Finding(
            row_index=index,
            rule="excessive_download",
            confidence=min(1.0, size / (DOWNLOAD_FLOOR_BYTES * 5)),
            severity=severity,
            explanation=f"Large data transfer: {size / MB:.2f}MB from {record.url} by {record.email}",
            raw_log=record,
        ))
    return findings


def detect_burst_rate(records: list[GatewayRecord], window_seconds: int = 60) -> list[Finding]:
    """Flag per-(IP, actor) time buckets whose request count is a z-score outlier.

    Groups with a constant per-bucket count have zero spread and are never
    flagged, whatever the absolute count.
    """
    findings = []
    window_ms = window_seconds * 1000

    # (source_ip, email) -> bucket -> [indices]; dicts keep first-seen order
    groups = defaultdict(lambda: defaultdict(list))
    for index, record in enumerate(records):
        bucket = record.epoch_ms // window_ms
        groups[(record.source_ip, record.email)][bucket].append(index)

    for (source_ip, user), buckets in groups.items():
        counts = [len(indices) for indices in buckets.values()]
        if len(counts) < BURST_MIN_BUCKETS:
            continue

        mean = sum(counts) / len(counts)
        variance = sum((c - mean) ** 2 for c in counts) / len(counts)
        std_dev = math.sqrt(variance)
        if std_dev == 0:
            continue

        for indices in buckets.values():
            count = len(indices)
            z_score = (count - mean) / std_dev
            if z_score < BURST_Z_THRESHOLD and count <= BURST_COUNT_THRESHOLD:
                continue

            findings.append(Finding(
                row_index=indices[0],
                rule="burst_rate",
                confidence=min(1.0, max(z_score / 5, count / 200)),
                severity="high" if z_score > 5 or count > 200 else "medium",
                explanation=(
                    f"Burst detected: {count} requests from {user} ({source_ip}) "
                    f"in {window_seconds}s (z-score={z_score:.1f})"
                ),
                raw_log=records[indices[0]],
            ))
    return findings


def _is_auth_failure(record: GatewayRecord) -> bool:
    return (
        record.http_status_code in AUTH_FAILURE_STATUSES
        or record.action == "block"
        or record.untrusted_certificate
    )


def detect_auth_failures(records: list[GatewayRecord]) -> list[Finding]:
    """Report the earliest 5-minute window with 3+ failures for each actor."""
    findings = []
    failures_by_user = _group_by_actor(records, _is_auth_failure)

    for user, failures in failures_by_user.items():
        for i in range(len(failures)):
            count = _count_window(failures, i, FIVE_MINUTES_MS)
            if count < AUTH_FAILURE_THRESHOLD:
                continue

            if count >= 10:
                severity = "high"
            elif count >= 5:
                severity = "medium"
            else:
                severity = "low"

            index = failures[i][1]
            findings.append(Finding(
                row_index=index,
                rule="auth_failure",
                confidence=min(1.0, count / (AUTH_FAILURE_THRESHOLD * 3)),
                severity=severity,
                explanation=f"{count} auth failures/blocks for {user} within 5 minutes",
                raw_log=records[index],
            ))
            break
    return findings


DETECTORS = (
    detect_dlp_violations,
    detect_threat_detections,
    detect_suspicious_categories,
    detect_repeated_blocks,
    detect_excessive_downloads,
    detect_burst_rate,
    detect_auth_failures,
)


def run_detection(records: list[GatewayRecord], burst_window_seconds: int = 60) -> list[Finding]:
    """Run every detector and rank the merged findings by confidence.

    The sort is stable, so equal confidences keep detector order and then
    discovery order. No cap is applied here.
    """
    findings = []
    for detector in DETECTORS:
        if detector is detect_burst_rate:
            found = detector(records, window_seconds=burst_window_seconds)
        else:
            found = detector(records)
        logger.debug("%s: %d findings", detector.__name__, len(found))
        findings.extend(found)

    findings.sort(key=lambda f: f.confidence, reverse=True)
    logger.info("Detected %d anomalies across %d records", len(findings), len(records))
    return findings
