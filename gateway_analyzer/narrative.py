"""SOC timeline and executive summary text for a set of findings.

The text-generation service is optional and untrusted: every call runs behind
a timeout, and any failure falls back to text computed locally from the
findings. Nothing in this module raises to the caller.
"""

import json
import logging
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from gateway_analyzer.llm_client import TextGenerator

logger = logging.getLogger(__name__)

NO_ANOMALIES_TEXT = "No security anomalies detected in the analyzed logs."

RECOMMENDED_ACTIONS = (
    "Review all critical DLP violations immediately",
    "Investigate users with repeated block actions",
    "Check for data exfiltration attempts",
    "Verify threat detection alerts are properly handled",
)


def group_findings_by_hour(findings, records) -> dict[str, list]:
    """Group findings by the UTC hour (YYYY-MM-DDTHH) of their record."""
    groups = defaultdict(list)
    for finding in findings:
        if not 0 <= finding.row_index < len(records):
            continue
        record = records[finding.row_index]
        if record.timestamp is None:
            continue
        groups[record.timestamp.strftime("%Y-%m-%dT%H")].append(finding)
    return dict(groups)


def build_timeline_prompt(time_groups, critical, high) -> str:
    lines = [
        "You are a SOC analyst reviewing security events. Create a concise timeline summary.",
        "",
        f"CRITICAL EVENTS ({len(critical)}):",
    ]
    lines.extend(f"- {f.explanation}" for f in critical[:5])
    lines.append("")
    lines.append(f"HIGH PRIORITY EVENTS ({len(high)}):")
    lines.extend(f"- {f.explanation}" for f in high[:5])
    lines.append("")
    lines.append("TIMELINE BY HOUR:")
    for hour in sorted(time_groups):
        events = time_groups[hour]
        lines.append(f"{hour}: {len(events)} events")
        lines.append(f"  - {', '.join(f.rule for f in events[:3])}")
    lines.extend([
        "",
        "Create a SOC analyst timeline that:",
        "1. Highlights critical security incidents",
        "2. Identifies attack patterns or campaigns",
        "3. Suggests immediate actions",
        "4. Is formatted as bullet points with timestamps",
        "",
        "Keep response under 400 words. Focus on actionable intelligence.",
    ])
    return "\n".join(lines)


def fallback_timeline(time_groups, critical) -> str:
    lines = ["## Security Event Timeline", ""]

    if critical:
        lines.append("### Critical Events Requiring Immediate Action")
        lines.extend(f"- {f.explanation}" for f in critical[:5])
        lines.append("")

    lines.append("### Timeline Summary")
    for hour in sorted(time_groups):
        events = time_groups[hour]
        n_critical = sum(1 for f in events if f.severity == "critical")
        n_high = sum(1 for f in events if f.severity == "high")

        header = f"**{hour}:00** - {len(events)} events"
        if n_critical:
            header += f" ({n_critical} critical)"
        if n_high:
            header += f" ({n_high} high)"
        lines.append(header)

        top = sorted(events, key=lambda f: f.confidence, reverse=True)[:3]
        for f in top:
            lines.append(f"  • {f.rule}: {f.explanation[:80]}...")

    lines.append("")
    lines.append("### Recommended Actions")
    lines.extend(f"{i}. {action}" for i, action in enumerate(RECOMMENDED_ACTIONS, 1))
    return "\n".join(lines) + "\n"


def summary_stats(findings, total_logs: int) -> dict:
    severities = Counter(f.severity for f in findings)
    rules = Counter(f.rule for f in findings)
    users = list(dict.fromkeys(f.raw_log.email for f in findings if f.raw_log.email))
    return {
        "total_logs": total_logs,
        "total_anomalies": len(findings),
        "critical": severities.get("critical", 0),
        "high": severities.get("high", 0),
        "medium": severities.get("medium", 0),
        "low": severities.get("low", 0),
        "top_rules": [{"rule": r, "count": c} for r, c in rules.most_common()],
        "affected_users": users,
    }


def build_summary_prompt(stats: dict) -> str:
    return (
        "Generate a brief executive summary of these security findings:\n"
        f"{json.dumps(stats, indent=2)}\n\n"
        "Format as 3-4 concise bullet points focusing on:\n"
        "1. Overall security posture\n"
        "2. Most critical findings\n"
        "3. Recommended actions\n\n"
        "Keep it under 100 words total."
    )


def fallback_summary(stats: dict) -> str:
    top = ", ".join(r["rule"] for r in stats["top_rules"][:3]) or "none"
    return "\n".join([
        "## Security Analysis Summary",
        f"• Analyzed {stats['total_logs']} logs, detected {stats['total_anomalies']} anomalies",
        f"• Critical issues: {stats['critical']} DLP/threat detections requiring immediate review",
        f"• Top concerns: {top}",
        f"• Action required: Review {len(stats['affected_users'])} affected users for potential compromise",
    ])


class NarrativeGenerator:
    def __init__(
        self,
        client: TextGenerator | None = None,
        timeout_seconds: float = 15.0,
        timeline_max_tokens: int = 500,
        summary_max_tokens: int = 150,
    ) -> None:
        self._client = client
        self._timeout = timeout_seconds
        self._timeline_max_tokens = timeline_max_tokens
        self._summary_max_tokens = summary_max_tokens
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="narrative")

    @classmethod
    def from_config(cls, narrative_config: dict, client: TextGenerator | None = None):
        return cls(
            client=client,
            timeout_seconds=float(narrative_config.get("timeout_seconds", 15.0)),
            timeline_max_tokens=int(narrative_config.get("timeline_max_tokens", 500)),
            summary_max_tokens=int(narrative_config.get("summary_max_tokens", 150)),
        )

    def _generate(self, prompt: str, max_tokens: int) -> str | None:
        """Ask the text generator for prose; None on any failure."""
        if self._client is None:
            return None

        future = self._executor.submit(self._client.summarize, prompt, max_tokens)
        try:
            text = future.result(timeout=self._timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.error("AI narrative generation timed out after %.1fs", self._timeout)
            return None
        except Exception as e:
            logger.error("AI narrative generation failed: %s", e)
            return None

        if not isinstance(text, str) or not text.strip():
            logger.error("AI narrative generation returned an empty response")
            return None
        return text

    def summarize(self, findings, records) -> str:
        """Timeline narrative for the findings."""
        if not findings:
            return NO_ANOMALIES_TEXT

        time_groups = group_findings_by_hour(findings, records)
        critical = [f for f in findings if f.severity == "critical"]
        high = [f for f in findings if f.severity == "high"]

        prompt = build_timeline_prompt(time_groups, critical, high)
        text = self._generate(prompt, self._timeline_max_tokens)
        return text or fallback_timeline(time_groups, critical)

    def executive_summary(self, findings, total_logs: int) -> str:
        stats = summary_stats(findings, total_logs)
        text = self._generate(build_summary_prompt(stats), self._summary_max_tokens)
        return text or fallback_summary(stats)

    def close(self) -> None:
        """Stop the worker threads and release the text generator's connections."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        close_client = getattr(self._client, "close", None)
        if close_client is not None:
            close_client()
