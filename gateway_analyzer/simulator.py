"""Synthetic Cloudflare Gateway HTTP logs for demos and smoke tests."""

import json
import random
from datetime import datetime, timedelta, timezone

USERS = [f"user{i}@example.com" for i in range(1, 11)]
HOSTS = ["github.com", "slack.com", "docs.google.com", "zoom.us", "news.ycombinator.com", "pypi.org"]
CATEGORIES = ["Technology", "Business", "News", "Productivity", "Education"]
METHODS = ["GET", "GET", "GET", "POST", "PUT"]
USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0 Safari/537.36",
    "curl/8.4.0",
]

MB = 1024 * 1024


def _ip_for(user: str) -> str:
    n = USERS.index(user) if user in USERS else 0
    return f"10.0.{n // 250}.{n % 250 + 1}"


def generate_log(rng: random.Random, ts: datetime, user=None, **overrides) -> dict:
    """Generate a single benign Gateway log entry (PascalCase export fields)."""
    user = user or rng.choice(USERS)
    host = rng.choice(HOSTS)
    log = {
        "Datetime": ts.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "Email": user,
        "SourceIP": _ip_for(user),
        "URL": f"https://{host}/{rng.choice(['', 'login', 'api/v1/items', 'search'])}",
        "HTTPHost": host,
        "HTTPMethod": rng.choice(METHODS),
        "HTTPStatusCode": rng.choice([200, 200, 200, 204, 301, 304, 404]),
        "Action": "allow",
        "Categories": [rng.choice(CATEGORIES)],
        "ClientRequestBytes": rng.randint(200, 4000),
        "ClientResponseBytes": rng.randint(1024, 5 * MB),
        "UserAgent": rng.choice(USER_AGENTS),
        "RequestID": f"{rng.getrandbits(64):016x}",
    }
    log.update(overrides)
    return log


def generate_incidents(rng: random.Random, start: datetime) -> list[dict]:
    """One of each incident type the detectors look for."""
    logs = []
    t = start + timedelta(minutes=10)
    logs.append(generate_log(rng, t, user=USERS[0], DLPProfiles=["Credit Card Numbers"],
                             URL="https://pastebin.com/upload", HTTPMethod="POST"))
    logs.append(generate_log(rng, t + timedelta(minutes=1), user=USERS[1],
                             MatchedDetections=["Emotet C2 beacon"]))
    logs.append(generate_log(rng, t + timedelta(minutes=2), user=USERS[2],
                             Categories=["Phishing", "Newly Seen Domains"], Action="block",
                             HTTPStatusCode=0))
    logs.append(generate_log(rng, t + timedelta(minutes=3), user=USERS[3],
                             ClientResponseBytes=800 * MB,
                             URL="https://drive.example.net/export.zip"))

    storm_start = start + timedelta(minutes=20)
    for i in range(12):
        logs.append(generate_log(rng, storm_start + timedelta(seconds=10 * i), user=USERS[4],
                                 Action="block", HTTPStatusCode=403,
                                 URL="https://mega.nz/file", Categories=["File Sharing"]))

    burst_minute = start + timedelta(minutes=30)
    for i in range(150):
        logs.append(generate_log(rng, burst_minute + timedelta(milliseconds=300 * i), user=USERS[5]))
    return logs


def generate_batch(count=200, seed=None, start=None, incidents=False, minutes=60) -> list[dict]:
    """Generate ``count`` benign logs over ``minutes``, plus optional incidents."""
    rng = random.Random(seed)
    if start is None:
        start = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(minutes=minutes)
    logs = [
        generate_log(rng, start + timedelta(seconds=rng.uniform(0, minutes * 60)))
        for _ in range(count)
    ]
    if incidents:
        logs.extend(generate_incidents(rng, start))
    logs.sort(key=lambda log: log["Datetime"])
    return logs


def to_json_lines(logs: list[dict]) -> str:
    return "\n".join(json.dumps(log) for log in logs) + "\n"


def to_delimited_lines(logs: list[dict]) -> str:
    """Comma-delimited fallback format understood by the parser."""
    lines = []
    for log in logs:
        lines.append(",".join([
            log["Datetime"],
            log["Email"],
            log["SourceIP"],
            log["URL"],
            log["HTTPMethod"],
            str(log["HTTPStatusCode"]),
            log["Action"],
            str(log["ClientRequestBytes"]),
            str(log["ClientResponseBytes"]),
            log["UserAgent"].replace(",", " "),
            ";".join(log.get("Categories", [])),
            ";".join(log.get("MatchedDetections", [])),
            ";".join(log.get("DLPProfiles", [])),
        ]))
    return "\n".join(lines) + "\n"
