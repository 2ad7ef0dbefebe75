import json
from datetime import datetime, timedelta, timezone

import pytest

from gateway_analyzer.app import create_app
from gateway_analyzer.config import Config
from gateway_analyzer.job_store import InMemoryJobStore
from gateway_analyzer.models import GatewayRecord
from gateway_analyzer.narrative import NarrativeGenerator
from gateway_analyzer.pipeline import AnalysisPipeline

BASE_TIME = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


def make_record(offset_seconds=0, email="alice@example.com", source_ip="10.0.0.1", **kwargs):
    """Build a GatewayRecord ``offset_seconds`` after BASE_TIME."""
    ts = BASE_TIME + timedelta(seconds=offset_seconds)
    fields = {
        "datetime": ts.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
        "email": email,
        "source_ip": source_ip,
        "url": "https://example.com/",
        "http_status_code": 200,
        "client_response_bytes": 2048,
    }
    fields.update(kwargs)
    return GatewayRecord(**fields)


def to_json_line(**fields):
    return json.dumps(fields)


class StubGenerator:
    """Text generator stub that returns canned text or raises."""

    def __init__(self, text="AI narrative", error=None):
        self.text = text
        self.error = error
        self.prompts = []
        self.closed = False

    def summarize(self, prompt, max_tokens=500):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text

    def close(self):
        self.closed = True


@pytest.fixture
def sample_json_log():
    return {
        "Datetime": "2024-01-15T10:30:00Z",
        "Email": "alice@example.com",
        "SourceIP": "192.168.1.20",
        "URL": "https://example.com/login",
        "HTTPMethod": "POST",
        "HTTPStatusCode": 200,
        "Action": "Allow",
        "ClientRequestBytes": 512,
        "ClientResponseBytes": 4096,
        "UserAgent": "Mozilla/5.0",
        "Categories": ["Technology"],
    }


@pytest.fixture
def config():
    return Config(environ={})


@pytest.fixture
def store():
    return InMemoryJobStore(ttl_seconds=3600, max_jobs=100)


@pytest.fixture
def pipeline(store):
    return AnalysisPipeline(narrator=NarrativeGenerator(), store=store)


@pytest.fixture
def app(config, pipeline):
    """Create a Flask test app."""
    application = create_app(config, pipeline=pipeline, start_scheduler=False)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    """Create a Flask test client."""
    return app.test_client()
