from collections import defaultdict

import jsonschema

OCTET = r"(25[0-5]|2[0-4][0-9]|1[0-9][0-9]|[1-9]?[0-9]|0[0-9]{1,2})"

RECORD_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "GatewayRecord",
    "type": "object",
    "required": [
        "datetime",
        "email",
        "source_ip",
        "url",
        "http_status_code",
        "client_request_bytes",
        "client_response_bytes",
    ],
    "properties": {
        "datetime": {"type": "string", "minLength": 1},
        "email": {"type": "string", "minLength": 1},
        "source_ip": {
            "type": "string",
            "pattern": rf"^{OCTET}\.{OCTET}\.{OCTET}\.{OCTET}$",
        },
        "url": {"type": "string", "minLength": 1},
        "http_method": {"type": "string"},
        "http_status_code": {
            "anyOf": [
                {"type": "integer", "const": 0},
                {"type": "integer", "minimum": 100, "maximum": 599},
            ],
        },
        "action": {"type": "string"},
        "client_request_bytes": {"type": "integer", "minimum": 0},
        "client_response_bytes": {"type": "integer", "minimum": 0},
        "categories": {"type": "array", "items": {"type": "string"}},
        "matched_detections": {"type": "array", "items": {"type": "string"}},
        "dlp_profiles": {"type": "array", "items": {"type": "string"}},
        "is_isolated": {"type": "boolean"},
        "untrusted_certificate": {"type": "boolean"},
    },
}


class RecordValidator:
    """Validates parsed gateway records before they reach the detectors."""

    def __init__(self, schema=None):
        self._validator = jsonschema.Draft202012Validator(schema or RECORD_SCHEMA)
        self._stats = {
            "total": 0,
            "valid": 0,
            "invalid": 0,
            "error_types": defaultdict(int),
        }

    def validate(self, record):
        """Validate a GatewayRecord.

        Returns:
            tuple: (is_valid: bool, errors: list[str])
        """
        self._stats["total"] += 1
        error_messages = []

        if record.timestamp is None:
            self._stats["error_types"]["timestamp"] += 1
            error_messages.append(f"{record.datetime!r} is not a valid date-time")

        for error in self._validator.iter_errors(record.to_dict()):
            self._stats["error_types"][error.validator] += 1
            error_messages.append(error.message)

        if not error_messages:
            self._stats["valid"] += 1
            return True, []

        self._stats["invalid"] += 1
        return False, error_messages

    def get_stats(self):
        """Return a copy of the stats dict."""
        stats = dict(self._stats)
        stats["error_types"] = dict(stats["error_types"])
        return stats

    def reset_stats(self):
        """Reset all stat counters."""
        self._stats = {
            "total": 0,
            "valid": 0,
            "invalid": 0,
            "error_types": defaultdict(int),
        }
