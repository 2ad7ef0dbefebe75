import pytest

from conftest import make_record
from gateway_analyzer.validator import RecordValidator


@pytest.fixture
def validator():
    return RecordValidator()


class TestRecordValidator:
    def test_valid_record(self, validator):
        is_valid, errors = validator.validate(make_record())
        assert is_valid is True
        assert errors == []

    @pytest.mark.parametrize("ip", ["256.1.1.1", "10.0.0", "10.0.0.1.5", "abc.def.ghi.jkl", ""])
    def test_bad_ip(self, validator, ip):
        is_valid, _ = validator.validate(make_record(source_ip=ip))
        assert is_valid is False

    @pytest.mark.parametrize("ip", ["0.0.0.0", "255.255.255.255", "192.168.1.1"])
    def test_good_ip(self, validator, ip):
        is_valid, _ = validator.validate(make_record(source_ip=ip))
        assert is_valid is True

    @pytest.mark.parametrize("status,expected", [(0, True), (100, True), (599, True), (99, False), (600, False), (-1, False)])
    def test_status_range(self, validator, status, expected):
        is_valid, _ = validator.validate(make_record(http_status_code=status))
        assert is_valid is expected

    def test_negative_bytes(self, validator):
        is_valid, _ = validator.validate(make_record(client_request_bytes=-5))
        assert is_valid is False

    def test_non_integer_bytes(self, validator):
        is_valid, _ = validator.validate(make_record(client_response_bytes="lots"))
        assert is_valid is False

    def test_bad_timestamp(self, validator):
        is_valid, errors = validator.validate(make_record(datetime="15/01/2024"))
        assert is_valid is False
        assert any("date-time" in e for e in errors)

    def test_missing_identity_and_url(self, validator):
        is_valid, errors = validator.validate(make_record(email="", url=""))
        assert is_valid is False
        assert len(errors) == 2

    def test_stats(self, validator):
        validator.validate(make_record())
        validator.validate(make_record(source_ip="999.0.0.1"))
        validator.validate(make_record(datetime="nope"))
        stats = validator.get_stats()
        assert stats["total"] == 3
        assert stats["valid"] == 1
        assert stats["invalid"] == 2
        assert stats["error_types"]["pattern"] == 1
        assert stats["error_types"]["timestamp"] == 1

    def test_reset_stats(self, validator):
        validator.validate(make_record())
        validator.reset_stats()
        assert validator.get_stats()["total"] == 0
