"""Tests for log formatting and secret redaction."""

import json
import logging

from planstudio.core.logging_config import _JsonFormatter, _RequestIdFilter, _SecretFilter, request_id_var


def _record(msg, args=(), **extra):
    record = logging.LogRecord("planstudio.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSecretFilter:

    def test_google_api_key_redacted(self):
        record = _record("calling model with AIzaSyA1234567890abcdefghijklmnopqrstu now")
        _SecretFilter().filter(record)
        assert "AIzaSy" not in record.msg
        assert "***REDACTED***" in record.msg

    def test_bearer_token_keeps_prefix(self):
        record = _record("header Bearer abcdefghijklmnopqrstuvwxyz0123")
        _SecretFilter().filter(record)
        assert record.msg == "header Bearer ***REDACTED***"

    def test_key_value_secret(self):
        record = _record("retrying with token=supersecretvalue")
        _SecretFilter().filter(record)
        assert record.msg == "retrying with token=***REDACTED***"

    def test_goog_header_value_redacted(self):
        record = _record("sent x-goog-api-key: abcdefgh12345678")
        _SecretFilter().filter(record)
        assert record.msg == "sent x-goog-api-key: ***REDACTED***"

    def test_secret_passed_as_format_argument(self):
        record = _record("Upstream rejected %s", args=("Bearer abcdefghijklmnopqrstuvwxyz0123",))
        _SecretFilter().filter(record)
        assert record.getMessage() == "Upstream rejected Bearer ***REDACTED***"

    def test_plain_message_untouched(self):
        record = _record("Created version id-0002")
        _SecretFilter().filter(record)
        assert record.msg == "Created version id-0002"


class TestJsonFormatter:

    def test_extra_fields_and_request_id(self):
        token = request_id_var.set("req-9")
        try:
            line = _JsonFormatter().format(_record("Created version", version_id="v-1"))
        finally:
            request_id_var.reset(token)
        payload = json.loads(line)
        assert payload["message"] == "Created version"
        assert payload["level"] == "INFO"
        assert payload["version_id"] == "v-1"
        assert payload["request_id"] == "req-9"

    def test_no_request_id_outside_request(self):
        payload = json.loads(_JsonFormatter().format(_record("startup")))
        assert "request_id" not in payload

    def test_filter_stamps_request_id(self):
        record = _record("startup")
        _RequestIdFilter().filter(record)
        assert record.request_id == "-"
        payload = json.loads(_JsonFormatter().format(record))
        assert "request_id" not in payload
