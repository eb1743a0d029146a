"""
Tests for structured logging and the error envelope.
"""

import json
import logging
import sys

import pytest

from consent_wallet.exception_handlers import create_error_response, get_http_error_code
from consent_wallet.exceptions import ConsentNotFoundError, ErrorCode, StoreError
from consent_wallet.middleware.logging import RequestIdFilter, StructuredFormatter, request_id_var


def make_record(message: str = "Consent 42 activated", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="consent_wallet.services.lifecycle_service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_context_fields_are_included(self):
        record = make_record(token_id="42", tab_id=7)

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "Consent 42 activated"
        assert data["level"] == "INFO"
        assert data["token_id"] == "42"
        assert data["tab_id"] == 7
        assert "deadline" not in data

    def test_request_id_from_context(self):
        token = request_id_var.set("req-9")
        try:
            record = make_record()
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)

        assert json.loads(StructuredFormatter().format(record))["request_id"] == "req-9"

    def test_exception_is_formatted(self):
        try:
            raise StoreError(operation="get")
        except StoreError:
            record = make_record("Store failed")
            record.exc_info = sys.exc_info()

        data = json.loads(StructuredFormatter().format(record))

        assert "StoreError" in data["exception"]


class TestErrorEnvelope:
    def test_consent_error_envelope(self):
        exc = ConsentNotFoundError("42")

        response = create_error_response(
            status_code=exc.status_code,
            message=exc.message,
            error_code=exc.error_code,
            details=exc.details,
            path="/api/v1/consents/42",
        )

        body = json.loads(response.body)
        assert response.status_code == 404
        assert body["error"]["type"] == "Not Found"
        assert body["error"]["error_code"] == ErrorCode.CONSENT_NOT_FOUND.value
        assert body["error"]["details"]["resource_id"] == "42"

    def test_optional_fields_are_omitted(self):
        body = json.loads(create_error_response(status_code=418, message="teapot").body)

        assert body == {"error": {"status_code": 418, "message": "teapot", "type": "Error"}}

    @pytest.mark.parametrize(
        ("status_code", "code"),
        [(404, "RESOURCE_NOT_FOUND"), (422, "VALIDATION_FAILED"), (503, "STORE_UNAVAILABLE"), (418, "UNKNOWN_ERROR")],
    )
    def test_http_error_codes(self, status_code, code):
        assert get_http_error_code(status_code) == code
