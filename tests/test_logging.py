"""
Test structured logging helpers
"""
import json
import logging

from ticketing_core.shared.infrastructure.logging import (
    CorrelationIdFilter,
    CustomJsonFormatter,
    bind_correlation_id,
    correlation_id_var,
)


def format_record(message: str, **extra) -> dict:
    record = logging.LogRecord("ticketing", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    CorrelationIdFilter().filter(record)
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="test")
    return json.loads(formatter.format(record))


def test_bound_correlation_id_is_logged():
    with bind_correlation_id("req-42"):
        body = format_record("Ticket escalated")

    assert body["correlation_id"] == "req-42"
    assert body["environment"] == "test"
    assert correlation_id_var.get() is None


def test_unbound_correlation_id_is_omitted():
    body = format_record("Compliance pass completed")

    assert "correlation_id" not in body


def test_sensitive_values_are_redacted():
    body = format_record("Dispatcher configured", webhook_url="https://hooks.example.com/x", ticket_id="t-1")

    assert body["webhook_url"] == "***REDACTED***"
    assert body["ticket_id"] == "t-1"
