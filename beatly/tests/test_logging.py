import io
import json
import logging

import pytest

from beatly.core.logging import JsonFormatter, PrettyFormatter, RequestIdFilter, log_event, request_id_ctx_var
from beatly.features.billing.ledger import create_pending
from beatly.features.billing.service import handle_notification


@pytest.fixture
def log_stream():
    """Attach a handler to the `beatly` logger; yields (stream, handler)."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    logger = logging.getLogger("beatly")
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    yield stream, handler
    logger.removeHandler(handler)
    logger.setLevel(previous_level)


def _json_lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_json_lines_include_event_fields(log_stream):
    stream, handler = log_stream
    handler.setFormatter(JsonFormatter())
    token = request_id_ctx_var.set("rid-1")
    try:
        log_event(
            "info",
            "transaction.created",
            user_id="user_alice",
            transaction_id="order-1",
            event_type="transaction.created",
            extra={"plan_id": "plus", "amount": 25000},
        )
    finally:
        request_id_ctx_var.reset(token)

    [line] = _json_lines(stream)
    assert line["message"] == "transaction.created"
    assert line["request_id"] == "rid-1"
    assert line["user_id"] == "user_alice"
    assert line["transaction_id"] == "order-1"
    assert line["plan_id"] == "plus"
    assert line["amount"] == 25000


def test_fields_cannot_overwrite_reserved_keys(log_stream):
    stream, handler = log_stream
    handler.setFormatter(JsonFormatter())

    log_event("warning", "billing.odd", user_id="user_alice", extra={"message": "spoofed", "level": "DEBUG"})

    [line] = _json_lines(stream)
    assert line["message"] == "billing.odd"
    assert line["level"] == "WARNING"


def test_long_field_values_are_truncated(log_stream):
    stream, handler = log_stream
    handler.setFormatter(JsonFormatter())

    log_event("info", "gateway.raw", extra={"body": "x" * 2000})

    [line] = _json_lines(stream)
    assert line["body"].endswith("...<truncated>")
    assert len(line["body"]) < 600


def test_pretty_lines_append_fields(log_stream):
    stream, handler = log_stream
    handler.setFormatter(PrettyFormatter())

    log_event("info", "transaction.status_changed", transaction_id="order-1", extra={"from": "pending", "to": "success"})

    output = stream.getvalue()
    assert "transaction.status_changed" in output
    assert "transaction_id=order-1" in output
    assert "from=pending" in output
    assert "to=success" in output


def test_unmapped_gateway_status_is_logged_with_raw_status(db, gateway, log_stream):
    stream, handler = log_stream
    handler.setFormatter(JsonFormatter())
    transaction = create_pending("user_alice", "plus", 25000)

    handle_notification(
        {"transaction_id": "mid-1", "order_id": transaction.id, "transaction_status": "refund"}
    )

    unmapped = [line for line in _json_lines(stream) if line["message"] == "transaction.unmapped_gateway_status"]
    assert len(unmapped) == 1
    assert unmapped[0]["transaction_id"] == transaction.id
    assert unmapped[0]["transaction_status"] == "refund"
    assert unmapped[0]["level"] == "WARNING"
