"""Tests for structured trace events and trace context."""

import json
import logging

import pytest

from ipa_signer.enums import SigningStage
from ipa_signer.observability.trace_context import get_stage, get_suffix, set_stage, set_trace
from ipa_signer.observability.trace_logging import configure_tracing, trace_event


@pytest.fixture(autouse=True)
def tracing_enabled():
    configure_tracing(enabled=True, max_chars=2000)
    set_trace(suffix=None, stage=None)
    yield
    configure_tracing(enabled=True, max_chars=2000)


def _events(caplog):
    return [
        json.loads(r.getMessage())
        for r in caplog.records
        if r.name == "ipa_signer.trace"
    ]


def test_event_carries_trace_context(caplog):
    caplog.set_level(logging.INFO, logger="ipa_signer.trace")
    set_trace(suffix="1700000000000_abc123", stage=SigningStage.SIGNING)

    trace_event("sign.stage", stage_detail="x")

    event = _events(caplog)[-1]
    assert event["event"] == "sign.stage"
    assert event["suffix"] == "1700000000000_abc123"
    assert event["stage"] == "signing"
    assert event["stage_detail"] == "x"


def test_passwords_are_redacted(caplog):
    caplog.set_level(logging.INFO, logger="ipa_signer.trace")

    trace_event(
        "sign.tool.start",
        p12_password="hunter2",
        command="zsign -k c.p12 -p hunter2 -o o.ipa i.ipa",
    )

    raw = [r.getMessage() for r in caplog.records if r.name == "ipa_signer.trace"][-1]
    assert "hunter2" not in raw


def test_disabled_tracing_still_reports_errors(caplog):
    caplog.set_level(logging.INFO)
    configure_tracing(enabled=False)

    trace_event("sign.stage", stage="signing")
    trace_event("sign.error", error_type="SignFailure", error="bad")

    assert _events(caplog) == []
    errors = [r for r in caplog.records if r.name == "ipa_signer.errors"]
    assert len(errors) == 1
    assert "SignFailure" in errors[0].getMessage()


def test_long_fields_are_truncated(caplog):
    caplog.set_level(logging.INFO, logger="ipa_signer.trace")

    trace_event("sign.tool.error", max_chars=50, detail="e" * 500)

    assert len(_events(caplog)[-1]["detail"]) < 100


def test_set_stage_and_getters():
    set_trace(suffix="1700000000000_abc123")
    set_stage(SigningStage.PUBLISHING)
    assert get_suffix() == "1700000000000_abc123"
    assert get_stage() == SigningStage.PUBLISHING
