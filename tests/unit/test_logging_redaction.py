import json
import logging

import pytest

from backend.core.config import Settings
from backend.core.logging import (
    JSONFormatter,
    PIIRedactionFilter,
    get_logger,
    redact_pii,
    set_tenant_id,
    set_trace_id,
)


def _record(msg, *args, **extra):
    record = logging.LogRecord("agents.saft.service", logging.INFO, "", 0, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _reset_context():
    set_tenant_id(None)
    set_trace_id(None)
    yield
    set_tenant_id(None)
    set_trace_id(None)


def test_iban_keeps_country_code():
    masked = redact_pii("IBAN RO49AAAA1B31007593840000")
    assert masked == "IBAN RO" + "*" * 22


def test_email_keeps_first_char_and_domain():
    assert redact_pii("mail ana.pop@example.ro") == "mail a******@example.ro"


def test_phone_keeps_first_two_chars():
    masked = redact_pii("tel +40 721 123 456")
    assert masked == "tel +4" + "*" * 13


def test_dates_amounts_and_ids_survive():
    text = "VZ000001 on 2025-01-31: 1190.00 RON for RO12345678"
    assert redact_pii(text) == text


def test_filter_redacts_string_args():
    record = _record("Sending to %s (%d lines)", "contabilitate@alfa.example", 3)
    assert PIIRedactionFilter().filter(record) is True
    assert record.getMessage() == "Sending to c************@alfa.example (3 lines)"


def test_json_formatter_adds_context_and_redacts_extra():
    set_tenant_id("tenant-demo")
    set_trace_id("trace-1")
    record = _record("Audit file generated", iban="RO49AAAA1B31007593840000", entries=3)
    entry = json.loads(JSONFormatter().format(record))
    assert entry["tenant_id"] == "tenant-demo"
    assert entry["trace_id"] == "trace-1"
    assert entry["level"] == "info"
    assert entry["logger"] == "agents.saft.service"
    assert entry["msg"] == "Audit file generated"
    assert entry["iban"].startswith("RO**")
    assert entry["entries"] == 3


def test_json_formatter_defaults_unknown_context():
    entry = json.loads(JSONFormatter().format(_record("plain")))
    assert entry["tenant_id"] == "unknown"
    assert entry["ts_utc"].endswith("Z")


def test_get_logger_installs_single_filter():
    logger = get_logger("tests.redaction")
    get_logger("tests.redaction")
    assert sum(isinstance(f, PIIRedactionFilter) for f in logger.filters) == 1


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("SAFT_FETCH_TIMEOUT_S", "2.5")
    monkeypatch.setenv("SAFT_VALIDATION_MODE", "official")
    monkeypatch.setenv("LOG_FORMAT", "plain")
    settings = Settings()
    assert settings.SAFT_FETCH_TIMEOUT_S == 2.5
    assert settings.SAFT_VALIDATION_MODE == "official"
    assert settings.log_format == "plain"
    assert settings.SAFT_BASE_CURRENCY == "RON"
