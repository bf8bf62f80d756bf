"""Tests for structured logging utilities."""

import logging

import pytest

from realty_crm.utils import logging as log_utils
from realty_crm.utils.logging import (
    correlation_context,
    get_correlation_id,
    get_structured_logger,
    log_timing,
    mask_sensitive_data,
    timed,
)


@pytest.mark.unit
def test_correlation_context_restores_previous():
    assert get_correlation_id() is None

    with correlation_context("req_outer"):
        with correlation_context() as inner:
            assert inner.startswith("req_")
            assert get_correlation_id() == inner
        assert get_correlation_id() == "req_outer"

    assert get_correlation_id() is None


@pytest.mark.unit
def test_structured_logger_attaches_fields(caplog):
    caplog.set_level(logging.INFO, logger="realty_crm.tests")
    logger = get_structured_logger("realty_crm.tests")

    with correlation_context("req_123"):
        logger.info("Listing created", listing_id="l1")

    record = caplog.records[-1]
    assert record.listing_id == "l1"
    assert record.correlation_id == "req_123"


@pytest.mark.unit
@pytest.mark.parametrize("text,hidden", [
    ("contact ana.souza@imobiliaria.com.br", "ana.souza@imobiliaria.com.br"),
    ("ligar para +55 11 98765-4321", "98765-4321"),
    ("token: abcdefghijklmnopqrstuvwxyz123", "abcdefghijklmnopqrstuvwxyz123"),
    ("proprietario cpf 123.456.789-09", "123.456.789-09"),
])
def test_mask_sensitive_data(text, hidden):
    masked = mask_sensitive_data(text)

    assert hidden not in masked
    assert "REDACTED" in masked


@pytest.mark.unit
def test_mask_sensitive_data_disabled(monkeypatch):
    monkeypatch.setattr(log_utils.LoggingConfig, "LOG_MASK_SENSITIVE", False)

    assert mask_sensitive_data("ana@example.com") == "ana@example.com"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_timed_wraps_coroutines(caplog):
    caplog.set_level(logging.DEBUG, logger="realty_crm.tests")

    @timed("sample.operation", logger=get_structured_logger("realty_crm.tests"))
    async def operation(value):
        return value * 2

    assert await operation(21) == 42
    completed = [r for r in caplog.records if r.getMessage() == "Completed sample.operation"]
    assert completed[0].processing_time_ms >= 0


@pytest.mark.unit
def test_timed_warns_on_slow_operations(caplog, monkeypatch):
    monkeypatch.setattr(log_utils.LoggingConfig, "LOG_SLOW_OPERATION_THRESHOLD_MS", -1)
    caplog.set_level(logging.DEBUG, logger="realty_crm.tests")

    @timed(logger=get_structured_logger("realty_crm.tests"))
    def operation():
        return "done"

    assert operation() == "done"
    assert any(r.levelno == logging.WARNING and "Slow operation" in r.getMessage() for r in caplog.records)


@pytest.mark.unit
def test_bound_fields_and_masked_keys(caplog):
    caplog.set_level(logging.INFO, logger="realty_crm.tests")
    logger = get_structured_logger("realty_crm.tests").bind(tenant_id="tenant_alpha")

    logger.info("Broker registered", email="ana@imobiliaria.com.br", broker_id="b1")

    record = caplog.records[-1]
    assert record.tenant_id == "tenant_alpha"
    assert record.broker_id == "b1"
    assert record.email == "[REDACTED_EMAIL]"


@pytest.mark.unit
def test_bind_does_not_leak_into_parent():
    parent = get_structured_logger("realty_crm.tests")

    child = parent.bind(property_id="p1")

    assert child.context == {"property_id": "p1"}
    assert parent.context == {}


@pytest.mark.unit
def test_log_timing_marks_failures(caplog):
    caplog.set_level(logging.DEBUG, logger="realty_crm.tests")

    with pytest.raises(ValueError):
        with log_timing("failing.operation", logger=get_structured_logger("realty_crm.tests")):
            raise ValueError("boom")

    completed = next(r for r in caplog.records if r.getMessage() == "Completed failing.operation")
    assert completed.outcome == "error"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_timed_records_tenant_argument(caplog):
    caplog.set_level(logging.DEBUG, logger="realty_crm.tests")

    class Service:
        @timed("service.run", logger=get_structured_logger("realty_crm.tests"))
        async def run(self, tenant_id, property_id):
            return property_id

    assert await Service().run("tenant_alpha", "p1") == "p1"
    completed = next(r for r in caplog.records if r.getMessage() == "Completed service.run")
    assert completed.tenant_id == "tenant_alpha"
