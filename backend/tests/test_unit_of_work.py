"""Unit of work: compensations run newest-first on failure, and are skipped inside a transaction."""
import pytest
from contextlib import asynccontextmanager
from unittest.mock import patch

from invoicing.services.unit_of_work import UnitOfWork


@asynccontextmanager
async def _no_transaction():
    yield None


@asynccontextmanager
async def _fake_transaction():
    yield object()


@pytest.mark.asyncio
async def test_compensations_run_in_reverse_order():
    calls = []

    async def undo(name):
        calls.append(name)

    with patch("invoicing.services.unit_of_work.database.transaction", _no_transaction):
        with pytest.raises(RuntimeError):
            async with UnitOfWork("test") as uow:
                assert not uow.transactional
                uow.on_rollback("first", lambda: undo("first"))
                uow.on_rollback("second", lambda: undo("second"))
                raise RuntimeError("boom")

    assert calls == ["second", "first"]


@pytest.mark.asyncio
async def test_failing_compensation_does_not_hide_original_error():
    calls = []

    async def broken():
        raise ValueError("undo failed")

    async def ok():
        calls.append("ok")

    with patch("invoicing.services.unit_of_work.database.transaction", _no_transaction):
        with pytest.raises(RuntimeError, match="boom"):
            async with UnitOfWork("test") as uow:
                uow.on_rollback("ok", ok)
                uow.on_rollback("broken", broken)
                raise RuntimeError("boom")

    assert calls == ["ok"]


@pytest.mark.asyncio
async def test_success_runs_no_compensation():
    calls = []

    async def undo():
        calls.append("undo")

    with patch("invoicing.services.unit_of_work.database.transaction", _no_transaction):
        async with UnitOfWork("test") as uow:
            uow.on_rollback("undo", undo)

    assert calls == []


@pytest.mark.asyncio
async def test_transactional_unit_skips_compensations():
    calls = []

    async def undo():
        calls.append("undo")

    with patch("invoicing.services.unit_of_work.database.transaction", _fake_transaction):
        with pytest.raises(RuntimeError):
            async with UnitOfWork("test") as uow:
                assert uow.transactional
                uow.on_rollback("undo", undo)
                raise RuntimeError("boom")

    assert calls == []
