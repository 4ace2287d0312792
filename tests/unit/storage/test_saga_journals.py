"""
Tests for the saga journal backends.
"""

import asyncio
from datetime import UTC, datetime
from decimal import Decimal

import pytest
import pytest_asyncio

from ordersaga.core.types import SagaStatus, SagaStepStatus
from ordersaga.storage.base import SagaJournalError, apply_step_update
from ordersaga.storage.memory import InMemorySagaJournal
from ordersaga.storage.sqlite import SQLiteSagaJournal


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def journal(request):
    journal = InMemorySagaJournal() if request.param == "memory" else SQLiteSagaJournal()
    async with journal:
        yield journal


async def save(journal, saga_id="cancel-1", name="CancelOrder", status=SagaStatus.EXECUTING):
    await journal.save_saga_state(
        saga_id=saga_id,
        saga_name=name,
        status=status,
        steps=[],
        context={"order_id": 1, "refund_key": "k-1"},
    )


@pytest.mark.asyncio
class TestSagaJournal:
    """Behaviour every journal backend must share."""

    async def test_save_and_load(self, journal):
        await save(journal)

        entry = await journal.load_saga_state("cancel-1")

        assert entry["saga_id"] == "cancel-1"
        assert entry["saga_name"] == "CancelOrder"
        assert entry["status"] == "executing"
        assert entry["context"] == {"order_id": 1, "refund_key": "k-1"}
        assert entry["steps"] == []
        assert entry["metadata"] == {}

    async def test_load_missing(self, journal):
        assert await journal.load_saga_state("nope") is None

    async def test_overwrite_keeps_created_at(self, journal):
        await save(journal)
        created = (await journal.load_saga_state("cancel-1"))["created_at"]
        await save(journal, status=SagaStatus.COMPLETED)

        entry = await journal.load_saga_state("cancel-1")
        assert entry["status"] == "completed"
        assert entry["created_at"] == created

    async def test_update_step_appends_then_updates(self, journal):
        await save(journal)
        now = datetime.now(UTC)

        await journal.update_step_state("cancel-1", "refund", SagaStepStatus.EXECUTING)
        await journal.update_step_state(
            "cancel-1", "refund", SagaStepStatus.COMPLETED, {"refund_id": "ref_1"}, None, now
        )

        steps = (await journal.load_saga_state("cancel-1"))["steps"]
        assert len(steps) == 1
        assert steps[0]["name"] == "refund"
        assert steps[0]["status"] == "completed"
        assert steps[0]["result"] == {"refund_id": "ref_1"}
        assert steps[0]["executed_at"] == now.isoformat()

    async def test_update_step_of_missing_saga(self, journal):
        with pytest.raises(SagaJournalError, match="not found"):
            await journal.update_step_state("nope", "refund", SagaStepStatus.FAILED)

    async def test_decimal_results_are_storable(self, journal):
        await save(journal)
        await journal.update_step_state(
            "cancel-1", "attach_items", SagaStepStatus.COMPLETED, {"total": Decimal("9.99")}
        )
        steps = (await journal.load_saga_state("cancel-1"))["steps"]
        assert str(steps[0]["result"]["total"]) == "9.99"

    async def test_list_and_filter(self, journal):
        await save(journal, "create-a", "CreateOrder", SagaStatus.COMPLETED)
        await asyncio.sleep(0.001)
        await save(journal, "cancel-2", "CancelOrder", SagaStatus.FAILED)
        await asyncio.sleep(0.001)
        await save(journal, "create-b", "CreateOrder", SagaStatus.ROLLED_BACK)

        everything = await journal.list_sagas()
        assert [s["saga_id"] for s in everything] == ["create-b", "cancel-2", "create-a"]

        creates = await journal.list_sagas(saga_name="create")
        assert {s["saga_id"] for s in creates} == {"create-a", "create-b"}

        failed = await journal.list_sagas(status=SagaStatus.FAILED)
        assert [s["saga_id"] for s in failed] == ["cancel-2"]

        assert len(await journal.list_sagas(limit=1, offset=1)) == 1

    async def test_summary_counts_completed_steps(self, journal):
        await save(journal)
        await journal.update_step_state("cancel-1", "refund", SagaStepStatus.COMPLETED)
        await journal.update_step_state("cancel-1", "release:0:P-1", SagaStepStatus.FAILED)

        [summary] = await journal.list_sagas()
        assert summary["step_count"] == 2
        assert summary["completed_steps"] == 1

    async def test_delete(self, journal):
        await save(journal)
        assert await journal.delete_saga_state("cancel-1")
        assert not await journal.delete_saga_state("cancel-1")
        assert await journal.load_saga_state("cancel-1") is None

    async def test_health_check(self, journal):
        assert (await journal.health_check())["status"] == "healthy"


class TestApplyStepUpdate:
    def test_appends_missing_step(self):
        steps = []
        apply_step_update(steps, "charge", SagaStepStatus.EXECUTING, None, None, None)
        assert steps == [{"name": "charge", "status": "executing", "result": None, "error": None}]

    def test_updates_existing_step(self):
        steps = [{"name": "charge", "status": "executing"}]
        apply_step_update(steps, "charge", SagaStepStatus.FAILED, None, "declined", None)
        assert steps[0]["status"] == "failed"
        assert steps[0]["error"] == "declined"


@pytest.mark.asyncio
class TestInMemorySagaJournal:
    async def test_loaded_entries_are_copies(self):
        journal = InMemorySagaJournal()
        await save(journal)
        entry = await journal.load_saga_state("cancel-1")
        entry["context"]["refund_key"] = "tampered"
        assert (await journal.load_saga_state("cancel-1"))["context"]["refund_key"] == "k-1"
        assert journal.get_saga_count() == 1
