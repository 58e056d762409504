"""Tests for DetailStore: encrypted line items, attempts and statistics."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from token_custody.engine.client import CustodyEngine
from token_custody.engine.models.batch_detail import MAX_ERROR_LENGTH, BatchDetail
from token_custody.engine.services import detail_store as detail_store_module
from token_custody.engine.services.detail_store import (
    DetailQuery,
    DetailResult,
    RecipientItem,
    SentFilter,
    truncate_error,
)
from token_custody.engine.services.request_store import BatchLabels
from token_custody.errors.custody_errors import ConflictError, NotFoundError, ValidationError
from token_custody.ledger.keys import Keypair


def _recipients(count: int, amount: str = "1.5") -> list[RecipientItem]:
    return [RecipientItem(Keypair.generate().address, Decimal(amount)) for _ in range(count)]


async def _new_batch(engine: CustodyEngine, count: int = 3) -> tuple[str, list[RecipientItem]]:
    batch_id = str(uuid.uuid4())
    items = _recipients(count)
    await engine.request_store.create_batch(batch_id, BatchLabels(), count)
    await engine.detail_store.insert_details(batch_id, items)
    return batch_id, items


async def _detail_ids(engine: CustodyEngine, batch_id: str) -> list[int]:
    return [d.id for d in await engine.detail_store.get_all_details(batch_id)]


class TestInsertDetails:
    async def test_insert_encrypts_addresses(self, engine: CustodyEngine) -> None:
        batch_id, items = await _new_batch(engine, 2)

        async with engine.datastore.session() as session:
            rows = (
                (await session.execute(select(BatchDetail).order_by(BatchDetail.id)))
                .scalars()
                .all()
            )
        assert len(rows) == 2
        for row, item in zip(rows, items, strict=True):
            assert item.address not in row.wallet_address
            assert engine.cipher.decrypt(row.wallet_address) == item.address
            assert row.attempt_count == 0
            assert row.sent == "N"
            assert row.amount == Decimal("1.5")

    async def test_invalid_address_writes_nothing(self, engine: CustodyEngine) -> None:
        batch_id = str(uuid.uuid4())
        await engine.request_store.create_batch(batch_id, BatchLabels(), 3)
        items = [*_recipients(2), RecipientItem("0OIl-not-base58", Decimal(1))]

        with pytest.raises(ValidationError) as exc_info:
            await engine.detail_store.insert_details(batch_id, items)
        assert exc_info.value.code == "invalid-address"
        assert await engine.detail_store.get_all_details(batch_id) == []

    @pytest.mark.parametrize("amount", ["0", "-1", "0.0000000001", "NaN"])
    async def test_invalid_amount(self, engine: CustodyEngine, amount: str) -> None:
        batch_id = str(uuid.uuid4())
        await engine.request_store.create_batch(batch_id, BatchLabels(), 1)
        items = [RecipientItem(Keypair.generate().address, Decimal(amount))]
        with pytest.raises(ValidationError):
            await engine.detail_store.insert_details(batch_id, items)

    async def test_missing_batch(self, engine: CustodyEngine) -> None:
        with pytest.raises(NotFoundError):
            await engine.detail_store.insert_details(str(uuid.uuid4()), _recipients(1))

    async def test_empty_list(self, engine: CustodyEngine) -> None:
        batch_id = str(uuid.uuid4())
        await engine.request_store.create_batch(batch_id, BatchLabels(), 1)
        with pytest.raises(ValidationError):
            await engine.detail_store.insert_details(batch_id, [])

    async def test_chunked_insert(
        self, engine: CustodyEngine, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(detail_store_module, "BULK_INSERT_LIMIT", 2)
        batch_id = str(uuid.uuid4())
        await engine.request_store.create_batch(batch_id, BatchLabels(), 5)

        assert await engine.detail_store.insert_details(batch_id, _recipients(5)) == 5
        assert len(await engine.detail_store.get_all_details(batch_id)) == 5


class TestUpdateResult:
    async def test_success_marks_sent(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 1)
        (detail_id,) = await _detail_ids(engine, batch_id)

        await engine.detail_store.update_result(detail_id, DetailResult.ok())

        (view,) = await engine.detail_store.get_all_details(batch_id)
        assert view.sent == "Y"
        assert view.attempt_count == 1
        assert view.last_result_code == "200"
        assert view.last_error_message is None

    async def test_failure_keeps_unsent(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 1)
        (detail_id,) = await _detail_ids(engine, batch_id)

        await engine.detail_store.update_result(detail_id, DetailResult.failed("node down"))

        (view,) = await engine.detail_store.get_all_details(batch_id)
        assert view.sent == "N"
        assert view.attempt_count == 1
        assert view.last_result_code == "500"
        assert view.last_error_message == "node down"

    async def test_sent_item_is_final(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 1)
        (detail_id,) = await _detail_ids(engine, batch_id)
        await engine.detail_store.update_result(detail_id, DetailResult.ok())

        with pytest.raises(ConflictError):
            await engine.detail_store.update_result(detail_id, DetailResult.failed("late"))
        (view,) = await engine.detail_store.get_all_details(batch_id)
        assert view.sent == "Y"
        assert view.attempt_count == 1

    async def test_exhausted_item_is_final(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 1)
        (detail_id,) = await _detail_ids(engine, batch_id)
        for _ in range(engine.detail_store.max_retry):
            await engine.detail_store.update_result(detail_id, DetailResult.failed("no"))

        with pytest.raises(ConflictError):
            await engine.detail_store.update_result(detail_id, DetailResult.ok())
        (view,) = await engine.detail_store.get_all_details(batch_id)
        assert view.attempt_count == engine.detail_store.max_retry
        assert view.sent == "N"

    async def test_unknown_detail(self, engine: CustodyEngine) -> None:
        with pytest.raises(NotFoundError):
            await engine.detail_store.update_result(999_999, DetailResult.ok())

    async def test_long_error_truncated(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 1)
        (detail_id,) = await _detail_ids(engine, batch_id)
        await engine.detail_store.update_result(detail_id, DetailResult.failed("x" * 5000))

        (view,) = await engine.detail_store.get_all_details(batch_id)
        assert view.last_error_message is not None
        assert len(view.last_error_message) == MAX_ERROR_LENGTH
        assert view.last_error_message.endswith("...")

    def test_truncate_error(self) -> None:
        assert truncate_error(None) is None
        assert truncate_error("short") == "short"


class TestUpdateResultsBatch:
    async def test_all_applied(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 2)
        first, second = await _detail_ids(engine, batch_id)

        count = await engine.detail_store.update_results_batch(
            [(first, DetailResult.ok()), (second, DetailResult.failed("boom"))]
        )

        assert count == 2
        stats = await engine.detail_store.get_stats(batch_id)
        assert stats.completed == 1
        assert stats.retryable == 1

    async def test_rolls_back_on_unknown_id(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 1)
        (detail_id,) = await _detail_ids(engine, batch_id)

        with pytest.raises(NotFoundError):
            await engine.detail_store.update_results_batch(
                [(detail_id, DetailResult.ok()), (999_999, DetailResult.ok())]
            )
        (view,) = await engine.detail_store.get_all_details(batch_id)
        assert view.attempt_count == 0

    async def test_empty(self, engine: CustodyEngine) -> None:
        assert await engine.detail_store.update_results_batch([]) == 0


class TestSelection:
    async def test_pending_in_insertion_order(self, engine: CustodyEngine) -> None:
        batch_id, items = await _new_batch(engine, 3)
        pending = await engine.detail_store.list_pending(batch_id)
        assert [p.address for p in pending] == [i.address for i in items]
        assert all(p.attempt_count == 0 for p in pending)

        assert len(await engine.detail_store.list_pending(batch_id, 2)) == 2

    async def test_retryable_longest_waiting_first(self, engine: CustodyEngine) -> None:
        batch_id, items = await _new_batch(engine, 3)
        first, second, third = await _detail_ids(engine, batch_id)
        await engine.detail_store.update_result(second, DetailResult.failed("a"))
        await engine.detail_store.update_result(first, DetailResult.failed("b"))
        await engine.detail_store.update_result(third, DetailResult.ok())

        retryable = await engine.detail_store.list_retryable(batch_id)
        assert [r.id for r in retryable] == [second, first]
        assert retryable[0].address == items[1].address
        assert await engine.detail_store.list_pending(batch_id) == []

    async def test_exhausted_not_retryable(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 1)
        (detail_id,) = await _detail_ids(engine, batch_id)
        for _ in range(engine.detail_store.max_retry):
            await engine.detail_store.update_result(detail_id, DetailResult.failed("no"))
        assert await engine.detail_store.list_retryable(batch_id) == []

    @pytest.mark.parametrize("limit", [0, 10_001, -5, True])
    async def test_invalid_limit(self, engine: CustodyEngine, limit: int) -> None:
        batch_id, _ = await _new_batch(engine, 1)
        with pytest.raises(ValidationError):
            await engine.detail_store.list_pending(batch_id, limit)
        with pytest.raises(ValidationError):
            await engine.detail_store.list_retryable(batch_id, limit)


class TestGetAllDetails:
    async def test_decrypt_toggle(self, engine: CustodyEngine) -> None:
        batch_id, items = await _new_batch(engine, 2)

        decrypted = await engine.detail_store.get_all_details(batch_id)
        assert [d.address for d in decrypted] == [i.address for i in items]

        hidden = await engine.detail_store.get_all_details(batch_id, DetailQuery(decrypt=False))
        assert all(d.address is None and not d.decryption_error for d in hidden)

    async def test_undecryptable_row_reported(self, engine: CustodyEngine) -> None:
        batch_id, items = await _new_batch(engine, 2)
        first, _ = await _detail_ids(engine, batch_id)
        async with engine.datastore.transaction() as session:
            await session.execute(
                update(BatchDetail)
                .where(BatchDetail.id == first)
                .values(wallet_address="garbage")
                .execution_options(synchronize_session=False)
            )

        views = await engine.detail_store.get_all_details(batch_id)
        assert views[0].address is None
        assert views[0].decryption_error is True
        assert views[1].address == items[1].address
        assert views[1].decryption_error is False

    async def test_sent_filter_and_paging(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 4)
        ids = await _detail_ids(engine, batch_id)
        await engine.detail_store.update_result(ids[0], DetailResult.ok())

        sent = await engine.detail_store.get_all_details(
            batch_id, DetailQuery(sent_filter=SentFilter.SENT)
        )
        assert [d.id for d in sent] == [ids[0]]

        unsent = await engine.detail_store.get_all_details(
            batch_id, DetailQuery(sent_filter=SentFilter.UNSENT, limit=2, offset=1)
        )
        assert [d.id for d in unsent] == ids[2:4]

    async def test_unknown_batch_is_empty(self, engine: CustodyEngine) -> None:
        assert await engine.detail_store.get_all_details(str(uuid.uuid4())) == []


class TestGetStats:
    async def test_counts(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 4)
        ids = await _detail_ids(engine, batch_id)
        await engine.detail_store.update_result(ids[0], DetailResult.ok())
        await engine.detail_store.update_result(ids[1], DetailResult.failed("x"))
        for _ in range(engine.detail_store.max_retry):
            await engine.detail_store.update_result(ids[2], DetailResult.failed("y"))

        stats = await engine.detail_store.get_stats(batch_id)
        assert stats.total == 4
        assert stats.completed == 1
        assert stats.retryable == 1
        assert stats.failed == 1
        assert stats.pending == 1
        assert stats.success_rate == 25.0

    async def test_missing_batch(self, engine: CustodyEngine) -> None:
        with pytest.raises(NotFoundError):
            await engine.detail_store.get_stats(str(uuid.uuid4()))

    async def test_row_count_matches_total(self, engine: CustodyEngine) -> None:
        batch_id, _ = await _new_batch(engine, 3)
        async with engine.datastore.session() as session:
            count = await session.scalar(
                select(func.count()).select_from(BatchDetail).where(BatchDetail.batch_id == batch_id)
            )
        batch = await engine.request_store.get_batch(batch_id)
        assert batch is not None
        assert count == batch.total_count
