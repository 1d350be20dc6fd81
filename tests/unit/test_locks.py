"""Unit tests for the per-user lock table."""

import asyncio

import pytest

from src.pe_common.locks import UserLockTable


class TestLockOrder:
    def test_sorted_and_deduplicated(self) -> None:
        assert UserLockTable.lock_order(("b", "a", "b", "c")) == ["a", "b", "c"]

    def test_empty(self) -> None:
        assert UserLockTable.lock_order(()) == []


class TestAcquire:
    async def test_holds_locks_inside_block(self) -> None:
        table = UserLockTable()
        async with table.acquire("u1", "u2"):
            assert table.is_locked("u1")
            assert table.is_locked("u2")
        assert not table.is_locked("u1")
        assert not table.is_locked("u2")

    async def test_idle_entries_are_dropped(self) -> None:
        table = UserLockTable()
        async with table.acquire("u1"):
            assert len(table) == 1
        assert len(table) == 0

    async def test_released_on_exception(self) -> None:
        table = UserLockTable()
        with pytest.raises(RuntimeError):
            async with table.acquire("u1"):
                raise RuntimeError("boom")
        assert not table.is_locked("u1")
        assert len(table) == 0

    async def test_same_user_is_serialized(self) -> None:
        table = UserLockTable()
        order: list[str] = []
        first_inside = asyncio.Event()

        async def first() -> None:
            async with table.acquire("u1"):
                first_inside.set()
                order.append("first:start")
                await asyncio.sleep(0.01)
                order.append("first:end")

        async def second() -> None:
            await first_inside.wait()
            async with table.acquire("u1"):
                order.append("second")

        await asyncio.gather(first(), second())
        assert order == ["first:start", "first:end", "second"]

    async def test_different_users_do_not_block(self) -> None:
        table = UserLockTable()
        async with table.acquire("u1"):
            async with table.acquire("u2"):
                assert table.is_locked("u1") and table.is_locked("u2")

    async def test_opposite_order_does_not_deadlock(self) -> None:
        table = UserLockTable()
        done: list[str] = []

        async def worker(name: str, *ids: str) -> None:
            for _ in range(20):
                async with table.acquire(*ids):
                    await asyncio.sleep(0)
            done.append(name)

        await asyncio.wait_for(
            asyncio.gather(worker("ab", "a", "b"), worker("ba", "b", "a")), timeout=2
        )
        assert sorted(done) == ["ab", "ba"]
        assert len(table) == 0
