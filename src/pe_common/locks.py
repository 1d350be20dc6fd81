"""In-process per-user lock table.

Every balance mutation runs under the lock of each user it touches. Locks are
always taken in sorted user-id order so two transfers in opposite directions
cannot deadlock. Entries are reference counted and dropped when idle, so the
table only holds users with in-flight work.

Multi-instance deployments are still serialized by the row locks taken in the
repositories; this table removes same-process contention before it reaches
the database.
"""

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class UserLockTable:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = defaultdict(int)

    @staticmethod
    def lock_order(user_ids: tuple[str, ...] | list[str]) -> list[str]:
        return sorted(set(user_ids))

    @asynccontextmanager
    async def acquire(self, *user_ids: str) -> AsyncIterator[None]:
        ordered = self.lock_order(user_ids)
        for uid in ordered:
            self._refs[uid] += 1
            if uid not in self._locks:
                self._locks[uid] = asyncio.Lock()

        held: list[str] = []
        try:
            for uid in ordered:
                await self._locks[uid].acquire()
                held.append(uid)
            yield
        finally:
            for uid in reversed(held):
                self._locks[uid].release()
            for uid in ordered:
                self._refs[uid] -= 1
                if self._refs[uid] == 0:
                    del self._refs[uid]
                    del self._locks[uid]

    def is_locked(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


_default_table: UserLockTable | None = None


def get_user_locks() -> UserLockTable:
    global _default_table  # noqa: PLW0603
    if _default_table is None:
        _default_table = UserLockTable()
    return _default_table
