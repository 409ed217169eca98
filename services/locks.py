"""Таблица блокировок: не больше одного писателя на аукцион"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class AuctionLocks:
    """
    asyncio.Lock на каждый auction_id.

    Ставки, Buy Now и переходы планировщика по одному аукциону выполняются
    строго по очереди, разные аукционы друг друга не ждут. Замок удаляется из
    таблицы, когда его больше никто не держит и не ждет.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._holders: Dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, auction_id: int):
        lock = self._locks.get(auction_id)
        if lock is None:
            lock = self._locks[auction_id] = asyncio.Lock()
        self._holders[auction_id] = self._holders.get(auction_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[auction_id] -= 1
            if not self._holders[auction_id]:
                del self._holders[auction_id]
                del self._locks[auction_id]

    def is_locked(self, auction_id: int) -> bool:
        lock = self._locks.get(auction_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
