"""Планировщик жизненного цикла: старт и завершение аукционов"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from database.models.auction import Auction, AuctionStatus, SettlementStatus
from config import EngineConfig
from services import ledger
from services.auction import load_auction_for_update
from services.clock import Clock, as_utc, to_money, utc_now
from services.events import AuctionEvent, EventBus, EventType
from services.locks import AuctionLocks
from services.settlement import (
    NullSettlementGateway,
    SettlementGateway,
    SettlementRequest,
    calculate_success_fee,
    settle_auction,
)
import logging

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Итог одного прохода планировщика"""
    started: list[int] = field(default_factory=list)
    sold: list[int] = field(default_factory=list)
    ended_unsold: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.started) + len(self.sold) + len(self.ended_unsold)


class LifecycleScheduler:
    """
    Периодический проход по аукционам.

    upcoming -> live, когда наступил start_at; live -> sold/ended, когда
    прошел end_at. Каждый переход берет ту же блокировку аукциона, что и
    ставки. Повторный проход ничего не меняет, ошибка по одному аукциону
    не останавливает остальные.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        config: Optional[EngineConfig] = None,
        locks: Optional[AuctionLocks] = None,
        events: Optional[EventBus] = None,
        settlement: Optional[SettlementGateway] = None,
        clock: Optional[Clock] = None
    ):
        self.session_maker = session_maker
        self.config = config or EngineConfig()
        self.locks = locks or AuctionLocks()
        self.events = events or EventBus()
        self.settlement = settlement or NullSettlementGateway()
        self.clock = clock or utc_now

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Проверить и перевести аукционы, у которых наступило время"""
        now = now or self.clock()
        report = SweepReport()

        for auction_id in await self._due_ids(AuctionStatus.UPCOMING, Auction.start_at, now):
            try:
                if await self._start_auction(auction_id, now):
                    report.started.append(auction_id)
            except Exception as e:
                report.failed.append(auction_id)
                logger.error(f"Ошибка при запуске аукциона {auction_id}: {e!r}")

        for auction_id in await self._due_ids(AuctionStatus.LIVE, Auction.end_at, now):
            try:
                outcome = await self._close_auction(auction_id, now)
            except Exception as e:
                report.failed.append(auction_id)
                logger.error(f"Ошибка при завершении аукциона {auction_id}: {e!r}")
                continue
            if outcome == AuctionStatus.SOLD:
                report.sold.append(auction_id)
            elif outcome == AuctionStatus.ENDED:
                report.ended_unsold.append(auction_id)

        if report.changed or report.failed:
            logger.info(
                f"Проход планировщика: запущено {len(report.started)}, продано {len(report.sold)}, "
                f"без продажи {len(report.ended_unsold)}, ошибок {len(report.failed)}"
            )
        return report

    async def _due_ids(self, status: AuctionStatus, column, now: datetime) -> list[int]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Auction.id)
                .where(Auction.status == status.value, column <= now)
                .order_by(column.asc())
                .limit(self.config.sweep_batch_size)
            )
            return list(result.scalars().all())

    async def _start_auction(self, auction_id: int, now: datetime) -> bool:
        async with self.locks.hold(auction_id):
            async with self.session_maker() as session:
                auction = await load_auction_for_update(session, auction_id)
                # Уже запущен ставкой или другим проходом
                if not auction or auction.status != AuctionStatus.UPCOMING.value:
                    return False
                if as_utc(auction.start_at) > now:
                    return False
                auction.status = AuctionStatus.LIVE.value
                await session.commit()

        logger.info(f"Аукцион {auction_id} запущен")
        await self.events.publish(AuctionEvent(EventType.AUCTION_STARTED, auction_id, at=now))
        return True

    async def _close_auction(self, auction_id: int, now: datetime) -> Optional[AuctionStatus]:
        async with self.locks.hold(auction_id):
            async with self.session_maker() as session:
                auction = await load_auction_for_update(session, auction_id)
                if not auction or auction.status != AuctionStatus.LIVE.value:
                    return None
                # Продлен антиснайпингом после выборки
                if as_utc(auction.end_at) > now:
                    return None
                outcome, request = await self._finish(session, auction, now)
                await session.commit()

        events = [AuctionEvent(
            EventType.AUCTION_ENDED, auction_id,
            user_id=request.winner_id if request else None,
            amount=request.final_amount if request else None,
            at=now,
        )]
        if request:
            logger.info(f"Аукцион {auction_id} завершен. Победитель: {request.winner_id}, сумма {request.final_amount}")
            events.append(AuctionEvent(
                EventType.AUCTION_WON, auction_id,
                user_id=request.winner_id, amount=request.final_amount, at=now,
            ))
        else:
            logger.info(f"Аукцион {auction_id} завершен без продажи")
        await self.events.publish_all(events)

        if request:
            await settle_auction(self.session_maker, self.settlement, request)
        return outcome

    async def _finish(
        self,
        session: AsyncSession,
        auction: Auction,
        now: datetime
    ) -> tuple[AuctionStatus, Optional[SettlementRequest]]:
        """Определить победителя по журналу и записать итог"""
        winning_bid = await ledger.get_highest_bid(session, auction.id)
        auction.ended_at = now

        reserve = to_money(auction.reserve_price)
        if not winning_bid or (reserve is not None and to_money(winning_bid.amount) < reserve):
            auction.status = AuctionStatus.ENDED.value
            return AuctionStatus.ENDED, None

        final_amount = to_money(winning_bid.amount)
        auction.status = AuctionStatus.SOLD.value
        auction.winner_id = winning_bid.user_id
        auction.final_amount = final_amount
        auction.settlement_status = SettlementStatus.PENDING.value
        return AuctionStatus.SOLD, SettlementRequest(
            auction_id=auction.id,
            winner_id=winning_bid.user_id,
            final_amount=final_amount,
            currency=auction.currency,
            fee_amount=calculate_success_fee(final_amount, self.config),
        )


async def scheduler_loop(scheduler: LifecycleScheduler, interval: float = 60):
    """Основной цикл планировщика"""
    while True:
        try:
            await scheduler.sweep()
        except Exception as e:
            logger.error(f"Ошибка в планировщике: {e!r}")

        await asyncio.sleep(interval)


def start_scheduler(scheduler: LifecycleScheduler, interval: float = 60) -> asyncio.Task:
    """Запустить планировщик"""
    task = asyncio.create_task(scheduler_loop(scheduler, interval))
    logger.info("Планировщик аукционов запущен")
    return task
