"""Сервис для работы с аукционами: ставки, Buy Now, создание лотов"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from database.models.auction import Auction, AuctionStatus, AuctionVisibility, SettlementStatus
from database.models.user import User, GroupMember
from config import EngineConfig
from services import ledger
from services.clock import CENT, Clock, as_utc, to_decimal, to_money, utc_now
from services.errors import (
    BiddingError,
    InvalidAuction,
    AuctionNotLive,
    AuctionEnded,
    Unauthorized,
    SellerCannotBid,
    AlreadyHighestBidder,
    BidExceedsLimit,
    BuyNowUnavailable,
    InvalidAmount,
    StorageError,
)
from services.events import AuctionEvent, EventBus, EventType
from services.locks import AuctionLocks
from services.proxy import AuctionSnapshot, IncomingBid, resolve_bid
from services.settlement import (
    NullSettlementGateway,
    SettlementGateway,
    SettlementRequest,
    calculate_success_fee,
    settle_auction,
)
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BidResult:
    """Ответ на принятую ставку"""
    auction_id: int
    bid_id: int
    amount: Decimal
    current_highest: Decimal
    current_highest_bidder: int
    end_at: datetime
    extended: bool = False
    reserve_met: bool = True

    def as_dict(self) -> dict:
        return {
            "auction_id": self.auction_id,
            "bid_id": self.bid_id,
            "amount": str(self.amount),
            "current_highest": str(self.current_highest),
            "current_highest_bidder": self.current_highest_bidder,
            "end_at": self.end_at.isoformat(),
            "extended": self.extended,
            "reserve_met": self.reserve_met,
        }


@dataclass(frozen=True)
class BuyNowResult:
    auction_id: int
    user_id: int
    price: Decimal
    payment_url: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "auction_id": self.auction_id,
            "user_id": self.user_id,
            "final_price": str(self.price),
            "payment_url": self.payment_url,
        }


def parse_bid_amount(value) -> Optional[Decimal]:
    """
    Сумма ставки от участника, без округления.

    Raises:
        InvalidAmount: не число, не конечное число или точнее копейки
    """
    if value is None:
        return None
    try:
        amount = to_decimal(value)
        if not amount.is_finite() or amount != amount.quantize(CENT):
            raise InvalidAmount()
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount()
    return amount.quantize(CENT)


async def create_auction(
    session: AsyncSession,
    seller_id: int,
    start_price,
    end_at: datetime,
    start_at: Optional[datetime] = None,
    min_increment="1.00",
    title: str = "",
    reserve_price=None,
    buy_now_price=None,
    currency: str = "USD",
    visibility: str = AuctionVisibility.PUBLIC.value,
    group_id: Optional[int] = None,
    proxy_enabled: bool = False,
    publish: bool = True,
    now: Optional[datetime] = None
) -> Auction:
    """Создать аукцион (черновик или опубликованный)"""
    now = now or utc_now()
    start_price = to_money(start_price)
    min_increment = to_money(min_increment)
    reserve_price = to_money(reserve_price)
    buy_now_price = to_money(buy_now_price)
    start_at = as_utc(start_at) or now
    end_at = as_utc(end_at)

    if start_price is None or start_price <= 0:
        raise ValueError("Начальная цена должна быть больше нуля")
    if min_increment is None or min_increment <= 0:
        raise ValueError("Шаг ставки должен быть больше нуля")
    if end_at <= start_at:
        raise ValueError("Время окончания должно быть позже начала")
    if reserve_price is not None and reserve_price < start_price:
        raise ValueError("Резервная цена не может быть ниже начальной")
    if buy_now_price is not None and buy_now_price <= start_price:
        raise ValueError("Цена Buy Now должна быть выше начальной")
    if visibility == AuctionVisibility.GROUP_ONLY.value and not group_id:
        raise ValueError("Для аукциона только для группы нужен group_id")

    auction = Auction(
        seller_id=seller_id,
        title=title,
        start_price=start_price,
        min_increment=min_increment,
        reserve_price=reserve_price,
        buy_now_price=buy_now_price,
        currency=currency.upper(),
        start_at=start_at,
        end_at=end_at,
        status=AuctionStatus.UPCOMING.value if publish else AuctionStatus.DRAFT.value,
        visibility=visibility,
        group_id=group_id,
        proxy_enabled=proxy_enabled,
        current_price=start_price,
        current_leader_id=None,
        bid_count=0,
        bought_via_buy_now=False,
        settlement_status=SettlementStatus.NONE.value,
    )
    session.add(auction)
    await session.commit()
    await session.refresh(auction)
    return auction


async def publish_auction(session: AsyncSession, auction_id: int) -> Auction:
    """Опубликовать черновик: draft -> upcoming"""
    auction = await get_auction(session, auction_id)
    if not auction:
        raise ValueError("Аукцион не найден")
    if auction.status != AuctionStatus.DRAFT.value:
        raise ValueError("Опубликовать можно только черновик")

    auction.status = AuctionStatus.UPCOMING.value
    await session.commit()
    await session.refresh(auction)
    return auction


async def get_auction(session: AsyncSession, auction_id: int) -> Optional[Auction]:
    result = await session.execute(
        select(Auction).where(Auction.id == auction_id)
    )
    return result.scalar_one_or_none()


async def load_auction_for_update(session: AsyncSession, auction_id: int) -> Optional[Auction]:
    """Свежее состояние аукциона с блокировкой строки (FOR UPDATE там, где он есть)"""
    result = await session.execute(
        select(Auction)
        .where(Auction.id == auction_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


class AuctionEngine:
    """
    Прием ставок и Buy Now.

    Проверка, разбор автоставок, запись в журнал и обновление состояния
    аукциона выполняются одной транзакцией под блокировкой аукциона. События
    и вызов платежного провайдера идут после снятия блокировки.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        config: Optional[EngineConfig] = None,
        events: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
        locks: Optional[AuctionLocks] = None,
        settlement: Optional[SettlementGateway] = None
    ):
        self.session_maker = session_maker
        self.config = config or EngineConfig()
        self.events = events or EventBus()
        self.clock = clock or utc_now
        self.locks = locks or AuctionLocks()
        self.settlement = settlement or NullSettlementGateway()

    async def place_bid(
        self,
        auction_id: int,
        user_id: int,
        amount,
        max_proxy_amount=None
    ) -> BidResult:
        """
        Сделать ставку.

        Raises:
            BiddingError: одна из ошибок проверки, BidTooLow или StorageError
        """
        async with self.locks.hold(auction_id):
            async with self.session_maker() as session:
                try:
                    result, events = await self._place_bid_locked(
                        session, auction_id, user_id, amount, max_proxy_amount
                    )
                    await session.commit()
                except BiddingError as e:
                    await session.rollback()
                    logger.debug(f"Ставка на аукцион {auction_id} отклонена: {e.code}")
                    raise
                except SQLAlchemyError as e:
                    await session.rollback()
                    logger.error(f"Ошибка записи ставки на аукцион {auction_id}: {e}")
                    raise StorageError() from e

        logger.info(
            f"Ставка {result.amount} на аукцион {auction_id} принята. "
            f"Цена: {result.current_highest}, лидер: {result.current_highest_bidder}"
        )
        await self.events.publish_all(events)
        return result

    async def _place_bid_locked(
        self,
        session: AsyncSession,
        auction_id: int,
        user_id: int,
        amount,
        max_proxy_amount
    ) -> tuple[BidResult, list[AuctionEvent]]:
        now = self.clock()
        events: list[AuctionEvent] = []

        auction = await load_auction_for_update(session, auction_id)
        if not auction:
            raise InvalidAuction()

        if self._ensure_live(auction, now):
            events.append(AuctionEvent(EventType.AUCTION_STARTED, auction.id, at=now))
        await self._ensure_can_bid(session, auction, user_id)

        if self.config.prevent_duplicate_highest and auction.current_leader_id == user_id:
            raise AlreadyHighestBidder()

        amount = parse_bid_amount(amount)
        max_proxy_amount = parse_bid_amount(max_proxy_amount)
        if amount is None:
            raise InvalidAmount()
        limit = self.config.max_bid_limit
        if limit is not None and limit > 0:
            if amount > limit or (max_proxy_amount is not None and max_proxy_amount > limit):
                raise BidExceedsLimit(f"Максимальная ставка: {to_money(limit)}")

        snapshot = AuctionSnapshot(
            start_price=to_money(auction.start_price),
            min_increment=to_money(auction.min_increment),
            current_price=to_money(auction.current_price),
            current_leader_id=auction.current_leader_id,
            reserve_price=to_money(auction.reserve_price),
            proxy_enabled=auction.proxy_enabled,
        )
        proxies = []
        registered_id = None
        if auction.proxy_enabled:
            proxies = await ledger.get_outstanding_proxies(session, auction.id, snapshot.current_price)
            own = next((entry for entry in proxies if entry.user_id == user_id), None)
            proxies = [entry for entry in proxies if entry.user_id != user_id]
            if own is not None:
                # Ставка без потолка не отменяет действующую автоставку участника
                if max_proxy_amount is None and own.max_proxy_amount > amount:
                    max_proxy_amount = own.max_proxy_amount
                if max_proxy_amount == own.max_proxy_amount:
                    registered_id = own.registered_id
        resolution = resolve_bid(
            snapshot,
            IncomingBid(user_id, amount, max_proxy_amount, registered_id),
            proxies,
            self.config.proxy_tie_break,
        )

        incoming_bid_id = None
        for step in resolution.steps:
            bid = await ledger.append_bid(
                session,
                auction.id,
                step.user_id,
                step.amount,
                created_at=now,
                max_proxy_amount=step.max_proxy_amount,
                is_proxy=step.is_proxy,
            )
            if not step.is_proxy and step.user_id == user_id:
                incoming_bid_id = bid.id
            events.append(AuctionEvent(
                EventType.BID_PLACED,
                auction.id,
                user_id=step.user_id,
                amount=step.amount,
                is_proxy=step.is_proxy,
                at=now,
                extra={"bid_id": bid.id},
            ))

        previous_leader_id = auction.current_leader_id
        auction.current_price = resolution.price
        auction.current_leader_id = resolution.leader_id
        auction.bid_count = (auction.bid_count or 0) + len(resolution.steps)
        extended = self._maybe_extend(auction, now)
        await session.flush()

        displaced = []
        if previous_leader_id is not None and previous_leader_id != resolution.leader_id:
            displaced.append(previous_leader_id)
        # Ставку сразу перебила автоставка соперника
        if user_id != resolution.leader_id and user_id not in displaced:
            displaced.append(user_id)
        for outbid_user_id in displaced:
            events.append(AuctionEvent(
                EventType.BID_OUTBID,
                auction.id,
                user_id=outbid_user_id,
                amount=resolution.price,
                by_user_id=resolution.leader_id,
                at=now,
            ))
        if extended:
            events.append(AuctionEvent(
                EventType.AUCTION_EXTENDED,
                auction.id,
                at=now,
                extra={"end_at": as_utc(auction.end_at).isoformat()},
            ))

        result = BidResult(
            auction_id=auction.id,
            bid_id=incoming_bid_id,
            amount=amount,
            current_highest=resolution.price,
            current_highest_bidder=resolution.leader_id,
            end_at=as_utc(auction.end_at),
            extended=extended,
            reserve_met=resolution.reserve_met,
        )
        return result, events

    async def buy_now(self, auction_id: int, user_id: int) -> BuyNowResult:
        """Купить лот по цене Buy Now и сразу завершить аукцион"""
        async with self.locks.hold(auction_id):
            async with self.session_maker() as session:
                try:
                    auction, events = await self._buy_now_locked(session, auction_id, user_id)
                    await session.commit()
                except BiddingError as e:
                    await session.rollback()
                    logger.debug(f"Buy Now для аукциона {auction_id} отклонен: {e.code}")
                    raise
                except SQLAlchemyError as e:
                    await session.rollback()
                    logger.error(f"Ошибка записи Buy Now для аукциона {auction_id}: {e}")
                    raise StorageError() from e

        price = to_money(auction.final_amount)
        logger.info(f"Аукцион {auction_id} выкуплен пользователем {user_id} за {price}")
        await self.events.publish_all(events)

        settlement = await settle_auction(
            self.session_maker,
            self.settlement,
            SettlementRequest(
                auction_id=auction_id,
                winner_id=user_id,
                final_amount=price,
                currency=auction.currency,
                via_buy_now=True,
                fee_amount=calculate_success_fee(price, self.config),
            ),
        )
        return BuyNowResult(
            auction_id=auction_id,
            user_id=user_id,
            price=price,
            payment_url=settlement.payment_url if settlement.success else None,
        )

    async def _buy_now_locked(
        self,
        session: AsyncSession,
        auction_id: int,
        user_id: int
    ) -> tuple[Auction, list[AuctionEvent]]:
        now = self.clock()
        events: list[AuctionEvent] = []

        auction = await load_auction_for_update(session, auction_id)
        if not auction:
            raise InvalidAuction()
        if self._ensure_live(auction, now):
            events.append(AuctionEvent(EventType.AUCTION_STARTED, auction.id, at=now))
        await self._ensure_can_bid(session, auction, user_id)
        if not self._buy_now_available(auction):
            raise BuyNowUnavailable()

        price = to_money(auction.buy_now_price)
        bid = await ledger.append_bid(session, auction.id, user_id, price, created_at=now)

        previous_leader_id = auction.current_leader_id
        auction.current_price = price
        auction.current_leader_id = user_id
        auction.bid_count = (auction.bid_count or 0) + 1
        auction.bought_via_buy_now = True
        auction.status = AuctionStatus.SOLD.value
        auction.winner_id = user_id
        auction.final_amount = price
        auction.ended_at = now
        auction.settlement_status = SettlementStatus.PENDING.value
        await session.flush()

        events.append(AuctionEvent(
            EventType.BUY_NOW_COMPLETED, auction.id, user_id=user_id, amount=price, at=now,
            extra={"bid_id": bid.id},
        ))
        if previous_leader_id is not None and previous_leader_id != user_id:
            events.append(AuctionEvent(
                EventType.BID_OUTBID, auction.id, user_id=previous_leader_id,
                amount=price, by_user_id=user_id, at=now,
            ))
        events.append(AuctionEvent(EventType.AUCTION_WON, auction.id, user_id=user_id, amount=price, at=now))
        return auction, events

    async def get_buy_now_status(self, auction_id: int) -> dict:
        """Доступность Buy Now для показа на странице лота"""
        async with self.session_maker() as session:
            auction = await get_auction(session, auction_id)
            if not auction:
                raise InvalidAuction()
            now = self.clock()
            enabled = self.config.buy_now_enabled and auction.buy_now_price is not None
            is_open = (
                auction.status in (AuctionStatus.UPCOMING.value, AuctionStatus.LIVE.value)
                and as_utc(auction.start_at) <= now < as_utc(auction.end_at)
            )
            return {
                "enabled": enabled,
                "price": str(to_money(auction.buy_now_price)) if auction.buy_now_price is not None else None,
                "available": is_open and self._buy_now_available(auction),
                "bought": bool(auction.bought_via_buy_now),
            }

    def _buy_now_available(self, auction: Auction) -> bool:
        return (
            self.config.buy_now_enabled
            and auction.buy_now_price is not None
            and not auction.bought_via_buy_now
            and to_money(auction.current_price) < to_money(auction.buy_now_price)
        )

    def _ensure_live(self, auction: Auction, now: datetime) -> bool:
        """
        Проверить, что торги идут: status live и now в [start_at, end_at).

        Аукцион upcoming, у которого start_at уже наступил, переводится в live
        сразу, не дожидаясь планировщика. Возвращает True при таком переводе.
        """
        if auction.is_terminal:
            raise AuctionEnded()
        if auction.status == AuctionStatus.DRAFT.value:
            raise AuctionNotLive()
        if now >= as_utc(auction.end_at):
            raise AuctionEnded()
        if now < as_utc(auction.start_at):
            raise AuctionNotLive()
        if auction.status == AuctionStatus.UPCOMING.value:
            auction.status = AuctionStatus.LIVE.value
            logger.info(f"Аукцион {auction.id} переведен в live при первой ставке")
            return True
        return False

    async def _ensure_can_bid(self, session: AsyncSession, auction: Auction, user_id: int) -> None:
        user = await session.get(User, user_id)
        if not user or not user.is_active or user.role not in self.config.allowed_roles_bid:
            raise Unauthorized()

        if auction.visibility == AuctionVisibility.GROUP_ONLY.value:
            result = await session.execute(
                select(GroupMember.id).where(
                    GroupMember.group_id == auction.group_id,
                    GroupMember.user_id == user_id
                )
            )
            if result.first() is None:
                raise Unauthorized()

        if auction.seller_id == user_id:
            raise SellerCannotBid()

    def _maybe_extend(self, auction: Auction, now: datetime) -> bool:
        """Антиснайпинг: ставка в последние минуты сдвигает end_at вперед"""
        if not self.config.anti_sniping_enabled:
            return False

        end_at = as_utc(auction.end_at)
        if now < end_at - self.config.anti_sniping_window:
            return False

        new_end_at = end_at + self.config.anti_sniping_extension
        if self.config.max_auction_duration is not None:
            new_end_at = min(new_end_at, as_utc(auction.start_at) + self.config.max_auction_duration)
        # end_at только растет
        if new_end_at <= end_at:
            return False

        auction.end_at = new_end_at
        logger.info(f"Аукцион {auction.id} продлен до {new_end_at.isoformat()}")
        return True
