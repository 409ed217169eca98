"""Журнал ставок: только добавление, источник истины по истории и лидеру"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from database.models.bid import Bid
from services.clock import to_money
from services.errors import StorageError
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProxyEntry:
    """Действующая автоставка участника"""
    user_id: int
    max_proxy_amount: Decimal
    registered_at: datetime  # Когда участник впервые задал этот потолок
    registered_id: int  # id той же строки, второй ключ порядка


async def append_bid(
    session: AsyncSession,
    auction_id: int,
    user_id: int,
    amount,
    created_at: datetime,
    max_proxy_amount=None,
    is_proxy: bool = False
) -> Bid:
    """Добавить ставку в журнал в рамках текущей транзакции"""
    bid = Bid(
        auction_id=auction_id,
        user_id=user_id,
        amount=to_money(amount),
        max_proxy_amount=to_money(max_proxy_amount),
        is_proxy=bool(is_proxy),
        created_at=created_at,
    )
    session.add(bid)
    try:
        # flush выдает id, но коммитит вызывающий
        await session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Не удалось записать ставку в журнал аукциона {auction_id}: {e}")
        raise StorageError() from e
    return bid


async def get_highest_bid(session: AsyncSession, auction_id: int) -> Optional[Bid]:
    """Наибольшая ставка; при равенстве выигрывает более ранняя"""
    result = await session.execute(
        select(Bid)
        .where(Bid.auction_id == auction_id)
        .order_by(Bid.amount.desc(), Bid.created_at.asc(), Bid.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_last_bid(session: AsyncSession, auction_id: int) -> Optional[Bid]:
    """Последняя записанная ставка"""
    result = await session.execute(
        select(Bid)
        .where(Bid.auction_id == auction_id)
        .order_by(Bid.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def count_bids(session: AsyncSession, auction_id: int) -> int:
    result = await session.execute(
        select(func.count(Bid.id)).where(Bid.auction_id == auction_id)
    )
    return result.scalar_one() or 0


async def count_unique_bidders(session: AsyncSession, auction_id: int) -> int:
    result = await session.execute(
        select(func.count(func.distinct(Bid.user_id))).where(Bid.auction_id == auction_id)
    )
    return result.scalar_one() or 0


async def get_outstanding_proxies(
    session: AsyncSession,
    auction_id: int,
    current_price,
    excluding_user_id: Optional[int] = None
) -> list[ProxyEntry]:
    """
    Действующие автоставки аукциона, по одной на участника.

    Потолок участника берется из его собственной наибольшей ставки. В выборку
    попадают только потолки строго выше текущей цены.
    """
    current_price = to_money(current_price)
    result = await session.execute(
        select(Bid)
        .where(Bid.auction_id == auction_id)
        .order_by(Bid.user_id, Bid.amount.desc(), Bid.id.desc())
    )
    rows = list(result.scalars().all())

    # Наибольшая ставка каждого участника идет первой в его группе
    top_rows: dict[int, Bid] = {}
    for bid in rows:
        top_rows.setdefault(bid.user_id, bid)

    proxies = []
    for user_id, top in top_rows.items():
        if user_id == excluding_user_id or top.max_proxy_amount is None:
            continue
        ceiling = to_money(top.max_proxy_amount)
        if ceiling <= current_price:
            continue
        # Самая ранняя строка участника с тем же потолком
        first = min(
            (
                bid for bid in rows
                if bid.user_id == user_id
                and bid.max_proxy_amount is not None
                and to_money(bid.max_proxy_amount) == ceiling
            ),
            key=lambda bid: bid.id,
        )
        proxies.append(ProxyEntry(
            user_id=user_id,
            max_proxy_amount=ceiling,
            registered_at=first.created_at,
            registered_id=first.id,
        ))
    proxies.sort(key=lambda entry: (-entry.max_proxy_amount, entry.registered_id))
    return proxies


async def get_bid_history(
    session: AsyncSession,
    auction_id: int,
    limit: int = 20,
    offset: int = 0
) -> list[Bid]:
    """История ставок аукциона, новые первыми"""
    result = await session.execute(
        select(Bid)
        .where(Bid.auction_id == auction_id)
        .order_by(Bid.created_at.desc(), Bid.id.desc())
        .limit(max(1, limit))
        .offset(max(0, offset))
    )
    return list(result.scalars().all())


async def get_user_bids(
    session: AsyncSession,
    user_id: int,
    limit: int = 20,
    offset: int = 0
) -> list[Bid]:
    """Ставки пользователя по всем аукционам, новые первыми"""
    result = await session.execute(
        select(Bid)
        .where(Bid.user_id == user_id)
        .order_by(Bid.id.desc())
        .limit(max(1, limit))
        .offset(max(0, offset))
    )
    return list(result.scalars().all())


async def count_user_bids(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        select(func.count(Bid.id)).where(Bid.user_id == user_id)
    )
    return result.scalar_one() or 0
