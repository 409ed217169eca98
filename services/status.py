"""Статус аукционов для опроса со стороны UI"""
from datetime import datetime
from typing import Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database.models.auction import Auction, AuctionStatus
from database.models.user import User
from services import ledger
from services.clock import as_utc, to_money, utc_now
from services.currency import format_amount


def _status_payload(auction: Auction, bidder: Optional[User], bid_count: int, unique_bidders: int, now: datetime) -> dict:
    end_at = as_utc(auction.end_at)
    seconds_left = max(0, int((end_at - now).total_seconds()))

    status = auction.status
    if status == AuctionStatus.LIVE.value and seconds_left <= 0:
        status = AuctionStatus.ENDED.value
    has_ended = auction.is_terminal or seconds_left <= 0

    display_bid = to_money(auction.current_price if auction.current_leader_id else auction.start_price)
    bidder_name = ""
    if auction.current_leader_id:
        bidder_name = bidder.display_name if bidder else "Аноним"

    return {
        "id": auction.id,
        "status": status,
        "current_bid": str(display_bid),
        "formatted_bid": format_amount(display_bid, auction.currency),
        "bid_count": bid_count,
        "unique_bidders": unique_bidders,
        "current_bidder": {
            "id": auction.current_leader_id,
            "name": bidder_name,
        },
        "end_time": end_at.isoformat(),
        "seconds_left": 0 if has_ended else seconds_left,
        "has_ended": has_ended,
        "reserve_met": auction.reserve_met,
        "bought_via_buy_now": bool(auction.bought_via_buy_now),
    }


async def get_auction_status(
    session: AsyncSession,
    auction_id: int,
    now: Optional[datetime] = None
) -> Optional[dict]:
    """Статус одного аукциона; None, если аукциона нет"""
    result = await session.execute(
        select(Auction, User)
        .outerjoin(User, User.id == Auction.current_leader_id)
        .where(Auction.id == auction_id)
    )
    data = result.first()
    if not data:
        return None

    auction, bidder = data
    # Счетчик из журнала: читатели не ждут писателей и могут видеть чуть устаревшие данные
    bid_count = await ledger.count_bids(session, auction_id)
    unique_bidders = await ledger.count_unique_bidders(session, auction_id)
    return _status_payload(auction, bidder, bid_count, unique_bidders, now or utc_now())


async def get_batch_status(
    session: AsyncSession,
    auction_ids: Iterable[int],
    now: Optional[datetime] = None
) -> dict[int, dict]:
    """Статусы нескольких аукционов; неизвестные id пропускаются"""
    now = now or utc_now()
    statuses = {}
    for auction_id in dict.fromkeys(auction_ids):
        status = await get_auction_status(session, auction_id, now)
        if status:
            statuses[auction_id] = status
    return statuses
