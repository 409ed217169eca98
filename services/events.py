"""Шина событий торгов для внешних получателей (уведомления, realtime)"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Optional
import enum
import logging

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    """Тип события"""
    BID_PLACED = "bid_placed"
    BID_OUTBID = "bid_outbid"
    AUCTION_EXTENDED = "auction_extended"
    AUCTION_STARTED = "auction_started"
    AUCTION_ENDED = "auction_ended"
    AUCTION_WON = "auction_won"
    BUY_NOW_COMPLETED = "buy_now_completed"


@dataclass(frozen=True)
class AuctionEvent:
    """Событие аукциона. user_id - адресат: сделавший ставку, перебитый, победитель."""
    type: EventType
    auction_id: int
    user_id: Optional[int] = None
    amount: Optional[Decimal] = None
    by_user_id: Optional[int] = None  # Кто перебил (для bid_outbid)
    is_proxy: bool = False
    at: Optional[datetime] = None
    extra: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data


EventHandler = Callable[[AuctionEvent], Awaitable[None]]


class EventBus:
    """
    Исходящий канал событий.

    Движок публикует события после коммита и снятия блокировки. Ошибка
    одного обработчика логируется и не мешает остальным, ставку она не отменяет.
    """

    def __init__(self):
        self._handlers: list[tuple[Optional[EventType], EventHandler]] = []

    def subscribe(self, handler: EventHandler, event_type: Optional[EventType] = None) -> None:
        """Подписаться на все события или только на event_type"""
        self._handlers.append((event_type, handler))

    async def publish(self, event: AuctionEvent) -> None:
        for event_type, handler in list(self._handlers):
            if event_type is not None and event_type != event.type:
                continue
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"Ошибка обработчика события {event.type.value} для аукциона {event.auction_id}: {e!r}"
                )

    async def publish_all(self, events: list[AuctionEvent]) -> None:
        for event in events:
            await self.publish(event)


async def log_event(event: AuctionEvent) -> None:
    """Подписчик по умолчанию: пишет событие в лог"""
    logger.info(
        f"Событие {event.type.value}: аукцион {event.auction_id}, "
        f"пользователь {event.user_id}, сумма {event.amount}"
    )
