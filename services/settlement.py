"""Расчет с победителем: вызов внешнего платежного провайдера"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Protocol
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from database.models.auction import Auction, SettlementStatus
from config import EngineConfig
from services.clock import CENT, to_money
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementRequest:
    auction_id: int
    winner_id: int
    final_amount: Decimal
    currency: str
    via_buy_now: bool = False
    fee_amount: Decimal = Decimal("0.00")  # Комиссия площадки с победителя


def calculate_success_fee(amount: Decimal, config: EngineConfig) -> Decimal:
    """
    Комиссия площадки с проданного лота.

    percent: доля от финальной цены, округление до копеек half-up.
    flat: фиксированная сумма независимо от цены.
    """
    if not config.success_fee_enabled:
        return Decimal("0.00")
    fee = to_money(config.success_fee_amount)
    if config.success_fee_mode == "percent":
        return (fee / 100 * amount).quantize(CENT, rounding=ROUND_HALF_UP)
    return fee


@dataclass(frozen=True)
class SettlementResult:
    success: bool
    payment_url: Optional[str] = None
    message: str = ""


class SettlementGateway(Protocol):
    """Внешний платежный провайдер"""

    async def settle(self, request: SettlementRequest) -> SettlementResult:
        ...


class NullSettlementGateway:
    """Провайдер не подключен: продажа считается оформленной без ссылки на оплату"""

    async def settle(self, request: SettlementRequest) -> SettlementResult:
        return SettlementResult(success=True, message="no payment provider configured")


async def settle_auction(
    session_maker: async_sessionmaker,
    gateway: SettlementGateway,
    request: SettlementRequest
) -> SettlementResult:
    """
    Вызвать провайдера один раз, без повторов.

    Успех переводит аукцион в settled и сохраняет ссылку на оплату. При отказе
    или исключении аукцион остается "продан, расчет ожидается" для ручной сверки.
    """
    try:
        result = await gateway.settle(request)
    except Exception as e:
        logger.error(f"Провайдер оплаты недоступен для аукциона {request.auction_id}: {e!r}")
        return SettlementResult(success=False, message=str(e))

    if not result.success:
        logger.warning(
            f"Провайдер отклонил расчет по аукциону {request.auction_id}: {result.message}. "
            f"Аукцион оставлен в статусе {SettlementStatus.PENDING.value}"
        )
        return result

    try:
        async with session_maker() as session:
            await session.execute(
                update(Auction)
                .where(
                    Auction.id == request.auction_id,
                    Auction.settlement_status == SettlementStatus.PENDING.value
                )
                .values(
                    settlement_status=SettlementStatus.SETTLED.value,
                    payment_url=result.payment_url
                )
            )
            await session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Не удалось отметить расчет по аукциону {request.auction_id}: {e}")
        return result

    logger.info(f"Расчет по аукциону {request.auction_id} оформлен, победитель {request.winner_id}")
    return result
