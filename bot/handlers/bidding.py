"""Обработчики ставок: /bid, /buynow, /status, /history"""
import html
from decimal import Decimal, InvalidOperation
from typing import Optional
from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession
from services import ledger
from services.auction import AuctionEngine, get_auction
from services.currency import format_amount
from services.errors import BiddingError
from services.status import get_batch_status
from services.user import get_or_create_user
import logging

logger = logging.getLogger(__name__)

router = Router()

USAGE_BID = "Использование: /bid &lt;id аукциона&gt; &lt;сумма&gt; [потолок автоставки]"
USAGE_BUY_NOW = "Использование: /buynow &lt;id аукциона&gt;"
USAGE_STATUS = "Использование: /status &lt;id&gt; [id ...]"
USAGE_HISTORY = "Использование: /history &lt;id аукциона&gt;"

HISTORY_LIMIT = 10


def parse_amount(text: str) -> Decimal:
    """Сумма из текста: допускаем запятую и пробелы между разрядами, не точнее копейки"""
    try:
        amount = Decimal(text.replace(" ", "").replace(",", "."))
        too_precise = amount.is_finite() and amount != amount.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValueError(f"Некорректная сумма: {text}")
    if not amount.is_finite() or amount <= 0 or too_precise:
        raise ValueError(f"Некорректная сумма: {text}")
    return amount


def parse_bid_args(args: Optional[str]) -> tuple[int, Decimal, Optional[Decimal]]:
    """'<id> <сумма> [потолок]' -> (auction_id, amount, proxy_max)"""
    parts = (args or "").split()
    if len(parts) not in (2, 3):
        raise ValueError("Неверное число аргументов")
    auction_id = int(parts[0])
    amount = parse_amount(parts[1])
    proxy_max = parse_amount(parts[2]) if len(parts) == 3 else None
    return auction_id, amount, proxy_max


def parse_ids(args: Optional[str]) -> list[int]:
    ids = [int(part) for part in (args or "").replace(",", " ").split()]
    if not ids:
        raise ValueError("Не указаны id аукционов")
    return ids


async def _current_user(message: Message, session: AsyncSession):
    return await get_or_create_user(
        session,
        message.from_user.id,
        message.from_user.username,
        message.from_user.first_name,
        message.from_user.last_name
    )


@router.message(Command("bid"))
async def cmd_bid(message: Message, command: CommandObject, session: AsyncSession, engine: AuctionEngine):
    """Сделать ставку"""
    try:
        auction_id, amount, proxy_max = parse_bid_args(command.args)
    except ValueError:
        await message.answer(USAGE_BID)
        return

    user = await _current_user(message, session)
    try:
        result = await engine.place_bid(auction_id, user.id, amount, proxy_max)
    except BiddingError as e:
        await message.answer(f"❌ {e.message}")
        return

    auction = await get_auction(session, auction_id)
    currency = auction.currency if auction else engine.config.default_currency
    lines = [f"✅ Ваша ставка {format_amount(result.amount, currency)} принята."]
    if result.current_highest_bidder == user.id:
        lines.append(f"Вы лидируете, текущая цена: {format_amount(result.current_highest, currency)}")
    else:
        lines.append(
            f"Вашу ставку перебила автоставка, текущая цена: {format_amount(result.current_highest, currency)}"
        )
    if not result.reserve_met:
        lines.append("Резервная цена пока не достигнута.")
    if result.extended:
        lines.append(f"⏳ Аукцион продлен до {result.end_at:%d.%m.%Y %H:%M} UTC")
    await message.answer("\n".join(lines))


@router.message(Command("buynow"))
async def cmd_buy_now(message: Message, command: CommandObject, session: AsyncSession, engine: AuctionEngine):
    """Купить лот по цене Buy Now"""
    try:
        auction_id = int((command.args or "").strip())
    except ValueError:
        await message.answer(USAGE_BUY_NOW)
        return

    user = await _current_user(message, session)
    try:
        result = await engine.buy_now(auction_id, user.id)
    except BiddingError as e:
        await message.answer(f"❌ {e.message}")
        return

    auction = await get_auction(session, auction_id)
    currency = auction.currency if auction else engine.config.default_currency
    text = f"🎉 Лот выкуплен за {format_amount(result.price, currency)}."
    if result.payment_url:
        text += f"\nОплатить: {result.payment_url}"
    await message.answer(text)


@router.message(Command("status"))
async def cmd_status(message: Message, command: CommandObject, session: AsyncSession):
    """Текущее состояние одного или нескольких аукционов"""
    try:
        auction_ids = parse_ids(command.args)
    except ValueError:
        await message.answer(USAGE_STATUS)
        return

    statuses = await get_batch_status(session, auction_ids)
    if not statuses:
        await message.answer("Аукционы не найдены")
        return

    blocks = []
    for auction_id, status in statuses.items():
        lines = [f"<b>Аукцион #{auction_id}</b>", f"Цена: {status['formatted_bid']}"]
        lines.append(f"👥 Кол-во ставок: {status['bid_count']} (участников: {status['unique_bidders']})")
        if status["current_bidder"]["id"]:
            lines.append(f"Лидер: {html.escape(status['current_bidder']['name'])}")
        if status["has_ended"]:
            lines.append("Завершен")
        else:
            minutes, seconds = divmod(status["seconds_left"], 60)
            hours, minutes = divmod(minutes, 60)
            lines.append(f"⏳ До завершения: {hours}ч {minutes}м")
        blocks.append("\n".join(lines))
    await message.answer("\n\n".join(blocks))


@router.message(Command("history"))
async def cmd_history(message: Message, command: CommandObject, session: AsyncSession):
    """Последние ставки по аукциону"""
    try:
        auction_id = int((command.args or "").strip())
    except ValueError:
        await message.answer(USAGE_HISTORY)
        return

    auction = await get_auction(session, auction_id)
    if not auction:
        await message.answer("Аукцион не найден")
        return

    bids = await ledger.get_bid_history(session, auction_id, limit=HISTORY_LIMIT)
    if not bids:
        await message.answer("Ставок пока нет")
        return

    lines = [f"<b>Ставки по аукциону #{auction_id}</b>"]
    for bid in bids:
        marker = " (авто)" if bid.is_proxy else ""
        lines.append(f"{format_amount(bid.amount, auction.currency)} - участник {bid.user_id}{marker}")
    await message.answer("\n".join(lines))
