"""
Разрешение автоставок (английский аукцион с прокси-потолками).

Модуль чистый: на вход состояние аукциона, входящая ставка и действующие
автоставки соперников, на выход упорядоченный список строк для журнала,
итоговая цена и лидер. Запись в базу делает движок.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional
from services.clock import to_decimal, to_money
from services.errors import BidTooLow
from services.ledger import ProxyEntry

TIE_BREAK_EARLIEST = "earliest"
TIE_BREAK_LATEST = "latest"

# Входящая ставка регистрируется позже всех действующих автоставок
_INCOMING_ORDER = float("inf")


@dataclass(frozen=True)
class AuctionSnapshot:
    """Состояние аукциона, прочитанное под блокировкой"""
    start_price: Decimal
    min_increment: Decimal
    current_price: Decimal
    current_leader_id: Optional[int]
    reserve_price: Optional[Decimal] = None
    proxy_enabled: bool = True

    @property
    def has_bids(self) -> bool:
        return self.current_leader_id is not None

    @property
    def minimum_bid(self) -> Decimal:
        """Минимально допустимая следующая ставка"""
        if not self.has_bids:
            return to_money(self.start_price)
        return to_money(self.current_price + self.min_increment)


@dataclass(frozen=True)
class IncomingBid:
    user_id: int
    amount: Decimal
    max_proxy_amount: Optional[Decimal] = None
    registered_id: Optional[int] = None  # Строка, где участник раньше задал тот же потолок


@dataclass(frozen=True)
class BidStep:
    """Одна строка, которую нужно добавить в журнал"""
    user_id: int
    amount: Decimal
    max_proxy_amount: Optional[Decimal]
    is_proxy: bool


@dataclass
class Resolution:
    steps: list[BidStep] = field(default_factory=list)
    price: Decimal = Decimal("0.00")
    leader_id: Optional[int] = None
    reserve_met: bool = True


@dataclass
class _Party:
    user_id: int
    ceiling: Decimal
    order: float  # Порядок регистрации потолка
    max_proxy_amount: Optional[Decimal]


def effective_proxy_max(amount: Decimal, max_proxy_amount, proxy_enabled: bool) -> Optional[Decimal]:
    """Потолок входящей ставки; None если автоставка не действует"""
    if not proxy_enabled or max_proxy_amount is None:
        return None
    max_proxy_amount = to_money(max_proxy_amount)
    if max_proxy_amount <= amount:
        return None
    return max_proxy_amount


def _beats(challenger: _Party, leader: _Party, tie_break: str) -> bool:
    if challenger.ceiling != leader.ceiling:
        return challenger.ceiling > leader.ceiling
    if tie_break == TIE_BREAK_LATEST:
        return challenger.order > leader.order
    return challenger.order < leader.order


def _strongest(parties: Iterable[_Party], tie_break: str) -> Optional[_Party]:
    best = None
    for party in parties:
        if best is None or _beats(party, best, tie_break):
            best = party
    return best


def resolve_bid(
    snapshot: AuctionSnapshot,
    incoming: IncomingBid,
    proxies: Iterable[ProxyEntry],
    tie_break: str = TIE_BREAK_EARLIEST
) -> Resolution:
    """
    Рассчитать результат входящей ставки с учетом автоставок соперников.

    Сначала в журнал ложится сама ставка. Затем сильнейший соперник, чей
    потолок не ниже текущей цены, либо перебивает лидера на
    min(свой потолок, потолок лидера + шаг), либо лидер поднимается до
    min(свой потолок, потолок соперника + шаг) и разбор заканчивается.
    Дуэль двух участников схлопывается максимум в две записи.

    Raises:
        BidTooLow: ставка ниже минимально допустимой
    """
    increment = to_money(snapshot.min_increment)
    minimum = snapshot.minimum_bid
    # Сравниваем до округления: 11.995 не дотягивает до 12.00
    if incoming.amount is None or to_decimal(incoming.amount) < minimum:
        raise BidTooLow(f"Минимальная ставка: {minimum}", minimum=minimum)
    amount = to_money(incoming.amount)

    incoming_max = effective_proxy_max(amount, incoming.max_proxy_amount, snapshot.proxy_enabled)
    leader = _Party(
        user_id=incoming.user_id,
        ceiling=incoming_max or amount,
        order=incoming.registered_id if incoming.registered_id is not None else _INCOMING_ORDER,
        max_proxy_amount=incoming_max,
    )
    parties = [leader]
    if snapshot.proxy_enabled:
        for entry in proxies:
            if entry.user_id == incoming.user_id:
                continue
            parties.append(_Party(
                user_id=entry.user_id,
                ceiling=to_money(entry.max_proxy_amount),
                order=entry.registered_id,
                max_proxy_amount=to_money(entry.max_proxy_amount),
            ))

    price = amount
    steps = [BidStep(incoming.user_id, amount, incoming_max, False)]

    while True:
        challenger = _strongest(
            (party for party in parties if party is not leader and party.ceiling >= price),
            tie_break,
        )
        if challenger is None:
            break

        if _beats(challenger, leader, tie_break):
            counter = min(challenger.ceiling, leader.ceiling + increment)
            step = BidStep(challenger.user_id, counter, challenger.max_proxy_amount, True)
            if counter == price:
                # Ничья по сумме: строка того, кто раньше задал потолок, идет первой
                steps.insert(len(steps) - 1, step)
            else:
                steps.append(step)
            price = counter
            leader = challenger
            continue

        raised = min(leader.ceiling, challenger.ceiling + increment)
        if raised > price:
            steps.append(BidStep(leader.user_id, raised, leader.max_proxy_amount, True))
            price = raised
        break

    reserve = to_money(snapshot.reserve_price)
    return Resolution(
        steps=steps,
        price=price,
        leader_id=leader.user_id,
        reserve_met=reserve is None or price >= reserve,
    )
