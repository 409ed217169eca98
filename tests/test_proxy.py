"""
Разрешение автоставок без базы данных.

Tests:
- Ставка без соперников выигрывает по своей сумме
- Минимальная ставка и BidTooLow
- Дуэль автоставок схлопывается в две записи
- Несколько соперников: итог по второму потолку
- Ничья потолков и политика tie-break
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from services.errors import BidTooLow
from services.ledger import ProxyEntry
from services.proxy import (
    AuctionSnapshot,
    BidStep,
    IncomingBid,
    TIE_BREAK_LATEST,
    effective_proxy_max,
    resolve_bid,
)

REGISTERED = datetime(2026, 3, 2, 11, 0, tzinfo=timezone.utc)

A, B, C = 1, 2, 3


def snapshot(current="10.00", leader=None, start="10.00", increment="1.00", reserve=None, proxy_enabled=True):
    return AuctionSnapshot(
        start_price=Decimal(start),
        min_increment=Decimal(increment),
        current_price=Decimal(current),
        current_leader_id=leader,
        reserve_price=Decimal(reserve) if reserve else None,
        proxy_enabled=proxy_enabled,
    )


def proxy(user_id, ceiling, registered_id):
    return ProxyEntry(user_id, Decimal(ceiling), REGISTERED, registered_id)


class TestMinimumBid:
    """Проверка нижней границы ставки"""

    def test_first_bid_may_equal_start_price(self):
        """Без ставок достаточно начальной цены"""
        result = resolve_bid(snapshot(), IncomingBid(A, Decimal("10")), [])

        assert result.price == Decimal("10.00")
        assert result.leader_id == A

    def test_first_bid_below_start_price_rejected(self):
        with pytest.raises(BidTooLow) as exc:
            resolve_bid(snapshot(), IncomingBid(A, Decimal("9.99")), [])
        assert exc.value.minimum == Decimal("10.00")

    def test_bid_below_current_plus_increment_rejected(self):
        """После первой ставки нужен шаг"""
        with pytest.raises(BidTooLow) as exc:
            resolve_bid(snapshot(current="11.00", leader=A), IncomingBid(B, Decimal("11.50")), [])
        assert exc.value.minimum == Decimal("12.00")

    def test_sub_cent_amount_not_rounded_up_to_minimum(self):
        """11.995 меньше 12.00, даже если при округлении станет 12.00"""
        with pytest.raises(BidTooLow) as exc:
            resolve_bid(snapshot(current="11.00", leader=A), IncomingBid(B, Decimal("11.995")), [])
        assert exc.value.minimum == Decimal("12.00")

    def test_exact_decimal_increment(self):
        """Шаг 0.10 считается без плавающей погрешности"""
        state = snapshot(current="0.30", leader=A, start="0.10", increment="0.10")
        result = resolve_bid(state, IncomingBid(B, Decimal("0.4")), [])
        assert result.price == Decimal("0.40")


class TestOutrightWin:
    def test_no_competitors(self):
        result = resolve_bid(snapshot(current="11.00", leader=A), IncomingBid(B, Decimal("15")), [])

        assert result.steps == [BidStep(B, Decimal("15.00"), None, False)]
        assert result.price == Decimal("15.00")
        assert result.leader_id == B

    def test_ceiling_stays_private(self):
        """С потолком цена все равно равна сумме ставки"""
        result = resolve_bid(snapshot(), IncomingBid(A, Decimal("12"), Decimal("50")), [])

        assert result.price == Decimal("12.00")
        assert result.steps[0].max_proxy_amount == Decimal("50.00")

    def test_competitor_below_amount_is_ignored(self):
        result = resolve_bid(
            snapshot(current="20.00", leader=A),
            IncomingBid(B, Decimal("30")),
            [proxy(A, "25", 1)],
        )

        assert result.leader_id == B
        assert result.price == Decimal("30.00")
        assert len(result.steps) == 1


class TestProxyDuel:
    """Дуэль автоставок"""

    def test_leader_proxy_counters_plain_bid(self):
        """A с потолком 100 лидирует, B ставит 30 без потолка: A остается лидером"""
        result = resolve_bid(
            snapshot(current="20.00", leader=A),
            IncomingBid(B, Decimal("30")),
            [proxy(A, "100", 1)],
        )

        assert result.leader_id == A
        assert result.price == Decimal("31.00")
        assert result.steps == [
            BidStep(B, Decimal("30.00"), None, False),
            BidStep(A, Decimal("31.00"), Decimal("100.00"), True),
        ]

    def test_counter_capped_at_competitor_ceiling(self):
        result = resolve_bid(
            snapshot(current="20.00", leader=A),
            IncomingBid(B, Decimal("30")),
            [proxy(A, "30.50", 1)],
        )

        assert result.leader_id == A
        assert result.price == Decimal("30.50")

    def test_incoming_ceiling_outlasts_competitor(self):
        """У B потолок выше: B выигрывает на шаг выше потолка A, две записи"""
        result = resolve_bid(
            snapshot(current="20.00", leader=A),
            IncomingBid(B, Decimal("30"), Decimal("200")),
            [proxy(A, "100", 1)],
        )

        assert result.leader_id == B
        assert result.price == Decimal("101.00")
        assert result.steps == [
            BidStep(B, Decimal("30.00"), Decimal("200.00"), False),
            BidStep(B, Decimal("101.00"), Decimal("200.00"), True),
        ]

    def test_competitor_ceiling_outlasts_incoming_ceiling(self):
        result = resolve_bid(
            snapshot(current="20.00", leader=A),
            IncomingBid(B, Decimal("30"), Decimal("60")),
            [proxy(A, "100", 1)],
        )

        assert result.leader_id == A
        assert result.price == Decimal("61.00")
        assert len(result.steps) == 2

    def test_three_parties_settle_on_runner_up(self):
        """A 100, C 80, B ставит 30: A ведет по цене 81"""
        result = resolve_bid(
            snapshot(current="20.00", leader=A),
            IncomingBid(B, Decimal("30")),
            [proxy(A, "100", 1), proxy(C, "80", 2)],
        )

        assert result.leader_id == A
        assert result.price == Decimal("81.00")
        assert [step.user_id for step in result.steps] == [B, A, A]
        amounts = [step.amount for step in result.steps]
        assert amounts == sorted(amounts)

    def test_proxy_disabled_ignores_ceilings(self):
        result = resolve_bid(
            snapshot(current="20.00", leader=A, proxy_enabled=False),
            IncomingBid(B, Decimal("30"), Decimal("500")),
            [proxy(A, "100", 1)],
        )

        assert result.leader_id == B
        assert result.steps == [BidStep(B, Decimal("30.00"), None, False)]


class TestTieBreak:
    """Равные потолки"""

    def test_earlier_ceiling_wins_and_is_ordered_first(self):
        result = resolve_bid(
            snapshot(current="20.00", leader=A),
            IncomingBid(B, Decimal("30")),
            [proxy(A, "30", 1)],
        )

        assert result.leader_id == A
        assert result.price == Decimal("30.00")
        # Строка A первой, чтобы журнал (ранняя из равных) указывал на лидера
        assert [step.user_id for step in result.steps] == [A, B]

    def test_equal_proxies_earliest_registered_wins(self):
        result = resolve_bid(
            snapshot(current="20.00", leader=A),
            IncomingBid(C, Decimal("25")),
            [proxy(A, "50", 5), proxy(B, "50", 3)],
        )

        assert result.leader_id == B
        assert result.price == Decimal("50.00")

    def test_incoming_keeps_earlier_registration(self):
        """Участник повторяет свой прежний потолок: старшинство берется по первой регистрации"""
        competitors = [proxy(B, "50", 3)]
        state = snapshot(current="20.00", leader=A)

        kept = resolve_bid(state, IncomingBid(A, Decimal("25"), Decimal("50"), registered_id=2), competitors)
        fresh = resolve_bid(state, IncomingBid(A, Decimal("25"), Decimal("50")), competitors)

        assert (kept.leader_id, kept.price) == (A, Decimal("50.00"))
        assert (fresh.leader_id, fresh.price) == (B, Decimal("50.00"))

    def test_latest_policy_lets_incoming_win_tie(self):
        result = resolve_bid(
            snapshot(current="20.00", leader=A),
            IncomingBid(B, Decimal("30")),
            [proxy(A, "30", 1)],
            tie_break=TIE_BREAK_LATEST,
        )

        assert result.leader_id == B
        assert result.price == Decimal("30.00")
        assert len(result.steps) == 1


class TestReserveAndHelpers:
    def test_reserve_flag(self):
        state = snapshot(reserve="50.00")
        assert resolve_bid(state, IncomingBid(A, Decimal("20")), []).reserve_met is False
        assert resolve_bid(state, IncomingBid(A, Decimal("50")), []).reserve_met is True

    def test_effective_proxy_max(self):
        assert effective_proxy_max(Decimal("10.00"), Decimal("10.00"), True) is None
        assert effective_proxy_max(Decimal("10.00"), "12.345", True) == Decimal("12.35")
        assert effective_proxy_max(Decimal("10.00"), Decimal("20"), False) is None
