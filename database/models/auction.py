"""Модель аукциона"""
from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, Boolean, String, Numeric
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from database.connection import Base


class AuctionStatus(str, enum.Enum):
    """Статус аукциона"""
    DRAFT = "draft"  # Черновик продавца
    UPCOMING = "upcoming"  # Опубликован, ждет start_at
    LIVE = "live"  # Идут торги
    ENDED = "ended"  # Завершен без продажи
    SOLD = "sold"  # Продан (ставкой или Buy Now)


class AuctionVisibility(str, enum.Enum):
    """Кто может делать ставки"""
    PUBLIC = "public"
    GROUP_ONLY = "group_only"


class SettlementStatus(str, enum.Enum):
    """Статус расчета с победителем"""
    NONE = "none"
    PENDING = "pending"  # Ждет оплаты или ручной сверки
    SETTLED = "settled"


TERMINAL_STATUSES = (AuctionStatus.ENDED.value, AuctionStatus.SOLD.value)


class Auction(Base):
    """Модель аукциона"""
    __tablename__ = "auctions"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    seller_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False, default="")
    start_price = Column(Numeric(16, 2), nullable=False)  # Начальная цена
    min_increment = Column(Numeric(16, 2), nullable=False)  # Минимальный шаг
    reserve_price = Column(Numeric(16, 2), nullable=True)  # Скрытая резервная цена
    buy_now_price = Column(Numeric(16, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(50), default=AuctionStatus.DRAFT.value, nullable=False, index=True)
    visibility = Column(String(20), default=AuctionVisibility.PUBLIC.value, nullable=False)
    group_id = Column(BigInteger, nullable=True)  # Для visibility=group_only
    proxy_enabled = Column(Boolean, default=False, nullable=False)

    # Состояние торгов, меняет только движок
    current_price = Column(Numeric(16, 2), nullable=False)
    current_leader_id = Column(BigInteger, ForeignKey("users.id"), nullable=True)
    bid_count = Column(Integer, default=0, nullable=False)
    bought_via_buy_now = Column(Boolean, default=False, nullable=False)

    # Итоги
    winner_id = Column(BigInteger, ForeignKey("users.id"), nullable=True, index=True)
    final_amount = Column(Numeric(16, 2), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    settlement_status = Column(String(20), default=SettlementStatus.NONE.value, nullable=False)
    payment_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Связи
    seller = relationship("User", foreign_keys=[seller_id])
    current_leader = relationship("User", foreign_keys=[current_leader_id])
    winner = relationship("User", foreign_keys=[winner_id])
    bids = relationship("Bid", back_populates="auction", order_by="Bid.id.desc()")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def reserve_met(self) -> bool:
        """Резерв достигнут (или не задан). Без ставок резерв не достигнут."""
        if self.reserve_price is None:
            return True
        if self.current_leader_id is None:
            return False
        return self.current_price >= self.reserve_price
