"""Модель ставки"""
from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, Boolean, Numeric, Index
from sqlalchemy.orm import relationship
from database.connection import Base


class Bid(Base):
    """Строка журнала ставок. После записи не изменяется и не удаляется."""
    __tablename__ = "bids"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    auction_id = Column(BigInteger, ForeignKey("auctions.id"), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(16, 2), nullable=False)  # Видимая цена ставки
    max_proxy_amount = Column(Numeric(16, 2), nullable=True)  # Скрытый потолок автоставки
    is_proxy = Column(Boolean, default=False, nullable=False)  # Сгенерирована автоставкой
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        Index("ix_bids_auction_amount", "auction_id", "amount"),
    )

    # Связи
    auction = relationship("Auction", back_populates="bids")
    user = relationship("User", backref="bids")
