"""Модель пользователя"""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Boolean, UniqueConstraint
from sqlalchemy.sql import func
from database.connection import Base


class User(Base):
    """Модель пользователя Telegram"""
    __tablename__ = "users"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    telegram_id = Column(BigInteger, unique=True, nullable=True, index=True)
    username = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    role = Column(String(50), default="bidder", nullable=False)  # Сверяется с ALLOWED_ROLES_BID
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    @property
    def display_name(self) -> str:
        """Имя для показа другим участникам"""
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.username or f"user{self.id}"


class GroupMember(Base):
    """Участник группы, нужен для аукционов с visibility=group_only"""
    __tablename__ = "group_members"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    group_id = Column(BigInteger, nullable=False, index=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Пользователь состоит в группе один раз
    __table_args__ = (
        UniqueConstraint('group_id', 'user_id', name='uq_group_user'),
    )
