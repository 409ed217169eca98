"""Модели базы данных"""
from .user import User, GroupMember
from .auction import Auction, AuctionStatus, AuctionVisibility, SettlementStatus
from .bid import Bid

__all__ = [
    "User",
    "GroupMember",
    "Auction",
    "AuctionStatus",
    "AuctionVisibility",
    "SettlementStatus",
    "Bid",
]
