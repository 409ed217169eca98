"""Middleware для работы с базой данных и движком торгов"""
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject
from sqlalchemy.ext.asyncio import async_sessionmaker
from services.auction import AuctionEngine


class DatabaseMiddleware(BaseMiddleware):
    """Middleware: сессия БД и движок торгов для обработчиков"""

    def __init__(self, session_maker: async_sessionmaker, engine: AuctionEngine):
        self.session_maker = session_maker
        self.engine = engine

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        async with self.session_maker() as session:
            data["session"] = session
            data["engine"] = self.engine
            return await handler(event, data)
