"""Конфигурация приложения"""
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional
from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class EngineConfig:
    """Настройки движка торгов, передаются в AuctionEngine и LifecycleScheduler"""
    allowed_roles_bid: tuple = ("administrator", "bidder")
    prevent_duplicate_highest: bool = False
    max_bid_limit: Optional[Decimal] = None  # None - без ограничения
    anti_sniping_window: timedelta = timedelta(0)  # 0 - антиснайпинг выключен
    anti_sniping_extension: timedelta = timedelta(0)
    max_auction_duration: Optional[timedelta] = None  # None - продления без ограничения
    buy_now_enabled: bool = True
    proxy_tie_break: str = "earliest"  # earliest | latest
    default_currency: str = "USD"
    sweep_batch_size: int = 100
    success_fee_enabled: bool = False
    success_fee_mode: str = "flat"  # flat | percent
    success_fee_amount: Decimal = Decimal("0")  # Сумма или процент от финальной цены

    @property
    def anti_sniping_enabled(self) -> bool:
        return self.anti_sniping_window > timedelta(0) and self.anti_sniping_extension > timedelta(0)


class Settings(BaseSettings):
    """Настройки приложения"""

    # Telegram Bot
    BOT_TOKEN: str = ""

    # Database
    DATABASE_URL: str = ""  # Полный URL, перекрывает DB_* ниже
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_NAME: str = "auctions"

    # Bidding
    ALLOWED_ROLES_BID: str = "administrator,bidder"
    PREVENT_DUPLICATE_HIGHEST: bool = False
    MAX_BID_LIMIT: Decimal = Decimal("0")  # 0 - без ограничения
    BUY_NOW_ENABLED: bool = True
    PROXY_TIE_BREAK: str = "earliest"
    DEFAULT_CURRENCY: str = "USD"

    # Success fee: комиссия площадки с проданного лота
    SUCCESS_FEE_ENABLED: bool = False
    SUCCESS_FEE_MODE: str = "flat"
    SUCCESS_FEE_AMOUNT: Decimal = Decimal("0")

    # Anti-sniping
    # Ставка в последние ANTI_SNIPING_WINDOW_MINUTES минут продлевает аукцион
    # на ANTI_SNIPING_EXTENSION_MINUTES минут. 0 отключает продление.
    ANTI_SNIPING_WINDOW_MINUTES: int = 0
    ANTI_SNIPING_EXTENSION_MINUTES: int = 0
    MAX_AUCTION_DURATION_HOURS: float = 0

    # Scheduler
    SCHEDULER_INTERVAL_SECONDS: int = 60
    SWEEP_BATCH_SIZE: int = 100

    @property
    def allowed_roles_list(self) -> List[str]:
        """Список ролей, которым разрешено делать ставки"""
        if not self.ALLOWED_ROLES_BID:
            return []
        return [role.strip() for role in self.ALLOWED_ROLES_BID.split(",") if role.strip()]

    @property
    def database_url(self) -> str:
        """URL подключения к базе данных"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    def engine_config(self) -> EngineConfig:
        """Собрать неизменяемую конфигурацию движка из переменных окружения"""
        return EngineConfig(
            allowed_roles_bid=tuple(self.allowed_roles_list),
            prevent_duplicate_highest=self.PREVENT_DUPLICATE_HIGHEST,
            max_bid_limit=self.MAX_BID_LIMIT if self.MAX_BID_LIMIT > 0 else None,
            anti_sniping_window=timedelta(minutes=self.ANTI_SNIPING_WINDOW_MINUTES),
            anti_sniping_extension=timedelta(minutes=self.ANTI_SNIPING_EXTENSION_MINUTES),
            max_auction_duration=(
                timedelta(hours=self.MAX_AUCTION_DURATION_HOURS)
                if self.MAX_AUCTION_DURATION_HOURS > 0 else None
            ),
            buy_now_enabled=self.BUY_NOW_ENABLED,
            proxy_tie_break=self.PROXY_TIE_BREAK,
            default_currency=self.DEFAULT_CURRENCY,
            sweep_batch_size=self.SWEEP_BATCH_SIZE,
            success_fee_enabled=self.SUCCESS_FEE_ENABLED,
            success_fee_mode=self.SUCCESS_FEE_MODE if self.SUCCESS_FEE_MODE in ("flat", "percent") else "flat",
            success_fee_amount=max(self.SUCCESS_FEE_AMOUNT, Decimal("0")),
        )

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
