"""
Общие фикстуры: временная SQLite база, замороженные часы, движок,
участники и фабрика аукционов.
"""
import os

# До импорта config: приложение не должно тянуться к Postgres в тестах
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import update

from config import EngineConfig
from database.connection import build_engine, build_session_maker, create_tables
from database.models.auction import Auction, AuctionStatus
from database.models.user import User
from services.auction import AuctionEngine, create_auction, get_auction
from services.events import AuctionEvent, EventBus, EventType
from services.locks import AuctionLocks
from services.scheduler import LifecycleScheduler
from services.settlement import SettlementResult

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Часы, которые двигает только тест"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class EventRecorder:
    """Подписчик, который копит события в памяти"""

    def __init__(self):
        self.events: list[AuctionEvent] = []

    async def __call__(self, event: AuctionEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[AuctionEvent]:
        return [event for event in self.events if event.type == event_type]


class FakeSettlement:
    """Платежный провайдер с записью вызовов"""

    def __init__(self, success=True, payment_url="https://pay.example/checkout", error=None, fail_for=()):
        self.success = success
        self.payment_url = payment_url
        self.error = error
        self.fail_for = set(fail_for)
        self.requests = []

    async def settle(self, request):
        self.requests.append(request)
        if self.error and (not self.fail_for or request.auction_id in self.fail_for):
            raise self.error
        if not self.success:
            return SettlementResult(success=False, message="declined")
        return SettlementResult(success=True, payment_url=f"{self.payment_url}/{request.auction_id}")


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'auctions.db'}")
    await create_tables(db_engine)
    yield build_session_maker(db_engine)
    await db_engine.dispose()


@pytest.fixture
def locks():
    return AuctionLocks()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def make_recorder():
    return EventRecorder


@pytest.fixture
def recorder(events):
    recorder = EventRecorder()
    events.subscribe(recorder)
    return recorder


@pytest.fixture
def settlement():
    return FakeSettlement()


@pytest.fixture
def make_engine(session_maker, events, clock, locks, settlement):
    def factory(config=None, gateway=None):
        return AuctionEngine(
            session_maker,
            config or EngineConfig(),
            events=events,
            clock=clock,
            locks=locks,
            settlement=gateway or settlement,
        )
    return factory


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def make_scheduler(session_maker, events, clock, locks, settlement):
    def factory(config=None, gateway=None):
        return LifecycleScheduler(
            session_maker,
            config or EngineConfig(),
            locks=locks,
            events=events,
            settlement=gateway or settlement,
            clock=clock,
        )
    return factory


@pytest.fixture
def scheduler(make_scheduler):
    return make_scheduler()


@pytest_asyncio.fixture
async def users(session_maker):
    async with session_maker() as session:
        people = {
            "seller": User(telegram_id=1001, first_name="Sam", last_name="Seller", role="bidder"),
            "alice": User(telegram_id=1002, first_name="Alice", role="bidder"),
            "bob": User(telegram_id=1003, first_name="Bob", role="bidder"),
            "carol": User(telegram_id=1004, username="carol", role="bidder"),
            "viewer": User(telegram_id=1005, first_name="Vic", role="subscriber"),
        }
        session.add_all(people.values())
        await session.commit()
        return SimpleNamespace(**{name: user.id for name, user in people.items()})


@pytest.fixture
def make_auction(session_maker, clock, users):
    async def factory(live=True, **overrides):
        params = dict(
            seller_id=users.seller,
            title="Лот",
            start_price="10.00",
            min_increment="1.00",
            start_at=clock.now - timedelta(hours=1),
            end_at=clock.now + timedelta(hours=1),
            proxy_enabled=True,
            now=clock.now,
        )
        params.update(overrides)
        async with session_maker() as session:
            auction = await create_auction(session, **params)
            if live:
                await session.execute(
                    update(Auction)
                    .where(Auction.id == auction.id)
                    .values(status=AuctionStatus.LIVE.value)
                )
                await session.commit()
            return auction.id
    return factory


@pytest.fixture
def load_auction(session_maker):
    async def loader(auction_id):
        async with session_maker() as session:
            return await get_auction(session, auction_id)
    return loader
