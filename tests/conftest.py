from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from rentbot.bot.context import build_context
from rentbot.core.config import Settings
from rentbot.db.session import create_engine, create_schema, create_sessionmaker
from rentbot.services.payments.payos import MockGateway

CHECKSUM_KEY = "test-checksum-key"
ADMIN_ID = 999


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSender:
    def __init__(self) -> None:
        self.messages = []
        self.photos = []

    async def send_reply(self, text, target_id, is_group=False, *, reply_markup=None):
        self.messages.append(SimpleNamespace(text=text, target_id=target_id, is_group=is_group, reply_markup=reply_markup))

    async def send_photo(self, photo, target_id, caption=None, is_group=False):
        self.photos.append(SimpleNamespace(photo=photo, target_id=target_id, caption=caption, is_group=is_group))

    def texts(self, target_id=None):
        return [m.text for m in self.messages if target_id is None or m.target_id == target_id]


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return Settings(bot_token="test-token", database_url="sqlite+aiosqlite://", admin_ids=(ADMIN_ID,))


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'rentbot.sqlite3'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return create_sessionmaker(engine)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def gateway():
    return MockGateway(checksum_key=CHECKSUM_KEY)


@pytest.fixture
def ctx(settings, sessionmaker, sender, gateway, clock):
    return build_context(settings, sessionmaker, sender, gateway=gateway, clock=clock)
