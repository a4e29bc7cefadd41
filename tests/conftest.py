import itertools
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from talenthub.core.config import Settings
from talenthub.core.security import create_session_token, hash_password
from talenthub.db.session import build_engine, build_sessionmaker, create_schema
from talenthub.main import create_app
from talenthub.models import User

PASSWORD = "correct-horse"

_counter = itertools.count(1)


class FakeRealtime:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        self.events.append((channel, event, payload))

    def authorize(self, channel: str, socket_id: str) -> dict[str, Any]:
        return {"auth": f"test-key:{socket_id}:{channel}"}

    def of(self, event: str) -> list[tuple[str, str, dict[str, Any]]]:
        return [item for item in self.events if item[1] == event]


class FakeStorage:
    base = "https://storage.test/storage/v1"

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.deleted: list[tuple[str, str]] = []

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str, upsert: bool = False) -> None:
        self.objects[(bucket, path)] = data

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base}/object/public/{bucket}/{path}"

    def path_from_public_url(self, bucket: str, url: str) -> str | None:
        marker = f"/object/public/{bucket}/"
        if marker not in url:
            return None
        return url.split(marker, 1)[1].split("?", 1)[0]

    async def signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        return f"{self.base}/object/sign/{bucket}/{path}?token=signed&expires={expires_in}"

    async def delete(self, bucket: str, paths: list[str]) -> None:
        for path in paths:
            self.objects.pop((bucket, path), None)
            self.deleted.append((bucket, path))


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append((to, subject, html))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        jwt_secret="test-secret",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'talenthub.db'}",
        create_schema=False,
        bcrypt_rounds=4,
    )


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings.database_url)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def realtime() -> FakeRealtime:
    return FakeRealtime()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def app(settings, engine, realtime, storage, mailer):
    return create_app(settings, engine=engine, realtime=realtime, storage=storage, mailer=mailer)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def make_user(sessionmaker):
    async def factory(username: str | None = None, display_name: str | None = None) -> User:
        n = next(_counter)
        username = username or f"user{n}"
        user = User(
            email=f"{username.lower()}@example.com",
            username=username,
            display_name=display_name or username.title(),
            password_hash=hash_password(PASSWORD, rounds=4),
        )
        async with sessionmaker() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return factory


@pytest.fixture
def auth_for(settings):
    def headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_session_token(settings, user.id, user.session_epoch)}"}

    return headers
