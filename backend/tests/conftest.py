import asyncio
import os
from functools import partial

from cryptography.fernet import Fernet

# 测试配置必须在导入应用之前设置
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "true"
os.environ["DEPLOYMENT_ENV"] = "development"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["SUPER_ADMIN_PASSWORD"] = ""
os.environ["AUTH_RATE_LIMIT_SECONDS"] = "0"
os.environ["FIELD_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["FRONTEND_BASE_URL"] = "https://maudigi.test"
os.environ["REDIS_HOST"] = "127.0.0.1"
os.environ["REDIS_PORT"] = "1"
os.environ["REDIS_CONNECT_TIMEOUT"] = "1"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import app.models  # noqa: E402,F401
from app.core.roles import Role  # noqa: E402
from app.core.tokens import issue_access_token  # noqa: E402
from app.db.database import Base, build_engine, build_session_factory, get_db  # noqa: E402
from app.models import User  # noqa: E402
from app.services.api_keys import ApiKeyCache, ApiKeyManager, get_api_key_manager  # noqa: E402
from app.services.email import EmailManager, SmtpConfigCache, get_email_manager  # noqa: E402
from app.services.users import build_identity  # noqa: E402
from app.utils.field_crypto import encrypt_field  # noqa: E402
from app.utils.security import generate_referral_code, get_password_hash  # noqa: E402
from main import app as fastapi_app  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
DEFAULT_PASSWORD = "password123"


async def create_tables(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class FakeClock:
    """可手动推进的计时器，用于 TTL 缓存"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def engine():
    return build_engine(TEST_DATABASE_URL)


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def run_db(engine):
    """在新的事件循环中建表并运行异步场景，结束后释放连接"""

    def runner(scenario):
        async def main():
            await create_tables(engine)
            try:
                return await scenario()
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return runner


@pytest.fixture
def create_user(session_factory):
    async def _create(
        email: str = "user@example.com",
        password: str = DEFAULT_PASSWORD,
        role: int = Role.USER,
        name: str = "Test User",
        phone: str = None,
        points: int = 0,
    ) -> User:
        async with session_factory() as db:
            user = User(
                email=email,
                name=name,
                hashed_password=get_password_hash(password),
                role_id=int(role),
                phone_number=encrypt_field(phone) if phone else None,
                points=encrypt_field(str(points)),
                referral_code=generate_referral_code(),
            )
            db.add(user)
            await db.commit()
            await db.refresh(user)
            return user

    return _create


@pytest.fixture
def outbox():
    return []


@pytest.fixture
def smtp_clock():
    return FakeClock()


@pytest.fixture
def email_manager(session_factory, outbox, smtp_clock):
    def transport(config, message):
        outbox.append((config, message))

    return EmailManager(session_factory, cache=SmtpConfigCache(timer=smtp_clock), transport=transport)


@pytest.fixture
def key_clock():
    return FakeClock()


@pytest.fixture
def api_key_manager(session_factory, key_clock):
    return ApiKeyManager(session_factory, cache=ApiKeyCache(timer=key_clock))


@pytest.fixture
def client(engine, session_factory, email_manager, api_key_manager):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_email_manager] = lambda: email_manager
    fastapi_app.dependency_overrides[get_api_key_manager] = lambda: api_key_manager
    with TestClient(fastapi_app) as c:
        c.portal.call(create_tables, engine)
        yield c
        c.portal.call(engine.dispose)
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_user(client, create_user):
    """在 TestClient 的事件循环中创建用户"""

    def _make(**kwargs) -> User:
        return client.portal.call(partial(create_user, **kwargs))

    return _make


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_access_token(build_identity(user))}"}


@pytest.fixture
def auth_headers():
    return bearer
