"""Pytest bootstrap configuration.

Environment variables are set before application modules are imported so
settings and the module-level engine pick them up.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")

from functools import partial  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core.settings import MoMoSettings, VNPaySettings  # noqa: E402
from infrastructure.external.payments.momo_client import MoMoClient  # noqa: E402
from infrastructure.external.payments.vnpay_client import VNPayClient  # noqa: E402
from infrastructure.models import Base, UserProfileModel  # noqa: E402
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork  # noqa: E402
from tests.factories import MOMO_ACCESS_KEY, MOMO_SECRET_KEY, VNPAY_SECRET, StubIPResolver  # noqa: E402


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()

@pytest.fixture
def uow_factory(session_factory):
    return partial(SQLAlchemyUnitOfWork, session_factory)

@pytest.fixture
async def customer_profile(session_factory):
    async with session_factory() as session:
        session.add(UserProfileModel(
            user_id="u1",
            full_name="Nguyễn Văn A",
            email="a@example.com",
            phone="0901234567",
            address="1 Lê Lợi, Quận 1",
        ))
        await session.commit()
    return "u1"

@pytest.fixture
def vnpay_settings():
    return VNPaySettings(tmn_code="TESTTMN", hash_secret=VNPAY_SECRET)

@pytest.fixture
def momo_settings():
    return MoMoSettings(partner_code="MOMOTEST", access_key=MOMO_ACCESS_KEY, secret_key=MOMO_SECRET_KEY)

@pytest.fixture
def vnpay_client(vnpay_settings):
    return VNPayClient(vnpay_settings, ip_resolver=StubIPResolver(), retry={"max": 0, "base": 0.01})

@pytest.fixture
def momo_client(momo_settings):
    return MoMoClient(momo_settings, retry={"max": 0, "base": 0.01})

