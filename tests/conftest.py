"""
测试配置文件 - pytest fixtures和共用配置

使用文件型SQLite数据库（aiosqlite），每个测试独立建表
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.core.database import Base
from app.models.database import CouponDB, CourseDB, ProductDB
from app.models.payment import PaymentProvider, ProviderSession
from app.services.notification_service import PaymentNotifier
from app.services.payments.razorpay_gateway import RazorpayGateway
from app.services.payments.stripe_gateway import StripeGateway

from tests.factories import (
    RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET, STRIPE_WEBHOOK_SECRET, build_services
)


@pytest_asyncio.fixture
async def test_db_engine(tmp_path):
    """测试数据库引擎"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    # 由SQLAlchemy自己发出BEGIN，SAVEPOINT才能正常工作
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_db_engine):
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncSession:
    """测试数据库会话"""
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest_asyncio.fixture
async def catalog(db_session):
    """商品、课程与优惠券基础数据"""
    now = datetime.now(timezone.utc)
    db_session.add_all([
        ProductDB(id=1, name="Canvas Tote", slug="canvas-tote", price=Decimal("25.00"),
                  thumbnail="https://cdn.example.com/tote.png", stock=50, is_active=True),
        ProductDB(id=2, name="Retired Mug", slug="retired-mug", price=Decimal("12.00"),
                  stock=0, is_active=False),
        ProductDB(id=3, name="Desk Lamp", slug="desk-lamp", price=Decimal("60.00"),
                  stock=10, is_active=True),
        CourseDB(course_id="py-101", title="Python 101", price=Decimal("499.00"),
                 free=False, status="active"),
        CourseDB(course_id="intro-free", title="Intro to Programming", price=Decimal("0.00"),
                 free=True, status="active"),
        CourseDB(course_id="old-course", title="Archived Course", price=Decimal("99.00"),
                 free=False, status="archived"),
        CouponDB(coupon_id="cpn_save10", coupon_code="SAVE10", coupon_name="Ten off",
                 coupon_type="fixed_amount", discount_value=Decimal("10.00"),
                 min_order_amount=Decimal("20.00"),
                 valid_from=now - timedelta(days=1), valid_to=now + timedelta(days=30),
                 usage_limit=100, used_count=0, status="active"),
        CouponDB(coupon_id="cpn_expired", coupon_code="OLD20", coupon_name="Expired",
                 coupon_type="percentage", discount_value=Decimal("0.20"),
                 min_order_amount=Decimal("0"),
                 valid_from=now - timedelta(days=60), valid_to=now - timedelta(days=30),
                 usage_limit=None, used_count=0, status="active"),
    ])
    await db_session.commit()


@pytest.fixture
def stripe_gateway():
    """真实网关对象，网络调用替换为AsyncMock"""
    gateway = StripeGateway(
        secret_key="sk_test_dummy",
        webhook_secret=STRIPE_WEBHOOK_SECRET,
        currency="usd",
        frontend_url="http://shop.test"
    )
    gateway.create_checkout_session = AsyncMock(side_effect=lambda order: ProviderSession(
        provider=PaymentProvider.STRIPE,
        reference=f"cs_test_{order.id}",
        url=f"https://checkout.stripe.test/cs_test_{order.id}",
        amount_minor=int(order.total * 100),
        currency="usd",
        status="open"
    ))
    gateway.retrieve_session = AsyncMock()
    gateway.create_refund = AsyncMock(return_value="re_test_1")
    return gateway


@pytest.fixture
def razorpay_gateway():
    gateway = RazorpayGateway(
        key_id=RAZORPAY_KEY_ID,
        key_secret=RAZORPAY_KEY_SECRET,
        currency="INR"
    )
    gateway.create_order = AsyncMock(side_effect=lambda order, notes=None: ProviderSession(
        provider=PaymentProvider.RAZORPAY,
        reference=f"order_rzp_{order.id}",
        amount_minor=int(order.total * 100),
        currency="INR",
        status="created"
    ))
    return gateway


@pytest.fixture
def notifier():
    return MagicMock(spec=PaymentNotifier)


@pytest.fixture
def event_cache():
    """模拟webhook事件去重缓存"""
    cache = AsyncMock()
    cache.exists = AsyncMock(return_value=False)
    cache.set = AsyncMock(return_value=True)
    return cache


@pytest.fixture
def services(db_session, catalog, stripe_gateway, razorpay_gateway, notifier, event_cache):
    return build_services(db_session, stripe_gateway, razorpay_gateway, notifier, event_cache)
