"""
数据库表创建脚本
"""

import asyncio
import sys
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy import text
from app.core.config import settings
from app.core.database import Base

# 导入所有数据库模型以确保表被注册
import app.models.database  # noqa: F401


async def create_database_if_not_exists():
    """创建数据库（如果不存在，仅PostgreSQL）"""
    server_url = settings.database_url_computed.replace(f"/{settings.db_name}", "/postgres")

    engine = create_async_engine(server_url, isolation_level="AUTOCOMMIT")

    async with engine.connect() as conn:
        result = await conn.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
            {"db_name": settings.db_name}
        )

        if not result.fetchone():
            await conn.execute(text(f'CREATE DATABASE "{settings.db_name}"'))
            print(f"数据库 '{settings.db_name}' 创建成功")
        else:
            print(f"数据库 '{settings.db_name}' 已存在")

    await engine.dispose()


async def create_tables():
    """创建所有数据表"""
    engine = create_async_engine(settings.database_url_computed)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        print("所有数据表创建成功")

    await engine.dispose()


async def create_indexes():
    """创建额外的索引"""
    engine = create_async_engine(settings.database_url_computed)

    indexes = [
        "CREATE INDEX IF NOT EXISTS idx_orders_user_status ON orders(user_id, status);",
        "CREATE INDEX IF NOT EXISTS idx_orders_payment_status ON orders(payment_status, created_at);",
        "CREATE INDEX IF NOT EXISTS idx_order_items_product ON order_items(product_id);",
        "CREATE INDEX IF NOT EXISTS idx_payments_provider_order ON payments(provider, provider_order_id);",
        "CREATE INDEX IF NOT EXISTS idx_purchases_order ON purchases(order_id);",
        "CREATE INDEX IF NOT EXISTS idx_coupons_validity ON coupons(valid_from, valid_to);",
    ]

    async with engine.begin() as conn:
        for index_sql in indexes:
            await conn.execute(text(index_sql))
        print("所有索引创建成功")

    await engine.dispose()


async def main():
    print("开始创建数据库表...")

    if settings.database_url_computed.startswith("postgresql"):
        await create_database_if_not_exists()

    await create_tables()
    await create_indexes()

    print("数据库初始化完成")


if __name__ == "__main__":
    asyncio.run(main())
