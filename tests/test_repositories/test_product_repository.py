"""
ProductRepository库存操作测试
"""

import pytest

from app.repositories.product_repository import ProductRepository


@pytest.mark.asyncio
class TestProductRepository:
    """ProductRepository测试类"""

    @pytest.fixture
    def repo(self, db_session, catalog):
        return ProductRepository(db_session)

    async def test_get_by_ids_skips_unknown(self, repo):
        products = await repo.get_by_ids([1, 3, 999])

        assert set(products) == {1, 3}

    async def test_reserve_stock_is_conditional(self, repo):
        assert await repo.reserve_stock(3, 4) is True
        assert (await repo.get_by_id(3)).stock == 6

        assert await repo.reserve_stock(3, 7) is False
        assert (await repo.get_by_id(3)).stock == 6

        assert await repo.reserve_stock(3, 6) is True
        assert (await repo.get_by_id(3)).stock == 0

    async def test_release_stock(self, repo):
        await repo.reserve_stock(1, 5)
        await repo.release_stock(1, 5)

        assert (await repo.get_by_id(1)).stock == 50
