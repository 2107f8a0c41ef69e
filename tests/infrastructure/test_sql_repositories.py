import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from domain.common.exceptions import ConflictException
from domain.product.entity import Product
from domain.user.entity import User, UserRole
from infrastructure.models import metadata
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


def _uow(factory, readonly=False):
    return SQLAlchemyUnitOfWork(session_factory=factory, readonly=readonly)


async def _seed(factory, quantity=2):
    async with _uow(factory) as uow:
        seller = await uow.user_repository.create(User(
            id=None, email="seller@example.com", first_name="Tunde", last_name="Bello", role=UserRole.USER,
        ))
        product = await uow.product_repository.create(Product(
            id=None, seller_id=seller.id, title="Vintage denim jacket", selling_price=50000,
            quantity=quantity, domestic_shipping=2500,
        ))
    return seller, product


@pytest.mark.asyncio
async def test_conditional_stock_decrement(session_factory):
    _, product = await _seed(session_factory, quantity=2)

    async with _uow(session_factory) as uow:
        assert await uow.product_repository.decrement_stock(product.id, 1) is True
        assert await uow.product_repository.decrement_stock(product.id, 2) is False

    async with _uow(session_factory, readonly=True) as uow:
        stored = await uow.product_repository.get_by_id(product.id)
    assert stored.quantity == 1
    assert stored.sold is False

    async with _uow(session_factory) as uow:
        assert await uow.product_repository.decrement_stock(product.id, 1) is True
        # 已售出的商品不再扣减
        assert await uow.product_repository.decrement_stock(product.id, 1) is False

    async with _uow(session_factory, readonly=True) as uow:
        stored = await uow.product_repository.get_by_id(product.id)
    assert stored.quantity == 0
    assert stored.sold is True
    assert stored.sold_at is not None


@pytest.mark.asyncio
async def test_restore_stock_clears_sold_flag(session_factory):
    _, product = await _seed(session_factory, quantity=1)

    async with _uow(session_factory) as uow:
        assert await uow.product_repository.decrement_stock(product.id, 1)
    async with _uow(session_factory) as uow:
        await uow.product_repository.restore_stock(product.id, 1)

    async with _uow(session_factory, readonly=True) as uow:
        stored = await uow.product_repository.get_by_id(product.id)
        many = await uow.product_repository.get_many([product.id, 404])
    assert (stored.quantity, stored.sold, stored.sold_at) == (1, False, None)
    assert list(many) == [product.id]


@pytest.mark.asyncio
async def test_rollback_on_error(session_factory):
    _, product = await _seed(session_factory, quantity=3)

    with pytest.raises(RuntimeError):
        async with _uow(session_factory) as uow:
            await uow.product_repository.decrement_stock(product.id, 2)
            raise RuntimeError("boom")

    async with _uow(session_factory, readonly=True) as uow:
        assert (await uow.product_repository.get_by_id(product.id)).quantity == 3


@pytest.mark.asyncio
async def test_users_lookup_and_duplicate_email(session_factory):
    seller, _ = await _seed(session_factory)

    async with _uow(session_factory, readonly=True) as uow:
        assert (await uow.user_repository.get_by_email("seller@example.com")).id == seller.id
        assert set(await uow.user_repository.get_many([seller.id, 99])) == {seller.id}

    with pytest.raises(ConflictException):
        async with _uow(session_factory) as uow:
            await uow.user_repository.create(User(
                id=None, email="seller@example.com", first_name="Other", last_name="Seller",
            ))
