"""
数据库配置和连接管理
"""
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新 DATABASE__URL")

    return url.set(drivername=driver_map[drivername]).render_as_string(hide_password=False)


# 创建异步引擎
engine = create_async_engine(
    _build_async_url(settings.database.url),
    echo=settings.database.echo,
)

# 创建异步会话工厂
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def create_tables():
    """
    创建所有表

    开发/测试环境使用；生产环境走 Alembic 迁移。
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    await engine.dispose()
