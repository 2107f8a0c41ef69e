"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import orders as orders_routes
from api.routes import payments as payments_routes
from api.middleware import LocaleMiddleware, LoggingMiddleware, RateLimitMiddleware, RequestIDMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.i18n import t
from core.logging_config import get_logger, configure_logging
from infrastructure.cache import init_redis_cache, shutdown_redis_cache
from infrastructure.database import create_tables, dispose_engine
from infrastructure.external.payments import close_payment_gateways


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
        )

    # redis 用于限流与 webhook 去重；未配置时这两项功能自动关闭
    try:
        await init_redis_cache()
    except Exception as exc:
        logger.error("redis_cache_init_failed", error=str(exc))

    yield

    await close_payment_gateways()
    await shutdown_redis_cache()
    await dispose_engine()
    logger.info("application_shutdown", message="Application shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="Marketplace checkout, order lifecycle and payment reconciliation API",
    )

    # 添加中间件（注意顺序：后添加的先执行）
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(LocaleMiddleware)
    app.add_middleware(LoggingMiddleware)
    # Request ID 最先执行，为后续中间件提供 request_id
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(orders_routes.router, prefix="/api/v1")
    app.include_router(payments_routes.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        """API根路径"""
        return success_response(
            data={
                "name": settings.PROJECT_NAME,
                "version": settings.VERSION,
                "environment": settings.ENVIRONMENT,
                "docs": "/docs",
                "redoc": "/redoc",
            },
            message=t("welcome", name=settings.PROJECT_NAME),
        )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        return success_response(data={"status": "healthy"}, message=t("health.ok"))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
