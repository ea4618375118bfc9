import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.api.api import api_router
from app.api.endpoints import site
from app.config.dependency_injection import get_progress_storage
from app.core.config import settings
import asyncio
from contextlib import asynccontextmanager
from app.core.redis_subscriber import redis_subscriber
from app.db.init_db import init_db
import logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    启动时创建缓存表；启用 Redis 转发时在后台启动 redis_subscriber，并在关闭时取消它。
    """
    init_db()

    app.state.redis_task = None
    if settings.ENABLE_REDIS_RELAY:
        # 启动订阅协程（不会阻塞主线程）
        logger.info("启动 Redis 订阅器任务")
        app.state.redis_task = asyncio.create_task(redis_subscriber(get_progress_storage()))

    try:
        yield
    finally:
        # 关闭时取消任务并等待其结束
        task = app.state.redis_task
        if task:
            logger.info("取消 Redis 订阅器任务")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("Redis 订阅器已取消")

app = FastAPI(
    title=settings.PROJECT_NAME,
    description=settings.PROJECT_DESCRIPTION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
app.include_router(site.router, tags=["site"])


if __name__ == '__main__':
    uvicorn.run(
        'app.main:app',
        host='0.0.0.0',
        port=settings.BACKEND_PORT,
        reload=True
    )
