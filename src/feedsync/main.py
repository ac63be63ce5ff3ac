"""FeedSync 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedsync import __version__
from feedsync.api import accounts, feeds, folders, items, sync
from feedsync.config import get_settings
from feedsync.core.runner import reset_runner
from feedsync.models.database import close_db, init_db
from feedsync.scheduler import create_scheduler, shutdown_scheduler

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()

    logger.info("正在初始化数据库...")
    await init_db(app_settings.database_url)

    logger.info("正在启动定时任务...")
    create_scheduler(app_settings)

    logger.info("FeedSync 启动完成！")
    yield

    logger.info("正在关闭...")
    await shutdown_scheduler()
    reset_runner()
    await close_db()
    logger.info("FeedSync 已关闭")


app = FastAPI(
    title="FeedSync",
    description="多源 RSS 同步服务 - 本地 RSS / FreshRSS / Nextcloud News",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(accounts.router)
app.include_router(sync.router)
app.include_router(feeds.router)
app.include_router(folders.router)
app.include_router(items.router)


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "FeedSync",
        "version": __version__,
        "description": "多源 RSS 同步服务",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "feedsync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
