"""定时任务定义."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from feedsync.config import Settings

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def sync_task(settings: Settings) -> None:
    """同步任务：依次同步所有账户."""
    from feedsync.core.runner import get_runner
    from feedsync.models.database import async_session_maker

    logger.info("开始同步任务...")

    try:
        runner = get_runner(settings, async_session_maker())
        reports = await runner.run_all()
    except Exception as e:
        logger.exception(f"同步任务失败: {e}")
        return

    logger.info(
        f"同步任务完成: 账户数={len(reports)}, "
        f"新增文章={sum(r.items_inserted for r in reports)}"
    )


def create_scheduler(settings: Settings) -> AsyncIOScheduler:
    """创建并启动定时任务调度器."""
    global _scheduler

    _scheduler = AsyncIOScheduler()

    _scheduler.add_job(
        sync_task,
        "interval",
        minutes=settings.sync_interval_minutes,
        args=[settings],
        id="sync_task",
        name="账户同步",
        replace_existing=True,
        max_instances=1,
    )

    # 启动时立即执行一次
    _scheduler.add_job(
        sync_task,
        "date",
        args=[settings],
        id="sync_task_initial",
        name="初始同步",
    )

    _scheduler.start()
    logger.info(
        f"定时任务调度器已启动，同步间隔: {settings.sync_interval_minutes} 分钟"
    )

    return _scheduler


async def shutdown_scheduler() -> None:
    """关闭定时任务调度器."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("定时任务调度器已关闭")
        _scheduler = None
