"""
健康检查：数据库、Redis、MinIO 连通性与浏览器会话状态
"""
import logging
from typing import Any, Dict, Tuple

from agentic_browser.core.config import settings

logger = logging.getLogger(__name__)


async def check_db() -> Tuple[bool, str]:
    """检查数据库连通性"""
    if not getattr(settings, "DATABASE_URL", None) or not settings.DATABASE_URL.strip():
        return False, "DATABASE_URL 未配置"
    try:
        from agentic_browser.core.database import engine
        from sqlalchemy import text
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True, "ok"
    except Exception as e:
        logger.warning("健康检查 DB 失败: %s", e)
        return False, str(e)


def check_redis() -> Tuple[bool, str]:
    """检查 Redis 连通性（限流依赖）"""
    if not getattr(settings, "REDIS_URL", None) or not settings.REDIS_URL.strip():
        return False, "REDIS_URL 未配置"
    try:
        from agentic_browser.services.rate_limit_service import _get_redis
        r = _get_redis()
        if not r:
            return False, "Redis 客户端未初始化"
        r.ping()
        return True, "ok"
    except Exception as e:
        logger.warning("健康检查 Redis 失败: %s", e)
        return False, str(e)


def check_minio() -> Tuple[bool, str]:
    """检查 MinIO 连通性（截图存储）"""
    if not settings.SCREENSHOT_ENABLED:
        return True, "disabled"
    try:
        from minio import Minio
        client = Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )
        client.bucket_exists(settings.SCREENSHOT_BUCKET)
        return True, "ok"
    except Exception as e:
        logger.warning("健康检查 MinIO 失败: %s", e)
        return False, str(e)


def browser_sessions_status(registry: Any) -> Dict[str, Any]:
    """浏览器会话状态；未创建注册表时返回空"""
    if registry is None:
        return {}
    return registry.snapshot()
