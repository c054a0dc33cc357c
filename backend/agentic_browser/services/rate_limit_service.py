"""
限流：入口请求按 key 固定窗口计数（每分钟），使用 Redis 计数
"""
import time
import logging

from agentic_browser.core.config import settings

logger = logging.getLogger(__name__)

_redis_client = None


def _get_redis():
    """获取 Redis 客户端（懒加载）"""
    global _redis_client
    if _redis_client is None:
        try:
            import redis
            _redis_client = redis.Redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
            )
        except Exception as e:
            logger.warning("Redis 连接失败，限流将不生效: %s", e)
    return _redis_client


def check_and_incr_agent(key: str = "/", now: float | None = None) -> tuple[bool, int, int]:
    """
    检查并增加当前分钟内该 key 的请求计数。返回 (是否允许, 当前计数, 每分钟上限)。
    若未启用限流或 Redis 不可用，返回 (True, 0, limit)。
    """
    limit = getattr(settings, "RATE_LIMIT_AGENT_PER_MINUTE", 10)
    if not getattr(settings, "RATE_LIMIT_ENABLED", True):
        return True, 0, limit
    r = _get_redis()
    if not r:
        return True, 0, limit
    minute = int((now if now is not None else time.time()) // 60)
    redis_key = f"rate:agent:{key}:min:{minute}"
    try:
        n = r.incr(redis_key)
        if n == 1:
            r.expire(redis_key, 120)
        return (n <= limit, n, limit)
    except Exception as e:
        logger.warning("限流 Redis 操作失败: %s", e)
        return True, 0, limit
