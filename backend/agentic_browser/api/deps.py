"""
通用依赖：限流、浏览器会话、Agent 组装
"""
from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from agentic_browser.core.database import get_db
from agentic_browser.services.agent_service import BrowserAgent
from agentic_browser.services.browser_session_manager import BrowserSessionRegistry
from agentic_browser.services.job_service import JobService
from agentic_browser.services.rate_limit_service import check_and_incr_agent


async def require_agent_rate_limit() -> None:
    """任务限流：超出每分钟任务数返回 429。"""
    allowed, n, limit = check_and_incr_agent("/")
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"任务请求过于频繁，请稍后再试（每分钟上限 {limit}）",
        )


def get_session_registry(request: Request) -> BrowserSessionRegistry:
    """应用级浏览器会话注册表（lifespan 中创建）"""
    return request.app.state.browser_sessions


def get_browser_agent(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> BrowserAgent:
    """每个请求一个 Agent，复用应用级浏览器会话与截图存储"""
    return BrowserAgent(
        job_service=JobService(db),
        sessions=get_session_registry(request),
        screenshots=getattr(request.app.state, "screenshots", None),
    )
