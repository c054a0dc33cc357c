"""
入口 API：POST / 执行一次网页提取任务，直接返回最终答案文本
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from agentic_browser.api.deps import get_browser_agent
from agentic_browser.core.config import settings
from agentic_browser.schemas.job import JobRunRequest
from agentic_browser.services.agent_service import BrowserAgent
from agentic_browser.services.rate_limit_service import check_and_incr_agent

router = APIRouter()
logger = logging.getLogger(__name__)

RATE_LIMITED_TEXT = "429 Failure – rate limit exceeded"
POST_ONLY_TEXT = "Please use POST request instead"


async def _parse_body(request: Request) -> JobRunRequest:
    raw = await request.body()
    if not raw.strip():
        return JobRunRequest()
    return JobRunRequest.model_validate(json.loads(raw))


@router.api_route("/", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def run_entry(
    request: Request,
    agent: BrowserAgent = Depends(get_browser_agent),
) -> Response:
    """限流 → 方法检查 → 执行任务。非 POST 返回纯文本提示（非错误码）。"""
    allowed, _, _ = check_and_incr_agent("/")
    if not allowed:
        return PlainTextResponse(RATE_LIMITED_TEXT, status_code=429)
    if request.method != "POST":
        return PlainTextResponse(POST_ONLY_TEXT)

    try:
        body = await _parse_body(request)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"detail": f"请求体不是合法 JSON: {e}"})

    result = await agent.run(goal=body.goal, base_url=body.base_url)
    if not result.success:
        logger.warning("任务 %s 失败: %s", result.job_id, result.error)
        return JSONResponse(
            status_code=500,
            content={"detail": result.error, "job_id": result.job_id},
        )
    output = result.output or ""
    if settings.RESPONSE_JSON_WRAPPED:
        return JSONResponse(content=output)
    return PlainTextResponse(output)
