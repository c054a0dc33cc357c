"""
任务 API：执行任务、查看任务检查点与列表
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agentic_browser.api.deps import get_browser_agent, require_agent_rate_limit
from agentic_browser.core.database import get_db
from agentic_browser.models.job import JobStatus
from agentic_browser.schemas.job import (
    JobListResponse,
    JobResponse,
    JobRunRequest,
    JobRunResponse,
    JobSummary,
)
from agentic_browser.services.agent_service import BrowserAgent
from agentic_browser.services.job_service import JobService

router = APIRouter()


@router.post(
    "/run",
    response_model=JobRunResponse,
    dependencies=[Depends(require_agent_rate_limit)],
)
async def run_job(
    body: JobRunRequest,
    agent: BrowserAgent = Depends(get_browser_agent),
):
    """执行网页提取任务，返回任务 id、状态与最终答案（失败时返回 error）。"""
    result = await agent.run(goal=body.goal, base_url=body.base_url)
    return JobRunResponse(
        job_id=result.job_id,
        status=result.status,
        output=result.output,
        error=result.error,
        turns=result.turns,
    )


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """任务列表，可按状态过滤"""
    jobs, total = await JobService(db).list_jobs(status=status, page=page, page_size=page_size)
    return JobListResponse(
        jobs=[JobSummary.model_validate(j) for j in jobs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: int, db: AsyncSession = Depends(get_db)):
    """任务详情：包含最近一次检查点写入的对话记录与日志"""
    job = await JobService(db).get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="任务不存在")
    return JobResponse.model_validate(job)
