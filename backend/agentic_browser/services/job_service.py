"""
任务服务：创建任务、每轮写入检查点、完成/失败收尾
只负责持久化，不解读对话内容；每次写入立即提交，后写覆盖先写。
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agentic_browser.models.job import JOB_TRANSITIONS, Job, JobStatus
from agentic_browser.schemas.agent import Message, dump_transcript

logger = logging.getLogger(__name__)


class InvalidJobTransition(ValueError):
    """任务状态回退或跳跃"""


class JobNotFound(LookupError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_transition(job: Job, target: JobStatus) -> None:
    current = JobStatus(job.status)
    if target not in JOB_TRANSITIONS[current]:
        raise InvalidJobTransition(
            f"job {job.id}: cannot move from {current.value} to {target.value}"
        )


class JobService:
    """任务服务类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_job(self, goal: str, starting_url: str) -> Job:
        """创建任务记录，直接进入 running（pending → running 在插入时完成）"""
        job = Job(goal=goal, starting_url=starting_url, status=JobStatus.PENDING)
        _check_transition(job, JobStatus.RUNNING)
        job.status = JobStatus.RUNNING
        self.db.add(job)
        await self.db.commit()
        await self.db.refresh(job)
        logger.info("任务已创建 id=%s url=%s", job.id, starting_url)
        return job

    async def _get_or_raise(self, job_id: int) -> Job:
        job = await self.db.get(Job, job_id)
        if job is None:
            raise JobNotFound(f"job {job_id} not found")
        return job

    async def update_job(
        self,
        job_id: int,
        messages: List[Message],
        log: List[str],
        updated_at: Optional[datetime] = None,
    ) -> None:
        """检查点：整体覆盖对话记录与日志，仅限 running 状态的任务"""
        job = await self._get_or_raise(job_id)
        if JobStatus(job.status) != JobStatus.RUNNING:
            raise InvalidJobTransition(
                f"job {job.id}: cannot checkpoint a {JobStatus(job.status).value} job"
            )
        job.messages = dump_transcript(messages)
        job.log = "\n".join(log)
        job.updated_at = updated_at or utcnow()
        await self.db.commit()

    async def finalize_job(
        self,
        job_id: int,
        output: Optional[str],
        messages: List[Message],
        log: List[str],
        completed_at: Optional[datetime] = None,
    ) -> Job:
        """任务成功：写入最终答案并置为 success"""
        job = await self._get_or_raise(job_id)
        _check_transition(job, JobStatus.SUCCESS)
        ts = completed_at or utcnow()
        job.status = JobStatus.SUCCESS
        job.output = output
        job.messages = dump_transcript(messages)
        job.log = "\n".join(log)
        job.completed_at = ts
        job.updated_at = ts
        await self.db.commit()
        return job

    async def fail_job(
        self,
        job_id: int,
        reason: str,
        messages: List[Message],
        log: List[str],
        failed_at: Optional[datetime] = None,
    ) -> Job:
        """任务失败：记录失败原因与时间并置为 failed"""
        job = await self._get_or_raise(job_id)
        _check_transition(job, JobStatus.FAILED)
        ts = failed_at or utcnow()
        job.status = JobStatus.FAILED
        job.messages = dump_transcript(messages)
        job.log = "\n".join([*log, f"Failed: {reason}"])
        job.failed_at = ts
        job.updated_at = ts
        await self.db.commit()
        logger.warning("任务失败 id=%s: %s", job_id, reason)
        return job

    async def get_job(self, job_id: int) -> Optional[Job]:
        return await self.db.get(Job, job_id)

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Job], int]:
        """分页列出任务，按创建时间倒序"""
        query = select(Job)
        count_query = select(func.count()).select_from(Job)
        if status is not None:
            query = query.where(Job.status == status)
            count_query = count_query.where(Job.status == status)
        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            query.order_by(Job.id.desc()).offset((page - 1) * page_size).limit(page_size)
        )
        return list(result.scalars().all()), total
