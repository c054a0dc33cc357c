"""
任务模型：一次网页提取请求及其完整执行记录
"""
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func

from agentic_browser.core.database import Base


class JobStatus(str, enum.Enum):
    """任务状态，只能前进：pending → running → success / failed"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


# 允许的状态迁移
JOB_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.SUCCESS, JobStatus.FAILED},
    JobStatus.SUCCESS: set(),
    JobStatus.FAILED: set(),
}


class Job(Base):
    """任务表"""
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    goal = Column(Text, nullable=False)
    starting_url = Column(String(2048), nullable=False)
    log = Column(Text, nullable=True)  # 任务日志，按行拼接
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    output = Column(Text, nullable=True)  # 最终答案
    status = Column(
        SQLEnum(
            JobStatus,
            native_enum=False,
            length=16,
            values_callable=lambda enum_cls: [m.value for m in enum_cls],
        ),
        nullable=False,
        default=JobStatus.PENDING,
        index=True,
    )
    messages = Column(Text, nullable=True)  # 对话记录 JSON
