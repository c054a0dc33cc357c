"""
任务相关 Schema
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agentic_browser.schemas.agent import Message, load_transcript


class JobRunRequest(BaseModel):
    """任务执行请求；字段缺省时使用配置中的默认目标与起始页"""
    model_config = ConfigDict(populate_by_name=True)

    goal: Optional[str] = None
    base_url: Optional[str] = Field(default=None, alias="baseUrl")


class JobRunResponse(BaseModel):
    """任务执行结果"""
    job_id: Optional[int] = None
    status: str
    output: Optional[str] = None
    error: Optional[str] = None
    turns: int = 0


class JobResponse(BaseModel):
    """任务详情（含对话记录）"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    goal: str
    starting_url: str
    status: str
    output: Optional[str] = None
    log: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    messages: List[Message] = []

    @field_validator("messages", mode="before")
    @classmethod
    def parse_messages(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return load_transcript(v)
        return v

    @field_validator("status", mode="before")
    @classmethod
    def status_value(cls, v):
        return getattr(v, "value", v)


class JobSummary(BaseModel):
    """任务列表项（不含对话记录）"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    goal: str
    starting_url: str
    status: str
    output: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def status_value(cls, v):
        return getattr(v, "value", v)


class JobListResponse(BaseModel):
    """任务列表响应"""
    jobs: List[JobSummary]
    total: int
    page: int
    page_size: int
