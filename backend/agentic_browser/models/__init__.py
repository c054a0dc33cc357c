# Database models
from agentic_browser.models.job import Job, JobStatus

__all__ = [
    "Job",
    "JobStatus",
]
