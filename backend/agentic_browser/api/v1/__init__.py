"""
API v1 路由
"""
from fastapi import APIRouter
from agentic_browser.api.v1 import jobs

api_router = APIRouter()

# 注册子路由
api_router.include_router(jobs.router, prefix="/jobs", tags=["任务"])
