"""
FastAPI主应用入口
"""
import uuid
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager

from agentic_browser.core.config import settings
from agentic_browser.core.database import engine, Base
from agentic_browser.api import entry
from agentic_browser.api.v1 import api_router
from agentic_browser.core.logging import setup_logging
from agentic_browser.core.health import browser_sessions_status, check_db, check_redis, check_minio
from agentic_browser.services.browser_session_manager import BrowserSessionRegistry
from agentic_browser.services.screenshot_service import ScreenshotStore

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时执行
    setup_logging()
    # 创建数据库表
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    app.state.browser_sessions = BrowserSessionRegistry()
    app.state.screenshots = ScreenshotStore() if settings.SCREENSHOT_ENABLED else None

    yield

    # 关闭时执行：取消保活任务并关闭浏览器
    await app.state.browser_sessions.close_all()
    await engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="LLM 驱动的网页导航与数据提取服务",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """透传或生成请求 id，日志与错误响应据此关联到同一次任务"""
    request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request.state.request_id
    return response


def _json_error(request: Request, status_code: int, detail: str) -> JSONResponse:
    """错误统一为 {detail, request_id}"""
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "request_id": getattr(request.state, "request_id", None)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _json_error(request, exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # 任务已在 agent 中置为 failed，这里只负责响应格式
    return _json_error(request, 500, "服务器内部错误")


# 注册路由
app.include_router(entry.router)
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check(request: Request):
    """健康检查：返回各依赖连通状态"""
    db_ok, db_msg = await check_db()
    redis_ok, redis_msg = check_redis()
    minio_ok, minio_msg = check_minio()
    all_ok = db_ok and redis_ok and minio_ok
    return JSONResponse(
        content={
            "status": "healthy" if all_ok else "degraded",
            "service": "agentic-browser",
            "dependencies": {
                "database": {"ok": db_ok, "message": db_msg},
                "redis": {"ok": redis_ok, "message": redis_msg},
                "minio": {"ok": minio_ok, "message": minio_msg},
            },
            "browser_sessions": browser_sessions_status(
                getattr(request.app.state, "browser_sessions", None)
            ),
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "agentic_browser.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_excludes=["**/__pycache__/**", "**/*.pyc"],
    )
