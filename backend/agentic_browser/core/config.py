"""
应用配置：从环境变量读取配置
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """应用配置类"""

    # 项目根目录
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT.parent / ".env"),  # 从项目根目录读取 .env
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API配置
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Agentic Browser"
    CORS_ORIGINS: List[str] = ["*"]  # CORS允许的源

    # 数据库配置（任务记录表 jobs）
    DATABASE_URL: str = "sqlite+aiosqlite:///./agentic_browser.db"
    DATABASE_ECHO: bool = False

    # Redis配置（限流计数）
    REDIS_URL: str = "redis://localhost:6379/0"

    # MinIO配置（截图存储）
    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_ACCESS_KEY: str = "minioadmin"
    MINIO_SECRET_KEY: str = "minioadmin"
    MINIO_SECURE: bool = False
    SCREENSHOT_BUCKET: str = "agentic-browser-screenshots"
    SCREENSHOT_ENABLED: bool = True
    SCREENSHOT_BUCKET_MINUTES: int = 5  # 截图目录按 N 分钟取整

    # AI模型配置（OpenAI 兼容接口，可指向 AI Gateway）
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    LLM_MODEL: str = "gpt-4o"
    LLM_MAX_TOKENS: int = 2048

    # Agent 配置
    DEFAULT_GOAL: str = "Extract pricing model for this company"
    DEFAULT_BASE_URL: str = "https://bubble.io"
    AGENT_MAX_TURNS: int = 30  # 单个任务最多与模型往返的轮数，超出则任务失败
    RESPONSE_JSON_WRAPPED: bool = False  # True 时 POST / 的最终答案以 JSON 字符串返回

    # 浏览器配置
    BROWSER_SESSION_KEY: str = "browser"
    BROWSER_CDP_URL: str = ""  # 非空时连接远程浏览器（connect_over_cdp），否则本地启动 chromium
    BROWSER_HEADLESS: bool = True
    BROWSER_VIEWPORT_WIDTH: int = 1920
    BROWSER_VIEWPORT_HEIGHT: int = 1080
    BROWSER_ACTION_TIMEOUT_MS: int = 10000  # click/type/select 超时
    BROWSER_NAVIGATION_TIMEOUT_MS: int = 30000  # goto 及操作后等待页面稳定的超时
    KEEP_BROWSER_ALIVE_SECONDS: int = 180  # 空闲超过该时长关闭浏览器
    KEEP_ALIVE_TICK_SECONDS: int = 10  # 保活检查间隔

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Path = PROJECT_ROOT / "logs" / "app.log"

    # 限流（入口 / 固定窗口）
    RATE_LIMIT_ENABLED: bool = True  # 是否启用限流
    RATE_LIMIT_AGENT_PER_MINUTE: int = 10  # 每分钟允许的任务请求数

    @property
    def viewport(self) -> dict:
        """Playwright viewport 参数"""
        return {"width": self.BROWSER_VIEWPORT_WIDTH, "height": self.BROWSER_VIEWPORT_HEIGHT}


# 创建全局配置实例
settings = Settings()
