"""
日志配置：控制台 + 按大小滚动的文件日志
"""
import logging
import logging.handlers

from agentic_browser.core.config import settings

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging() -> None:
    """初始化根 logger；重复调用不会叠加 handler。"""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO))
    if getattr(root, "_agentic_browser_configured", False):
        return
    formatter = logging.Formatter(_LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    try:
        settings.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            settings.LOG_FILE,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError as e:
        root.warning("日志文件不可写，仅输出到控制台: %s", e)

    # 第三方库日志过于啰嗦
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    root._agentic_browser_configured = True  # type: ignore[attr-defined]
