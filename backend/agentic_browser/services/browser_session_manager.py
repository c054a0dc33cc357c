"""
浏览器会话管理：按逻辑名复用长连接浏览器，空闲保活，超时关闭。

- acquire(key)：同一 key 的请求串行执行（asyncio.Lock），进入时若连接已断开则重新启动；
  进入与退出时都把空闲计数清零，退出时若没有保活任务则启动一个（不会叠加）。
- 保活任务每 tick_seconds 触发一次：空闲计数累加，未到上限继续等待，到达上限关闭浏览器并结束。
- sleep 可注入，测试中用虚拟时钟驱动，不依赖真实时间。
"""
import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

from agentic_browser.core.config import settings

logger = logging.getLogger(__name__)

Launcher = Callable[[], Awaitable[Tuple[Any, Any]]]
Sleep = Callable[[float], Awaitable[Any]]


class SessionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CLOSING = "closing"


class BrowserLaunchError(RuntimeError):
    """浏览器无法启动或连接"""


async def launch_chromium() -> Tuple[Any, Any]:
    """启动 Playwright 与 chromium；配置了 BROWSER_CDP_URL 时连接远程浏览器。返回 (playwright, browser)。"""
    from playwright.async_api import async_playwright

    playwright = await async_playwright().start()
    try:
        if settings.BROWSER_CDP_URL:
            browser = await playwright.chromium.connect_over_cdp(settings.BROWSER_CDP_URL)
        else:
            # 服务器无显示器，默认无头模式
            browser = await playwright.chromium.launch(
                headless=settings.BROWSER_HEADLESS,
                args=["--disable-gpu", "--no-sandbox", "--disable-dev-shm-usage"],
            )
    except Exception:
        await playwright.stop()
        raise
    return playwright, browser


class BrowserSession:
    """单个逻辑名对应的浏览器会话"""

    def __init__(
        self,
        key: str,
        launcher: Launcher = launch_chromium,
        keep_alive_seconds: Optional[int] = None,
        tick_seconds: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.key = key
        self.state = SessionState.DISCONNECTED
        self.idle_seconds = 0
        self.keep_alive_seconds = keep_alive_seconds or settings.KEEP_BROWSER_ALIVE_SECONDS
        self.tick_seconds = tick_seconds or settings.KEEP_ALIVE_TICK_SECONDS
        self._launcher = launcher
        self._sleep = sleep
        self._playwright: Any = None
        self._browser: Any = None
        self._keep_alive_task: Optional[asyncio.Task] = None
        self.lock = asyncio.Lock()

    @property
    def browser(self) -> Any:
        return self._browser

    @property
    def in_use(self) -> bool:
        return self.lock.locked()

    @property
    def keep_alive_armed(self) -> bool:
        return self._keep_alive_task is not None and not self._keep_alive_task.done()

    def is_connected(self) -> bool:
        if self.state != SessionState.CONNECTED or self._browser is None:
            return False
        try:
            return bool(self._browser.is_connected())
        except Exception:
            return False

    def reset_idle(self) -> None:
        self.idle_seconds = 0

    async def ensure_connected(self) -> None:
        """连接可用则复用，否则（重新）启动；失败抛 BrowserLaunchError。"""
        if self.is_connected():
            return
        if self._browser is not None or self._playwright is not None:
            logger.info("浏览器会话 %s 连接已断开，清理后重新启动", self.key)
            await self.close()
        logger.info("浏览器会话 %s: 启动新的浏览器实例", self.key)
        try:
            self._playwright, self._browser = await self._launcher()
        except Exception as e:
            self.state = SessionState.DISCONNECTED
            raise BrowserLaunchError(f"could not start browser instance: {e}") from e
        self.state = SessionState.CONNECTED

    async def new_page(self, viewport: Optional[Dict[str, int]] = None) -> Any:
        if not self.is_connected():
            raise BrowserLaunchError(f"browser session {self.key} is not connected")
        return await self._browser.new_page(viewport=viewport or settings.viewport)

    def arm_keep_alive(self) -> bool:
        """没有保活任务时启动一个；已有则不重复启动。返回是否新启动。"""
        if self.keep_alive_armed:
            return False
        logger.debug("浏览器会话 %s: 启动保活任务", self.key)
        self._keep_alive_task = asyncio.get_running_loop().create_task(self._keep_alive())
        return True

    async def tick(self) -> bool:
        """保活检查一次。返回 True 表示继续保活，False 表示已关闭浏览器。"""
        if self.in_use:
            # 有请求正在使用，不算空闲
            self.reset_idle()
            return True
        self.idle_seconds += self.tick_seconds
        if self.idle_seconds < self.keep_alive_seconds:
            logger.info("浏览器会话 %s 已保活 %d 秒，继续保活", self.key, self.idle_seconds)
            return True
        logger.info("浏览器会话 %s 空闲超过 %d 秒，关闭浏览器", self.key, self.keep_alive_seconds)
        async with self.lock:
            await self.close()
        return False

    async def _keep_alive(self) -> None:
        while True:
            await self._sleep(self.tick_seconds)
            if not await self.tick():
                return

    async def close(self) -> None:
        """关闭浏览器与 Playwright，状态回到 DISCONNECTED"""
        if self._browser is None and self._playwright is None:
            self.state = SessionState.DISCONNECTED
            return
        self.state = SessionState.CLOSING
        try:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except Exception as e:
                    logger.warning("关闭浏览器失败 %s: %s", self.key, e)
            if self._playwright is not None:
                try:
                    await self._playwright.stop()
                except Exception as e:
                    logger.warning("停止 Playwright 失败 %s: %s", self.key, e)
        finally:
            self._browser = None
            self._playwright = None
            self.state = SessionState.DISCONNECTED

    async def shutdown(self) -> None:
        """取消保活任务并关闭浏览器（应用退出时调用）"""
        task = self._keep_alive_task
        self._keep_alive_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.close()


class BrowserSessionRegistry:
    """按逻辑名管理浏览器会话"""

    def __init__(
        self,
        launcher: Launcher = launch_chromium,
        keep_alive_seconds: Optional[int] = None,
        tick_seconds: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._launcher = launcher
        self._keep_alive_seconds = keep_alive_seconds
        self._tick_seconds = tick_seconds
        self._sleep = sleep
        self._sessions: Dict[str, BrowserSession] = {}

    def get(self, key: Optional[str] = None) -> BrowserSession:
        key = key or settings.BROWSER_SESSION_KEY
        session = self._sessions.get(key)
        if session is None:
            session = BrowserSession(
                key,
                launcher=self._launcher,
                keep_alive_seconds=self._keep_alive_seconds,
                tick_seconds=self._tick_seconds,
                sleep=self._sleep,
            )
            self._sessions[key] = session
        return session

    @asynccontextmanager
    async def acquire(self, key: Optional[str] = None) -> AsyncIterator[BrowserSession]:
        """占用会话直到退出上下文；同一 key 的并发请求排队执行。"""
        session = self.get(key)
        async with session.lock:
            session.reset_idle()
            await session.ensure_connected()
            try:
                yield session
            finally:
                session.reset_idle()
                session.arm_keep_alive()

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """各会话状态（健康检查用）"""
        return {
            key: {
                "state": s.state.value,
                "idle_seconds": s.idle_seconds,
                "in_use": s.in_use,
                "keep_alive_armed": s.keep_alive_armed,
            }
            for key, s in self._sessions.items()
        }

    async def close_all(self) -> None:
        for session in list(self._sessions.values()):
            await session.shutdown()
        self._sessions.clear()
