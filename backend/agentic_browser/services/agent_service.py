"""
网页提取 Agent：模型逐轮决定点击/输入/选择，直到给出不带工具调用的最终答案。

状态：INIT → AWAITING_MODEL → (DISPATCHING_TOOLS → AWAITING_MODEL)* → TERMINATED
每轮最多执行一个工具调用；每轮执行后写检查点；浏览器会话由 BrowserSessionRegistry 复用与保活。
"""
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from agentic_browser.core.config import settings
from agentic_browser.schemas.agent import Message, MessageKind, MessageRole, ToolCall
from agentic_browser.services.browser_session_manager import BrowserLaunchError, BrowserSessionRegistry
from agentic_browser.services.browser_tools import BROWSER_TOOLS, ToolCallDispatcher
from agentic_browser.services.context_window import prune_observations
from agentic_browser.services.html_normalizer import observe
from agentic_browser.services.job_service import JobService
from agentic_browser.services.llm_service import ModelServiceError, chat_completion_with_tools
from agentic_browser.services.screenshot_service import ScreenshotStore, screenshot_folder
from agentic_browser.services.tool_call_policy import ToolCallPolicy

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a web extraction assistant. Your goal is to extract requested data from [HTML]. If the data is not available, you should use tools to interact with the page. Please be thorough. Don't hesitate to drill down to subpages and extract data from them. If the browser has a hamburger menu, you can click on it to open the menu to see the subpages.

Approach it step by step."""

TURN_LIMIT_EXCEEDED = "turn limit exceeded"

CompletionFn = Callable[..., Awaitable[Tuple[Optional[str], List[ToolCall]]]]


class TurnState(str, enum.Enum):
    INIT = "init"
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    TERMINATED = "terminated"


class TurnLimitExceeded(RuntimeError):
    pass


class NavigationError(RuntimeError):
    """起始页无法加载"""


class RunLog:
    """任务日志：每行带相对开始时间的毫秒数，同时输出到 logger"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started = clock()
        self.lines: List[str] = []

    def __call__(self, msg: str) -> None:
        elapsed = int((self._clock() - self._started) * 1000)
        line = f"[{elapsed}ms]: {msg}"
        self.lines.append(line)
        logger.info(line)


@dataclass
class AgentRunResult:
    """一次任务的执行结果"""
    success: bool
    job_id: Optional[int] = None
    output: Optional[str] = None
    error: Optional[str] = None
    turns: int = 0

    @property
    def status(self) -> str:
        return "success" if self.success else "failed"


class BrowserAgent:
    """编排模型调用、工具执行与检查点写入"""

    def __init__(
        self,
        job_service: JobService,
        sessions: BrowserSessionRegistry,
        dispatcher: Optional[ToolCallDispatcher] = None,
        complete: CompletionFn = chat_completion_with_tools,
        screenshots: Optional[ScreenshotStore] = None,
        policy: Optional[ToolCallPolicy] = None,
        max_turns: Optional[int] = None,
        session_key: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
    ):
        self.job_service = job_service
        self.sessions = sessions
        self.dispatcher = dispatcher or ToolCallDispatcher()
        self.complete = complete
        self.screenshots = screenshots
        self.policy = policy or ToolCallPolicy()
        self.max_turns = max_turns or settings.AGENT_MAX_TURNS
        self.session_key = session_key or settings.BROWSER_SESSION_KEY
        self.tools = tools or BROWSER_TOOLS
        self.state = TurnState.INIT
        self.messages: List[Message] = []
        self.turns = 0

    def _set_state(self, state: TurnState) -> None:
        logger.debug("agent 状态 %s → %s", self.state.value, state.value)
        self.state = state

    async def run(self, goal: Optional[str] = None, base_url: Optional[str] = None) -> AgentRunResult:
        """执行一次提取任务。工具错误可恢复；浏览器启动、页面加载、模型调用失败与超出轮数为致命错误，任务置为 failed。"""
        goal = goal or settings.DEFAULT_GOAL
        base_url = base_url or settings.DEFAULT_BASE_URL
        self.state = TurnState.INIT
        self.messages = []
        self.turns = 0
        log = RunLog()

        job = await self.job_service.create_job(goal, base_url)
        folder = screenshot_folder(job.created_at, base_url)
        try:
            async with self.sessions.acquire(self.session_key) as session:
                page = await session.new_page(settings.viewport)
                try:
                    first_observation = await self._open(page, base_url, log)
                    self.messages.append(
                        Message(role=MessageRole.SYSTEM, content=SYSTEM_PROMPT)
                    )
                    self.messages.append(
                        Message(
                            role=MessageRole.USER,
                            content=f"Goal: {goal}\n{first_observation}",
                            kind=MessageKind.OBSERVATION,
                        )
                    )
                    final_answer = await self._loop(job.id, page, folder, log)
                finally:
                    await self._close_page(page)
        except BrowserLaunchError as e:
            log(f"Browser: could not start browser instance. Error: {e}")
            return await self._fail(job.id, str(e), log)
        except ModelServiceError as e:
            log(f"Model service error: {e}")
            return await self._fail(job.id, str(e), log)
        except TurnLimitExceeded:
            log(f"Stopped after {self.max_turns} turns without a final answer")
            return await self._fail(job.id, TURN_LIMIT_EXCEEDED, log)
        except NavigationError as e:
            log(str(e))
            return await self._fail(job.id, str(e), log)
        except SQLAlchemyError:
            raise
        except Exception as e:
            # 未预期的错误：先把任务置为 failed 再向上抛
            logger.exception("任务 %s 执行异常", job.id)
            log(f"Unexpected error: {e!r}")
            await self._fail(job.id, f"unexpected error: {e!r}", log)
            raise

        log(f"Final Answer: {final_answer}")
        await self.job_service.finalize_job(job.id, final_answer, self.messages, log.lines)
        return AgentRunResult(success=True, job_id=job.id, output=final_answer, turns=self.turns)

    @staticmethod
    async def _open(page: Any, base_url: str, log: RunLog) -> str:
        """打开起始页并返回第一条页面观察"""
        try:
            await page.goto(base_url, timeout=settings.BROWSER_NAVIGATION_TIMEOUT_MS)
            log(f"Loading page {base_url}")
            return await observe(page)
        except Exception as e:
            raise NavigationError(f"could not load {base_url}: {str(e).splitlines()[0] if str(e) else e!r}") from e

    async def _loop(self, job_id: int, page: Any, folder: str, log: RunLog) -> Optional[str]:
        """返回最终答案"""
        while True:
            if self.turns >= self.max_turns:
                raise TurnLimitExceeded(TURN_LIMIT_EXCEEDED)
            self.turns += 1
            self._set_state(TurnState.AWAITING_MODEL)
            pruned = prune_observations(self.messages)

            if self.screenshots is not None and settings.SCREENSHOT_ENABLED:
                key = await self.screenshots.store(page, folder)
                if key:
                    log(f"Stored screenshot at {key}")

            content, tool_calls = await self.complete(
                [m.to_openai() for m in pruned],
                tools=self.tools,
            )
            assistant = self.policy.enforce(
                Message(role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls)
            )
            self.messages.append(assistant)

            if not assistant.tool_calls:
                self._set_state(TurnState.TERMINATED)
                return content

            self._set_state(TurnState.DISPATCHING_TOOLS)
            for tool_call in assistant.tool_calls:
                self._log_reasoning(tool_call, log)
                result = await self.dispatcher.dispatch(page, tool_call)
                self.messages.append(result)
            await self.job_service.update_job(job_id, self.messages, log.lines)

    @staticmethod
    def _log_reasoning(tool_call: ToolCall, log: RunLog) -> None:
        try:
            args = tool_call.parse_arguments()
        except ValueError as e:
            log(f"{tool_call.name}: {e}")
            return
        log(f"{tool_call.name}({args.selector}): {args.reasoning}")

    async def _fail(self, job_id: int, reason: str, log: RunLog) -> AgentRunResult:
        self._set_state(TurnState.TERMINATED)
        await self.job_service.fail_job(job_id, reason, self.messages, log.lines)
        return AgentRunResult(success=False, job_id=job_id, error=reason, turns=self.turns)

    @staticmethod
    async def _close_page(page: Any) -> None:
        try:
            await page.close()
        except Exception as e:
            logger.warning("关闭页面失败: %s", e)
