"""
浏览器工具：OpenAI 格式工具定义 + 工具调用分发（click / type / select）
每次调用后等待页面稳定并返回新的页面观察，失败时把错误作为 tool 消息交给模型。
"""
import logging
from typing import Any, Optional

from agentic_browser.core.config import settings
from agentic_browser.schemas.agent import Message, MessageKind, MessageRole, ToolCall, ToolName
from agentic_browser.services.html_normalizer import OBSERVATION_MARKER, observe

logger = logging.getLogger(__name__)


# ---------- OpenAI 格式工具定义 ---------- #
BROWSER_TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "click",
            "description": "Clicks selected element, wait until navigation/interaction ends and returns the resulting HTML",
            "parameters": {
                "type": "object",
                "properties": {
                    "selector": {"type": "string", "description": "HTML selector of element to click"},
                    "reasoning": {
                        "type": "string",
                        "description": "Human readable explanation what and why is clicked for audit purposes",
                    },
                },
                "required": ["selector", "reasoning"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "type",
            "description": "Type text into an input field",
            "parameters": {
                "type": "object",
                "properties": {
                    "selector": {"type": "string", "description": "HTML selector of the input field"},
                    "value": {"type": "string", "description": "value to fill"},
                    "reasoning": {
                        "type": "string",
                        "description": "Human readable explanation what and why is typed for audit purposes",
                    },
                },
                "required": ["selector", "value", "reasoning"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "select",
            "description": "Select an option from a dropdown menu",
            "parameters": {
                "type": "object",
                "properties": {
                    "selector": {"type": "string", "description": "HTML selector of the dropdown"},
                    "value": {"type": "string", "description": "option to select"},
                    "reasoning": {
                        "type": "string",
                        "description": "Human readable explanation what and why is selected for audit purposes",
                    },
                },
                "required": ["selector", "value", "reasoning"],
            },
        },
    },
]


def _playwright_friendly_error(e: Exception) -> str:
    """Playwright 报错常带多行调用日志，只保留首行给模型看。"""
    msg = str(e).strip() or e.__class__.__name__
    first_line = msg.splitlines()[0]
    if "Timeout" in first_line and "exceeded" in first_line:
        return f"{first_line} (element not found or not interactable)"
    return first_line


class ToolCallDispatcher:
    """把单个 ToolCall 映射到页面操作，并生成 tool 消息。"""

    def __init__(
        self,
        action_timeout_ms: Optional[int] = None,
        navigation_timeout_ms: Optional[int] = None,
    ):
        self.action_timeout_ms = action_timeout_ms or settings.BROWSER_ACTION_TIMEOUT_MS
        self.navigation_timeout_ms = navigation_timeout_ms or settings.BROWSER_NAVIGATION_TIMEOUT_MS

    async def dispatch(self, page: Any, tool_call: ToolCall) -> Message:
        """执行工具调用。页面级错误不抛出，而是返回以 "Error:" 开头的 tool 消息。"""
        try:
            args = tool_call.parse_arguments()
            name = ToolName(tool_call.name)
            if name == ToolName.CLICK:
                await page.click(args.selector, timeout=self.action_timeout_ms)
            elif name == ToolName.TYPE:
                await page.type(args.selector, args.value, timeout=self.action_timeout_ms)
            elif name == ToolName.SELECT:
                await page.select_option(args.selector, args.value, timeout=self.action_timeout_ms)
            await page.wait_for_load_state("domcontentloaded", timeout=self.navigation_timeout_ms)
            content = await observe(page)
        except Exception as e:
            error = _playwright_friendly_error(e)
            logger.warning("工具 %s 执行失败: %s", tool_call.name, error)
            content = f"Error: {error}\n{await self._safe_observe(page)}"
        return Message(
            role=MessageRole.TOOL,
            content=content,
            kind=MessageKind.OBSERVATION,
            tool_call_id=tool_call.id,
        )

    async def _safe_observe(self, page: Any) -> str:
        """尽力获取当前页面观察；页面已不可用时返回空观察。"""
        try:
            return await observe(page)
        except Exception as e:
            logger.warning("获取页面观察失败: %s", _playwright_friendly_error(e))
            return f"{OBSERVATION_MARKER}\n"
