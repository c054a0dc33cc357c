"""
工具调用策略：每轮最多执行一个工具调用（禁止并行调用）
"""
import logging
from dataclasses import dataclass

from agentic_browser.schemas.agent import Message

logger = logging.getLogger(__name__)

MAX_TOOL_CALLS_PER_TURN = 1


@dataclass(frozen=True)
class ToolCallPolicy:
    """每轮只保留模型返回的第一个工具调用，其余丢弃。上限固定为 1，不可配置。"""
    max_tool_calls_per_turn: int = MAX_TOOL_CALLS_PER_TURN

    def __post_init__(self):
        if self.max_tool_calls_per_turn != MAX_TOOL_CALLS_PER_TURN:
            raise ValueError(
                f"max_tool_calls_per_turn is fixed at {MAX_TOOL_CALLS_PER_TURN}, "
                f"got {self.max_tool_calls_per_turn}"
            )

    def enforce(self, message: Message) -> Message:
        if len(message.tool_calls) <= self.max_tool_calls_per_turn:
            return message
        dropped = [tc.name for tc in message.tool_calls[self.max_tool_calls_per_turn:]]
        logger.info("模型一次请求了 %d 个工具调用，仅执行第一个，丢弃: %s",
                    len(message.tool_calls), dropped)
        return message.model_copy(
            update={"tool_calls": list(message.tool_calls[: self.max_tool_calls_per_turn])}
        )
