"""
LLM 服务：调用 OpenAI 兼容接口（支持 tool_calls）
"""
from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI, OpenAIError

from agentic_browser.core.config import settings
from agentic_browser.schemas.agent import ToolCall


class ModelServiceError(RuntimeError):
    """模型服务调用失败（限流、鉴权、网络、返回格式异常等）"""


_client_instance: Optional[AsyncOpenAI] = None


def _client() -> AsyncOpenAI:
    global _client_instance
    if _client_instance is None:
        _client_instance = AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY or "dummy",
            base_url=settings.OPENAI_BASE_URL,
        )
    return _client_instance


async def chat_completion_with_tools(
    messages: List[Dict[str, Any]],
    tools: Optional[List[Dict[str, Any]]] = None,
    max_tokens: Optional[int] = None,
    model: Optional[str] = None,
) -> Tuple[Optional[str], List[ToolCall]]:
    """
    支持 tool_calls 的对话：传入 OpenAI 格式消息列表与可选 tools，返回 (content, tool_calls)。
    tool_calls 保留模型给出的顺序与原始 arguments 字符串，由调用方决定执行几个。
    任何接口错误或空响应统一抛 ModelServiceError。
    """
    kwargs: Dict[str, Any] = {
        "model": model or settings.LLM_MODEL,
        "messages": messages,
        "max_tokens": max_tokens or settings.LLM_MAX_TOKENS,
    }
    if tools:
        kwargs["tools"] = tools
        kwargs["tool_choice"] = "auto"
    try:
        resp = await _client().chat.completions.create(**kwargs)
    except OpenAIError as e:
        raise ModelServiceError(f"model call failed: {e}") from e
    msg = resp.choices[0].message if resp.choices else None
    if msg is None:
        raise ModelServiceError("model returned no choices")
    content = msg.content
    tool_calls: List[ToolCall] = []
    for index, tc in enumerate(getattr(msg, "tool_calls", None) or []):
        fn = getattr(tc, "function", None)
        if fn is None:
            continue
        tool_calls.append(
            ToolCall(
                # 部分兼容接口不返回 id，tool 消息必须能对应到调用
                id=getattr(tc, "id", None) or f"call_{index}",
                name=getattr(fn, "name", "") or "",
                arguments=getattr(fn, "arguments", None) or "{}",
            )
        )
    return (content, tool_calls)
