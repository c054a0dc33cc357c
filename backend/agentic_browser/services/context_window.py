"""
上下文裁剪：多轮累积的页面 HTML 会撑爆上下文，只保留最近一条观察的完整内容。
"""
from typing import List

from agentic_browser.schemas.agent import Message

SKIPPED_OBSERVATION_PLACEHOLDER = "HTML content skipped for brevity."


def latest_observation_index(messages: List[Message]) -> int:
    """最后一条 observation 消息的下标，没有则返回 -1"""
    latest = -1
    for i, m in enumerate(messages):
        if m.is_observation:
            latest = i
    return latest


def prune_observations(messages: List[Message]) -> List[Message]:
    """返回裁剪后的副本：除最后一条外，其余 observation 的内容替换为占位文本。

    不修改传入的列表与消息对象；role、tool_call_id、顺序保持不变。
    """
    latest = latest_observation_index(messages)
    pruned: List[Message] = []
    for i, m in enumerate(messages):
        if m.is_observation and i != latest:
            pruned.append(m.model_copy(update={"content": SKIPPED_OBSERVATION_PLACEHOLDER}))
        else:
            pruned.append(m)
    return pruned
