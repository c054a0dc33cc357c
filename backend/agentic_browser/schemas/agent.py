"""
Agent 对话 Schema：消息、工具调用及其参数
"""
import enum
import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator


class MessageRole(str, enum.Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class MessageKind(str, enum.Enum):
    """消息内容类别：observation 为页面观察（HTML），会被上下文裁剪"""
    OBSERVATION = "observation"
    PLAIN_TEXT = "plain_text"


class ToolName(str, enum.Enum):
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"


class ToolArguments(BaseModel):
    """工具参数；reasoning 仅用于审计日志"""
    selector: str = Field(min_length=1)
    value: Optional[str] = None
    reasoning: str = ""


class ToolCall(BaseModel):
    """模型发起的一次工具调用。arguments 保留模型返回的原始 JSON 字符串。"""
    id: str
    name: str
    arguments: str = "{}"

    def parse_arguments(self) -> ToolArguments:
        """解析并校验参数，非法时抛 ValueError。"""
        try:
            tool = ToolName(self.name)
        except ValueError:
            raise ValueError(f"Unknown tool: {self.name}")
        try:
            raw = json.loads(self.arguments or "{}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid arguments for {self.name}: {e}")
        if not isinstance(raw, dict):
            raise ValueError(f"Invalid arguments for {self.name}: expected an object")
        try:
            args = ToolArguments.model_validate(raw)
        except ValidationError as e:
            raise ValueError(f"Invalid arguments for {self.name}: {e.errors()[0].get('msg')}")
        if tool in (ToolName.TYPE, ToolName.SELECT) and args.value is None:
            raise ValueError(f"Tool {self.name} requires a value")
        return args

    def to_openai(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class Message(BaseModel):
    """对话中的一条消息"""
    role: MessageRole
    content: Optional[str] = None
    kind: MessageKind = MessageKind.PLAIN_TEXT
    tool_calls: List[ToolCall] = []
    tool_call_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_tool_fields(self):
        if self.tool_calls and self.role != MessageRole.ASSISTANT:
            raise ValueError("only assistant messages may carry tool_calls")
        if self.role == MessageRole.TOOL and self.tool_call_id is None:
            raise ValueError("tool messages require tool_call_id")
        return self

    @property
    def is_observation(self) -> bool:
        return self.kind == MessageKind.OBSERVATION

    def to_openai(self) -> Dict[str, Any]:
        """转为 OpenAI chat 消息格式（kind 仅内部使用，不发送）"""
        msg: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            msg["tool_call_id"] = self.tool_call_id
        return msg


def dump_transcript(messages: List[Message]) -> str:
    """序列化整段对话，用于写入 jobs.messages"""
    return json.dumps(
        [m.model_dump(mode="json", exclude_defaults=True) for m in messages],
        ensure_ascii=False,
    )


def load_transcript(raw: Optional[str]) -> List[Message]:
    if not raw:
        return []
    return [Message.model_validate(item) for item in json.loads(raw)]
