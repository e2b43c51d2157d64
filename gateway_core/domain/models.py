"""网关内部共享的数据模型。

- Conversation: Provider 分配的会话标识（能力令牌，不落盘）。
- Message: 一条对话消息（user/assistant/system）。
- StreamChunk: 流式响应中解码出的一条增量记录，只存在于单次 send 调用内。
- SendResult: send 的最终结果。
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Literal, Optional


# 对话角色（与 Provider 的 role 字段对应）
Role = Literal["user", "assistant", "system"]

DEFAULT_ROLE: Role = "assistant"


@dataclass(frozen=True)
class Conversation:
    """Provider 侧的会话。

    id 视同 bearer 凭据：不可猜测、不跨调用方复用、不写入日志。
    """

    id: str

    def __repr__(self) -> str:
        return "Conversation(id=<redacted>)"


@dataclass
class Message:
    role: Role
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StreamChunk:
    """流式响应的单条增量。

    - delta: 文本片段（可能为空）。
    - role: 记录里携带的角色（可能为空）。
    """

    delta: Optional[str] = None
    role: Optional[str] = None


@dataclass
class SendResult:
    content: str
    role: Role = DEFAULT_ROLE

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "role": self.role}
