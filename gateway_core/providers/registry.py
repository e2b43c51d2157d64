"""Provider 端点配置。

把 Provider 的 URL 结构集中在这里，上层只关心"创建会话 / 发消息 / 取历史"，
具体路径模板由这里统一维护，便于 Provider 调整 API 时集中修改。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的端点配置。

    - base_url: API 根地址，所有路径都相对于 ``{base_url}/projects/{project_id}``。
    - record_marker: 流式响应中事件记录行的前缀。
    - create_metadata: 创建会话时附带的元数据，用于关闭欢迎语/系统横幅。
    """

    name: str
    base_url: str
    record_marker: str = "data:"
    create_metadata: Mapping[str, Any] = field(default_factory=dict)

    def project_prefix(self, base_url: str, project_id: str) -> str:
        return f"{base_url.rstrip('/')}/projects/{project_id}"


PLAYLAB_CONFIG = ProviderConfig(
    name="playlab",
    base_url="https://www.playlab.ai/api/v1",
    create_metadata={
        "suppressWelcomeMessage": True,
        "suppressSystemMessages": True,
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "playlab": PLAYLAB_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")


def conversations_path() -> str:
    return "/conversations"


def messages_path(conversation_id: str) -> str:
    return f"/conversations/{conversation_id}/messages"


def create_conversation_body(cfg: ProviderConfig = PLAYLAB_CONFIG) -> Dict[str, Any]:
    return {"metadata": dict(cfg.create_metadata)}


def send_message_body(message: str) -> Dict[str, Any]:
    return {"input": {"message": message}}
