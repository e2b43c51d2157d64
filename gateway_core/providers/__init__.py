"""Provider 集成层。

该包下的模块负责：
- 维护 Provider 端点配置 (registry)。
- 发起 HTTP 请求的 Transport Client (transport)。
- 把传输层/HTTP 失败分类为 GatewayError (classifier)。
"""

from typing import Optional

from gateway_core.providers.registry import get_provider_config
from gateway_core.providers.transport import TransportClient


def create_transport(cfg, provider: Optional[str] = None) -> TransportClient:
    """根据配置创建 TransportClient，默认使用 playlab。"""

    return TransportClient(cfg, provider=get_provider_config(provider or "playlab"))
