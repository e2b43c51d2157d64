"""Conversation Gateway 顶层包。

把 create / send / history 动作代理到外部对话式 AI Provider，
包括流式响应解码、泄漏内容过滤与统一的错误分类。
"""

from gateway_core.api.dispatcher import ActionDispatcher, DispatchResult, create_dispatcher
from gateway_core.api.service import ConversationGateway, create_gateway

__all__ = [
    "ActionDispatcher",
    "ConversationGateway",
    "DispatchResult",
    "create_dispatcher",
    "create_gateway",
]
