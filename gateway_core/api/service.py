"""Conversation Gateway 服务。

把 create / send / history 三个操作接到 Transport Client、Stream Decoder
与 Content Filter 组成的流水线上：

- create: POST /conversations，返回 Provider 分配的会话 id；
- send: 打开流式 POST，字节 -> 增量 -> 过滤 -> 累积，流结束后一次性返回；
  中途失败时丢弃已累积的部分输出（全有或全无）；
- history: GET /conversations/{cid}/messages，按原顺序映射为 Message。

Transport Client 通过构造参数注入，不使用模块级全局状态。
任何操作都不会自动重试：已部分消费的流重试并不安全。
"""

from contextlib import closing
from typing import Any, Callable, Dict, Iterator, List, Optional

from gateway_core.domain.exceptions import (
    GatewayError,
    InvalidInputError,
    ProviderProtocolError,
)
from gateway_core.domain.models import DEFAULT_ROLE, Conversation, Message, SendResult
from gateway_core.domain.session import SessionRegistry
from gateway_core.infrastructure.logging.logger import logger
from gateway_core.providers import create_transport
from gateway_core.providers.registry import (
    PLAYLAB_CONFIG,
    ProviderConfig,
    conversations_path,
    create_conversation_body,
    messages_path,
    send_message_body,
)
from gateway_core.streaming.content_filter import DEFAULT_RULES, ContentFilter, FilterRuleSet, build_rule_set
from gateway_core.streaming.decoder import StreamDecoder


# 会话 id 会被拼进上游 URL，这些字符会改变路径/查询结构；% 会让编码后的分隔符绕过检查
_FORBIDDEN_ID_CHARS = ("/", "\\", "?", "#", "%")


def _has_unsafe_char(value: str) -> bool:
    return any(ch in _FORBIDDEN_ID_CHARS or ch.isspace() or not ch.isprintable() for ch in value)


def validate_conversation_id(conversation_id: Any) -> str:
    if conversation_id is None or (isinstance(conversation_id, str) and not conversation_id.strip()):
        raise InvalidInputError("conversationId is required", code="MISSING_CONVERSATION_ID")
    if not isinstance(conversation_id, str):
        raise InvalidInputError("conversationId must be a string", code="BAD_CONVERSATION_ID")
    if _has_unsafe_char(conversation_id) or conversation_id.strip(".") == "":
        raise InvalidInputError("conversationId is malformed", code="BAD_CONVERSATION_ID")
    return conversation_id


def validate_message(message: Any) -> str:
    if message is None or (isinstance(message, str) and not message.strip()):
        raise InvalidInputError("message is required", code="MISSING_MESSAGE")
    if not isinstance(message, str):
        raise InvalidInputError("message must be a string", code="BAD_MESSAGE")
    return message


class ConversationGateway:
    """Provider 会话代理。

    Args:
        transport: TransportClient 或具有相同 post/post_stream/get 接口的对象。
        rules: 泄漏规则表（启动时构建，运行期不变）。
        sessions: 本地会话簿记，默认新建一个。
        provider: 端点配置。
    """

    def __init__(
        self,
        transport,
        rules: FilterRuleSet = DEFAULT_RULES,
        sessions: Optional[SessionRegistry] = None,
        provider: ProviderConfig = PLAYLAB_CONFIG,
    ):
        self._transport = transport
        self._rules = rules
        self._sessions = sessions if sessions is not None else SessionRegistry()
        self._provider = provider

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    # ---- create ----

    def create(self, caller: Optional[str] = None) -> Conversation:
        resp = self._transport.post(conversations_path(), create_conversation_body(self._provider))
        conversation = self._parse_conversation(resp.json_body)
        self._sessions.register(conversation.id, owner=caller)
        logger.info("conversation created", extra={"extra": {"caller": caller}})
        return conversation

    # ---- send ----

    def send(
        self,
        conversation_id: Any,
        message: Any,
        caller: Optional[str] = None,
        on_delta: Optional[Callable[[str], None]] = None,
    ) -> SendResult:
        """发送一条用户消息，流结束后返回完整的助手回复。

        on_delta 会收到每一段已过滤、可放行的文本；它抛出的异常（例如调用方已断开）
        会中止上游读取、释放连接并原样向上传播。
        """

        cid = validate_conversation_id(conversation_id)
        text = validate_message(message)
        self._sessions.claim(cid, caller)
        content_filter = ContentFilter(self._rules)
        try:
            with closing(self._pipeline(cid, text, content_filter)) as pieces:
                for piece in pieces:
                    if on_delta is not None:
                        on_delta(piece)
        except GatewayError as e:
            # 部分输出直接丢弃，不返回截断的回答
            logger.warning(
                "send failed",
                extra={"extra": {"kind": e.kind, "code": e.code, "cause": e.cause}},
            )
            raise
        # 一次 send 只产出一条助手消息，流里声明的其他角色不改变回复角色
        result = SendResult(content=content_filter.result(), role=DEFAULT_ROLE)
        logger.info(
            "send completed",
            extra={"extra": {"chars": len(result.content), "dropped_spans": content_filter.dropped}},
        )
        return result

    def stream_reply(self, conversation_id: Any, message: Any, caller: Optional[str] = None) -> Iterator[str]:
        """send 的生成器形式：逐段产出已过滤文本。

        参数在调用时立即校验；提前 close() 生成器会中止上游读取并释放连接。
        """

        cid = validate_conversation_id(conversation_id)
        text = validate_message(message)
        self._sessions.claim(cid, caller)
        return self._pipeline(cid, text, ContentFilter(self._rules))

    def _pipeline(self, cid: str, message: str, content_filter: ContentFilter) -> Iterator[str]:
        with self._transport.post_stream(messages_path(cid), send_message_body(message)) as resp:
            decoder = StreamDecoder(marker=self._provider.record_marker)
            for chunk in decoder.decode(resp.iter_bytes()):
                if chunk.delta:
                    emit = content_filter.feed(chunk.delta)
                    if emit:
                        yield emit
        tail = content_filter.flush()
        if tail:
            yield tail

    # ---- history ----

    def history(self, conversation_id: Any, caller: Optional[str] = None) -> List[Message]:
        cid = validate_conversation_id(conversation_id)
        self._sessions.claim(cid, caller)
        resp = self._transport.get(messages_path(cid))
        body = resp.json_body
        raw_messages = body.get("messages") if isinstance(body, dict) else None
        if not isinstance(raw_messages, list):
            raise ProviderProtocolError(
                "Provider returned an unexpected history payload",
                cause={"status": resp.status, "keys": sorted(body) if isinstance(body, dict) else type(body).__name__},
                code="BAD_HISTORY",
            )
        messages: List[Message] = []
        for raw in raw_messages:
            if not isinstance(raw, dict):
                continue
            role = raw.get("role") or DEFAULT_ROLE
            content = raw.get("content")
            messages.append(Message(role=role, content=content if isinstance(content, str) else ""))
        return messages

    # ---- 连通性自检 ----

    def check_connection(self) -> Dict[str, Any]:
        """创建一个临时会话以检查 Provider 是否可用；Provider 侧失败不会抛出。"""

        try:
            self._transport.post(conversations_path(), create_conversation_body(self._provider))
        except GatewayError as e:
            logger.error(
                "provider connection test failed",
                extra={"extra": {"kind": e.kind, "code": e.code, "cause": e.cause}},
            )
            return {
                "success": False,
                "error": e.message,
                "details": {"kind": e.kind, "status": e.http_status},
            }
        return {
            "success": True,
            "message": "Successfully connected to chat provider",
            "details": {"provider": self._provider.name},
        }

    # ---- 辅助方法 ----

    @staticmethod
    def _parse_conversation(body: Any) -> Conversation:
        conv = body.get("conversation") if isinstance(body, dict) else None
        cid = conv.get("id") if isinstance(conv, dict) else None
        if not isinstance(cid, str) or not cid:
            raise ProviderProtocolError(
                "Provider response did not include a conversation id",
                cause={"keys": sorted(body) if isinstance(body, dict) else type(body).__name__},
                code="MISSING_CONVERSATION_ID",
            )
        return Conversation(id=cid)


def create_gateway(cfg, transport=None) -> ConversationGateway:
    """按配置组装 ConversationGateway；transport 可注入。"""

    return ConversationGateway(
        transport=transport if transport is not None else create_transport(cfg),
        rules=build_rule_set(cfg),
        sessions=SessionRegistry(max_sessions=getattr(cfg, "max_tracked_sessions", 1024)),
    )
