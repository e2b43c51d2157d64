"""Action Dispatcher：网关唯一的入口。

入站动作::

    {"action": "create"}                                  -> {"conversationId": ...}
    {"action": "send", "conversationId": ..., "message": ...} -> {"content": ..., "role": ...}
    {"action": "history", "conversationId": ...}          -> {"messages": [{"role", "content"}, ...]}

这里也是 GatewayError 的唯一翻译点：错误被转换为 ``{"error": message}``
加上对应的 HTTP 状态码。调用方身份由外部会话层校验后传入（caller）。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from gateway_core.api.service import ConversationGateway, create_gateway
from gateway_core.domain.exceptions import GatewayError, InvalidActionError, InvalidInputError
from gateway_core.infrastructure.logging.logger import logger


ACTIONS = ("create", "send", "history")


@dataclass
class DispatchResult:
    status: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status < 400


class ActionDispatcher:
    def __init__(self, gateway: ConversationGateway):
        self._gateway = gateway

    def dispatch(self, payload: Any, caller: Optional[str] = None) -> DispatchResult:
        action = payload.get("action") if isinstance(payload, Mapping) else None
        try:
            body = self._route(payload, caller)
        except GatewayError as e:
            logger.warning(
                "action failed",
                extra={"extra": {
                    "action": action if action in ACTIONS else None,
                    "kind": e.kind,
                    "code": e.code,
                    "cause": e.cause,
                }},
            )
            return DispatchResult(status=e.http_status, body=e.to_payload())
        except Exception as e:
            logger.error(
                f"unexpected gateway failure: {type(e).__name__}",
                extra={"extra": {"action": action if action in ACTIONS else None}},
            )
            return DispatchResult(status=500, body={"error": "Internal gateway error"})
        return DispatchResult(status=200, body=body)

    def _route(self, payload: Any, caller: Optional[str]) -> Dict[str, Any]:
        if not isinstance(payload, Mapping):
            raise InvalidInputError("Request body must be a JSON object", code="BAD_REQUEST")
        action = payload.get("action")
        if action not in ACTIONS:
            raise InvalidActionError(f"Invalid action: {action!r}", code="INVALID_ACTION")

        if action == "create":
            conversation = self._gateway.create(caller=caller)
            return {"conversationId": conversation.id}

        conversation_id = payload.get("conversationId")
        if conversation_id is None or conversation_id == "":
            raise InvalidInputError("conversationId is required", code="MISSING_CONVERSATION_ID")

        if action == "send":
            message = payload.get("message")
            if message is None or message == "":
                raise InvalidInputError("message is required", code="MISSING_MESSAGE")
            return self._gateway.send(conversation_id, message, caller=caller).to_dict()

        messages = self._gateway.history(conversation_id, caller=caller)
        return {"messages": [m.to_dict() for m in messages]}


def create_dispatcher(cfg, transport=None) -> ActionDispatcher:
    return ActionDispatcher(create_gateway(cfg, transport=transport))
