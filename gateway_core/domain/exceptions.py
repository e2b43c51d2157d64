"""统一网关异常模型。

所有跨组件抛出的错误都必须是 GatewayError 的子类，
Action Dispatcher 是唯一的翻译点：它把异常转成 ``{"error": message}`` 与 HTTP 状态码。

注意：``cause`` 只用于诊断（日志/调试），永远不会拼进对用户可见的 ``message``。
"""

from typing import Any, Dict, Literal, Optional


ErrorKind = Literal[
    "InvalidAction",
    "InvalidInput",
    "Configuration",
    "Auth",
    "Permission",
    "ProviderProtocol",
    "Unavailable",
]

# kind -> 对外 HTTP 状态码
HTTP_STATUS_BY_KIND: Dict[str, int] = {
    "InvalidAction": 400,
    "InvalidInput": 400,
    "Configuration": 500,
    "Auth": 401,
    "Permission": 403,
    "ProviderProtocol": 500,
    "Unavailable": 500,
}


class GatewayError(Exception):
    """网关异常基类。

    Attributes:
        kind: 错误分类（见 ErrorKind）。
        code: 机器可读错误码（如 "MISSING_API_KEY"），默认取 kind 的大写形式。
        message: 用户可读错误信息。
        cause: 原始状态码/异常信息，仅供诊断。
        http_status: 映射到 HTTP 时使用的状态码，由 kind 决定。
        extra: 其他补充字段。
    """

    kind: ErrorKind = "ProviderProtocol"

    def __init__(
        self,
        message: str,
        cause: Optional[Any] = None,
        code: Optional[str] = None,
        **extra,
    ):
        self.message = message
        self.cause = cause
        self.code = code or self.kind.upper()
        self.extra = extra
        super().__init__(message)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, message={self.message!r}, cause={self.cause!r})"


class InvalidActionError(GatewayError):
    """action 不在 {create, send, history} 之内。"""

    kind = "InvalidAction"


class InvalidInputError(GatewayError):
    """缺少或非法的输入参数。"""

    kind = "InvalidInput"


class ConfigurationError(GatewayError):
    """启动配置缺失（project id / API key）。"""

    kind = "Configuration"


class AuthError(GatewayError):
    kind = "Auth"


class PermissionDeniedError(GatewayError):
    kind = "Permission"


class ProviderProtocolError(GatewayError):
    """Provider 响应不符合约定：字段缺失、JSON 解析失败、404 等。"""

    kind = "ProviderProtocol"


class UnavailableError(GatewayError):
    """网络层错误或 Provider 暂不可用（连接失败、超时、5xx）。"""

    kind = "Unavailable"
