"""Error Classifier：把传输层/HTTP 失败映射为 GatewayError。

映射规则：

- 401 -> Auth，403 -> Permission
- 404 -> ProviderProtocol（端点或会话 id 不匹配）
- 429 / 5xx -> Unavailable
- 其他 4xx -> ProviderProtocol
- 无法构造的 URL（httpx.InvalidURL）-> InvalidInput
- httpx 网络异常（连接失败、超时、读流中断）-> Unavailable
- JSON / 流解析失败 -> ProviderProtocol

原始状态码与响应文本只放在 ``cause`` 中，不进入用户可见的 message。
"""

from typing import Any, Dict, Optional

import httpx

from gateway_core.domain.exceptions import (
    AuthError,
    GatewayError,
    InvalidInputError,
    PermissionDeniedError,
    ProviderProtocolError,
    UnavailableError,
)


# 诊断信息中保留的响应体最大长度
_MAX_CAUSE_BODY = 512


def _cause(status: Optional[int], detail: Any) -> Dict[str, Any]:
    text = detail if isinstance(detail, str) else repr(detail)
    return {"status": status, "detail": text[:_MAX_CAUSE_BODY]}


def classify_status(status: int, body: Any = None) -> Optional[GatewayError]:
    """根据 HTTP 状态码构造错误；2xx/3xx 返回 None。"""

    if status < 400:
        return None
    cause = _cause(status, body)
    if status == 401:
        return AuthError("Provider rejected the credential", cause=cause, code="AUTH_FAILED")
    if status == 403:
        return PermissionDeniedError("Provider denied access to this resource", cause=cause, code="FORBIDDEN")
    if status == 404:
        return ProviderProtocolError(
            "Provider endpoint or conversation not found",
            cause=cause,
            code="NOT_FOUND",
        )
    if status == 429 or status >= 500:
        return UnavailableError("Provider is temporarily unavailable", cause=cause, code="PROVIDER_UNAVAILABLE")
    return ProviderProtocolError("Provider rejected the request", cause=cause, code="API_ERROR")


def classify_transport_error(exc: Exception) -> GatewayError:
    """把 httpx 异常（或已分类的 GatewayError）统一成 GatewayError。"""

    if isinstance(exc, GatewayError):
        return exc
    if isinstance(exc, httpx.InvalidURL):
        # 请求根本没有发出：路径里带了无法编码进 URL 的输入
        return InvalidInputError("Request target is malformed", cause=_cause(None, str(exc)), code="BAD_URL")
    if isinstance(exc, httpx.TimeoutException):
        return UnavailableError("Provider request timed out", cause=_cause(None, str(exc)), code="TIMEOUT")
    if isinstance(exc, (httpx.RequestError, httpx.StreamError)):
        return UnavailableError("Provider is unreachable", cause=_cause(None, str(exc)), code="NETWORK_ERROR")
    if isinstance(exc, (ValueError, UnicodeDecodeError)):
        # json.JSONDecodeError 是 ValueError 的子类
        return ProviderProtocolError(
            "Provider returned a malformed response",
            cause=_cause(None, str(exc)),
            code="BAD_RESPONSE",
        )
    return UnavailableError("Provider call failed", cause=_cause(None, repr(exc)), code="NETWORK_ERROR")


def raise_for_status(status: int, body: Any = None) -> None:
    err = classify_status(status, body)
    if err is not None:
        raise err
