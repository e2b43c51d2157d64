"""Transport Client：绑定 Provider base URL 与凭据的 HTTP 客户端。

职责只有一件事：发请求，返回缓冲好的 JSON 或可读的字节流。

- 所有路径相对于 ``{base_url}/projects/{project_id}``。
- 每个请求都带 ``Authorization: Bearer <key>``，凭据本身绝不写日志。
- 缺少 project id 或 API key 时不会创建底层 httpx.Client，
  之后的每次调用都直接抛 ConfigurationError，不发起任何网络请求。
- 整个进程共享一个 httpx.Client（连接池），它本身支持多线程并发使用。
"""

import json
import re
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

import httpx

from gateway_core.domain.exceptions import ConfigurationError
from gateway_core.infrastructure.logging.logger import logger
from gateway_core.providers.classifier import classify_transport_error, raise_for_status
from gateway_core.providers.registry import PLAYLAB_CONFIG, ProviderConfig


_CONVERSATION_SEGMENT = re.compile(r"(/conversations/)[^/]+")


def redact_path(path: str) -> str:
    """日志里隐藏会话 id（它等同于 bearer 凭据）。"""

    return _CONVERSATION_SEGMENT.sub(r"\1<redacted>", path)


@dataclass
class TransportResponse:
    status: int
    json_body: Any


class StreamResponse:
    """流式响应的薄包装：只暴露状态码与字节迭代器。

    读流过程中的 httpx 异常会在这里被分类成 GatewayError。
    """

    def __init__(self, response: httpx.Response):
        self._response = response
        self.status = response.status_code

    def iter_bytes(self) -> Iterator[bytes]:
        try:
            for chunk in self._response.iter_bytes():
                yield chunk
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise classify_transport_error(e)

    def close(self) -> None:
        self._response.close()

    @property
    def is_closed(self) -> bool:
        return self._response.is_closed


class TransportClient:
    """Provider HTTP 客户端。

    Args:
        settings: 至少包含 playlab_api_key / playlab_project_id /
            playlab_base_url / http_timeout 的配置对象。
        provider: 端点配置，默认 PLAYLAB_CONFIG。
        http_client: 可注入的 httpx.Client（测试或自定义连接池）。
        transport: 可注入的 httpx 传输层，例如 httpx.MockTransport。
    """

    def __init__(
        self,
        settings,
        provider: ProviderConfig = PLAYLAB_CONFIG,
        http_client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._settings = settings
        self._provider = provider
        self.name = provider.name
        self._client: Optional[httpx.Client] = None
        self._config_error: Optional[ConfigurationError] = None

        api_key = getattr(settings, "playlab_api_key", None)
        project_id = getattr(settings, "playlab_project_id", None)
        missing: List[str] = []
        if not project_id:
            missing.append("PLAYLAB_PROJECT_ID")
        if not api_key:
            missing.append("PLAYLAB_API_KEY")
        if missing:
            # 拒绝启动：不创建 httpx.Client，后续调用全部快速失败
            self._config_error = ConfigurationError(
                "Chat provider is not configured",
                cause={"missing": missing},
                code="MISSING_CONFIG",
            )
            logger.error(
                "transport disabled: missing configuration",
                extra={"extra": {"missing": missing}},
            )
            return

        base = getattr(settings, "playlab_base_url", None) or provider.base_url
        self._prefix = provider.project_prefix(base, project_id)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            timeout=getattr(settings, "http_timeout", 30.0),
            trust_env=False,
            transport=transport,
        )

    # ---- 生命周期 ----

    @property
    def configured(self) -> bool:
        return self._config_error is None

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()

    def __enter__(self) -> "TransportClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- 请求 ----

    def post(self, path: str, body: Any) -> TransportResponse:
        return self._request("POST", path, body)

    def get(self, path: str) -> TransportResponse:
        return self._request("GET", path, None)

    @contextmanager
    def post_stream(self, path: str, body: Any) -> Iterator[StreamResponse]:
        """打开一个流式 POST；退出上下文时一定释放连接。"""

        client = self._ensure_ready()
        request = self._build_request(client, "POST", path, body)
        self._log_request("POST", path, body, stream=True)
        try:
            response = client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise classify_transport_error(e)
        try:
            if response.status_code >= 400:
                raise_for_status(response.status_code, self._read_error_body(response))
            yield StreamResponse(response)
        finally:
            response.close()

    # ---- 辅助方法 ----

    def _ensure_ready(self) -> httpx.Client:
        if self._config_error is not None or self._client is None:
            raise self._config_error or ConfigurationError("Chat provider is not configured")
        return self._client

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self._prefix}{path}"

    def _build_request(self, client: httpx.Client, method: str, path: str, body: Any) -> httpx.Request:
        # URL 非法时请求尚未发出，不记录 provider request 日志
        try:
            return client.build_request(method, self._url(path), json=body, headers=self._headers)
        except httpx.InvalidURL as e:
            raise classify_transport_error(e)

    def _request(self, method: str, path: str, body: Any) -> TransportResponse:
        client = self._ensure_ready()
        request = self._build_request(client, method, path, body)
        self._log_request(method, path, body, stream=False)
        try:
            resp = client.send(request)
        except httpx.HTTPError as e:
            raise classify_transport_error(e)
        raise_for_status(resp.status_code, resp.text)
        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise classify_transport_error(e)
        return TransportResponse(status=resp.status_code, json_body=data)

    @staticmethod
    def _read_error_body(response: httpx.Response) -> str:
        try:
            return response.read().decode("utf-8", errors="replace")
        except (httpx.HTTPError, httpx.StreamError):
            return ""

    def _log_request(self, method: str, path: str, body: Any, stream: bool) -> None:
        logger.info(
            "provider request",
            extra={"extra": {
                "provider": self.name,
                "method": method,
                "path": redact_path(path),
                "has_body": body is not None,
                "stream": stream,
            }},
        )
