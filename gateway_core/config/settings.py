"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。

各组件都通过构造参数接收 settings 对象，模块级的 ``settings``
只是为应用入口准备的默认实例，测试中可以用任意带同名属性的桩对象替换。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("GATEWAY_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class GatewaySettings(BaseSettings):
    """网关配置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    playlab_api_key: Optional[str] = Field(default=None, description="Provider API 密钥")
    playlab_project_id: Optional[str] = Field(default=None, description="Provider 项目 ID")
    playlab_base_url: str = Field(
        default="https://www.playlab.ai/api/v1",
        description="Provider API 基础URL",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否截断日志内容")

    # ---- 内容过滤 / 会话簿记 ----
    filter_rules_file: Optional[str] = Field(
        default=None,
        description="额外泄漏规则的 YAML 文件路径，启动时加载一次",
    )
    max_tracked_sessions: int = Field(
        default=1024,
        ge=1,
        description="本地最多跟踪的会话数（LRU 淘汰）",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("playlab_api_key", "playlab_project_id")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        # 空白字符串按"未配置"处理，交给 TransportClient 在首次调用时报错
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = GatewaySettings()
