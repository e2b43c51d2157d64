from gateway_core.config.settings import GatewaySettings


def test_settings_defaults_and_overrides(monkeypatch):
    monkeypatch.delenv("PLAYLAB_API_KEY", raising=False)
    monkeypatch.delenv("PLAYLAB_PROJECT_ID", raising=False)
    s = GatewaySettings(_env_file=None, playlab_api_key="key-abc", playlab_project_id="  ")
    assert s.playlab_api_key == "key-abc"
    # 空白视为未配置
    assert s.playlab_project_id is None
    assert s.playlab_base_url == "https://www.playlab.ai/api/v1"
    assert s.http_timeout == 30.0


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("PLAYLAB_API_KEY", "env-key")
    monkeypatch.setenv("PLAYLAB_PROJECT_ID", "env-project")
    monkeypatch.setenv("HTTP_TIMEOUT", "5")
    s = GatewaySettings(_env_file=None)
    assert s.playlab_api_key == "env-key"
    assert s.playlab_project_id == "env-project"
    assert s.http_timeout == 5.0


def test_settings_from_yaml(tmp_path, monkeypatch):
    cfg = tmp_path / "gateway.yaml"
    cfg.write_text("playlab_project_id: yaml-project\nmax_tracked_sessions: 7\n", encoding="utf-8")
    monkeypatch.setenv("GATEWAY_CONFIG_FILE", str(cfg))
    monkeypatch.delenv("PLAYLAB_PROJECT_ID", raising=False)
    monkeypatch.delenv("MAX_TRACKED_SESSIONS", raising=False)
    s = GatewaySettings(_env_file=None)
    assert s.playlab_project_id == "yaml-project"
    assert s.max_tracked_sessions == 7
