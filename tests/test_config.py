from shotsets.config import load_config


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.setenv("SHOTSETS_CONFIG", str(tmp_path / "missing.toml"))
    for var in ("SHOTSETS_API_HOST", "SHOTSETS_API_PORT", "SHOTSETS_DB", "SHOTSETS_PROJECT"):
        monkeypatch.delenv(var, raising=False)
    cfg = load_config()
    assert cfg.api.base_url == "http://127.0.0.1:8768"
    assert cfg.supported_platforms == ["aplite", "basalt", "chalk"]
    assert cfg.waiting_delay == 0.5
    assert cfg.db_path is None


def test_file_and_env_overrides(tmp_path, monkeypatch):
    p = tmp_path / "config.toml"
    p.write_text(
        'project_id = "watchface"\n'
        'supported_platforms = ["diorite", "basalt"]\n'
        "waiting_delay_ms = 250\n"
        "\n[api]\n"
        'host = "10.0.0.5"\n'
        "port = 9000\n"
    )
    monkeypatch.setenv("SHOTSETS_CONFIG", str(p))
    monkeypatch.setenv("SHOTSETS_API_PORT", "9100")
    monkeypatch.delenv("SHOTSETS_API_HOST", raising=False)
    monkeypatch.delenv("SHOTSETS_PROJECT", raising=False)
    cfg = load_config()
    assert cfg.project_id == "watchface"
    assert cfg.supported_platforms == ["diorite", "basalt"]
    assert cfg.waiting_delay == 0.25
    assert cfg.api.host == "10.0.0.5"
    assert cfg.api.port == 9100
