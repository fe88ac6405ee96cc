from cdemaker.config import load_config


def test_defaults(monkeypatch):
    for key in ("GEMINI_KEY", "GEMINI_API_KEY", "STACK_PROJECT_ID", "NEXT_PUBLIC_STACK_PROJECT_ID", "CDE_MAX_RETRIES"):
        monkeypatch.delenv(key, raising=False)
    config = load_config(env_file=None)
    assert config.max_retries == 3
    assert config.initial_retry_delay_ms == 1000
    assert config.gemini_key is None
    assert config.auth_enabled is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("GEMINI_KEY", "abc")
    monkeypatch.setenv("NEXT_PUBLIC_STACK_PROJECT_ID", "proj-9")
    monkeypatch.setenv("CDE_INITIAL_RETRY_DELAY_MS", "250")
    monkeypatch.setenv("CDE_LOG_LEVEL", "debug")
    config = load_config(env_file=None)
    assert config.gemini_key == "abc"
    assert config.stack_project_id == "proj-9"
    assert config.auth_enabled is True
    assert config.initial_retry_delay_ms == 250
    assert config.log_level == "DEBUG"


def test_blank_values_ignored(monkeypatch):
    monkeypatch.setenv("STACK_PROJECT_ID", "   ")
    monkeypatch.delenv("NEXT_PUBLIC_STACK_PROJECT_ID", raising=False)
    assert load_config(env_file=None).auth_enabled is False


def test_dotenv_does_not_override_environment(tmp_path, monkeypatch):
    env = tmp_path / ".env"
    env.write_text("GEMINI_MODEL=from-file\nCDE_PAGES_PER_BATCH=7\n")
    monkeypatch.setenv("GEMINI_MODEL", "from-env")
    # register the key so the value load_dotenv writes is undone afterwards
    monkeypatch.setenv("CDE_PAGES_PER_BATCH", "0")
    monkeypatch.delenv("CDE_PAGES_PER_BATCH")
    config = load_config(env_file=env)
    assert config.gemini_model == "from-env"
    assert config.pages_per_batch == 7


def test_server_entry_point_uses_config(monkeypatch):
    import uvicorn
    from cdemaker import __main__ as entry

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kw: calls.append((app, kw)))
    monkeypatch.setenv("CDE_HOST", "0.0.0.0")
    monkeypatch.setenv("CDE_PORT", "9001")
    monkeypatch.setenv("CDE_LOG_LEVEL", "warning")
    entry.main()
    assert calls == [("cdemaker.main:app", {"host": "0.0.0.0", "port": 9001, "log_level": "warning"})]
