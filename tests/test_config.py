import pytest

from planner_bot.app import create_ai_client
from planner_bot.ai.client import OpenRouterClient
from planner_bot.config import AppConfig, load_config


def test_load_config_with_env_interpolation(tmp_path, monkeypatch):
    monkeypatch.setenv("PLANNER_TEST_KEY", "sk-or-123")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        """
data_dir: /tmp/planner
ai:
  backend: openrouter
  model: anthropic/claude-3.5-haiku
  rate_limit_per_hour: 30
assistant:
  language: en
openrouter:
  api_key: ${PLANNER_TEST_KEY}
storage:
  db_path: ${data_dir}/planner.db
""",
        encoding="utf-8",
    )

    config = load_config(config_file, tmp_path / "missing.env")
    assert config.openrouter.api_key == "sk-or-123"
    assert config.storage.db_path == "/tmp/planner/planner.db"
    assert config.ai.rate_limit_per_hour == 30
    assert config.assistant.language == "en"
    assert config.assistant.timezone == "Europe/Rome"


def test_env_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("PLANNER_DOTENV_KEY", raising=False)
    (tmp_path / ".env").write_text("PLANNER_DOTENV_KEY=from-dotenv\n", encoding="utf-8")
    (tmp_path / "config.yaml").write_text("openrouter:\n  api_key: ${PLANNER_DOTENV_KEY}\n", encoding="utf-8")

    config = load_config(tmp_path / "config.yaml", tmp_path / ".env")
    assert config.openrouter.api_key == "from-dotenv"


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", tmp_path / ".env")


def test_defaults():
    config = AppConfig()
    assert config.ai.backend == "openrouter"
    assert config.ai.max_retries == 2
    assert config.ai.rate_limit_per_hour is None
    assert config.assistant.language == "it"


def test_create_ai_client():
    config = AppConfig(openrouter={"api_key": "k"})
    assert isinstance(create_ai_client(config), OpenRouterClient)

    with pytest.raises(ValueError):
        create_ai_client(AppConfig(ai={"backend": "anthropic"}))
    with pytest.raises(ValueError):
        create_ai_client(AppConfig(ai={"backend": "carrier-pigeon"}))
