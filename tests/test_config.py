import pytest

from voicepilot.browser.launcher import server_args
from voicepilot.config import Settings

ENV_NAMES = [
    "GROQ_API_KEY", "GROQ_MODEL", "GROQ_BASE_URL", "DEEPGRAM_API_KEY", "DEEPGRAM_MODEL", "MEM0_API_KEY",
    "MCP_SERVER_COMMAND", "MCP_SERVER_ARGS", "CHROME_PATH", "LLM_TIMEOUT_SECONDS",
    "BROWSER_HEADLESS", "STEP_TIMEOUT_SECONDS", "VERBOSE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment() -> None:
    settings = Settings.from_env(dotenv=False)

    assert settings == Settings()
    assert settings.status() == {
        "GROQ_API_KEY": "NOT SET",
        "DEEPGRAM_API_KEY": "NOT SET",
        "MEM0_API_KEY": "NOT SET",
    }


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GROQ_API_KEY", " gsk-abc ")
    monkeypatch.setenv("GROQ_MODEL", "llama-3.3-70b-versatile")
    monkeypatch.setenv("BROWSER_HEADLESS", "yes")
    monkeypatch.setenv("STEP_TIMEOUT_SECONDS", "45")

    settings = Settings.from_env(dotenv=False)

    assert settings.groq_api_key == "gsk-abc"
    assert settings.groq_model == "llama-3.3-70b-versatile"
    assert settings.browser_headless is True
    assert settings.step_timeout_seconds == 45.0
    assert settings.status()["GROQ_API_KEY"] == "SET"


def test_server_args_isolate_each_session() -> None:
    args = server_args("-y chrome-devtools-mcp@latest", chrome_path="", headless=True)
    assert args[:2] == ["-y", "chrome-devtools-mcp@latest"]
    assert "--isolated" in args
    assert "--headless" in args


def test_server_args_respect_explicit_browser_target() -> None:
    args = server_args("-y chrome-devtools-mcp@latest --browserUrl=http://127.0.0.1:9222 --executablePath /opt/chrome")
    assert "--isolated" not in args
    assert args.count("--executablePath") == 1
