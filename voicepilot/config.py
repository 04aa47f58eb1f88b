from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

_TRUTHY = {"1", "true", "yes", "on"}


def env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


@dataclass(slots=True, frozen=True)
class Settings:
    groq_api_key: str = ""
    groq_model: str = "llama-3.1-70b-versatile"
    groq_base_url: str = "https://api.groq.com/openai/v1"
    deepgram_api_key: str = ""
    deepgram_model: str = "nova-2"
    mem0_api_key: str = ""
    mcp_server_command: str = "npx"
    mcp_server_args: str = "-y chrome-devtools-mcp@latest"
    chrome_path: str = ""
    browser_headless: bool = False
    step_timeout_seconds: float = 20.0
    llm_timeout_seconds: float = 30.0
    verbose: bool = False

    @classmethod
    def from_env(cls, dotenv: bool = True) -> Settings:
        if dotenv:
            load_dotenv()
        return cls(
            groq_api_key=os.getenv("GROQ_API_KEY", "").strip(),
            groq_model=os.getenv("GROQ_MODEL", "llama-3.1-70b-versatile"),
            groq_base_url=os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1"),
            deepgram_api_key=os.getenv("DEEPGRAM_API_KEY", "").strip(),
            deepgram_model=os.getenv("DEEPGRAM_MODEL", "nova-2"),
            mem0_api_key=os.getenv("MEM0_API_KEY", "").strip(),
            mcp_server_command=os.getenv("MCP_SERVER_COMMAND", "npx"),
            mcp_server_args=os.getenv("MCP_SERVER_ARGS", "-y chrome-devtools-mcp@latest"),
            chrome_path=os.getenv("CHROME_PATH", ""),
            browser_headless=env_flag("BROWSER_HEADLESS"),
            step_timeout_seconds=float(os.getenv("STEP_TIMEOUT_SECONDS", "20")),
            llm_timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
            verbose=env_flag("VERBOSE"),
        )

    def status(self) -> dict[str, str]:
        """Which collaborator credentials are present, without revealing them."""
        return {
            "GROQ_API_KEY": "SET" if self.groq_api_key else "NOT SET",
            "DEEPGRAM_API_KEY": "SET" if self.deepgram_api_key else "NOT SET",
            "MEM0_API_KEY": "SET" if self.mem0_api_key else "NOT SET",
        }
