"""Environment-driven settings and logging setup."""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from rich.logging import RichHandler

DATA_DIR = Path.home() / ".cbt_prep"
DEFAULT_DB_PATH = str(DATA_DIR / "server.db")
DEFAULT_STORE_PATH = str(DATA_DIR / "local.db")
DEFAULT_ALOC_API_URL = "https://questions.aloc.com.ng/api/v2"


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass
class Settings:
    db_path: str = DEFAULT_DB_PATH
    store_path: str = DEFAULT_STORE_PATH
    backend_url: str = ""
    aloc_api_url: str = DEFAULT_ALOC_API_URL
    aloc_access_token: str = ""
    gemini_api_key: str = ""
    poe_api_key: str = ""
    grok_api_key: str = ""
    cerebras_api_key: str = ""
    http_timeout: float = 30.0
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    host: str = "0.0.0.0"
    port: int = 3001

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        env = os.environ
        return cls(
            db_path=env.get("CBT_DB_PATH", DEFAULT_DB_PATH),
            store_path=env.get("CBT_STORE_PATH", DEFAULT_STORE_PATH),
            backend_url=env.get("CBT_BACKEND_URL", ""),
            aloc_api_url=env.get("ALOC_API_URL", DEFAULT_ALOC_API_URL),
            aloc_access_token=env.get("ALOC_ACCESS_TOKEN", ""),
            gemini_api_key=env.get("GEMINI_API_KEY", ""),
            poe_api_key=env.get("POE_API_KEY", ""),
            grok_api_key=env.get("GROK_API_KEY", ""),
            cerebras_api_key=env.get("CEREBRAS_API_KEY", ""),
            http_timeout=float(env.get("CBT_HTTP_TIMEOUT", "30")),
            log_level=env.get("CBT_LOG_LEVEL", "INFO").upper(),
            cors_origins=_split(env.get("CBT_CORS_ORIGINS", "*")) or ["*"],
            host=env.get("CBT_HOST", "0.0.0.0"),
            port=int(env.get("CBT_PORT", "3001")),
        )

    def api_key_for(self, provider: str) -> str:
        return {
            "gemini": self.gemini_api_key,
            "poe": self.poe_api_key,
            "grok": self.grok_api_key,
            "cerebras": self.cerebras_api_key,
        }.get(provider, "")

    @property
    def ai_configured(self) -> bool:
        return any(self.api_key_for(p) for p in ("gemini", "poe", "grok", "cerebras"))


def configure_logging(level: str = "INFO") -> None:
    """Route the package loggers through rich."""
    logger = logging.getLogger("cbt_prep")
    if not logger.handlers:
        handler = RichHandler(rich_tracebacks=False, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level)
