from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "A11y Audit"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True

    # ── Database ────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./a11y_audit.db"

    # ── Logging ─────────────────────────────────
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    # ── Browser ─────────────────────────────────
    CHROMEDRIVER_PATH: Optional[str] = None
    CHROME_BINARY_PATH: Optional[str] = None
    USE_WEBDRIVER_MANAGER: bool = False
    BROWSER_HEADLESS: bool = True
    STEALTH_MODE: bool = True
    DEFAULT_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    )

    # ── Rule engine (axe-core) ──────────────────
    AXE_SCRIPT_PATH: Optional[str] = None
    AXE_SCRIPT_URL: str = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.10.2/axe.min.js"
    AXE_DOWNLOAD_TIMEOUT_SECONDS: float = 20.0

    # ── Scan timeouts ───────────────────────────
    DEFAULT_SCAN_TIMEOUT_MS: int = 45000
    AUDIT_EXECUTION_TIMEOUT_SECONDS: float = 30.0
    READINESS_SELECTOR_TIMEOUT_SECONDS: float = 10.0
    READINESS_FALLBACK_TIMEOUT_SECONDS: float = 15.0
    NETWORK_IDLE_QUIET_MS: int = 500

    # ── History ─────────────────────────────────
    HISTORY_DEFAULT_LIMIT: int = 10

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
