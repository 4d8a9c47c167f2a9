from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000

    # Paths
    PROJECT_ROOT: str = str(Path(__file__).resolve().parent.parent.parent)
    DB_DIR: str = str(Path(PROJECT_ROOT) / "data")
    LOG_DIR: str = str(Path(PROJECT_ROOT) / "logs")
    LOG_LEVEL: str = "INFO"
    LOG_FILENAME: str = "studiocrm.log"

    DB_FILENAME: str = "studiocrm.db"
    DATABASE_URL: str | None = None  # e.g. postgresql+psycopg://... ; falls back to SQLite in DB_DIR

    # Security
    JWT_SECRET: str = "CHANGE_ME"
    JWT_ALG: str = "HS256"
    JWT_EXPIRES_MINUTES: int = 60 * 24 * 7  # 7 days

    COOKIE_NAME: str = "access_token"
    COOKIE_SECURE: bool = True
    COOKIE_SAMESITE: str = "lax"
    COOKIE_DOMAIN: str | None = None
    CSRF_COOKIE_NAME: str = "csrf_token"
    CSRF_HEADER_NAME: str = "X-CSRF-Token"

    # Admin bootstrap
    ADMIN_EMAIL: str = "admin@studio.local"
    ADMIN_PASSWORD: str = "CHANGE_ME"
    ADMIN_FORCE_RESET: bool = False

    # LLM (OpenAI-compatible chat completions endpoint)
    LLM_BASE_URL: str = "https://api.openai.com/v1"
    LLM_API_KEY: str | None = None
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 1500
    LLM_MAX_TOOLS: int = 15
    LLM_MAX_CONTEXT_MESSAGES: int = 30
    LLM_TIMEOUT_SECONDS: float = 60.0

    # Agent
    AGENT_MAX_TOOL_ROUNDS: int = 4
    AGENT_V2_SHADOW: bool = False  # V2 runs dry-run only
    AGENT_DEFAULT_MODE: str = "auto_safe"

    # Studio defaults
    STUDIO_NAME: str = "New Age Fotografie"
    STUDIO_CURRENCY: str = "EUR"
    DEFAULT_TAX_RATE: float = 20.0
    INVOICE_DUE_DAYS: int = 14
    VOUCHER_VALIDITY_DAYS: int = 1460  # 48 months
    WORKDAY_START_HOUR: int = 9
    WORKDAY_END_HOUR: int = 18

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def SQLALCHEMY_DATABASE_URL(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        db_path = Path(self.DB_DIR) / self.DB_FILENAME
        return f"sqlite:///{db_path.as_posix()}"


settings = Settings()
