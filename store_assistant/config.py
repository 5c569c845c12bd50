from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load env values for components that read os.environ directly (e.g., provider SDK clients).
_project_root = Path(__file__).resolve().parents[1]
load_dotenv(_project_root / ".env", override=False)


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"

    DATABASE_URL: str = "sqlite:///./store_assistant.db"
    DB_POOL_SIZE: int = 20
    DB_POOL_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30

    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    AUTH_JWT_ISSUER: str = ""
    AUTH_JWKS_URL: str = ""
    AUTH_AUDIENCE: list[str] = ["backend"]

    LLM_DEFAULT_MODEL: str = "gpt-4o-mini"
    LLM_REQUEST_TIMEOUT_SECONDS: float = 30.0
    LLM_REQUEST_RETRIES: int = 1
    LLM_CLASSIFIER_MAX_TOKENS: int = 1024

    # Number of prior conversation turns scanned for a pending action when the client
    # resends history instead of a session id.
    ASSISTANT_HISTORY_TURNS: int = 10
    ASSISTANT_PENDING_ACTION_TTL_SECONDS: int = 900
    ASSISTANT_LEARNED_EXAMPLES_LIMIT: int = 5
    ASSISTANT_MAX_INTENTS_PER_MESSAGE: int = 5
    ASSISTANT_DEFAULT_PAGE_TYPE: str = "product"
    ASSISTANT_KNOWLEDGE_MODE: str = "store_editing"
    ASSISTANT_KNOWLEDGE_DOCS_LIMIT: int = 5
    SLOT_SUGGESTION_LIMIT: int = 3

    LANGFUSE_ENABLED: bool = False
    LANGFUSE_PUBLIC_KEY: str | None = None
    LANGFUSE_SECRET_KEY: str | None = None
    LANGFUSE_HOST: str = "https://cloud.langfuse.com"
    LANGFUSE_BASE_URL: str | None = None
    LANGFUSE_ENVIRONMENT: str | None = None
    LANGFUSE_RELEASE: str | None = None
    LANGFUSE_SAMPLE_RATE: float = 1.0
    LANGFUSE_DEBUG: bool = False
    LANGFUSE_REQUIRED: bool = False
    LANGFUSE_AUTH_CHECK: bool = True
    LANGFUSE_TIMEOUT_SECONDS: int = 20

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("BACKEND_CORS_ORIGINS", "AUTH_AUDIENCE", mode="before")
    @classmethod
    def split_csv(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("LANGFUSE_SAMPLE_RATE")
    @classmethod
    def validate_langfuse_sample_rate(cls, value: float) -> float:
        if value < 0.0 or value > 1.0:
            raise ValueError("LANGFUSE_SAMPLE_RATE must be between 0.0 and 1.0")
        return value

    @field_validator("ASSISTANT_HISTORY_TURNS", "ASSISTANT_PENDING_ACTION_TTL_SECONDS")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Assistant window settings must be positive")
        return value


settings = Settings()
