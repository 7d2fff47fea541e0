from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path

# Project root (where .env is located)
PROJECT_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(PROJECT_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    PROJECT_NAME: str = "EHR Literature Personalizer"

    # LLM Settings - supports multiple keys for rate limit fallback
    # Fallback order: Groq 1 -> Gemini 1 -> Gemini 2 -> Groq 2 (last resort)
    GROQ_API_KEY: Optional[str] = None
    GROQ_API_KEY_2: Optional[str] = None  # Last resort backup
    GROQ_MODEL: str = "llama-3.1-8b-instant"

    # Google Gemini
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_API_KEY_2: Optional[str] = None  # Gemini backup
    GEMINI_MODEL: str = "gemini-2.5-flash"

    # Nuanced (LLM) applicability stage, runs only after the rule-based checks pass
    NUANCED_CHECK_ENABLED: bool = True
    NUANCED_CHECK_TEMPERATURE: float = 0.1

    # Leading paper biomarkers of which at least one must be on record
    BIOMARKER_CHECK_LIMIT: int = 3


settings = Settings()
