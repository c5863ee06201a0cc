"""
Application configuration management using Pydantic Settings.
All settings can be overridden via environment variables.
"""

from typing import Any, List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "MEP Quote Estimator"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    SESSION_COOKIE_NAME: str = "quote_session"
    MAX_SESSIONS: int = Field(default=500, ge=1)

    # Gemini extraction service
    GEMINI_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY"),
    )
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_MODEL_CANDIDATES: List[str] = [
        "gemini-2.0-flash",
        "gemini-2.0-flash-exp",
        "gemini-1.5-flash",
        "gemini-1.5-flash-latest",
    ]

    @field_validator("GEMINI_MODEL_CANDIDATES", mode="before")
    @classmethod
    def assemble_model_candidates(cls, v: Any) -> List[str] | Any:
        """Parse model candidates from a comma separated string or list."""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    # Retry policy shared by every extraction call
    EXTRACTION_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    EXTRACTION_BASE_DELAY_SECONDS: float = Field(default=2.0, ge=0)

    # Market the pricing prompts ask about
    MARKET_REGION: str = "Taiwan"
    CURRENCY_LABEL: str = "NT$"

    # Quote defaults
    DEFAULT_MANAGEMENT_RATE: float = 10.0
    DEFAULT_TAX_RATE: float = 5.0
    DEFAULT_UNIT: str = "unit"
    DEFAULT_ITEM_NAME: str = ""

    # Export
    PDF_FONT_PATH: Optional[str] = None  # TTF with CJK coverage, e.g. NotoSansTC-Regular.ttf
    EXPORT_DEFAULT_FILENAME: str = "quotation"


settings = Settings()  # type: ignore
