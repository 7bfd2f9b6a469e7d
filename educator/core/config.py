"""
Application configuration using Pydantic Settings
Handles all environment variables and provides type-safe access
"""
import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional, Any

from pydantic import Field, field_validator, computed_field
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

PACKAGE_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    Uses pydantic-settings to automatically load from .env file
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra environment variables
    )

    # Application Settings
    APP_NAME: str = Field(default="Virtual Educator")
    APP_VERSION: str = Field(default="0.1.0")
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production)$")
    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    # Server Configuration
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3000, ge=1, le=65535)
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(default=["*"])
    ALLOWED_HOSTS: Annotated[List[str], NoDecode] = Field(default=["localhost", "127.0.0.1"])

    # OpenAI Configuration
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_BASE_URL: Optional[str] = Field(default=None)
    OPENAI_CHAT_MODEL: str = Field(default="gpt-3.5-turbo-1106")
    CHAT_MAX_TOKENS: int = Field(default=1000, ge=1, le=16384)
    CHAT_TEMPERATURE: float = Field(default=0.6, ge=0.0, le=2.0)
    TTS_MODEL: str = Field(default="gpt-4o-mini-tts")
    TTS_VOICE: str = Field(default="nova", pattern="^(alloy|echo|fable|onyx|nova|shimmer)$")
    STT_MODEL: str = Field(default="whisper-1")
    UPSTREAM_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0)
    UPSTREAM_MAX_RETRIES: int = Field(default=0, ge=0, le=5)

    # Turn Pipeline
    MAX_REPLY_MESSAGES: int = Field(default=3, ge=1, le=10)
    ARTIFACT_DIR: Path = Field(default=Path("audios"))
    UPLOAD_DIR: Path = Field(default=Path("uploads"))
    KEEP_TURN_ARTIFACTS: bool = Field(default=False)
    MAX_UPLOAD_MB: int = Field(default=25, ge=1, le=100)
    FFMPEG_PATH: str = Field(default="ffmpeg")
    FFMPEG_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    LIPSYNC_STRATEGY: str = Field(default="placeholder", pattern="^(placeholder|energy)$")
    PREBAKED_AUDIO_DIR: Path = Field(default=PACKAGE_ROOT / "assets" / "audios")

    # Logging & Privacy
    PII_MASKING_ENABLED: bool = Field(default=True)
    AUDIT_LOG_ENABLED: bool = Field(default=True)

    # Computed fields
    @computed_field
    @property
    def TRUSTED_HOSTS(self) -> List[str]:
        """Host headers accepted by the app; any host while debugging"""
        if self.DEBUG:
            return ["*"]
        return self.ALLOWED_HOSTS

    @computed_field
    @property
    def IS_PRODUCTION(self) -> bool:
        """Check if running in production"""
        return self.ENVIRONMENT == "production"

    @computed_field
    @property
    def IS_DEVELOPMENT(self) -> bool:
        """Check if running in development"""
        return self.ENVIRONMENT == "development"

    @computed_field
    @property
    def OPENAI_CONFIGURED(self) -> bool:
        """Whether a credential for the OpenAI services is present"""
        return bool(self.OPENAI_API_KEY)

    @computed_field
    @property
    def MAX_UPLOAD_BYTES(self) -> int:
        """Upload size limit in bytes"""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    # Field validators
    @field_validator("CORS_ORIGINS", "ALLOWED_HOSTS", mode="before")
    @classmethod
    def parse_host_list(cls, v: Any) -> List[str]:
        """Parse origins or hosts from a JSON string, a comma separated string or a list"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(",") if item.strip()]
        elif isinstance(v, list):
            return v
        return []

    @field_validator("OPENAI_API_KEY", "OPENAI_BASE_URL", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        """Treat empty values as unset"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def validate_production_settings(self) -> List[str]:
        """
        Validate settings for production environment
        Returns list of validation errors
        """
        errors = []

        if self.IS_PRODUCTION:
            if self.DEBUG:
                errors.append("DEBUG must be False in production")
            if not self.OPENAI_API_KEY:
                errors.append("OPENAI_API_KEY is required in production")
            if self.KEEP_TURN_ARTIFACTS:
                errors.append("KEEP_TURN_ARTIFACTS should be False in production")
            if "*" in self.CORS_ORIGINS:
                errors.append("CORS_ORIGINS must list explicit origins in production")
            if "*" in self.ALLOWED_HOSTS:
                errors.append("ALLOWED_HOSTS must list explicit hosts in production")

        return errors

    def validate_development_settings(self) -> List[str]:
        """
        Validate settings for development environment
        Returns list of warnings
        """
        warnings = []

        if self.IS_DEVELOPMENT:
            if not self.OPENAI_API_KEY:
                warnings.append("OPENAI_API_KEY is not set - /chat will serve the configuration reminder")
            if not self.DEBUG:
                warnings.append("DEBUG is False in development - you may want to enable it")
            if self.LIPSYNC_STRATEGY == "placeholder":
                warnings.append("LIPSYNC_STRATEGY is 'placeholder' - mouth cues are not derived from audio")

        return warnings


# Cache settings instance
@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance
    Use this function to import settings throughout the application
    """
    return Settings()


# Create settings instance
settings = get_settings()
