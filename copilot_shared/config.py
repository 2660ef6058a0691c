"""
Shared configuration for the Slide Copilot service.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Load environment variables from the repository root .env, regardless of CWD
base_dir = Path(__file__).resolve().parents[1]
dotenv_path = base_dir / ".env"

if dotenv_path.exists():
    load_dotenv(dotenv_path, override=False)
    logger.info(f"✅ Loaded environment variables from {dotenv_path}")
else:
    # Fallback: search upwards from CWD
    discovered = find_dotenv(usecwd=True)
    if discovered:
        load_dotenv(discovered, override=False)
        logger.info(f"✅ Loaded environment variables from {discovered}")


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # API Keys - explicitly map environment variables
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_organization: Optional[str] = Field(default=None, alias="OPENAI_ORG_ID")
    openai_project: Optional[str] = Field(default=None, alias="OPENAI_PROJECT")
    openai_model: str = Field(default="gpt-4o", alias="OPENAI_MODEL")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(default="claude-sonnet-4-20250514", alias="ANTHROPIC_MODEL")
    perplexity_api_key: Optional[str] = Field(default=None, alias="PERPLEXITY_API_KEY")
    perplexity_model: str = Field(default="sonar-reasoning", alias="PERPLEXITY_MODEL")

    # Service Configuration
    service_name: str = Field(default="slide-copilot", alias="SERVICE_NAME")
    service_port: int = Field(default=8010)
    debug: bool = Field(default=False, alias="DEBUG")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Research / composition backends
    research_provider: Optional[str] = Field(default="perplexity", alias="RESEARCH_PROVIDER")
    research_model: Optional[str] = Field(default=None, alias="RESEARCH_MODEL")
    research_timeout_seconds: float = Field(default=120.0, gt=0, alias="RESEARCH_TIMEOUT_SECONDS")
    research_allow_fallback: bool = Field(default=False, alias="RESEARCH_ALLOW_FALLBACK")
    composer_provider: Optional[str] = Field(default="openai", alias="COMPOSER_PROVIDER")
    composer_model: Optional[str] = Field(default=None, alias="COMPOSER_MODEL")

    def __init__(self, **data):
        super().__init__(**data)
        # Service-specific port wins over the generic one
        if os.getenv("SLIDE_COPILOT_PORT"):
            self.service_port = int(os.getenv("SLIDE_COPILOT_PORT"))
        elif os.getenv("SERVICE_PORT"):
            self.service_port = int(os.getenv("SERVICE_PORT"))


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the current settings instance."""
    return settings


def debug_settings() -> None:
    """Log the current settings without leaking secrets."""
    current = get_settings()
    logger.info("🔍 Current Settings:")
    logger.info(f"  OpenAI API Key: {'✅ Set' if current.openai_api_key else '❌ Not set'}")
    logger.info(f"  Anthropic API Key: {'✅ Set' if current.anthropic_api_key else '❌ Not set'}")
    logger.info(f"  Perplexity API Key: {'✅ Set' if current.perplexity_api_key else '❌ Not set'}")
    logger.info(f"  Service Name: {current.service_name}")
    logger.info(f"  Service Port: {current.service_port}")
    logger.info(f"  Debug Mode: {current.debug}")
    logger.info(f"  Log Level: {current.log_level}")
    logger.info(f"  Research: {current.research_provider} (timeout {current.research_timeout_seconds}s, fallback {current.research_allow_fallback})")
    logger.info(f"  Composer: {current.composer_provider}")
