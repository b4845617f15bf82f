"""Learning signal service runtime configuration definitions."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded once from env and .env files.

    Instances are frozen: the composition root builds one and hands it to every
    component that needs a setting, so core code never reads the environment.
    """

    app_name: str = "learning-signals"
    environment: str = Field(default="dev", pattern="^(dev|test|prod)$")
    db_url: str = "sqlite:///./learnsig.db"
    log_level: str = Field(default="INFO", pattern="(?i)^(debug|info|warning|error|critical)$")

    default_page_size: int = Field(default=100, ge=1)
    max_page_size: int = Field(default=1000, ge=1)

    approval_agent_id: str = "approval-learning-agent"
    feedback_agent_id: str = "feedback-assimilation-agent"
    agent_version: str = "1.0.0"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="LEARNSIG_", frozen=True)
