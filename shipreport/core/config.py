"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BugzillaSettings(BaseSettings):
    """Bugzilla REST configuration."""

    model_config = SettingsConfigDict(env_prefix="BUGZILLA_")

    api_key: str = Field(default="", description="Bugzilla API key (sent as a header)")
    host: str = Field(
        default="https://bugzilla.mozilla.org",
        description="Bugzilla base URL without trailing slash",
    )


class JiraSettings(BaseSettings):
    """Jira Cloud configuration."""

    model_config = SettingsConfigDict(env_prefix="JIRA_")

    url: str = Field(default="", description="Jira base URL, e.g. https://acme.atlassian.net")
    api_key: str = Field(default="", description="Jira API token (Bearer)")


class GitHubSettings(BaseSettings):
    """GitHub REST configuration."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_")

    api_key: str = Field(default="", description="GitHub token; optional but rate limits are low without it")
    api_url: str = Field(default="https://api.github.com", description="GitHub API base URL")


class OpenAISettings(BaseSettings):
    """OpenAI chat completions configuration."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: str = Field(default="", description="OpenAI API key")
    base_url: str = Field(default="https://api.openai.com", description="OpenAI API base URL")
    model: str = Field(default="gpt-5", description="Default summarization model")
    timeout: int = Field(default=180, description="Summarizer request timeout in seconds")


class CacheSettings(BaseSettings):
    """Upstream response cache configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    ttl_seconds: int = Field(default=86400, description="Entry TTL in seconds (24 hours)")
    sweep_interval_seconds: int = Field(
        default=7200, description="Minimum interval between expired-entry sweeps"
    )


class HttpSettings(BaseSettings):
    """Outbound HTTP behaviour shared by all connectors."""

    model_config = SettingsConfigDict(env_prefix="HTTP_")

    timeout: float = Field(default=30.0, description="Per-call timeout in seconds")
    max_in_flight_per_host: int = Field(
        default=8, description="Concurrent requests allowed against one upstream host"
    )
    max_retries: int = Field(default=3, description="Attempts for transient upstream failures")


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="shipreport", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8788"],
        description="CORS allowed origins",
    )

    # Pipeline
    skip_cache: bool = Field(
        default=False,
        validation_alias=AliasChoices("SHIPREPORT_SKIP_CACHE", "SKIP_CACHE"),
        description="Bypass the upstream response cache",
    )
    email_mapping: dict[str, str] = Field(
        default_factory=dict,
        description="Bugzilla email -> GitHub username mapping (JSON)",
    )

    # Sub-settings
    bugzilla: BugzillaSettings = Field(default_factory=BugzillaSettings)
    jira: JiraSettings = Field(default_factory=JiraSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def jira_configured(self) -> bool:
        return bool(self.jira.url and self.jira.api_key)

    def missing_credentials(self, *, need_jira: bool = False, need_openai: bool = True) -> list[str]:
        """Names of required environment variables that are unset."""
        missing: list[str] = []
        if not self.bugzilla.api_key:
            missing.append("BUGZILLA_API_KEY")
        if need_openai and not self.openai.api_key:
            missing.append("OPENAI_API_KEY")
        if need_jira:
            if not self.jira.url:
                missing.append("JIRA_URL")
            if not self.jira.api_key:
                missing.append("JIRA_API_KEY")
        return missing


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()

