from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    openai_api_key: str = ""
    openrouter_api_key: str = ""

    # "openai" or "openrouter"
    llm_provider: str = "openai"
    llm_model: str = ""
    llm_timeout_seconds: float = 30.0
    llm_temperature: float = 0.3
    llm_max_tokens: int = 500

    user_timezone: str = "UTC"
    end_of_day_hour: int = 17  # deadlines default to 5pm local

    # Per-caller fixed window for task extraction requests
    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: float = 60.0

    # Sentry error tracking
    sentry_dsn: str = ""
    sentry_environment: str = "production"

    log_level: str = "INFO"

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_openrouter(self) -> bool:
        return bool(self.openrouter_api_key)

    @property
    def has_llm(self) -> bool:
        if self.llm_provider == "openrouter":
            return self.has_openrouter
        return self.has_openai

    @property
    def has_sentry(self) -> bool:
        return bool(self.sentry_dsn)


settings = Settings()
