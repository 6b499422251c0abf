from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///foresight.db"
    BRAVE_SEARCH_API_KEY: str | None = None
    BRAVE_SEARCH_URL: str = "https://api.search.brave.com/res/v1/web/search"
    SEARCH_RESULT_COUNT: int = 8
    SEARCH_TIMEOUT: float = 15.0  # seconds
    SEARCH_MAX_ATTEMPTS: int = 3
    SEARCH_MAX_WORKERS: int = 8
    DEFAULT_NEWS_WINDOW: int = 14  # days
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
