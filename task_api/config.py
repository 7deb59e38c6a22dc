from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the application, read from the environment or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "Task API"
    VERSION: str = "2.0.0"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    # ":memory:" keeps everything in a single in-memory connection (tests)
    DB_PATH: str = "data/tasks.db"
    CORS_ORIGIN: str = "*"
    ENVIRONMENT: Literal["development", "production", "test"] = "development"
    LOG_LEVEL: str = "INFO"
    SHUTDOWN_TIMEOUT: int = 10

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT == "test"

    @property
    def in_memory(self) -> bool:
        return self.DB_PATH == ":memory:"
