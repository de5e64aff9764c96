from pydantic_settings import BaseSettings
from typing import Optional
from pydantic import Field

class Settings(BaseSettings):
    DATABASE_URL: Optional[str] = None
    SQLALCHEMY_DATABASE_URL: Optional[str] = None
    DB_ECHO: bool = Field(False)

    # Upper bound for every repository call; exceeded → StorageError (retryable)
    DB_TIMEOUT_SECONDS: float = Field(5.0, gt=0)

    # Timer thresholds: WARNING from ratio * estimate, EXCEEDED from 1.0 * estimate
    TIMER_WARNING_RATIO: float = Field(0.8, gt=0, lt=1)

    LOG_LEVEL: str = Field("INFO")

    model_config = {
        "env_file": ".env",
        "extra": "allow",
    }

    @property
    def effective_database_url(self) -> str:
        url = self.SQLALCHEMY_DATABASE_URL or self.DATABASE_URL or "sqlite+aiosqlite:///./taskflow.db"
        # Ensure asyncpg is used
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

settings = Settings()
