from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

DEV_JWT_SECRET = "foodnfun-dev-secret-change-me-in-production"


class Settings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite:///./foodnfun.db"
    access_key: str | None = None
    jwt_secret: str = DEV_JWT_SECRET
    jwt_ttl_minutes: int = 720
    allow_origins: Annotated[list[str], NoDecode] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    realtime_webhook_urls: Annotated[list[str], NoDecode] = Field(default_factory=list)
    realtime_queue_size: int = 1000
    enforce_order_transitions: bool = True
    aggregate_tolerance: float = 0.01
    seed_defaults: bool = True
    log_level: str = "INFO"

    class Config:
        env_file = ".env"

    @field_validator("allow_origins", "realtime_webhook_urls", mode="before")
    @classmethod
    def split_csv(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if value is None:
            return []
        return value

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "test")


@lru_cache
def get_settings() -> Settings:
    return Settings()
