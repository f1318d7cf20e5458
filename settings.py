import secrets
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./todos.db"

    # Security configuration
    JWT_SECRET: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24

    HOST: str = "0.0.0.0"
    PORT: int = 5001
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # "memory://" keeps counters per process; point at redis:// to share them
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    ALLOWED_EMAIL_DOMAINS: List[str] = ["gmail.com", "yahoo.com", "hotmail.com", "outlook.com"]
    CORS_ORIGINS: List[str] = ["*"]
    ALLOWED_HOSTS: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()
