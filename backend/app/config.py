# backend configuration
# loads env vars for mongodb, identity tokens, sendgrid, openai and invitation policy

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# load .env from project root
load_dotenv(Path(__file__).parent.parent.parent / ".env")


class Settings(BaseSettings):
    # mongodb (transactions need a replica set deployment)
    MONGODB_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGODB_DATABASE: str = "therapii"

    # identity provider tokens
    JWT_SECRET: str = "therapii-dev-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None

    # openai (ai companion proxy)
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_DEFAULT_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_SECONDS: float = 90.0

    # sendgrid (invitation emails)
    SENDGRID_API_KEY: str = ""
    SENDGRID_API_KEY_ID: str = ""
    SENDGRID_FROM_EMAIL: str = "no-reply@therapii.app"
    SENDGRID_BASE_URL: str = "https://api.sendgrid.com"
    SENDGRID_TIMEOUT_SECONDS: float = 15.0

    # invitation policy
    INVITATION_TTL_HOURS: int = 48
    INVITATION_CODE_MAX_ATTEMPTS: int = 20

    # cors
    FRONTEND_URL: str = "http://localhost:3000"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @field_validator("OPENAI_BASE_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


settings = Settings()
