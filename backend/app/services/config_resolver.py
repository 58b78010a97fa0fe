# config resolver: secrets and sender settings for the outbound collaborators
# built once per request from the admin_settings collection and the environment

import logging
from dataclasses import dataclass
from typing import Optional

from app.config import Settings
from app.services.db import Database

logger = logging.getLogger(__name__)

OPENAI_CONFIG_DOC = "openai_config"
SENDGRID_CONFIG_DOC = "sendgrid_config"


@dataclass(frozen=True)
class SendGridConfig:
    api_key: str
    api_key_id: str
    enabled: bool
    from_email: str
    base_url: str
    timeout: float


@dataclass(frozen=True)
class OpenAIConfig:
    api_key: str
    base_url: str
    default_model: str
    timeout: float

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


def _clean(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


class ConfigResolver:
    """resolves collaborator settings without caching across requests.

    openai: environment key first, then admin_settings/openai_config.
    sendgrid: admin_settings/sendgrid_config when it carries an api key
    (its own enabled flag, default true), otherwise the environment
    (enabled only when an env key is present).
    """

    def __init__(self, db: Database, env: Settings):
        self.db = db
        self.env = env

    async def _admin_doc(self, name: str) -> Optional[dict]:
        return await self.db.admin_settings.find_one({"_id": name})

    async def openai(self) -> OpenAIConfig:
        api_key = _clean(self.env.OPENAI_API_KEY)
        if not api_key:
            try:
                doc = await self._admin_doc(OPENAI_CONFIG_DOC)
                if doc:
                    api_key = _clean(doc.get("api_key"))
            except Exception as e:
                logger.error(f"Failed to fetch OpenAI API key from admin settings: {e}")

        return OpenAIConfig(
            api_key=api_key,
            base_url=self.env.OPENAI_BASE_URL,
            default_model=self.env.OPENAI_DEFAULT_MODEL,
            timeout=self.env.OPENAI_TIMEOUT_SECONDS,
        )

    def _sendgrid_from_env(self) -> SendGridConfig:
        api_key = _clean(self.env.SENDGRID_API_KEY)
        return SendGridConfig(
            api_key=api_key,
            api_key_id=_clean(self.env.SENDGRID_API_KEY_ID),
            enabled=bool(api_key),
            from_email=_clean(self.env.SENDGRID_FROM_EMAIL),
            base_url=self.env.SENDGRID_BASE_URL.rstrip("/"),
            timeout=self.env.SENDGRID_TIMEOUT_SECONDS,
        )

    async def sendgrid(self) -> SendGridConfig:
        try:
            doc = await self._admin_doc(SENDGRID_CONFIG_DOC)
        except Exception as e:
            logger.error(f"Failed to fetch SendGrid config from admin settings: {e}")
            return self._sendgrid_from_env()

        api_key = _clean(doc.get("api_key")) if doc else ""
        if not api_key:
            return self._sendgrid_from_env()

        enabled = doc.get("enabled")
        return SendGridConfig(
            api_key=api_key,
            api_key_id=_clean(doc.get("api_key_id")),
            enabled=enabled if isinstance(enabled, bool) else True,
            from_email=_clean(doc.get("from_email")) or _clean(self.env.SENDGRID_FROM_EMAIL),
            base_url=self.env.SENDGRID_BASE_URL.rstrip("/"),
            timeout=self.env.SENDGRID_TIMEOUT_SECONDS,
        )
