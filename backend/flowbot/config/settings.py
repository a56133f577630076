# /flowbot/config/settings.py

import logging
from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # App Behavior
    environment: str = "production"
    api_version: str = "v1"
    auto_reply: bool = True
    respond_groups: bool = False
    agent_prompt: str = "Você é um assistente prestativo."
    log_level: str = "INFO"

    # Contact screening; lists are comma-separated jids or phone numbers
    blocked_contacts: str = ""
    block_word: str = "parar"
    allowed_groups: str = ""

    # MongoDB (flow store)
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db_name: str = "flowbot"
    max_pool_size: int = 10
    min_pool_size: int = 1

    # WhatsApp Cloud API
    whatsapp_access_token: str | None = None
    whatsapp_phone_id: str | None = None
    whatsapp_verify_token: str | None = None
    whatsapp_api_base_url: str = "https://graph.facebook.com/v18.0"

    # AI APIs
    gemini_api_key: str | None = None
    openai_api_key: str | None = None
    ai_model_gemini: str = "gemini-2.5-flash"
    ai_model_openai: str = "gpt-4o-mini"

    # Flow engine
    http_request_timeout: float = 15.0
    default_delay_seconds: float = 1.0

    # ---------------- Validators ---------------- #

    @field_validator("whatsapp_phone_id")
    @classmethod
    def phone_id_must_be_digits(cls, v):
        if v is not None and not v.isdigit():
            raise ValueError("WHATSAPP_PHONE_ID must contain only digits")
        return v

    @field_validator("default_delay_seconds")
    @classmethod
    def delay_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("DEFAULT_DELAY_SECONDS must be greater than zero")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def validate_environment(settings_obj: Settings) -> Settings:
    """
    Warns about missing credentials. The flow engine itself runs without them,
    so nothing here is fatal; collaborators that need a credential fail at call time.
    """
    if not settings_obj.whatsapp_access_token or not settings_obj.whatsapp_phone_id:
        logger.warning("WhatsApp credentials are not configured; outbound messages will fail.")

    if not settings_obj.whatsapp_verify_token:
        logger.warning("WHATSAPP_VERIFY_TOKEN is not set; webhook verification will be rejected.")

    if not settings_obj.gemini_api_key and not settings_obj.openai_api_key:
        logger.warning("No AI API key configured; ai_response nodes will reply with the fallback text.")

    return settings_obj


settings = Settings()
validate_environment(settings)
