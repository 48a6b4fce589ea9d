from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str
    ANTHROPIC_API_KEY: str
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Extraction Settings
    EXTRACTION_MODEL: str = "claude-sonnet-4-5"
    EXTRACTION_MODEL_FALLBACK: str = "claude-haiku-4-5"
    EXTRACTION_MAX_TOKENS: int = 1024
    EXTRACTION_TIMEOUT_SECONDS: float = 20.0

    # Table names
    MESSAGES_TABLE: str = "sms_messages"
    DEVICE_KEYS_TABLE: str = "device_keys"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
