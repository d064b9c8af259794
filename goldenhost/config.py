from pathlib import Path
from typing import Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_WORKFLOW_PATH = (
    Path(__file__).resolve().parent / "workflows" / "golden-ticket-chatbot.json"
)


class Settings(BaseSettings):
    """
    Application configuration with environment variable mapping.
    All settings can be defined in .env file or as environment variables.
    """

    # Core settings
    PROJECT_NAME: str = Field(default="Golden Host")
    PROJECT_DESCRIPTION: str = Field(
        default="WhatsApp Business webhook backend with a workflow chatbot"
    )
    ENVIRONMENT: Literal["dev", "prod"] = Field(default="dev")
    LOG_LEVEL: str = Field(default="INFO")
    # Directory for the rotating error log; empty disables it
    LOG_DIR: str = Field(default="logs")

    # WhatsApp
    WHATSAPP_TOKEN: str = Field(default="")
    WHATSAPP_PHONE_NUMBER_ID: str = Field(default="")
    WHATSAPP_VERIFY_TOKEN: str = Field(default="goldenhost_webhook_2024")
    WHATSAPP_API_URL: str = Field(default="https://graph.facebook.com/v18.0")

    # Chatbot
    BOT_PHONE_NUMBER_ID: Optional[str] = Field(default=None)
    WORKFLOW_PATH: Path = Field(default=DEFAULT_WORKFLOW_PATH)
    BOT_SESSION_TIMEOUT_MINUTES: float = Field(default=30, gt=0)
    BOT_MAX_JUMPS: int = Field(default=10, ge=0)
    # 0 keeps re-prompting invalid answers forever
    BOT_MAX_INVALID_ATTEMPTS: int = Field(default=0, ge=0)
    BOT_LIST_BUTTON_TEXT: str = Field(default="اختر")
    BOT_SWEEP_INTERVAL_SECONDS: float = Field(default=300, ge=0)
    HTTP_STEP_TIMEOUT: float = Field(default=15.0, gt=0)

    class Config:
        case_sensitive = True
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
