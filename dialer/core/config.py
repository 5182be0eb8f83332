"""Application configuration."""
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str
    openai_model: str = "gpt-4o-mini"

    # Twilio (deployment-wide fallback; calls are placed with the user's own credentials)
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None

    # ElevenLabs
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_api_url: str = "https://api.elevenlabs.io/v1"
    elevenlabs_ws_url: str = "wss://api.elevenlabs.io/v1/convai/conversation"
    elevenlabs_tts_model: str = "eleven_multilingual_v2"

    # Database
    database_url: str

    # Public origin Twilio reaches us on (e.g. an ngrok or Railway URL)
    base_url: Optional[str] = None

    # Conversation
    conversation_mode: Literal["turn_based", "streaming"] = "turn_based"
    max_conversation_turns: int = 3
    gather_timeout_seconds: int = 5
    say_voice: str = "Polly.Joanna-Neural"
    default_country_code: str = "1"
    brokerage_name: str = "eXp Realty"
    keepalive_timeout_seconds: float = 30.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
