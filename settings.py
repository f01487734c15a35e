# settings.py
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Twitch OAuth
    CLIENT_ID: str = Field(
        ...,
        validation_alias=AliasChoices("CLIENT_ID", "TWITCH_CLIENT_ID"),
        description="Twitch application Client ID",
    )
    CLIENT_SECRET: str = Field(
        ...,
        validation_alias=AliasChoices("CLIENT_SECRET", "TWITCH_CLIENT_SECRET"),
        description="Twitch application Client Secret",
    )
    HOST: str = Field(..., description="Public base URL of this service (e.g., https://auth.example.com)")
    ENV: Literal["DEV", "PROD"] = Field("DEV", description="PROD turns on the Secure cookie flag")

    TWITCH_AUTHORIZE_URL: str = Field("https://id.twitch.tv/oauth2/authorize")
    TWITCH_TOKEN_URL: str = Field("https://id.twitch.tv/oauth2/token")
    TOKEN_REQUEST_TIMEOUT: float = Field(30.0, description="Seconds before the token exchange is abandoned")

    # Lifetime of the state/port cookies
    STATE_TTL_SECONDS: int = Field(600)

    # Server
    SERVER_HOST: str = Field("0.0.0.0")
    SERVER_PORT: int = Field(8000)
    LOG_LEVEL: str = Field("INFO")

    # pydantic-settings v2 style config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def callback_uri(self) -> str:
        """redirect_uri registered with Twitch; must be identical in authorize and token calls."""
        return f"{self.HOST.rstrip('/')}/auth/twitch/callback"

    @property
    def secure_cookies(self) -> bool:
        return self.ENV == "PROD"

@lru_cache
def get_settings() -> Settings:
    return Settings()
