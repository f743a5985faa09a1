from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecretConfig(BaseSettings):
    """
    Credentials for the cloud collaborators and the notifier.

    Values come from the environment or a local `.env.secrets`; nothing here
    has a real default.
    """

    model_config = SettingsConfigDict(
        env_file=".env.secrets",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Text-to-Speech REST key. Storage/Speech/Translate use application default credentials.
    google_api_key: SecretStr | None = Field(default=None, alias="GOOGLE_API_KEY")
    google_application_credentials: str | None = Field(
        default=None, alias="GOOGLE_APPLICATION_CREDENTIALS"
    )

    # ntfy credentials: "token:<t>", "Bearer <t>", "userpass:<u>:<p>" or "<u>:<p>".
    ntfy_auth: SecretStr | None = Field(default=None, alias="NTFY_AUTH")
