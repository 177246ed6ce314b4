"""
Configuration
=============

Connection parameters read from the process environment (and ``.env`` when
present), validated once at startup before any connection is attempted.

The password is held as a ``SecretStr`` so it never shows up in reprs or logs.
"""

import re

from email_validator import EmailNotValidError, validate_email
from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from imap_mcp.contracts import ConfigurationError

_DIGITS = re.compile(r"^\d+$")

IMPLICIT_TLS_SMTP_PORT = 465


class Settings(BaseSettings):
    """Validated server configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    email_user: str = Field(..., description="Account address, also the sender.")
    email_password: SecretStr = Field(..., description="Account password.")
    imap_host: str = Field(..., min_length=1)
    imap_port: int
    smtp_host: str = Field(..., min_length=1)
    smtp_port: int
    email_timeout: float = Field(
        default=30.0, gt=0, description="Socket timeout in seconds for IMAP and SMTP."
    )

    @field_validator("email_user")
    @classmethod
    def check_email_user(cls, value: str) -> str:
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(str(e)) from e
        return value

    @field_validator("email_password")
    @classmethod
    def check_password(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("must not be empty")
        return value

    @field_validator("imap_port", "smtp_port", mode="before")
    @classmethod
    def check_port(cls, value: object) -> object:
        # Environment values arrive as strings; only plain digits are accepted.
        if isinstance(value, str) and not _DIGITS.match(value):
            raise ValueError("must contain digits only")
        return value

    @property
    def imap_secure(self) -> bool:
        return True

    @property
    def smtp_secure(self) -> bool:
        """Port 465 means implicit TLS; anything else negotiates STARTTLS."""
        return self.smtp_port == IMPLICIT_TLS_SMTP_PORT

    @property
    def inbox_uri(self) -> str:
        return f"mailto:{self.email_user}/inbox"

    @property
    def folders_uri(self) -> str:
        return f"mailto:{self.email_user}/folders"


def load_settings(env_file: str | None = ".env") -> Settings:
    """
    Resolve settings from the environment.

    ERRORS:
    - ConfigurationError: a required variable is absent or malformed.
    """
    try:
        return Settings(_env_file=env_file)
    except ValidationError as e:
        raise ConfigurationError(f"Environment validation failed: {e}") from e
