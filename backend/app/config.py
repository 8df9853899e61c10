from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Huddle Relay", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=True, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
        ],
        description="List of allowed CORS origins",
    )

    database_dsn: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides the individual connection fields.",
    )
    database_user: str = Field(default="huddle", validation_alias=AliasChoices("database_user", "DB_USER"))
    database_password: str = Field(default="huddle", validation_alias=AliasChoices("database_password", "DB_PASSWORD"))
    database_host: str = Field(default="db", validation_alias=AliasChoices("database_host", "DB_HOST"))
    database_port: int = Field(default=3306, validation_alias=AliasChoices("database_port", "DB_PORT"))
    database_name: str = Field(default="huddle", validation_alias=AliasChoices("database_name", "DB_NAME"))

    socketio_path: str = Field(
        default="socket.io",
        description="Mount path of the Socket.IO endpoint.",
    )
    socketio_ping_interval_seconds: int = Field(
        default=25,
        description="Interval between server pings sent to Socket.IO clients.",
    )
    socketio_ping_timeout_seconds: int = Field(
        default=20,
        description="Seconds without a pong before a client is considered gone.",
    )

    chat_message_max_length: int = Field(default=2000)
    reaction_emoji_max_length: int = Field(default=32)
    message_edit_window_hours: int = Field(
        default=24,
        description="Messages older than this can no longer be edited.",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url(self) -> str:
        if self.database_dsn:
            return self.database_dsn
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        return str(value or "INFO").strip().upper()

    @property
    def cors_origin_list(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.cors_origins]


@lru_cache
def get_settings() -> Settings:
    return Settings()
