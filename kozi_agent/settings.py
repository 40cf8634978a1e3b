# kozi_agent/settings.py
from __future__ import annotations
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices


class Settings(BaseSettings):
    # pydantic v2 config
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Gemini ---
    GEMINI_API_KEY: str
    # generation model used by classifier, synthesizer and chat
    GEMINI_MODEL: str = Field(default="gemini-1.5-pro", validation_alias=AliasChoices("GEMINI_MODEL", "GEMINI_MODEL_ANALYST"))
    # used once when the primary model is rate limited
    GEMINI_FALLBACK_MODEL: str = Field(default="gemini-1.5-flash", validation_alias=AliasChoices("GEMINI_FALLBACK_MODEL", "GEMINI_MODEL_FALLBACK"))

    # --- Database (read-only) ---
    DB_URL_RO: str = Field(validation_alias=AliasChoices("DB_URL_RO", "DATABASE_URL"))
    # sqlglot dialect used by the safety gate
    SQL_DIALECT: str = "mysql"
    DEFAULT_SQL_LIMIT: int = Field(default=10, validation_alias=AliasChoices("DEFAULT_SQL_LIMIT", "SQL_DEFAULT_LIMIT"))
    MAX_RESULT_ROWS: int = 200
    STATEMENT_TIMEOUT_MS: int = Field(default=10000, validation_alias=AliasChoices("STATEMENT_TIMEOUT_MS", "SQL_STATEMENT_TIMEOUT_MS"))
    DISPLAY_CELL_WIDTH: int = 30

    # --- Streaming ---
    STREAM_TIMEOUT_SECONDS: float = 30.0
    STREAM_KEEPALIVE_SECONDS: float = 15.0

    # --- Identity ---
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"

    # --- Gmail ---
    GMAIL_CREDENTIALS_PATH: str = "./credentials.json"
    GMAIL_TOKEN_PATH: str = "./token.json"
    GMAIL_SENDER: Optional[str] = None

    # --- Notifier (SMTP) ---
    SMTP_SERVER: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = "no-reply@kozi.rw"

    # --- Payment reminders ---
    REMINDERS_ENABLED: bool = True
    REMINDER_HOUR: int = 7
    REMINDER_MINUTE: int = 0
    REMINDER_TIMEZONE: str = "Africa/Kigali"
    REMINDER_LEAD_DAYS: int = 2
    REMINDER_FALLBACK_EMAIL: str = "admin@kozi.rw"

    # Misc
    APP_NAME: str = "Kozi Assistant API"
    APP_VERSION: str = "0.1.0"
