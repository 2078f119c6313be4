from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "mcphub" / "servers.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # --- Hub process ---
    port: int = Field(default=37373, validation_alias="MCPHUB_PORT")
    host: str = Field(default="localhost", validation_alias="MCPHUB_HOST")
    config: Path = Field(default=DEFAULT_CONFIG_PATH, validation_alias="MCPHUB_CONFIG")
    command: str = Field(default="mcp-hub", validation_alias="MCPHUB_CMD")
    required_version: str = Field(default="1.0.0", validation_alias="MCPHUB_REQUIRED_VERSION")

    # --- Timeouts ---
    quick_timeout_ms: int = Field(default=1000, validation_alias="MCPHUB_QUICK_TIMEOUT_MS")
    tool_timeout_ms: int = Field(default=30000, validation_alias="MCPHUB_TOOL_TIMEOUT_MS")
    version_check_timeout: float = Field(default=10.0, validation_alias="MCPHUB_VERSION_CHECK_TIMEOUT")

    # --- State store limits ---
    max_errors: int = Field(default=100, validation_alias="MCPHUB_MAX_ERRORS")
    max_log_entries: int = Field(default=1000, validation_alias="MCPHUB_MAX_LOG_ENTRIES")

    # --- Logging ---
    log_level: str = Field(default="INFO", validation_alias="MCPHUB_LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, validation_alias="MCPHUB_LOG_FILE")


@lru_cache
def get_settings() -> Settings:
    return Settings()
