from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


WriteMode = Literal["overwrite", "merge"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="")

    SERVICE_NAME: str = "contract-engine"
    LOG_LEVEL: str = "INFO"

    # Contract files
    CONTRACT_DIR: str = "pacts"
    CONTRACT_WRITE_MODE: WriteMode = "merge"

    # Consumer-side mock server (port 0 picks a free port)
    MOCK_SERVER_HOST: str = "127.0.0.1"
    MOCK_SERVER_PORT: int = 0

    # Provider verification
    PROVIDER_BASE_URL: Optional[str] = None
    STATE_SETUP_URL: Optional[str] = None
    REQUEST_TIMEOUT: float = 10.0  # seconds, per HTTP call
    ALLOW_UNEXPECTED_KEYS: bool = False

    # Provider state endpoint
    PROVIDER_STATES_ENABLED: bool = True
    STRICT_PROVIDER_STATES: bool = False

    def contract_dir(self) -> Path:
        return Path(self.CONTRACT_DIR)


def get_settings() -> Settings:
    return Settings()
