from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from maze import Generator

BASE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):  # LANTERN_* environment variables, then .env
    GENERATOR: Generator = Generator.RECURSIVE_BACKTRACKING
    LEVEL_COUNT: int = Field(default=9, ge=1)
    SEED: Optional[int] = None
    ADVANCE_POLICY: Literal["immediate", "reveal"] = "reveal"
    REVEAL_DELAY_SECONDS: float = Field(default=3.0, ge=0)
    RESULTS_DB: Optional[str] = None
    PLAYER: str = "wanderer"
    LOG_LEVEL: str = "WARNING"
    LOG_FILE: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="LANTERN_",
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
    )


settings = Settings()
