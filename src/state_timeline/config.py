from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel

DEFAULT_SEED_FILE = "Test Events Data - Sheet1.csv"


class LogConfig(BaseModel):
    level: str = "INFO"
    dir: str | None = None
    rotation: str = "1 day"
    retention: str = "30 days"


class ApiConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000


class TimelineConfig(BaseModel):
    store_dir: Path = Path("./data")
    seed_file: Path = Path(DEFAULT_SEED_FILE)
    api: ApiConfig = ApiConfig()
    log: LogConfig = LogConfig()
    parallel_reads: bool = False

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "TimelineConfig":
        """
        Build config from environment variables.

        A .env file (searched from the working directory) is loaded first when
        present; variables already set in the process take precedence over it.
        """
        load_dotenv(env_file if env_file is not None else find_dotenv(usecwd=True))

        raw: dict = {"api": {}, "log": {}}
        if os.getenv("TIMELINE_STORE_DIR"):
            raw["store_dir"] = os.environ["TIMELINE_STORE_DIR"]
        if os.getenv("TIMELINE_SEED_FILE"):
            raw["seed_file"] = os.environ["TIMELINE_SEED_FILE"]
        if os.getenv("TIMELINE_PARALLEL_READS"):
            raw["parallel_reads"] = os.environ["TIMELINE_PARALLEL_READS"]
        if os.getenv("API_HOST"):
            raw["api"]["host"] = os.environ["API_HOST"]
        if os.getenv("API_PORT"):
            raw["api"]["port"] = os.environ["API_PORT"]
        if os.getenv("LOG_LEVEL"):
            raw["log"]["level"] = os.environ["LOG_LEVEL"].upper()
        if os.getenv("LOG_DIR"):
            raw["log"]["dir"] = os.environ["LOG_DIR"]
        if os.getenv("LOG_ROTATION"):
            raw["log"]["rotation"] = os.environ["LOG_ROTATION"]
        if os.getenv("LOG_RETENTION"):
            raw["log"]["retention"] = os.environ["LOG_RETENTION"]
        return cls(**raw)
