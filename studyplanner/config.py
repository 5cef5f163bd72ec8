from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = "[%(asctime)s] [%(process)d] [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S %z"


class Config:
    DATA_DIR = os.getenv("STUDYPLANNER_DATA_DIR")
    LOG_LEVEL = os.getenv("STUDYPLANNER_LOG_LEVEL", "WARNING")

    SUPABASE_URL = os.getenv("SUPABASE_URL")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
    RESET_REDIRECT = os.getenv("STUDYPLANNER_RESET_REDIRECT", "http://localhost:3000/auth/reset-password")

    REQUEST_TIMEOUT = float(os.getenv("STUDYPLANNER_REQUEST_TIMEOUT", "30"))


config = Config()


def default_data_dir() -> Path:
    """
    Directory holding one JSON file per collection key.

    A function instead of a constant so tests (and --data-dir) can override it.
    """
    if config.DATA_DIR:
        return Path(config.DATA_DIR).expanduser()
    return Path.home() / ".studyplanner"


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or config.LOG_LEVEL).upper(), logging.WARNING),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
