"""
Secret lookup: environment variables, with a <NAME>_FILE fallback for
container secrets mounted as files.
"""

import os
from typing import Optional

from dotenv import load_dotenv

from forum.utils.logging import get_logger

logger = get_logger(__name__)

_dotenv_loaded = False


def load_env_file(path: Optional[str] = None) -> None:
    """Load a .env file once per process (or an explicit one on request)."""
    global _dotenv_loaded
    if path:
        load_dotenv(path, override=False)
        return
    if not _dotenv_loaded:
        load_dotenv(override=False)
        _dotenv_loaded = True


def read_secret(name: str, default: str = "") -> str:
    load_env_file()

    value = os.getenv(name)
    if value:
        return value.strip()

    file_path = os.getenv(f"{name}_FILE")
    if file_path:
        try:
            with open(file_path, "r") as f:
                return f.read().strip()
        except OSError as e:
            logger.error(f"Could not read secret file for {name}: {e}")

    return default
