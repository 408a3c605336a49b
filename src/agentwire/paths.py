"""Per-user locations for client settings and logs, resolved with platformdirs."""

from __future__ import annotations

from pathlib import Path

from platformdirs import user_config_path, user_log_path

APP_NAME = "agentwire"
ENV_FILE_NAME = ".env"


def config_dir() -> Path:
    return user_config_path(APP_NAME, appauthor=False, ensure_exists=True)


def log_dir() -> Path:
    return user_log_path(APP_NAME, appauthor=False, ensure_exists=True)


def env_file() -> Path:
    """Optional dotenv file read before the environment when building config."""
    return config_dir() / ENV_FILE_NAME
