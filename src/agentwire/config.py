"""Client configuration loaded from the environment and an optional .env file."""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict

from dotenv import load_dotenv

from agentwire.paths import env_file

DEFAULT_FOLLOWUP_TIMEOUT_S = 10.0
DEFAULT_TASK_TIMEOUT_S = 600.0
DEFAULT_COMMAND_EXECUTION_TIMEOUT_S = 20

# Settings the engine reads to decide ordinary approvals on its own.
AUTO_APPROVE_FLAGS = (
    "alwaysAllowReadOnly",
    "alwaysAllowReadOnlyOutsideWorkspace",
    "alwaysAllowWrite",
    "alwaysAllowWriteOutsideWorkspace",
    "alwaysAllowExecute",
    "alwaysAllowBrowser",
    "alwaysAllowMcp",
    "alwaysAllowModeSwitch",
    "alwaysAllowSubtasks",
    "alwaysApproveResubmit",
    "alwaysAllowFollowupQuestions",
    "alwaysAllowUpdateTodoList",
)


def parse_level(value: str | None, default: int) -> int:
    """Parse a log level string or numeric value from environment settings."""
    if not value:
        return default
    if value.isdigit():
        return int(value)
    return logging._nameToLevel.get(value.upper(), default)


def parse_bool(value: str | None, default: bool) -> bool:
    """Parse a truthy/falsy toggle from environment settings."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: str | None, default: int) -> int:
    """Parse an integer setting, returning the default on invalid input."""
    if value is None:
        return default
    with contextlib.suppress(ValueError):
        return int(value)
    return default


def parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    with contextlib.suppress(ValueError):
        parsed = float(value)
        if parsed > 0:
            return parsed
    return default


@dataclass(frozen=True)
class ClientConfig:
    """Runtime options for one client session.

    ``interactive`` selects the approval policy: interactive sessions prompt
    for every ask, non-interactive ones let the engine auto-approve and only
    race followup questions against ``followup_timeout_s``.
    """

    interactive: bool = True
    mode: str | None = None
    followup_timeout_s: float = DEFAULT_FOLLOWUP_TIMEOUT_S
    task_timeout_s: float = DEFAULT_TASK_TIMEOUT_S
    skip_first_user_message: bool = True
    verbose: bool = False
    quiet: bool = False


def load_env_file() -> bool:
    """Load ``.env`` from the user config dir without overriding real env vars."""
    path = env_file()
    if not path.is_file():
        return False
    return load_dotenv(path, override=False)


def build_client_config(**overrides: Any) -> ClientConfig:
    """Build client config from env defaults, then apply explicit overrides."""

    load_env_file()
    config = ClientConfig(
        interactive=parse_bool(os.getenv("AGENTWIRE_INTERACTIVE"), True),
        mode=os.getenv("AGENTWIRE_MODE") or None,
        followup_timeout_s=parse_float(os.getenv("AGENTWIRE_FOLLOWUP_TIMEOUT"), DEFAULT_FOLLOWUP_TIMEOUT_S),
        task_timeout_s=parse_float(os.getenv("AGENTWIRE_TASK_TIMEOUT"), DEFAULT_TASK_TIMEOUT_S),
        verbose=parse_bool(os.getenv("AGENTWIRE_VERBOSE"), False),
        quiet=parse_bool(os.getenv("AGENTWIRE_QUIET"), False),
    )
    explicit = {key: value for key, value in overrides.items() if value is not None}
    if explicit:
        config = replace(config, **explicit)
    return config


def approval_settings(interactive: bool, mode: str | None = None) -> Dict[str, Any]:
    """Build the ``updatedSettings`` payload sent before a new task."""
    if interactive:
        settings: Dict[str, Any] = {"autoApprovalEnabled": False}
    else:
        settings = {"autoApprovalEnabled": True}
        settings.update({flag: True for flag in AUTO_APPROVE_FLAGS})
        settings["alwaysAllowWriteProtected"] = False
        settings["allowedCommands"] = ["*"]
        settings["commandExecutionTimeout"] = DEFAULT_COMMAND_EXECUTION_TIMEOUT_S
    if mode:
        settings["mode"] = mode
    return settings


__all__ = [
    "AUTO_APPROVE_FLAGS",
    "ClientConfig",
    "approval_settings",
    "build_client_config",
    "load_env_file",
    "parse_bool",
    "parse_float",
    "parse_int",
    "parse_level",
]
