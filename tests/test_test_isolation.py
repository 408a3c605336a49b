from __future__ import annotations

import os

from agentwire.paths import env_file, log_dir


def test_app_dirs_use_test_xdg_home() -> None:
    config_home = os.environ.get("XDG_CONFIG_HOME", "")
    state_home = os.environ.get("XDG_STATE_HOME", "")
    assert config_home, "XDG_CONFIG_HOME must be set in tests"
    assert str(env_file()).startswith(config_home)
    assert str(log_dir()).startswith(state_home)
