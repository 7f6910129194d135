from pathlib import Path

import platformdirs


APP_DIR_NAME = "lark"


def get_xdg_config_home() -> Path:
    """Get the XDG_CONFIG_HOME directory using platformdirs.

    Returns:
        Path to the user config directory (cross-platform).
    """
    return Path(platformdirs.user_config_dir())


def get_lark_config_dir() -> Path:
    """Get the lark CLI configuration directory.

    Returns:
        Path to ``<user config dir>/lark``.
    """
    return get_xdg_config_home() / APP_DIR_NAME
