from pathlib import Path

from lark_cli.core.system import get_lark_config_dir
from lark_cli.exceptions import ConfigError


CONFIG_FILE_NAME = "config.json"
PROFILES_DIR_NAME = "profiles"


def default_config_path() -> Path:
    """Path of the default (unnamed profile) configuration file."""
    return get_lark_config_dir() / CONFIG_FILE_NAME


def validate_profile_name(profile: str) -> str:
    """Validate a profile name and return it trimmed.

    Profile names become directory names, so anything that could escape
    the profiles directory is rejected.
    """
    profile = profile.strip()
    if not profile:
        raise ConfigError("profile name must not be empty")
    if ".." in profile or "/" in profile or "\\" in profile:
        raise ConfigError(f'invalid profile name "{profile}"')
    return profile


def config_path_for_profile(profile: str | None) -> Path:
    """Resolve the configuration file for a profile.

    Args:
        profile: Profile name; empty or ``"default"`` selects the default file

    Returns:
        Path to the profile's ``config.json``

    Raises:
        ConfigError: If the profile name is invalid

    """
    if profile is None or profile.strip() in ("", "default"):
        return default_config_path()
    name = validate_profile_name(profile)
    return get_lark_config_dir() / PROFILES_DIR_NAME / name / CONFIG_FILE_NAME


def resolve_config_path(explicit: str | Path | None, profile: str | None) -> Path:
    """Pick the config path: an explicit ``--config`` wins over the profile."""
    if explicit:
        return Path(explicit).expanduser()
    return config_path_for_profile(profile)
