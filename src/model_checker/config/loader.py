"""TOML configuration loader for model-checker.toml."""

import tomllib
from pathlib import Path

from model_checker.config.models import CheckerConfig, CheckSettings, DatabaseProfile

CONFIG_FILE_NAME = "model-checker.toml"


def load_config(config_path: Path | None = None) -> CheckerConfig:
    """Load profiles and check settings from a TOML file.

    Args:
        config_path: Path to the config file (default:
            ``Path.cwd() / "model-checker.toml"``)

    Returns:
        CheckerConfig with all profiles and the ``[check]`` settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid

    Example:
        # model-checker.toml
        [profiles.dev]
        url = "postgresql://localhost:5432/app"

        [check]
        model = "myapp.models:Base"
        schema = "public"
        tables_in_database_but_not_in_model = true
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILE_NAME

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config not found: {config_path}\n"
            f"Create {CONFIG_FILE_NAME} with at least one [profiles.<name>] table."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path.name}: {e}") from e

    profiles_data = data.get("profiles", {})
    check_data = data.get("check", {})
    if not isinstance(profiles_data, dict) or not isinstance(check_data, dict):
        raise ValueError(
            f"Invalid config format in {config_path.name}: "
            "[profiles] and [check] must be tables"
        )

    # Parse profiles
    profiles = {}
    for name, profile_data in profiles_data.items():
        profiles[name] = DatabaseProfile(**profile_data)

    return CheckerConfig(
        profiles=profiles,
        check=CheckSettings(**check_data),
    )
