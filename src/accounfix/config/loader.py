"""Configuration loader with YAML parsing and environment variable substitution."""

import os
import re
from pathlib import Path

import yaml

from .schema import AccountFixConfig

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str) -> str:
    """
    Replace ${VAR_NAME} and ${VAR_NAME:-default} patterns with environment values.

    Args:
        text: Text containing ${VAR_NAME} patterns

    Returns:
        Text with environment variables substituted

    Raises:
        ValueError: If a referenced variable without a default is not set
    """

    def replacer(match: re.Match[str]) -> str:
        var_name, default = match.group(1), match.group(2)
        value = os.environ.get(var_name)
        if value is None:
            if default is None:
                raise ValueError(f"Environment variable {var_name} not found")
            return default
        return value

    return ENV_VAR_PATTERN.sub(replacer, text)


def load_config(path: Path | None = None) -> AccountFixConfig:
    """
    Load configuration from YAML file with environment variable substitution.

    Without a path the defaults are used, with the API key taken from
    the API_KEY environment variable.

    Args:
        path: Path to YAML configuration file, or None

    Returns:
        Validated AccountFixConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If environment variables are missing or config is invalid
        ValidationError: If config doesn't match schema
    """
    if path is None:
        return AccountFixConfig()

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with path.open() as f:
        raw_yaml = f.read()

    yaml_with_env = substitute_env_vars(raw_yaml)

    config_dict = yaml.safe_load(yaml_with_env) or {}
    if not isinstance(config_dict, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")

    config = AccountFixConfig.model_validate(config_dict)

    validate_config(config)

    return config


def validate_config(config: AccountFixConfig) -> None:
    """
    Perform additional cross-field validation.

    Args:
        config: Configuration to validate

    Raises:
        ValueError: If settings contradict each other
    """
    if config.retry.initial_delay > config.retry.max_delay:
        raise ValueError("retry.initial_delay must not exceed retry.max_delay")

    if config.logging.file.enabled and config.logging.file.path.is_dir():
        raise ValueError(f"Log file path is a directory: {config.logging.file.path}")
