import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

DEFAULT_CONFIG_PATH = Path("conf/strmthumb.yaml")


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model.

    An explicitly given path must exist. When no path is given, the default
    location is used if present, otherwise built-in defaults apply.
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return AppConfig()
        config_path = DEFAULT_CONFIG_PATH
    elif not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    return AppConfig(**data)
