import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

def load_config(config_path: Optional[Path]) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model.

    Without a path the built-in defaults are returned.
    """
    if config_path is None:
        return AppConfig()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Flat `quarantine_prefix` key is accepted as shorthand
    prefix = data.pop("quarantine_prefix", None)
    if prefix is not None and "quarantine" not in data:
        data["quarantine"] = {"prefix": prefix}

    return AppConfig(**data)
