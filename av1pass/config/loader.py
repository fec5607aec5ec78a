import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads a YAML config into AppConfig. Without a path, returns the defaults."""
    if config_path is None:
        return AppConfig()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Flat "main"/"stronger" keys at the root are accepted as profile shorthands
    profiles = data.setdefault("profiles", {}) or {}
    for name in ("main", "stronger"):
        if name in data:
            profiles[name] = data.pop(name)
    data["profiles"] = profiles

    return AppConfig(**data)
