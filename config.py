import json
import os
from typing import Any, Dict

from dotenv import load_dotenv

CONFIG_PATH = "config.json"

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify Web API (OAuth authorization code + PKCE)
    "spotify_client_id": "",
    "spotify_client_secret": "",
    "spotify_redirect_uri": "http://127.0.0.1:8888/callback",
    "spotify_scopes": [
        "user-read-playback-state",
        "user-modify-playback-state",
        "user-read-currently-playing",
        "user-library-read",
        "user-follow-read",
        "playlist-read-private",
        "playlist-read-collaborative",
    ],
    "spotify_token_cache_path": "data/spotify_tokens.json",
    "spotify_auth_timeout": 300,
    "spotify_request_timeout": 10,
    "spotify_token_expiry_margin": 60,

    # Player behavior
    "search_limit": 20,
    "library_limit": 200,
    "volume_step": 10,

    # Logging
    "log_file": "data/spotycli.log",
    "log_level": "INFO",
}

# Environment variables that override config.json (a .env file is loaded first).
ENV_OVERRIDES = {
    "SPOTIFY_CLIENT_ID": "spotify_client_id",
    "SPOTIFY_CLIENT_SECRET": "spotify_client_secret",
    "SPOTIFY_REDIRECT_URI": "spotify_redirect_uri",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": True},
    "spotify_client_secret": {"type": str, "required": False},
    "spotify_redirect_uri": {"type": str, "required": True},
    "spotify_scopes": {"type": list, "required": False, "element_type": str},
    "spotify_token_cache_path": {"type": str, "required": True},
    "spotify_auth_timeout": {"type": (int, float), "required": False, "min": 10, "max": 1800},
    "spotify_request_timeout": {"type": (int, float), "required": False, "min": 1, "max": 120},
    "spotify_token_expiry_margin": {"type": (int, float), "required": False, "min": 0, "max": 600},

    "search_limit": {"type": int, "required": False, "min": 1, "max": 50},
    "library_limit": {"type": int, "required": False, "min": 1, "max": 2000},
    "volume_step": {"type": int, "required": False, "min": 1, "max": 50},

    "log_file": {"type": str, "required": False},
    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
}


def load_config(path: str = CONFIG_PATH, *, use_env: bool = True) -> Dict[str, Any]:
    """Load configuration from file (if present), applying defaults and env overrides."""

    config: Dict[str, Any] = {}
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
        if not isinstance(config, dict):
            raise ValueError(f"Config file {path} must contain a JSON object.")

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    if use_env:
        load_dotenv()
        for env_name, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_name, "").strip()
            if value:
                config[key] = value

    return config


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> bool:
    """Save configuration to file."""
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except Exception as e:
        raise IOError(f"Failed to save config: {e}")


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and not config.get(key):
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # Type check (bool is an int subclass; never accept it for numbers)
        expected_type = rules.get("type")
        if expected_type and (not isinstance(value, expected_type) or (isinstance(value, bool) and expected_type is not bool)):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        # List element type check (when schema uses: {"type": list, "element_type": ...})
        if isinstance(value, list) and "element_type" in rules:
            elem_type = rules["element_type"]
            bad_elems = [v for v in value if not isinstance(v, elem_type)]
            if bad_elems:
                errors.append(
                    f"Field '{key}' must be a list of {elem_type.__name__}, got invalid elements: {bad_elems}"
                )
                continue

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    return len(errors) == 0, errors


def get_config_value(config: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Get a single config value, falling back to DEFAULT_CONFIG and then to default."""
    value = config.get(key)
    if value is None:
        return DEFAULT_CONFIG.get(key, default)
    return value
