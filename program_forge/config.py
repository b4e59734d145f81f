"""
Configuration loading from config.yaml plus environment variables.
"""

import copy
import os

import yaml
from dotenv import load_dotenv


DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "config.yaml")

DEFAULT_CONFIG = {
    "claude": {
        "model": "claude-sonnet-4-5",
        "max_tokens": 16000,
        "timeout": 120,
        "api_key_env": "ANTHROPIC_API_KEY",
    },
    "generation": {
        "max_attempts": 3,
        "initial_delay_seconds": 0.5,
        "max_delay_seconds": 5.0,
        "backoff_multiplier": 2.0,
        "jitter_ratio": 0.25,
        "min_delay_seconds": 0.1,
        "stale_after_seconds": 900,
    },
    "storage": {
        "db_path": "data/program_forge.db",
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "rotation": "10 MB",
        "retention": 5,
    },
    "exercise_keywords_file": None,
}


def _deep_merge(base, override):
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path=None):
    """
    Load configuration, layering config.yaml over built-in defaults.

    Environment variables from .env are loaded first so api_key_env lookups
    work for every caller.
    """
    load_dotenv()
    config_path = config_path or os.getenv("PROGRAM_FORGE_CONFIG") or DEFAULT_CONFIG_PATH

    if not os.path.exists(config_path):
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path, "r") as f:
        loaded = yaml.safe_load(f) or {}

    if not isinstance(loaded, dict):
        raise ValueError(f"{config_path} must contain a mapping at the top level")
    return _deep_merge(DEFAULT_CONFIG, loaded)


def get_api_key(config):
    """Return the API key named by claude.api_key_env, or None."""
    return os.getenv(config["claude"]["api_key_env"])
