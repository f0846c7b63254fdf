"""Configuration loading utilities for the chat client.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable CHAT_CLIENT_CONFIG
3. Fallback to "config/default.yaml"

Values from the file are merged over :data:`DEFAULTS`, then overridden by
environment variables with prefix ``CHAT_CLIENT__`` (e.g.,
CHAT_CLIENT__CHAT__MODEL=gpt-4o).

The API credential is not part of the YAML file. It is read from
``OPENAI_API_KEY`` after loading a ``.env`` file, if one exists.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .completion import ChatClientError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHAT_CLIENT__"
CONFIG_ENV_VAR = "CHAT_CLIENT_CONFIG"
DEFAULT_CONFIG_PATH = "config/default.yaml"
API_KEY_ENV_VAR = "OPENAI_API_KEY"

DEFAULTS: Dict[str, Any] = {
    "api": {
        "base_url": "https://api.openai.com/v1",
        "timeout": None,
    },
    "chat": {
        "model": "gpt-3.5-turbo",
        "system_prompt_file": "system_prompts/prompt.md",
    },
    "display": {
        "user_label": "You: ",
        "thinking_label": "Thinking",
        "frame_interval": 0.1,
        "frame_count": 6,
        "reply_label": "Bot: ",
        "char_delay": 0.01,
    },
    "profile": {
        "enabled": True,
        "path": "memories/userprofile.txt",
        "backup_path": "memories/userprofile_backup.txt",
        "model": "gpt-3.5-turbo-0125",
        "temperature": 0,
        "max_tokens": 4000,
        "rollback_threshold": 200,
        "fatal_errors": True,
    },
}


class ConfigError(ChatClientError):
    """Configuration or credential is missing or invalid."""


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _coerce(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    if value.lower() in {"none", "null"}:
        return None
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix CHAT_CLIENT__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., CHAT_CLIENT__PROFILE__ENABLED -> cfg["profile"]["enabled"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        sub[parts[-1]] = _coerce(value)
    return cfg


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load YAML configuration for the chat client.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``CHAT_CLIENT_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Defaults merged with the file contents, environment overrides applied.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file {path_obj}: {e}") from e

    if not isinstance(cfg, dict):
        raise ConfigError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_deep_merge(DEFAULTS, cfg))


def load_api_key(dotenv_path: Optional[str] = None) -> str:
    """Return the API key, loading ``.env`` first. Raises ConfigError if unset.

    Without ``dotenv_path`` the nearest ``.env`` above the working directory
    is used. Variables already set in the environment take precedence.
    """
    load_dotenv(dotenv_path or find_dotenv(usecwd=True))
    api_key = os.environ.get(API_KEY_ENV_VAR, "").strip()
    if not api_key:
        raise ConfigError(f"{API_KEY_ENV_VAR} not set")
    return api_key
