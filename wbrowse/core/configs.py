"""Configuration management for wbrowse.

Loads user settings from ~/.config/wbrowse/config.cfg, overlaid with an
optional .env file in the same directory and a few environment overrides.
Provides DaemonConfig (engine, timeouts, logging, actor model settings).
"""

import configparser
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values

# Default location for user configuration.
CONFIG_PATH = Path.home() / ".config" / "wbrowse" / "config.cfg"

SUPPORTED_BROWSERS = ("chrome", "lightpanda")


@dataclass
class DaemonConfig:
    browser: str = "chrome"
    headless: bool = True
    request_timeout: float = 60.0
    spawn_timeout: float = 10.0
    log_level: str = "INFO"
    mistral_api_key: str = ""
    llm_model: str = "mistral-small-latest"


def load_raw_config(path: Path = CONFIG_PATH) -> Dict[str, str]:
    """
    Load configuration values from the standard config path.
    Values are returned with lowercase keys for convenience.

    A ``.env`` file next to the config file is read afterwards and wins
    over the cfg values.
    """
    cfg = configparser.ConfigParser()
    data: Dict[str, str] = {}

    if path.exists():
        cfg.read(path)
        if "DEFAULT" in cfg:
            data.update({k.lower(): v for k, v in cfg["DEFAULT"].items()})
        if "API_KEYS" in cfg:
            data.update({k.lower(): v for k, v in cfg["API_KEYS"].items()})

    env_path = path.parent / ".env"
    if env_path.exists():
        data.update(
            {k.lower(): v for k, v in dotenv_values(env_path).items() if v is not None}
        )

    return data


def _get_bool(raw: Dict[str, str], key: str, default: bool = False) -> bool:
    value = raw.get(key, "")
    if isinstance(value, bool):
        return value
    if value is None or str(value).strip() == "":
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def get_browser(raw: Optional[Dict[str, str]] = None) -> str:
    """
    Resolve the engine backend.

    WB_BROWSER wins over the config file. The generic BROWSER variable is
    shared with other tools, so it only counts when it names lightpanda.
    Raises ValueError for unknown backends.
    """
    raw = raw if raw is not None else {}
    if os.environ.get("BROWSER", "").strip().lower() == "lightpanda":
        fallback = "lightpanda"
    else:
        fallback = raw.get("browser") or "chrome"
    browser = (os.environ.get("WB_BROWSER") or fallback).strip().lower()
    if browser not in SUPPORTED_BROWSERS:
        raise ValueError(
            f"Unsupported browser '{browser}'. Expected one of: {', '.join(SUPPORTED_BROWSERS)}"
        )
    return browser


def get_daemon_config(raw: Optional[Dict[str, str]] = None) -> DaemonConfig:
    """Build a DaemonConfig from raw configuration values."""
    raw = raw if raw is not None else load_raw_config()

    timeout_env = os.environ.get("WB_REQUEST_TIMEOUT_S")
    if timeout_env is not None and str(timeout_env).strip() != "":
        request_timeout = float(timeout_env)
    else:
        request_timeout = float(raw.get("request_timeout", 60.0) or 60.0)

    return DaemonConfig(
        browser=get_browser(raw),
        headless=_get_bool(raw, "headless", True),
        request_timeout=request_timeout,
        spawn_timeout=float(raw.get("spawn_timeout", 10.0) or 10.0),
        log_level=str(raw.get("log_level", "INFO") or "INFO").upper(),
        mistral_api_key=(
            os.environ.get("MISTRAL_API_KEY") or raw.get("mistral_api_key", "")
        ).strip(),
        llm_model=(raw.get("llm_model") or "mistral-small-latest").strip(),
    )
