from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

logger = logging.getLogger(__name__)

DEFAULTS_PATH = Path(__file__).resolve().parent / "config" / "defaults.yaml"
CONFIG_FILE_ENV = "EINVOICE_CONFIG"
DEFAULT_PORT = 8080

# Checked in order; the first non-empty value wins
PORT_ENV_VARS = ("EINVOICE_PORT", "MUSTANG_API_PORT", "PORT")

ENV_OVERRIDES: Dict[str, str] = {
    "EINVOICE_HOST": "server.host",
    "EINVOICE_JAVA": "toolkit.java",
    "EINVOICE_MUSTANG_JAR": "toolkit.jar",
    "EINVOICE_TOOLKIT_TIMEOUT": "toolkit.timeout_seconds",
    "EINVOICE_WORKSPACE_ROOT": "workspace.root",
    "EINVOICE_MAX_WORKERS": "workers.max_concurrent_operations",
    "EINVOICE_LOG_LEVEL": "logging.level",
}

_INT_KEYS = {"toolkit.timeout_seconds", "workers.max_concurrent_operations"}


def _load_defaults() -> DictConfig:
    if not DEFAULTS_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {DEFAULTS_PATH}")
    return OmegaConf.load(DEFAULTS_PATH)


def parse_port(value: Optional[str]) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return DEFAULT_PORT


def resolve_port(environ: Mapping[str, str]) -> Optional[str]:
    for name in PORT_ENV_VARS:
        value = environ.get(name)
        if value:
            return value
    return None


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    dotted: Dict[str, Any] = {}
    for env_name, key in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if not value:
            continue
        if key in _INT_KEYS:
            try:
                dotted[key] = int(value)
            except ValueError:
                logger.warning(f"Ignoring non-integer {env_name}={value!r}")
                continue
        else:
            dotted[key] = value

    port = resolve_port(environ)
    if port is not None:
        dotted["server.port"] = parse_port(port)

    return dotted


def load_settings(environ: Optional[Mapping[str, str]] = None) -> DictConfig:
    """
    Build the effective settings.

    Layers, lowest precedence first: packaged defaults, the YAML file named by
    EINVOICE_CONFIG, then individual environment variables.
    """
    environ = os.environ if environ is None else environ
    settings = _load_defaults()
    OmegaConf.set_struct(settings, True)

    config_file = environ.get(CONFIG_FILE_ENV)
    if config_file:
        settings = OmegaConf.merge(settings, OmegaConf.load(config_file))

    for key, value in _env_overrides(environ).items():
        OmegaConf.update(settings, key, value, merge=False)

    return settings  # type: ignore[return-value]


@lru_cache(maxsize=1)
def get_settings() -> DictConfig:
    load_dotenv()
    return load_settings()
