"""
Configuration

Dataclass settings with environment-aware defaults, optionally loaded
from a YAML file:

    detector:
      settle_delay: 3.0
      debounce_delay: 0.3
    osc:
      host: 127.0.0.1
      port: 9000
    browser:
      cdp_url: http://127.0.0.1:9222
    media_session:
      enabled: true
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


# =============================================================================
# DEFAULTS
# =============================================================================

def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}")
        return default


class Config:
    """Defaults, overridable from the environment."""

    CDP_URL = os.environ.get("KARAOKE_CDP_URL", "http://127.0.0.1:9222")
    PAGE_HINT = os.environ.get("KARAOKE_PAGE_HINT", "karaoke")

    OSC_HOST = os.environ.get("KARAOKE_OSC_HOST", "127.0.0.1")
    OSC_PORT = _env_int("KARAOKE_OSC_PORT", 9000)
    OSC_PREFIX = "/karaoke"

    DEFAULT_CONFIG_PATH = Path.home() / ".config" / "karaoke_nowplaying" / "config.yaml"


# =============================================================================
# SETTINGS
# =============================================================================

@dataclass
class DetectorConfig:
    """Timing of the detection loop (seconds)."""
    settle_delay: float = 3.0        # after start, before the first pass
    debounce_delay: float = 0.3      # after a mutation, before the pass
    fallback_interval: float = 5.0   # unconditional pass
    diagnostic_interval: float = 30.0
    min_text_duration: int = 30
    seek_offset: float = 10.0


@dataclass
class OscSettings:
    host: str = field(default_factory=lambda: Config.OSC_HOST)
    port: int = field(default_factory=lambda: Config.OSC_PORT)
    prefix: str = Config.OSC_PREFIX
    enabled: bool = True


@dataclass
class BrowserSettings:
    cdp_url: str = field(default_factory=lambda: Config.CDP_URL)
    page_hint: str = field(default_factory=lambda: Config.PAGE_HINT)
    pump_interval: float = 0.1
    timeout: float = 5.0


@dataclass
class MediaSessionSettings:
    enabled: bool = True


@dataclass
class AppConfig:
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    osc: OscSettings = field(default_factory=OscSettings)
    browser: BrowserSettings = field(default_factory=BrowserSettings)
    media_session: MediaSessionSettings = field(default_factory=MediaSessionSettings)


# =============================================================================
# LOADING
# =============================================================================

def _apply(section: Any, values: Dict[str, Any], name: str) -> None:
    known = {f.name: f for f in fields(section)}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"Unknown config key {name}.{key}")
            continue
        current = getattr(section, key)
        try:
            if isinstance(current, bool):
                value = value if isinstance(value, bool) else str(value).lower() in ("1", "true", "yes", "on")
            elif isinstance(current, (int, float)) and not isinstance(value, bool):
                value = type(current)(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid value for {name}.{key}: {value!r}")
            continue
        setattr(section, key, value)


def load_config(path: Optional[Path] = None) -> AppConfig:
    """
    Load configuration from YAML.

    Missing file -> defaults. Unreadable file -> logged, defaults.
    """
    path = path or Config.DEFAULT_CONFIG_PATH
    config = AppConfig()

    if not path.exists():
        logger.debug(f"No config file at {path}")
        return config

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config {path}: {e}")
        return config

    if not isinstance(data, dict):
        logger.error(f"Config {path} is not a mapping")
        return config

    for name, values in data.items():
        section = getattr(config, name, None) if name in {f.name for f in fields(config)} else None
        if section is None:
            logger.warning(f"Unknown config section {name}")
            continue
        if isinstance(values, dict):
            _apply(section, values, name)

    logger.info(f"Loaded config from {path}")
    return config
