"""
config.py — Configuration management for plate-registry.

How it works:
  1. A dictionary of sensible DEFAULT values lives in this file.
  2. load_config() reads your config.yaml and merges your values on top
     of the defaults (so you only need to override what you care about).
  3. Two environment variables can override the remote credentials so
     they never need to live in a file:
       PLATE_REGISTRY_URL
       PLATE_REGISTRY_API_KEY

Typical usage:
    from plate_registry.config import load_config
    cfg = load_config("config.yaml")
    print(cfg["remote"]["table"])
"""

import logging
import os
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# DEFAULT_CONFIG
# Every setting the app uses, with a safe default.  Your config.yaml only
# needs to contain the keys you want to change.
# ---------------------------------------------------------------------------
DEFAULT_CONFIG = {
    # ── Remote table (PostgREST / Supabase) ─────────────────────────
    "remote": {
        "enabled": True,             # False = never try the remote tier
        "url": "",                   # e.g. https://xyz.supabase.co
        "api_key": "",               # Set via env var PLATE_REGISTRY_API_KEY
        "table": "plate_records",
        "timeout": 10,               # HTTP timeout in seconds
        "page_size": 1000,           # Service row cap per request
        "max_attempts": 3,           # Connection probes before going local
        "retry_delay_seconds": 2,    # Pause between probes
    },

    # ── Local tiers ─────────────────────────────────────────────────
    "local": {
        "use_embedded": True,        # False = skip SQLite, use the JSON file
        "db_path": "./plates.db",    # SQLite file for the embedded tier
        "db_version": 1,             # Schema version stamped in the file
        "flat_path": "./plates.json",  # JSON list for the flat tier
    },

    # ── Read cache ──────────────────────────────────────────────────
    "cache": {
        "ttl_seconds": 300,          # Full-set snapshot lifetime (5 minutes)
    },

    # ── Logging ─────────────────────────────────────────────────────
    "logging": {
        "log_file": "",              # Empty = console only
        "log_level": "INFO",         # DEBUG / INFO / WARNING / ERROR
    },
}


def load_config(path: Optional[str] = None) -> dict:
    """Load configuration from a YAML file and merge with defaults.

    Lookup order when *path* is None:
      1. $PLATE_REGISTRY_CONFIG environment variable
      2. ./config.yaml
      3. /etc/plate-registry/config.yaml

    Args:
        path: Explicit path to a YAML file, or None for auto-discovery.

    Returns:
        A fully-populated config dictionary (defaults + your overrides).
    """
    config = _deep_copy(DEFAULT_CONFIG)

    if path is None:
        candidates = [
            os.environ.get("PLATE_REGISTRY_CONFIG", ""),
            "./config.yaml",
            "/etc/plate-registry/config.yaml",
        ]
        for c in candidates:
            if c and os.path.isfile(c):
                path = c
                break

    if path and os.path.isfile(path):
        with open(path, "r") as f:
            user_config = yaml.safe_load(f) or {}
        _deep_merge(config, user_config)

    # Environment-variable overrides for the remote credentials
    env_url = os.environ.get("PLATE_REGISTRY_URL")
    if env_url:
        config["remote"]["url"] = env_url

    env_key = os.environ.get("PLATE_REGISTRY_API_KEY")
    if env_key:
        config["remote"]["api_key"] = env_key

    return config


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------

def _deep_copy(d: dict) -> dict:
    """Copy the nested sections; every leaf setting is a scalar."""
    return {k: _deep_copy(v) if isinstance(v, dict) else v for k, v in d.items()}


def _deep_merge(base: dict, override: dict, prefix: str = ""):
    """Merge *override* into *base* in place, section by section.

    Keys the defaults do not know (a typo such as ``ttl_second``) are
    kept and logged as warnings.
    """
    for k, v in override.items():
        if k not in base:
            logger.warning("Unknown config key %s%s", prefix, k)
        if isinstance(base.get(k), dict) and isinstance(v, dict):
            _deep_merge(base[k], v, prefix=f"{prefix}{k}.")
        else:
            base[k] = v
