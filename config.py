"""
Configuration loader for textme.

Loads configuration from YAML file with environment variable substitution.
Without a config file everything comes from TEXTME_* environment variables.
"""

import os
import re
from pathlib import Path

import yaml

# Feishu credentials the server cannot start without, as (config key, env var)
REQUIRED_FEISHU_KEYS = [
    ("app_id", "TEXTME_FEISHU_APP_ID"),
    ("app_secret", "TEXTME_FEISHU_APP_SECRET"),
    ("user_id", "TEXTME_FEISHU_USER_ID"),
]


def load_config(config_path: str = None) -> dict:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to $TEXTME_CONFIG or config.yaml.

    Returns:
        Configuration dict with env vars substituted.
    """
    if config_path is None:
        config_path = os.environ.get("TEXTME_CONFIG", "config.yaml")

    path = Path(config_path)
    if not path.exists():
        return _default_config()

    with open(path) as f:
        content = f.read()

    # Substitute environment variables: ${VAR_NAME} or ${VAR_NAME:default}
    content = _substitute_env_vars(content)

    config = yaml.safe_load(content) or {}

    return _merge_with_defaults(config)


def _substitute_env_vars(content: str) -> str:
    """Replace ${VAR} and ${VAR:default} with environment values."""

    def replace(match):
        var_expr = match.group(1)
        if ":" in var_expr:
            var_name, default = var_expr.split(":", 1)
        else:
            var_name, default = var_expr, ""
        return os.environ.get(var_name, default)

    pattern = r"\$\{([^}]+)\}"
    return re.sub(pattern, replace, content)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _default_config() -> dict:
    """Return default configuration built from the environment."""
    return {
        "feishu": {
            "app_id": os.environ.get("TEXTME_FEISHU_APP_ID", ""),
            "app_secret": os.environ.get("TEXTME_FEISHU_APP_SECRET", ""),
            "user_id": os.environ.get("TEXTME_FEISHU_USER_ID", ""),
            "domain": os.environ.get("TEXTME_FEISHU_DOMAIN", "https://open.feishu.cn"),
            "receive_id_type": "user_id",
            "timeout": 30.0,
        },
        "channels": {
            # Long connection needs no public URL; the webhook is the fallback
            "websocket": {
                "enabled": _env_bool("TEXTME_WEBSOCKET_ENABLED", True),
                "owner_only": False,
                "log_level": "WARNING",
            },
            "webhook": {
                "enabled": _env_bool("TEXTME_WEBHOOK_ENABLED", False),
                "host": os.environ.get("TEXTME_WEBHOOK_HOST", "127.0.0.1"),
                "port": _env_int("TEXTME_WEBHOOK_PORT", 8787),
                "path": "/webhooks/feishu",
                "verification_token": os.environ.get("TEXTME_FEISHU_VERIFICATION_TOKEN", ""),
                "owner_only": False,
            },
        },
        "rendezvous": {
            "default_timeout": 180,
            "max_queue_size": 50,
            "message_ttl": 3600,
            "queue_late_replies": False,
        },
        "tools": {
            "ask_title": "🤖 Claude needs your input",
            "ask_footer": "*Please reply to this message to continue.*",
        },
        "logging": {
            "level": os.environ.get("TEXTME_LOG_LEVEL", "INFO"),
            "file": os.environ.get("TEXTME_LOG_FILE", ""),
        },
    }


def _merge_with_defaults(config: dict) -> dict:
    """Merge user config with defaults."""
    defaults = _default_config()

    def merge(base, override):
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = merge(result[key], value)
            else:
                result[key] = value
        return result

    return merge(defaults, config)


def missing_required(config: dict) -> list[str]:
    """List the environment variables for required Feishu settings that are empty.

    Returns:
        Env var names, in declaration order. Empty list when all are set.
    """
    feishu = config.get("feishu", {})
    return [env for key, env in REQUIRED_FEISHU_KEYS if not feishu.get(key)]


def get_channel_config(config: dict, channel: str) -> dict:
    """Get configuration for a specific channel.

    Args:
        config: Full configuration dict
        channel: Channel name (websocket, webhook)

    Returns:
        Channel configuration dict, or empty dict if not found.
    """
    return config.get("channels", {}).get(channel, {})


def is_channel_enabled(config: dict, channel: str) -> bool:
    """Check if a channel is enabled."""
    channel_config = get_channel_config(config, channel)
    return bool(channel_config.get("enabled", False))


def get_rendezvous_config(config: dict) -> dict:
    """Get reply coordinator settings, with defaults filled in."""
    defaults = _default_config()["rendezvous"]
    return {**defaults, **config.get("rendezvous", {})}
