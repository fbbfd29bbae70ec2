"""Configuration loading for conceptvault.

Settings come from a YAML file merged over built-in defaults. Nested
dictionaries are merged key by key, so a config file only needs the values it
changes.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from conceptvault.dedup import DEDUP_POLICIES
from conceptvault.exceptions import ValidationError
from conceptvault.models import MergeConfig, ModelConfig, ProviderConfig, RateLimitConfig

logger = logging.getLogger(__name__)

PERSISTENCE_BACKENDS = ("memory", "yaml")

DEFAULT_CONFIG: Dict[str, Any] = {
    "provider": "anthropic",
    "current_model": "claude-3-5-sonnet-20241022",
    "providers": {
        "anthropic": {
            "base_url": "https://api.anthropic.com",
            "models": [
                {
                    "name": "claude-3-5-sonnet-20241022",
                    "description": "Balanced Claude model",
                    "max_tokens": 4096,
                    "temperature": 0.2
                }
            ]
        },
        "openai": {
            "base_url": "https://api.openai.com/v1",
            "models": [
                {
                    "name": "gpt-4o-mini",
                    "description": "Small OpenAI model",
                    "max_tokens": 4096,
                    "temperature": 0.2
                }
            ]
        }
    },
    "rate_limit": {
        "requests_per_minute": 50
    },
    "merge": {
        "default_weight": 25,
        "sentinel_root_id": "root",
        "sentinel_root_label": "Knowledge Root",
        "dedup_policy": "none",
        "similarity_threshold": 0.9,
        "embedding_model": "all-MiniLM-L6-v2"
    },
    "persistence": {
        "backend": "memory",
        "data_dir": "data"
    },
    "owner_id": "local",
    "cache_dir": "cache",
    "seed_file": None,
    "logging": {
        "level": "INFO",
        "log_dir": "logs"
    }
}


def deep_merge_dict(target: Dict, source: Dict) -> None:
    """Deep merge two dictionaries.

    Args:
        target: Target dictionary to merge into
        source: Source dictionary to merge from
    """
    for key, value in source.items():
        if key in target and isinstance(target[key], dict) and isinstance(value, dict):
            deep_merge_dict(target[key], value)
        else:
            target[key] = value


def load_config(config_path: Union[str, Path] = "config.yaml") -> Dict[str, Any]:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the config file

    Returns:
        Dict: Defaults with the file's values merged in

    Raises:
        ValidationError: If the merged configuration is invalid
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = Path(config_path)

    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, using default configuration")
        return config

    with open(config_path, encoding="utf-8") as f:
        user_config = yaml.safe_load(f) or {}

    if not isinstance(user_config, dict):
        raise ValidationError(f"Config file {config_path} must contain a mapping")

    provider = user_config.get("provider")
    if provider and provider not in user_config.get("providers", {}) and provider not in config["providers"]:
        logger.warning(f"Provider '{provider}' not found in providers configuration")

    deep_merge_dict(config, user_config)
    validate_config(config)
    logger.info(f"Loaded configuration from {config_path}")
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """Check the values the core depends on.

    Raises:
        ValidationError: On an unknown dedup policy or persistence backend, or a bad threshold
    """
    merge = config.get("merge", {})
    policy = merge.get("dedup_policy", "none")
    if policy not in DEDUP_POLICIES:
        raise ValidationError(f"Unknown dedup policy '{policy}', expected one of {', '.join(DEDUP_POLICIES)}")

    threshold = merge.get("similarity_threshold", 0.9)
    if not isinstance(threshold, (int, float)) or not 0 <= threshold <= 1:
        raise ValidationError(f"similarity_threshold must be between 0 and 1, got {threshold!r}")

    backend = config.get("persistence", {}).get("backend", "memory")
    if backend not in PERSISTENCE_BACKENDS:
        raise ValidationError(
            f"Unknown persistence backend '{backend}', expected one of {', '.join(PERSISTENCE_BACKENDS)}"
        )


def merge_config_from(config: Dict[str, Any]) -> MergeConfig:
    """Build the merge settings from a config dictionary."""
    values = {**DEFAULT_CONFIG["merge"], **config.get("merge", {})}
    return MergeConfig(
        default_weight=values["default_weight"],
        sentinel_root_id=values["sentinel_root_id"],
        sentinel_root_label=values["sentinel_root_label"],
        dedup_policy=values["dedup_policy"],
        similarity_threshold=values["similarity_threshold"],
        embedding_model=values["embedding_model"],
    )


def rate_limit_config_from(config: Dict[str, Any]) -> RateLimitConfig:
    return RateLimitConfig(
        max_requests_per_minute=config.get("rate_limit", {}).get("requests_per_minute", 50)
    )


def provider_config_from(config: Dict[str, Any], provider_name: Optional[str] = None) -> ProviderConfig:
    """Build the settings of one provider.

    Raises:
        ValidationError: If the provider is not configured
    """
    provider_name = provider_name or config.get("provider")
    providers = config.get("providers", {})
    if provider_name not in providers:
        raise ValidationError(f"Provider '{provider_name}' not found in configuration")

    raw = providers[provider_name]
    return ProviderConfig(
        api_key=raw.get("api_key", ""),
        base_url=raw.get("base_url", ""),
        models=[
            ModelConfig(
                name=model["name"],
                description=model.get("description", ""),
                max_tokens=model.get("max_tokens", 4096),
                temperature=model.get("temperature", 0.2),
            )
            for model in raw.get("models", [])
        ],
    )
