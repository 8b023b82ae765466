"""
Configuration for nexusrag.
"""

import copy
import os
from pathlib import Path
from typing import Dict, Any, Optional, cast

import yaml

from nexusrag.core.exceptions import ConfigurationError
from nexusrag.core.logging import logger

CONFIG_FILE_NAME = ".nexusrag.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "version": "1.0",
    "database": {"path": "./data/nexusrag.db", "query_timeout_seconds": 30.0},
    "embeddings": {
        "base_url": "http://localhost:11434",
        "model": "nomic-embed-text",
        "dimension": 4000,
        "batch_size": 64,
        "timeout_seconds": 30.0,
    },
    "llm": {
        "base_url": "http://localhost:11434",
        "model": "qwen2.5:3b",
        "timeout_seconds": 20.0,
        "enabled": True,
    },
    "circuit_breaker": {
        "failure_threshold": 5,
        "success_threshold": 2,
        "timeout_seconds": 30.0,
    },
    "chunking": {"max_chars": 1000, "min_source_chars": 10, "overlap_chars": 0},
    "search": {
        "top_k": 5,
        "rrf_k": 60,
        "overfetch_multiplier": 2,
        "rewrite_queries": True,
    },
    "rerank": {
        "enabled": False,
        "base_url": "http://localhost:8080",
        "path": "/v1/rerank",
        "model": "bge-reranker-v2-m3",
        "api_key": None,
        "timeout_seconds": 10.0,
        "candidate_multiplier": 4,
    },
    "tags": {
        "merge_threshold": 0.1,
        "auto_confirm_threshold": 0.7,
        "max_name_length": 100,
        "min_content_chars": 50,
    },
    "logging": {"level": "INFO", "file": ".nexusrag/logs/debug.log"},
}

# env var -> (path, type)
ENV_OVERRIDES = {
    "NEXUSRAG_DB_PATH": (("database", "path"), str),
    "NEXUSRAG_LOG_LEVEL": (("logging", "level"), str),
    "NEXUSRAG_LOG_FILE": (("logging", "file"), str),
    "NEXUSRAG_OLLAMA_URL": (("embeddings", "base_url"), str),
    "NEXUSRAG_EMBEDDING_MODEL": (("embeddings", "model"), str),
    "NEXUSRAG_EMBEDDING_DIM": (("embeddings", "dimension"), int),
    "NEXUSRAG_LLM_MODEL": (("llm", "model"), str),
    "NEXUSRAG_RERANK_URL": (("rerank", "base_url"), str),
    "NEXUSRAG_RERANK_API_KEY": (("rerank", "api_key"), str),
}


class ConfigValidator:
    """
    Configuration validator.

    Checks:
    1. Positive sizes and timeouts
    2. Thresholds inside [0, 1]
    3. Breaker counters >= 1
    4. Over-fetch and rerank candidate multipliers >= 1
    """

    POSITIVE_INTS = [
        "embeddings.dimension",
        "embeddings.batch_size",
        "circuit_breaker.failure_threshold",
        "circuit_breaker.success_threshold",
        "chunking.max_chars",
        "search.top_k",
        "search.overfetch_multiplier",
        "rerank.candidate_multiplier",
        "tags.max_name_length",
    ]
    NON_NEGATIVE_INTS = ["chunking.min_source_chars", "chunking.overlap_chars", "search.rrf_k"]
    POSITIVE_FLOATS = [
        "embeddings.timeout_seconds",
        "llm.timeout_seconds",
        "rerank.timeout_seconds",
        "circuit_breaker.timeout_seconds",
        "database.query_timeout_seconds",
    ]
    UNIT_INTERVAL = ["tags.merge_threshold", "tags.auto_confirm_threshold"]

    def validate_config(self, config: Dict[str, Any]) -> None:
        for key in self.POSITIVE_INTS:
            value = _lookup(config, key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                logger.error("Invalid configuration value", key=key, value=value)
                raise ConfigurationError(f"{key} must be a positive integer, got {value!r}")

        for key in self.NON_NEGATIVE_INTS:
            value = _lookup(config, key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                logger.error("Invalid configuration value", key=key, value=value)
                raise ConfigurationError(f"{key} must be a non-negative integer, got {value!r}")

        for key in self.POSITIVE_FLOATS:
            value = _lookup(config, key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                logger.error("Invalid configuration value", key=key, value=value)
                raise ConfigurationError(f"{key} must be a positive number, got {value!r}")

        for key in self.UNIT_INTERVAL:
            value = _lookup(config, key)
            if not isinstance(value, (int, float)) or not 0.0 <= float(value) <= 1.0:
                logger.error("Invalid configuration value", key=key, value=value)
                raise ConfigurationError(f"{key} must be between 0 and 1, got {value!r}")

        chunking = config["chunking"]
        if chunking["overlap_chars"] >= chunking["max_chars"]:
            raise ConfigurationError("chunking.overlap_chars must be smaller than chunking.max_chars")


class Settings:
    """
    Main configuration.

    Load order:
    1. Default values
    2. YAML file (NEXUSRAG_CONFIG, else ./.nexusrag.yaml)
    3. Selected environment variables
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._config_path = config_path
        self.config = self._load_config()
        if overrides:
            self._deep_merge(self.config, overrides)
        self.validator = ConfigValidator()
        self.validator.validate_config(self.config)
        logger.info(
            "Settings initialized",
            config_source=str(self._find_config_file() or "defaults"),
        )

    def _find_config_file(self) -> Optional[Path]:
        """Explicit path, then NEXUSRAG_CONFIG, then the current directory."""
        if self._config_path is not None:
            return self._config_path

        env_path = os.getenv("NEXUSRAG_CONFIG")
        if env_path:
            return Path(env_path)

        local_config = Path.cwd() / CONFIG_FILE_NAME
        if local_config.exists():
            return local_config
        return None

    def _load_config(self) -> Dict[str, Any]:
        config = copy.deepcopy(DEFAULT_CONFIG)

        config_path = self._find_config_file()
        if config_path is not None:
            if not config_path.exists():
                raise ConfigurationError(f"Configuration file not found: {config_path}")
            try:
                with open(config_path, encoding="utf-8") as f:
                    file_config = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.error("Error reading configuration file", file=str(config_path), error=str(e))
                raise ConfigurationError(f"Error reading configuration file: {e}", cause=e)

            if file_config:
                if not isinstance(file_config, dict):
                    raise ConfigurationError("Configuration file must contain a mapping")
                self._deep_merge(config, file_config)
                logger.debug("Config loaded from file", keys=list(file_config.keys()))

        for env_key, (path, cast_to) in ENV_OVERRIDES.items():
            env_value = os.getenv(env_key)
            if env_value:
                try:
                    self._set_nested(config, path, cast_to(env_value))
                except ValueError as e:
                    raise ConfigurationError(f"Invalid value for {env_key}: {env_value}", cause=e)

        return config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> None:
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(cast(Dict[str, Any], base[key]), cast(Dict[str, Any], value))
            else:
                base[key] = value

    def _set_nested(self, data: Dict[str, Any], path: tuple[str, ...], value: Any) -> None:
        current = data
        for key in path[:-1]:
            current = current.setdefault(key, {})
        current[path[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value with dotted-path support: "search.rrf_k"."""
        value = _lookup(self.config, key)
        return default if value is None else value

    def require(self, key: str) -> Any:
        """Get a required value or raise ConfigurationError."""
        value = _lookup(self.config, key)
        if value is None:
            logger.error("Required config missing", key=key)
            raise ConfigurationError(f"Missing required config: {key}")
        return value


def _lookup(config: Dict[str, Any], key: str) -> Any:
    current: Any = config
    for part in key.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current
