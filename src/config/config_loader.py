"""
Configuration loader for the conflation engine.

This module provides the ConfigLoader class that handles loading and validating
the JSON configuration files: environment settings, matching rulesets and the
dataset catalog supplied by ingestion.
"""

import json
import os
from pathlib import Path
from typing import Dict, Any, Optional, List
from functools import lru_cache

from ..exceptions import (
    ConflationBaseException,
    ConflationConfigurationError,
    ConflationValidationError,
)
from ..utils import get_logger

CONFIG_DIR_ENV_VAR = "CONFLATION_CONFIG_DIR"

REQUIRED_ENVIRONMENT_KEYS = ["storage", "logging", "processing"]
REQUIRED_STORAGE_KEYS = ["upstream_path", "live_path"]
REQUIRED_RULESET_KEYS = ["ruleset_id", "dataset_id", "layer_id"]
CATALOG_SECTIONS = ["providers", "datasets", "layers"]


class ConfigLoader:
    """
    Configuration loader and validator for the conflation engine.

    Ruleset entries are only checked for their identifying keys here; the rest
    of a ruleset (region filter, threshold, templates) is validated when that
    ruleset is refreshed, so one malformed ruleset does not prevent the others
    from being processed.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory containing configuration files (defaults to
                $CONFLATION_CONFIG_DIR or 'config/')
        """
        self.logger = get_logger(__name__)
        if config_dir is None:
            config_dir = os.getenv(CONFIG_DIR_ENV_VAR, "config")
        self.config_dir = Path(config_dir)

    def _read_json(self, filename: str, description: str) -> Dict[str, Any]:
        path = self.config_dir / filename
        if not path.exists():
            raise ConflationConfigurationError(
                f"{description} file not found: {path}"
            )
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConflationConfigurationError(
                f"Invalid JSON in {description.lower()}: {str(e)}",
                {"path": str(path)}
            )

    @lru_cache(maxsize=2)
    def load_environment_config(self, environment: str) -> Dict[str, Any]:
        """
        Load configuration for a specific environment.

        Args:
            environment: Environment name (development/production)

        Returns:
            Dictionary containing environment-specific configuration merged with shared config

        Raises:
            ConflationConfigurationError: If configuration cannot be loaded
            ConflationValidationError: If configuration structure is invalid
        """
        try:
            config_data = self._read_json("environment_config.json", "Environment configuration")
            self._validate_environment_config(config_data, environment)

            env_config = json.loads(json.dumps(config_data["environments"][environment]))

            # Shared sections fill in keys the environment does not override
            for section, shared_value in config_data.get("shared", {}).items():
                if isinstance(shared_value, dict) and isinstance(env_config.get(section), dict):
                    merged = dict(shared_value)
                    merged.update(env_config[section])
                    env_config[section] = merged
                elif section not in env_config:
                    env_config[section] = shared_value

            missing_storage = [k for k in REQUIRED_STORAGE_KEYS if k not in env_config["storage"]]
            if missing_storage:
                raise ConflationValidationError(
                    f"Missing storage keys in {environment} configuration: {missing_storage}"
                )

            env_config["_validation"] = config_data.get("validation", {})

            self.logger.info(f"Loaded configuration for environment: {environment}")
            return env_config

        except ConflationBaseException:
            raise
        except Exception as e:
            raise ConflationConfigurationError(
                f"Failed to load environment configuration: {str(e)}"
            )

    @lru_cache(maxsize=1)
    def load_rulesets(self) -> Dict[str, Dict[str, Any]]:
        """
        Load matching ruleset definitions keyed by ruleset id.

        Returns:
            Dictionary mapping ruleset_id to its raw configuration

        Raises:
            ConflationConfigurationError: If the rulesets file cannot be loaded
            ConflationValidationError: If ruleset identifiers are missing or duplicated
        """
        try:
            data = self._read_json("rulesets.json", "Ruleset configuration")
            rulesets = self._validate_rulesets(data)
            self.logger.info(f"Loaded {len(rulesets)} matching rulesets")
            return rulesets
        except ConflationBaseException:
            raise
        except Exception as e:
            raise ConflationConfigurationError(
                f"Failed to load ruleset configuration: {str(e)}"
            )

    def get_ruleset_config(self, ruleset_id: str) -> Dict[str, Any]:
        """
        Get the raw configuration of one ruleset.

        Raises:
            ConflationConfigurationError: If the ruleset is not configured
        """
        rulesets = self.load_rulesets()
        if ruleset_id not in rulesets:
            raise ConflationConfigurationError(
                f"Ruleset '{ruleset_id}' not found in ruleset configuration",
                {"available": sorted(rulesets)}
            )
        return rulesets[ruleset_id]

    @lru_cache(maxsize=1)
    def load_catalog(self) -> Dict[str, Any]:
        """
        Load dataset, provider and layer metadata published by ingestion.

        Returns:
            Dictionary with 'providers', 'datasets' and 'layers' lists
        """
        try:
            data = self._read_json("catalog.json", "Catalog configuration")
            self._validate_catalog(data)
            self.logger.info("Loaded dataset catalog")
            return data
        except ConflationBaseException:
            raise
        except Exception as e:
            raise ConflationConfigurationError(
                f"Failed to load catalog configuration: {str(e)}"
            )

    def get_storage_config(self, environment: str) -> Dict[str, Any]:
        """Get the storage section of an environment configuration."""
        return self.load_environment_config(environment)["storage"]

    def get_processing_config(self, environment: str) -> Dict[str, Any]:
        """Get the processing section of an environment configuration."""
        return self.load_environment_config(environment)["processing"]

    def validate_environment_variables(self, environment: str) -> None:
        """
        Validate that required environment variables are set.

        Args:
            environment: Environment name to validate

        Raises:
            ConflationValidationError: If required environment variables are missing
        """
        env_config = self.load_environment_config(environment)
        required_vars = env_config.get("_validation", {}).get("required_environment_variables", [])

        missing_vars = [var for var in required_vars if not os.getenv(var)]
        if missing_vars:
            raise ConflationValidationError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )

        self.logger.info(f"Environment variables validated for: {environment}")

    def _validate_environment_config(self, config_data: Dict[str, Any], environment: str) -> None:
        """
        Validate environment configuration structure.

        Raises:
            ConflationValidationError: If configuration is invalid
        """
        if "environments" not in config_data:
            raise ConflationValidationError("Missing 'environments' key in configuration")

        if environment not in config_data["environments"]:
            available_envs = list(config_data["environments"].keys())
            raise ConflationValidationError(
                f"Environment '{environment}' not found. Available: {available_envs}"
            )

        env_config = config_data["environments"][environment]
        shared = config_data.get("shared", {})
        for key in REQUIRED_ENVIRONMENT_KEYS:
            if key not in env_config and key not in shared:
                raise ConflationValidationError(
                    f"Missing required key '{key}' in {environment} configuration"
                )

    def _validate_rulesets(self, data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        """
        Validate ruleset file structure and index entries by ruleset id.

        Raises:
            ConflationValidationError: If structure is invalid
        """
        entries = data.get("rulesets")
        if not isinstance(entries, list):
            raise ConflationValidationError("Missing 'rulesets' list in ruleset configuration")

        rulesets: Dict[str, Dict[str, Any]] = {}
        for position, entry in enumerate(entries):
            missing = [key for key in REQUIRED_RULESET_KEYS if key not in entry]
            if missing:
                raise ConflationValidationError(
                    f"Ruleset at position {position} is missing keys: {missing}"
                )
            ruleset_id = entry["ruleset_id"]
            if ruleset_id in rulesets:
                raise ConflationValidationError(f"Duplicate ruleset id '{ruleset_id}'")
            rulesets[ruleset_id] = entry
        return rulesets

    def _validate_catalog(self, data: Dict[str, Any]) -> None:
        for section in CATALOG_SECTIONS:
            if not isinstance(data.get(section), list):
                raise ConflationValidationError(f"Missing '{section}' list in catalog configuration")
            for entry in data[section]:
                if "id" not in entry or "name" not in entry:
                    raise ConflationValidationError(
                        f"Catalog {section} entries require 'id' and 'name'",
                        {"entry": entry}
                    )

    def ruleset_ids(self) -> List[str]:
        """Ids of all configured rulesets, in file order."""
        return list(self.load_rulesets().keys())

    def clear_cache(self) -> None:
        """Clear the configuration cache."""
        self.load_environment_config.cache_clear()
        self.load_rulesets.cache_clear()
        self.load_catalog.cache_clear()
        self.logger.info("Configuration cache cleared")
