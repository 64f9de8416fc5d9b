#!/usr/bin/env python3
"""
Configuration loading and management for field-reconciler.

Handles loading configuration from config.yaml and merging with CLI arguments.
CLI arguments take precedence over config.yaml values.
"""

from pathlib import Path
from typing import Optional

import yaml

from .logging_config import get_logger
from .schema import ValidationError, validate_config

# Initialize logger for this module
logger = get_logger(__name__)


class Config:
    """Configuration management class for field-reconciler."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration with defaults and load from file if available."""
        defaults = validate_config({})
        self.database_url = defaults.database_url
        self.inputs_path = defaults.inputs_path
        self.plan_output = defaults.plan_output
        self.log_level = defaults.log_level

        if config_path is None:
            # Look in config directory first, fall back to the working directory
            config_path = Path.cwd() / "config" / "config.yaml"
            if not config_path.exists():
                config_path = Path.cwd() / "config.yaml"

        self.config_path = Path(config_path)
        if self.config_path.exists():
            self._load_from_file(self.config_path)

    def _load_from_file(self, config_path: Path) -> None:
        """Load configuration from YAML file."""
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not load {config_path}: {e}")
            logger.info("Using default values")
            return

        if not config_data:
            return

        try:
            validated = validate_config(config_data)
        except ValidationError as e:
            logger.warning(str(e))
            logger.info("Using default values")
            return

        self.database_url = validated.database_url
        self.inputs_path = validated.inputs_path
        self.plan_output = validated.plan_output
        self.log_level = validated.log_level

    def merge_with_cli_args(self, args) -> None:
        """Merge CLI arguments with config values. CLI args take precedence."""
        if hasattr(args, "database_url") and args.database_url is not None:
            self.database_url = args.database_url
        if hasattr(args, "inputs") and args.inputs is not None:
            self.inputs_path = args.inputs
        if hasattr(args, "output") and args.output is not None:
            self.plan_output = args.output
        if hasattr(args, "log_level") and args.log_level is not None:
            self.log_level = args.log_level.upper()

    def get_inputs_path(self) -> Path:
        return Path(self.inputs_path)

    def get_plan_output(self) -> Path:
        return Path(self.plan_output)


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or use defaults."""
    return Config(config_path)
