"""
Configuration loader for the fast-migrate tooling.
Supports multiple environments and configuration validation.
"""

import json
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dotenv import load_dotenv

from ..errors import ConfigError

logger = logging.getLogger("identity_common.config")


class ConfigLoader:
    """Loads and validates configuration from JSON files."""

    REQUIRED_SECTIONS = ("async_config", "migration", "environment")

    def __init__(self, config_file: str = "configs/config.json", environment: Optional[str] = None,
                 base_path: Optional[Path] = None):
        """
        Initialize config loader.

        Args:
            config_file: Path to configuration file, relative to the project root
                unless absolute
            environment: Environment name ("us", "eu", "local", ...); the
                MIGRATE_ENVIRONMENT variable from envs/.env wins when set
            base_path: Project root, defaults to the repository checkout
        """
        self.config_file = config_file
        self.config: Dict[str, Any] = {}
        self.environment = environment or "local"
        self.base_path = base_path or Path(__file__).parent.parent.parent
        self._load_environment_config()
        self._load_config()
        self._validate_config()

    def _load_environment_config(self):
        """Load envs/.env, then the environment-specific envs/.env.<environment>."""
        main_env_path = self.base_path / "envs" / ".env"
        if main_env_path.exists():
            load_dotenv(main_env_path, override=False)
            logger.debug("Loaded main env config from %s", main_env_path)

            env_from_file = os.getenv("MIGRATE_ENVIRONMENT")
            if env_from_file:
                self.environment = env_from_file

        env_file_path = self.base_path / "envs" / f".env.{self.environment}"
        if env_file_path.exists():
            load_dotenv(env_file_path, override=True)
            logger.debug("Loaded %s specific config from %s", self.environment, env_file_path)

    def _load_config(self):
        """Load configuration from JSON file."""
        config_path = self.base_path / self.config_file
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                self.config = json.load(f)
        except FileNotFoundError:
            raise ConfigError(f"Configuration file {config_path} not found")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in configuration file {config_path}: {e}")
        logger.debug("Loaded configuration from: %s", config_path)

    def _validate_config(self):
        """Validate required configuration sections."""
        for section in self.REQUIRED_SECTIONS:
            if section not in self.config:
                raise ConfigError(f"Missing required configuration section: {section}")

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path (e.g., "async_config.concurrency.max_concurrent_api_calls")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value = self.config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_rate_limiting(self) -> Dict[str, Any]:
        return self.get("async_config.rate_limiting", {})

    def get_concurrent_limit(self) -> int:
        return self.get("async_config.concurrency.max_concurrent_api_calls", 4)

    def get_performance(self) -> Dict[str, Any]:
        return self.get("async_config.performance", {})

    def get_ledger_directory(self) -> Path:
        """Ledger directory; relative paths resolve against the project root."""
        return self.base_path / self.get("migration.ledger_directory", "ledger")

    def get_page_size(self) -> int:
        return self.get("migration.page_size", 200)

    def is_debug_mode(self) -> bool:
        return self.get("environment.debug", False)

    def setup_logging(self):
        """Setup logging based on configuration."""
        log_level = self.get("environment.log_level", "INFO")
        debug = self.is_debug_mode()

        level = logging.DEBUG if debug else getattr(logging, str(log_level).upper(), logging.INFO)

        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s" if debug else "%(levelname)s %(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            handlers=[logging.StreamHandler()]
        )

        if debug:
            logger.debug("Debug mode enabled")
            logger.debug("Rate limit: %s req/min", self.get_rate_limiting().get("rate_limit_per_minute"))
            logger.debug("Concurrency: %s workers", self.get_concurrent_limit())

