"""
Configuration loader and manager for the support relay.
Implements hot-reload capability with file watcher.
"""

import os
import yaml
from pathlib import Path
from typing import Callable, Dict, Any, Optional, List
from pydantic import BaseModel, Field, ValidationError, ConfigDict
from pydantic_settings import BaseSettings
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler
import logging

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """HTTP/WebSocket server configuration."""
    host: str = "0.0.0.0"
    port: int = 9092
    cors_origins: List[str] = ["*"]


class RelayConfig(BaseModel):
    """Message routing configuration."""
    support_desk_id: str = "manager"
    websocket_path: str = "/ws"


class RedisConfig(BaseModel):
    """Redis message store configuration."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "relay"


class StorageConfig(BaseModel):
    """Message store selection."""
    backend: str = "memory"
    redis: RedisConfig = Field(default_factory=RedisConfig)


class DirectoryUser(BaseModel):
    """Seed record for the user directory."""
    username: str
    role: str = "CUSTOMER"
    id: Optional[str] = None


class DirectoryConfig(BaseModel):
    """User directory configuration."""
    users: List[DirectoryUser] = Field(default_factory=list)


class AuthConfig(BaseModel):
    """Login policy."""
    allow_registration: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None


class AppSettings(BaseSettings):
    """Application settings from environment variables."""

    # Application
    app_name: str = "Customer Support Relay"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    config_dir: str = "config"

    # Security
    secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 60

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow"  # Allow extra fields from .env
    )


class ConfigLoader:
    """
    Configuration loader with hot-reload capability.
    Loads YAML configurations and merges with environment variables.
    """

    def __init__(self, config_dir: Optional[str] = None, settings: Optional[AppSettings] = None):
        self.settings = settings or AppSettings()
        self.config_dir = Path(config_dir or self.settings.config_dir)
        self.config_cache: Dict[str, Any] = {}
        self.observer = None
        self.reload_callbacks: List[Callable[["ConfigLoader"], None]] = []

        # Load initial configuration
        self.reload_config()

    def load_config(self, path: str) -> Dict[str, Any]:
        """
        Load YAML configuration file.

        Args:
            path: Path to the YAML file

        Returns:
            Dictionary containing configuration data
        """
        try:
            file_path = self.config_dir / path if not Path(path).is_absolute() else Path(path)

            with open(file_path, 'r') as file:
                config = yaml.safe_load(file) or {}

            # Replace environment variables
            config = self._replace_env_vars(config)

            logger.info(f"Loaded configuration from {file_path}")
            return config

        except FileNotFoundError:
            logger.debug(f"Configuration file not found: {path}")
            return {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML file {path}: {e}")
            return {}

    def _replace_env_vars(self, config: Any) -> Any:
        """
        Recursively replace environment variables in configuration.
        Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.
        """
        if isinstance(config, dict):
            return {k: self._replace_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [self._replace_env_vars(item) for item in config]
        elif isinstance(config, str) and config.startswith("${") and config.endswith("}"):
            var_expr = config[2:-1]
            if ":-" in var_expr:
                var_name, default = var_expr.split(":-", 1)
                return os.getenv(var_name, default)
            else:
                return os.getenv(var_expr, config)
        return config

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """
        Validate configuration against Pydantic models.

        Args:
            config: Configuration dictionary to validate

        Returns:
            True if valid, False otherwise
        """
        try:
            if "server" in config:
                ServerConfig(**config["server"])

            if "relay" in config:
                RelayConfig(**config["relay"])

            if "storage" in config:
                StorageConfig(**config["storage"])

            if "directory" in config:
                DirectoryConfig(**config["directory"])

            if "auth" in config:
                AuthConfig(**config["auth"])

            if "logging" in config:
                LoggingConfig(**config["logging"])

            return True

        except (ValidationError, TypeError) as e:
            logger.error(f"Configuration validation failed: {e}")
            return False

    def merge_configs(self, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge multiple configuration dictionaries.
        Later configs override earlier ones.
        """
        result = {}

        for config in configs:
            self._deep_merge(result, config)

        return result

    def _deep_merge(self, target: Dict, source: Dict) -> Dict:
        """Deep merge source into target dictionary."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._deep_merge(target[key], value)
            else:
                target[key] = value
        return target

    def get_environment_config(self) -> Dict[str, Any]:
        """
        Load environment-specific configuration.

        Returns:
            Environment-specific configuration
        """
        env = self.settings.environment
        env_config_file = f"config.{env}.yaml"

        # Load base config
        base_config = self.load_config("config.yaml")

        # Load environment-specific config
        env_config = self.load_config(env_config_file)

        # Merge configs (env-specific overrides base)
        merged = self.merge_configs(base_config, env_config)

        # Add settings from environment variables
        merged["app"] = {
            "name": self.settings.app_name,
            "version": self.settings.app_version,
            "environment": self.settings.environment,
            "debug": self.settings.debug
        }

        return merged

    def reload_config(self):
        """Reload all configurations."""
        logger.info("Reloading configuration...")
        new_config = self.get_environment_config()

        # Keep the previous config if the new one does not validate
        if not self.validate_config(new_config):
            logger.warning("Configuration validation failed, using previous config")
            if self.config_cache:
                return

        self.config_cache = new_config

        for callback in self.reload_callbacks:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Config reload callback {callback} failed: {e}", exc_info=True)

    def add_reload_callback(self, callback: Callable[["ConfigLoader"], None]):
        """Run callback(loader) after every successful reload."""
        self.reload_callbacks.append(callback)

    def remove_reload_callback(self, callback: Callable[["ConfigLoader"], None]):
        if callback in self.reload_callbacks:
            self.reload_callbacks.remove(callback)

    def start_watching(self):
        """Start watching configuration files for changes."""
        if self.observer is not None:
            return

        if not self.config_dir.is_dir():
            logger.warning(f"Config directory {self.config_dir} does not exist, hot-reload disabled")
            return

        event_handler = ConfigFileHandler(self)
        self.observer = Observer()
        self.observer.schedule(event_handler, str(self.config_dir), recursive=False)
        self.observer.start()
        logger.info(f"Started watching configuration files in {self.config_dir}")

    def stop_watching(self):
        """Stop watching configuration files."""
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None
            logger.info("Stopped watching configuration files")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.
        Example: get("storage.redis.host")
        """
        keys = key.split(".")
        value = self.config_cache

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def get_server_config(self) -> ServerConfig:
        """Get validated server configuration."""
        return ServerConfig(**self.config_cache.get("server", {}))

    def get_relay_config(self) -> RelayConfig:
        """Get validated relay configuration."""
        return RelayConfig(**self.config_cache.get("relay", {}))

    def get_storage_config(self) -> StorageConfig:
        """Get validated storage configuration."""
        return StorageConfig(**self.config_cache.get("storage", {}))

    def get_directory_config(self) -> DirectoryConfig:
        """Get validated directory configuration."""
        return DirectoryConfig(**self.config_cache.get("directory", {}))

    def get_auth_config(self) -> AuthConfig:
        """Get validated auth configuration."""
        return AuthConfig(**self.config_cache.get("auth", {}))

    def get_logging_config(self) -> LoggingConfig:
        """Get validated logging configuration."""
        return LoggingConfig(**self.config_cache.get("logging", {}))


class ConfigFileHandler(FileSystemEventHandler):
    """Handler for configuration file changes."""

    def __init__(self, config_loader: ConfigLoader):
        self.config_loader = config_loader

    def on_modified(self, event):
        if not event.is_directory and str(event.src_path).endswith('.yaml'):
            logger.info(f"Configuration file changed: {event.src_path}")
            self.config_loader.reload_config()


# Global config instance
config_loader = ConfigLoader()

# Convenience functions
def get_config(key: str, default: Any = None) -> Any:
    """Get configuration value."""
    return config_loader.get(key, default)

def get_settings() -> AppSettings:
    """Get application settings."""
    return config_loader.settings
