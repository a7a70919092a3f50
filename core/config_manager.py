"""
Configuration Management System for CubeArena
"""

import os
import re
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Mapping
from enum import Enum

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ValidationError, field_validator, model_validator

logger = logging.getLogger('arena.core.config_manager')

class Environment(Enum):
    """Supported deployment environments"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"

class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing"""
    pass

TRANSPORTS = ('memory', 'pusher', 'socket')

class ArenaConfiguration(BaseModel):
    """Main client configuration model with Pydantic validation"""

    # Transport selection
    transport: str = "memory"

    # Hosted pub/sub (Pusher Channels)
    pusher_key: Optional[str] = None
    pusher_cluster: str = "eu"

    # Raw socket relay
    relay_url: str = "ws://localhost:8765/ws"
    relay_host: str = "0.0.0.0"
    relay_port: int = 8765

    # Rooms
    channel_prefix: str = "game-"
    fallback_room: str = "default"

    # Movement and synchronization
    move_step: float = 0.1
    ground_y: float = 0.5
    min_send_interval_ms: float = 100.0
    frame_rate: float = 60.0
    announce_on_join: bool = True

    # Logging Configuration
    log_level: str = "INFO"
    log_file_path: Optional[str] = None
    log_max_bytes: int = 32 * 1024 * 1024  # 32MB
    log_backup_count: int = 5

    @field_validator('transport')
    @classmethod
    def validate_transport(cls, v):
        v = v.lower()
        if v not in TRANSPORTS:
            raise ValueError(f'transport must be one of {list(TRANSPORTS)}')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of {valid_levels}')
        return v.upper()

    @field_validator('min_send_interval_ms')
    @classmethod
    def validate_send_interval(cls, v):
        if v < 0:
            raise ValueError('min_send_interval_ms must not be negative')
        return v

    @field_validator('frame_rate')
    @classmethod
    def validate_frame_rate(cls, v):
        if v <= 0:
            raise ValueError('frame_rate must be positive')
        return v

    @field_validator('fallback_room')
    @classmethod
    def validate_fallback_room(cls, v):
        room_id = re.sub(r'\s+', '', v or '').lower()
        if not room_id:
            raise ValueError('fallback_room cannot be empty')
        return room_id

    @model_validator(mode='after')
    def validate_pusher_key(self):
        if self.transport == 'pusher' and not self.pusher_key:
            raise ValueError('pusher_key is required for the pusher transport')
        return self

class ConfigurationManager:
    """
    Centralized configuration management system.

    Sources are applied in order, later ones winning:
    config/default.yaml, config/<environment>.yaml, .env, process environment.
    """

    # Map environment variables to configuration keys
    ENV_MAPPINGS = {
        'ARENA_TRANSPORT': 'transport',
        'ARENA_PUSHER_KEY': 'pusher_key',
        'ARENA_PUSHER_CLUSTER': 'pusher_cluster',
        'ARENA_RELAY_URL': 'relay_url',
        'ARENA_RELAY_HOST': 'relay_host',
        'ARENA_RELAY_PORT': 'relay_port',
        'ARENA_CHANNEL_PREFIX': 'channel_prefix',
        'ARENA_FALLBACK_ROOM': 'fallback_room',
        'ARENA_MIN_SEND_INTERVAL_MS': 'min_send_interval_ms',
        'ARENA_FRAME_RATE': 'frame_rate',
        'ARENA_ANNOUNCE_ON_JOIN': 'announce_on_join',
        'ARENA_LOG_LEVEL': 'log_level',
        'ARENA_LOG_FILE_PATH': 'log_file_path',
    }

    def __init__(self, base_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        self.base_path = base_path or Path.cwd()
        self.config_dir = self.base_path / "config"
        self._environ = environ if environ is not None else os.environ
        self.environment = self._detect_environment()
        self._configuration: Optional[ArenaConfiguration] = None
        self._overrides: Dict[str, Any] = {}

        logger.info(f"ConfigurationManager initialized for environment: {self.environment.value}")

    def load_configuration(self) -> ArenaConfiguration:
        """
        Load and validate configuration from all sources.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        config_data = self._load_base_configuration()
        config_data = self._apply_environment_overrides(config_data)
        config_data = self._apply_environment_variables(config_data)
        config_data.update(self._overrides)

        try:
            self._configuration = ArenaConfiguration(**config_data)
        except ValidationError as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}") from e

        logger.info("Configuration loaded successfully")
        return self._configuration

    def get_configuration(self) -> ArenaConfiguration:
        """Get current configuration, loading if necessary"""
        if self._configuration is None:
            return self.load_configuration()
        return self._configuration

    def reload_configuration(self) -> ArenaConfiguration:
        """Reload configuration from sources"""
        self._configuration = None
        return self.load_configuration()

    def set_overrides(self, **overrides: Any) -> None:
        """
        Apply values on top of every other source (command line flags).

        None values are ignored. Takes effect on the next load.
        """
        self._overrides.update({key: value for key, value in overrides.items() if value is not None})
        self._configuration = None

    def get_config_value(self, key: str, default: Any = None) -> Any:
        """Get a specific configuration value"""
        return getattr(self.get_configuration(), key, default)

    def _detect_environment(self) -> Environment:
        """Detect current environment from ARENA_ENVIRONMENT"""
        env_var = self._environ.get('ARENA_ENVIRONMENT', '').lower()
        if env_var:
            try:
                return Environment(env_var)
            except ValueError:
                logger.warning(f"Unknown ARENA_ENVIRONMENT '{env_var}', using development")

        return Environment.DEVELOPMENT

    def _load_base_configuration(self) -> Dict[str, Any]:
        """Load base configuration from config/default.yaml"""
        config_data: Dict[str, Any] = {}

        default_config_path = self.config_dir / "default.yaml"
        if default_config_path.exists():
            config_data.update(self._load_yaml_file(default_config_path))
            logger.debug(f"Loaded base configuration from {default_config_path}")

        return config_data

    def _apply_environment_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment-specific configuration overrides"""
        env_config_path = self.config_dir / f"{self.environment.value}.yaml"
        if env_config_path.exists():
            env_config = self._load_yaml_file(env_config_path)
            config_data = self._deep_merge(config_data, env_config)
            logger.debug(f"Applied environment overrides from {env_config_path}")

        return config_data

    def _apply_environment_variables(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply .env and process environment overrides; pydantic coerces the strings"""
        env_values: Dict[str, Optional[str]] = {}

        env_file = self.base_path / '.env'
        if env_file.exists():
            env_values.update(dotenv_values(env_file))
            logger.debug("Loaded configuration from .env file")

        env_values.update(self._environ)

        for env_var, config_key in self.ENV_MAPPINGS.items():
            env_value = env_values.get(env_var)
            if env_value is not None:
                config_data[config_key] = env_value
                logger.debug(f"Applied environment variable {env_var} -> {config_key}")

        return config_data

    def _load_yaml_file(self, path: Path) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load YAML file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping")
        return data

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
