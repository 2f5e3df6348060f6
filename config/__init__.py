#!/usr/bin/env python3
"""
Centralized Configuration System for Dashboard Patcher

This module provides the configuration layer for the admin panel:
1. Loads configuration from JSON files
2. Supports environment-specific overrides
3. Provides type validation and defaults
4. Offers convenient helper functions

Usage:
    from config import settings

    # Direct access
    collection = settings.database.collection_name
    max_len = settings.validation.uri_max_length

    # Helper functions
    static_dir = settings.get_static_path()
"""

import json
import os
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

@dataclass
class DatabaseConfig:
    collection_name: str
    default_database: str
    server_selection_timeout_ms: int
    connect_timeout_ms: int
    use_certifi_for_srv: bool

@dataclass
class ValidationConfig:
    uri_max_length: int
    uri_schemes: list
    port_min: int
    port_max: int

@dataclass
class ServerConfig:
    host: str
    port: int
    title: str
    static_folder: str
    cors_allowed_origins: list
    shutdown_grace_seconds: float
    security_headers: Dict[str, str]

@dataclass
class LoggingConfig:
    level: str
    format: str
    file_paths: Dict[str, str]
    destination: str = "file"

@dataclass
class Settings:
    """Main configuration container with all settings."""

    def __init__(self, config_data: Dict[str, Any]):
        # Database configuration
        db_config = config_data.get("database", {})
        self.database = DatabaseConfig(
            collection_name=db_config.get("collection_name", "dashboards"),
            default_database=db_config.get("default_database", "test"),
            server_selection_timeout_ms=db_config.get("server_selection_timeout_ms", 10000),
            connect_timeout_ms=db_config.get("connect_timeout_ms", 10000),
            use_certifi_for_srv=db_config.get("use_certifi_for_srv", True)
        )

        # Validation configuration
        val_config = config_data.get("validation", {})
        self.validation = ValidationConfig(
            uri_max_length=val_config.get("uri_max_length", 2048),
            uri_schemes=val_config.get("uri_schemes", ["mongodb", "mongodb+srv"]),
            port_min=val_config.get("port_min", 1),
            port_max=val_config.get("port_max", 65535)
        )

        # Server configuration (PORT / HOST env vars win over the file)
        srv_config = config_data.get("server", {})
        self.server = ServerConfig(
            host=os.environ.get("HOST", srv_config.get("host", "0.0.0.0")),
            port=int(os.environ.get("PORT", srv_config.get("port", 3000))),
            title=srv_config.get("title", "Plexdev - Patcher"),
            static_folder=srv_config.get("static_folder", "static"),
            cors_allowed_origins=srv_config.get("cors_allowed_origins", ["*"]),
            shutdown_grace_seconds=srv_config.get("shutdown_grace_seconds", 10.0),
            security_headers=srv_config.get("security_headers", {
                "X-Content-Type-Options": "nosniff",
                "X-Frame-Options": "DENY",
                "Referrer-Policy": "no-referrer",
                "Content-Security-Policy": "default-src 'self'"
            })
        )

        # Logging configuration
        log_config = config_data.get("logging", {})
        self.logging = LoggingConfig(
            level=log_config.get("level", "INFO"),
            format=log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            file_paths=log_config.get("file_paths", {
                "main_log": "logs/patcher.log",
                "events_log": "logs/patcher_events.jsonl"
            }),
            destination=log_config.get("destination", "file")
        )
    def get_static_path(self) -> Path:
        """Get absolute path of the static asset directory."""
        static = Path(self.server.static_folder)
        if not static.is_absolute():
            static = Path(__file__).parent.parent / static
        return static

    def get_log_file_path(self, log_type: str = "main_log") -> str:
        """Get path to specific log file."""
        return self.logging.file_paths.get(log_type, "logs/patcher.log")

    def validate(self) -> bool:
        """Validate configuration values."""
        errors = []

        if not self.database.collection_name:
            errors.append("database.collection_name must not be empty")
        if self.database.server_selection_timeout_ms <= 0:
            errors.append("server_selection_timeout_ms must be positive")

        if self.validation.uri_max_length <= 0:
            errors.append("uri_max_length must be positive")
        if not self.validation.uri_schemes:
            errors.append("uri_schemes must list at least one scheme")
        if not (1 <= self.validation.port_min <= self.validation.port_max <= 65535):
            errors.append(
                f"port range must satisfy 1 <= port_min <= port_max <= 65535, "
                f"got {self.validation.port_min}-{self.validation.port_max}"
            )

        # Port validation
        if not (1 <= self.server.port <= 65535):
            errors.append(f"server port must be between 1-65535, got {self.server.port}")
        if self.server.shutdown_grace_seconds < 0:
            errors.append("shutdown_grace_seconds must not be negative")

        if self.logging.destination not in ("file", "console"):
            errors.append(f"logging destination must be 'file' or 'console', got {self.logging.destination}")

        if errors:
            raise ValueError(f"Configuration validation errors: {', '.join(errors)}")

        return True


class ConfigurationLoader:
    """Handles loading and merging configuration files."""

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent
        self.config_dir = config_dir

    def load_settings(self, environment: Optional[str] = None) -> Settings:
        """Load configuration with optional environment override."""

        # Load base configuration
        base_config_path = self.config_dir / "settings.json"
        if not base_config_path.exists():
            raise FileNotFoundError(f"Base configuration file not found: {base_config_path}")

        with open(base_config_path, 'r', encoding='utf-8') as f:
            config_data = json.load(f)

        # Apply environment-specific overrides
        if environment:
            config_data = self._apply_environment(config_data, environment)

        # Check for environment variable override
        env_from_var = os.environ.get("PATCHER_ENV")
        if env_from_var and env_from_var != environment:
            config_data = self._apply_environment(config_data, env_from_var)

        return Settings(config_data)

    def _apply_environment(self, config_data: Dict[str, Any], environment: str) -> Dict[str, Any]:
        env_config_path = self.config_dir / "environments" / f"{environment}.json"
        if not env_config_path.exists():
            return config_data
        with open(env_config_path, 'r', encoding='utf-8') as f:
            env_config = json.load(f)
        return self._merge_configs(config_data, env_config)

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result


# Global configuration instance
_loader = ConfigurationLoader()
_settings = None

def get_settings(environment: Optional[str] = None, force_reload: bool = False) -> Settings:
    """Get global settings instance."""
    global _settings

    if _settings is None or force_reload:
        _settings = _loader.load_settings(environment)
        _settings.validate()

    return _settings

settings = get_settings()
