# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Configuration Module

Handles loading and managing client configuration from YAML files.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class StorageConfig(BaseModel):
    """On-disk locations owned by the update client."""
    root_directory: Path = Field(default=Path("./data/bundlepush"), description="Private root holding package folders")
    settings_file: Path = Field(default=Path("./data/bundlepush-settings.json"), description="Durable settings record")
    dev_bundle_cache_file: Optional[Path] = Field(default=None, description="Development server bundle cache cleared in debug mode")


class BinaryConfig(BaseModel):
    """Identity of the host binary this process was started from."""
    app_version: Optional[str] = Field(default=None, description="Version name of the installed binary")
    modified_time: Optional[int] = Field(default=None, description="Build timestamp of the embedded bundle")
    build_info_file: Optional[Path] = Field(default=None, description="File holding the build timestamp, used when modified_time is unset")
    embedded_bundle_prefix: str = Field(default="assets://", description="Prefix of bundle paths shipped inside the binary")
    default_bundle_name: str = Field(default="index.android.bundle", description="Default bundle file name")


class DeploymentConfig(BaseModel):
    """Update server deployment settings reported to the script runtime."""
    deployment_key: Optional[str] = Field(default=None, description="Deployment key")
    server_url: str = Field(default="https://codepush.azurewebsites.net/", description="Update server URL")
    client_unique_id: Optional[str] = Field(default=None, description="Stable device identifier")
    binary_contents_hash: Optional[str] = Field(default=None, description="Hash of the bundle shipped in the binary")


class InstallConfig(BaseModel):
    """Update application behaviour."""
    debug_mode: bool = Field(default=False, description="Keep stale packages when the binary is rebuilt during development")
    test_configuration: bool = Field(default=False, description="Ignore app version when deciding whether a package is latest")
    progress_tick_seconds: float = Field(default=0.0, ge=0.0, description="Minimum spacing of intermediate progress events")


class BridgeConfig(BaseModel):
    """Local bridge service settings."""
    host: str = Field(default="127.0.0.1", description="Bridge bind address")
    port: int = Field(default=8765, description="Bridge port")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="WARNING", description="Log level (WARNING, INFO, DEBUG)")
    file: Optional[Path] = Field(default=None, description="Log file path (null = console only)")


class Config(BaseModel):
    """Main configuration container."""
    storage: StorageConfig = Field(default_factory=StorageConfig)
    binary: BinaryConfig = Field(default_factory=BinaryConfig)
    deployment: DeploymentConfig = Field(default_factory=DeploymentConfig)
    install: InstallConfig = Field(default_factory=InstallConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file. If None, uses BUNDLEPUSH_CONFIG env var
              or defaults to ./config.yaml

    Returns:
        Config object with loaded settings
    """
    if path is None:
        path = os.environ.get("BUNDLEPUSH_CONFIG", "./config.yaml")

    config_path = Path(path)

    if config_path.exists():
        logger.info("Loading configuration from: %s", config_path)
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}

            return Config(
                storage=StorageConfig(**data.get("storage", {})),
                binary=BinaryConfig(**data.get("binary", {})),
                deployment=DeploymentConfig(**data.get("deployment", {})),
                install=InstallConfig(**data.get("install", {})),
                bridge=BridgeConfig(**data.get("bridge", {})),
                logging=LoggingConfig(**data.get("logging", {})),
            )
        except Exception as e:
            logger.warning("Failed to load config file: %s. Using defaults.", e)
            return Config()
    else:
        logger.info("Config file not found at %s. Using defaults.", config_path)
        return Config()


def setup_logging(config: LoggingConfig) -> None:
    """
    Configure logging based on configuration.

    Args:
        config: Logging configuration settings
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.file:
        try:
            log_dir = config.file.parent
            log_dir.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(config.file))
        except Exception as e:
            # If file logging fails, continue with console-only logging
            print(f"Warning: Could not setup file logging: {e}", file=sys.stderr)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers
    )

    logging.getLogger("uvicorn").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(level)

    if config.file:
        logger.info("Logging configured: level=%s, file=%s", config.level, config.file)
    else:
        logger.info("Logging configured: level=%s (console only)", config.level)
