# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 The BundlePush Authors

"""
BundlePush Configuration Tests

Tests for configuration loading and validation.
Run with: pytest tests/test_config.py -v
"""

import logging
import tempfile
from pathlib import Path


def test_config_loads_defaults():
    """Test configuration loads with default values."""
    from bundlepush.config import Config

    config = Config()

    assert config.binary.embedded_bundle_prefix == "assets://"
    assert config.binary.default_bundle_name == "index.android.bundle"
    assert config.install.debug_mode is False
    assert config.install.test_configuration is False
    assert config.bridge.port == 8765


def test_config_from_yaml():
    """Test configuration loads from YAML file."""
    from bundlepush.config import load_config

    yaml_content = """
storage:
  root_directory: /custom/bundlepush

binary:
  app_version: 2.3.0
  modified_time: 1700000000000

deployment:
  deployment_key: staging-key

install:
  debug_mode: true
  progress_tick_seconds: 0.016

logging:
  level: DEBUG
"""

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write(yaml_content)
        f.flush()

        config = load_config(Path(f.name))

        assert config.storage.root_directory == Path("/custom/bundlepush")
        assert config.binary.app_version == "2.3.0"
        assert config.binary.modified_time == 1700000000000
        assert config.deployment.deployment_key == "staging-key"
        assert config.install.debug_mode is True
        assert config.install.progress_tick_seconds == 0.016
        assert config.logging.level == "DEBUG"


def test_config_path_conversion():
    """Test configuration converts paths correctly."""
    from bundlepush.config import Config

    config = Config()

    assert isinstance(config.storage.root_directory, Path)
    assert isinstance(config.storage.settings_file, Path)


def test_config_logging_defaults():
    """Test logging configuration defaults."""
    from bundlepush.config import LoggingConfig

    logging_config = LoggingConfig()

    assert logging_config.level == "WARNING"
    assert logging_config.file is None


def test_config_invalid_yaml():
    """Test configuration falls back to defaults on invalid YAML."""
    from bundlepush.config import load_config

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write("invalid: yaml: content: [")
        f.flush()

        config = load_config(Path(f.name))

        assert config.bridge.port == 8765


def test_config_missing_file():
    """Test configuration handles missing file gracefully."""
    from bundlepush.config import load_config

    config = load_config(Path("/nonexistent/config.yaml"))

    assert config.binary.app_version is None


def test_config_env_var(tmp_path, monkeypatch):
    """Test BUNDLEPUSH_CONFIG selects the config file."""
    from bundlepush.config import load_config

    config_file = tmp_path / "config.yaml"
    config_file.write_text("bridge:\n  port: 9999\n")
    monkeypatch.setenv("BUNDLEPUSH_CONFIG", str(config_file))

    config = load_config()

    assert config.bridge.port == 9999
    assert config.bridge.host == "127.0.0.1"


def test_setup_logging_file_handler(tmp_path):
    """Test setup_logging creates the log directory."""
    from bundlepush.config import LoggingConfig, setup_logging

    log_file = tmp_path / "logs" / "bundlepush.log"
    setup_logging(LoggingConfig(level="DEBUG", file=log_file))

    assert log_file.parent.exists()
    logging.getLogger("bundlepush").info("written")


def test_deployment_config_fields():
    """Test deployment settings only hold values the client reports."""
    from bundlepush.config import DeploymentConfig

    assert set(DeploymentConfig.model_fields) == {
        "deployment_key",
        "server_url",
        "client_unique_id",
        "binary_contents_hash",
    }
