# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 The BundlePush Authors

"""
Shared fixtures for the BundlePush tests.
"""

import pytest

BUNDLE_NAME = "index.android.bundle"
APP_VERSION = "1.0.0"
BUILD_TIME = 1700000000000


@pytest.fixture
def package_store(tmp_path):
    from bundlepush.package_store import PackageStore
    return PackageStore(tmp_path / "bundlepush")


@pytest.fixture
def settings_store(tmp_path):
    from bundlepush.settings_store import SettingsStore
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def binary():
    from bundlepush.binary import BinaryInfo
    return BinaryInfo(app_version=APP_VERSION, modified_time=BUILD_TIME)


@pytest.fixture
def session():
    from bundlepush.session import Session
    return Session()


@pytest.fixture
def store_package(package_store):
    """Download a package into the store and return its metadata."""
    from bundlepush.models import Package

    def _store(package_hash, label="v1", app_version=APP_VERSION, modified_time=BUILD_TIME,
               binary_path=None, bundle=b"console.log('update');"):
        manifest = Package(
            package_hash=package_hash,
            label=label,
            deployment_key="deployment-key",
            app_version=app_version,
            binary_modified_time=modified_time,
            binary_path=binary_path,
        )
        return package_store.download_package(manifest, [bundle], BUNDLE_NAME)

    return _store


@pytest.fixture
def install(package_store, settings_store, store_package):
    """Download and install a minor package the way the client does."""

    def _install(package_hash, **kwargs):
        package = store_package(package_hash, **kwargs)
        package_store.install_package(package, settings_store.is_pending_update())
        settings_store.save_pending_update(package_hash, is_loading=False)
        return package

    return _install


@pytest.fixture
def config(tmp_path):
    """Client configuration rooted in a temporary directory."""
    from bundlepush.config import BinaryConfig, Config, DeploymentConfig, StorageConfig

    return Config(
        storage=StorageConfig(
            root_directory=tmp_path / "client" / "bundlepush",
            settings_file=tmp_path / "client" / "settings.json",
        ),
        binary=BinaryConfig(app_version=APP_VERSION, modified_time=BUILD_TIME),
        deployment=DeploymentConfig(
            deployment_key="deployment-key",
            server_url="https://updates.example.com/",
            client_unique_id="device-1",
        ),
    )
