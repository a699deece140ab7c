# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 The BundlePush Authors

"""
BundlePush Bridge Endpoint Tests

Tests for the local FastAPI bridge used by the script runtime.
Run with: pytest tests/test_bridge.py -v
"""

import pytest
from fastapi.testclient import TestClient

from conftest import APP_VERSION

MANIFEST = {
    "packageHash": "hash-b",
    "label": "v2",
    "deploymentKey": "deployment-key",
    "appVersion": APP_VERSION,
}


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def bundlepush_client(config):
    from bundlepush.client import BundlePushClient
    return BundlePushClient(config)


@pytest.fixture
def client(bundlepush_client):
    """Create test client around a fresh BundlePush client."""
    from bundlepush.bridge import create_app
    with TestClient(create_app(bundlepush_client)) as client:
        yield client


@pytest.fixture
def payload_file(tmp_path):
    path = tmp_path / "payload.bundle"
    path.write_bytes(b"console.log('v2');")
    return path


def _download_and_install(client, payload_file):
    response = client.post(
        "/codepush/download-update",
        json={"updatePackage": MANIFEST, "payloadPath": str(payload_file)},
    )
    assert response.status_code == 200
    response = client.post("/codepush/install-update", json={"updatePackage": MANIFEST, "installMode": 1})
    assert response.status_code == 200


# =============================================================================
# HEALTH & CONFIGURATION
# =============================================================================

def test_health_endpoint(client):
    """Test health endpoint returns expected format."""
    from bundlepush import __version__

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["isRunningBinaryVersion"] is False
    assert data["didUpdate"] is False
    assert data["version"] == __version__


def test_configuration_endpoint(client):
    response = client.get("/codepush/configuration")

    assert response.status_code == 200
    data = response.json()
    assert data["appVersion"] == APP_VERSION
    assert data["deploymentKey"] == "deployment-key"
    assert data["clientUniqueId"] == "device-1"
    assert data["serverUrl"] == "https://updates.example.com/"


# =============================================================================
# UPDATE METADATA
# =============================================================================

def test_update_metadata_without_packages(client):
    response = client.get("/codepush/update-metadata", params={"updateState": 2})

    assert response.status_code == 200
    assert response.json() is None


def test_update_metadata_unknown_state(client):
    """Test unknown update states use the bridge error format."""
    response = client.get("/codepush/update-metadata", params={"updateState": 7})

    assert response.status_code == 400
    data = response.json()
    assert "error" in data
    assert data["error"]["code"] == "400"


def test_download_and_install(client, payload_file):
    """Test a package can be handed over and installed through the bridge."""
    _download_and_install(client, payload_file)

    response = client.get("/codepush/update-metadata", params={"updateState": 1})

    data = response.json()
    assert data["packageHash"] == "hash-b"
    assert data["isPending"] is True
    assert "binaryModifiedTime" in data


def test_download_missing_payload(client, tmp_path):
    response = client.post(
        "/codepush/download-update",
        json={"updatePackage": MANIFEST, "payloadPath": str(tmp_path / "missing")},
    )

    assert response.status_code == 404
    assert "error" in response.json()


def test_install_without_download(client):
    """Test client errors are reported with their kind."""
    response = client.post("/codepush/install-update", json={"updatePackage": MANIFEST})

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "InvalidPackageError"


def test_install_invalid_mode(client):
    response = client.post("/codepush/install-update", json={"updatePackage": MANIFEST, "installMode": 9})

    assert response.status_code == 422


def test_notify_application_ready(client, payload_file, bundlepush_client):
    _download_and_install(client, payload_file)

    response = client.post("/codepush/notify-application-ready")

    assert response.status_code == 200
    assert bundlepush_client.settings_store.get_pending_update() is None


def test_failed_update_and_first_run(client):
    assert client.get("/codepush/failed-updates/hash-b").json() == {"isFailedUpdate": False}
    assert client.get("/codepush/first-run/hash-b").json() == {"isFirstRun": False}


# =============================================================================
# RESTART
# =============================================================================

def test_restart_app_without_activator(client):
    response = client.post("/codepush/restart-app")

    assert response.status_code == 200
    assert response.json() == {"restarted": False}


def test_restart_app_only_if_pending(config, payload_file):
    from bundlepush.bridge import create_app
    from bundlepush.client import BundlePushClient

    activated = []
    bundlepush_client = BundlePushClient(config, activator=activated.append)
    with TestClient(create_app(bundlepush_client)) as client:
        response = client.post("/codepush/restart-app", json={"onlyIfUpdateIsPending": True})
        assert response.json() == {"restarted": False}

        _download_and_install(client, payload_file)
        response = client.post("/codepush/restart-app", json={"onlyIfUpdateIsPending": True})

    assert response.json() == {"restarted": True}
    assert len(activated) == 1


# =============================================================================
# STATUS REPORTS
# =============================================================================

def test_status_report_cycle(client, bundlepush_client):
    """Test a report is offered until it is recorded as delivered."""
    bundlepush_client.resolve_bundle_path()

    report = client.get("/codepush/status-report").json()
    assert report == {"appVersion": APP_VERSION}

    response = client.post("/codepush/status-report/recorded", json=report)
    assert response.status_code == 200

    assert client.get("/codepush/status-report").json() is None


def test_status_report_retry(client, bundlepush_client):
    response = client.post(
        "/codepush/status-report/retry",
        json={"appVersion": APP_VERSION, "status": "DeploymentSucceeded"},
    )

    assert response.status_code == 200
    saved = bundlepush_client.settings_store.get_status_report_for_retry_then_clear()
    assert saved.app_version == APP_VERSION
    assert saved.status == "DeploymentSucceeded"


# =============================================================================
# APP STATE & CONSTANTS
# =============================================================================

def test_constants_endpoint(client):
    response = client.get("/codepush/constants")

    assert response.status_code == 200
    data = response.json()
    assert data["codePushInstallModeOnNextResume"] == 2
    assert data["codePushUpdateStateLatest"] == 2


def test_app_state_drives_resume_install(config, payload_file):
    """Test app-state transitions posted to the bridge apply an ON_NEXT_RESUME install."""
    from bundlepush.bridge import create_app
    from bundlepush.client import BundlePushClient

    activated = []
    bundlepush_client = BundlePushClient(config, activator=activated.append)
    with TestClient(create_app(bundlepush_client)) as client:
        client.post(
            "/codepush/download-update",
            json={"updatePackage": MANIFEST, "payloadPath": str(payload_file)},
        )
        response = client.post(
            "/codepush/install-update",
            json={"updatePackage": MANIFEST, "installMode": 2, "minimumBackgroundDuration": 0},
        )
        assert response.status_code == 200
        assert activated == []

        assert client.post("/codepush/app-state", json={"state": "background"}).status_code == 200
        assert client.post("/codepush/app-state", json={"state": "foreground"}).status_code == 200

    assert len(activated) == 1
    assert bundlepush_client.settings_store.get_pending_update().is_loading is True


def test_app_state_rejects_unknown_state(client):
    response = client.post("/codepush/app-state", json={"state": "asleep"})

    assert response.status_code == 422
