# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Bridge Schemas

Request/response models for the local bridge service. Field names on the
wire are camelCase, matching what the script runtime sends.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import InstallMode


# =============================================================================
# REQUEST MODELS
# =============================================================================

class InstallUpdateRequest(BaseModel):
    """Install a downloaded package."""
    update_package: Dict[str, Any] = Field(..., alias="updatePackage", description="Package manifest")
    install_mode: InstallMode = Field(default=InstallMode.ON_NEXT_RESTART, alias="installMode")
    minimum_background_duration: int = Field(default=0, ge=0, alias="minimumBackgroundDuration")

    model_config = ConfigDict(populate_by_name=True)


class DownloadUpdateRequest(BaseModel):
    """Persist a payload the downloader already fetched to a local file."""
    update_package: Dict[str, Any] = Field(..., alias="updatePackage", description="Package manifest")
    payload_path: str = Field(..., alias="payloadPath", description="Local file holding the payload")

    model_config = ConfigDict(populate_by_name=True)


class AppStateRequest(BaseModel):
    """Foreground/background transition of the host application."""
    state: Literal["background", "foreground"] = Field(..., description="New application state")


class RestartAppRequest(BaseModel):
    """Reload the bundle."""
    only_if_update_is_pending: bool = Field(default=False, alias="onlyIfUpdateIsPending")

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(default="ok")
    is_running_binary_version: bool = Field(default=False, alias="isRunningBinaryVersion")
    did_update: bool = Field(default=False, alias="didUpdate")
    version: str

    model_config = ConfigDict(populate_by_name=True)


class ConfigurationResponse(BaseModel):
    """Client configuration reported to the script runtime."""
    app_version: str = Field(..., alias="appVersion")
    client_unique_id: Optional[str] = Field(default=None, alias="clientUniqueId")
    deployment_key: Optional[str] = Field(default=None, alias="deploymentKey")
    server_url: str = Field(..., alias="serverUrl")
    package_hash: Optional[str] = Field(default=None, alias="packageHash")

    model_config = ConfigDict(populate_by_name=True)


class RestartAppResponse(BaseModel):
    restarted: bool


class FailedUpdateResponse(BaseModel):
    is_failed_update: bool = Field(..., alias="isFailedUpdate")

    model_config = ConfigDict(populate_by_name=True)


class FirstRunResponse(BaseModel):
    is_first_run: bool = Field(..., alias="isFirstRun")

    model_config = ConfigDict(populate_by_name=True)


class ErrorDetail(BaseModel):
    """Error detail in response."""
    message: str
    type: str = Field(default="api_error")
    code: str


class ErrorResponse(BaseModel):
    """API error response format."""
    error: ErrorDetail
