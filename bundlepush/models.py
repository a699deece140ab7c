# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Data Models

Package manifests, pending-update records, download progress and status
reports. Wire names are camelCase (the format the update server and the
script runtime exchange); Python attributes are snake_case.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================

class InstallMode(int, Enum):
    """When an installed update is applied to the running process."""
    IMMEDIATE = 0
    ON_NEXT_RESTART = 1
    ON_NEXT_RESUME = 2
    ON_NEXT_SUSPEND = 3


class UpdateState(int, Enum):
    """Which package a metadata query asks for."""
    RUNNING = 0
    PENDING = 1
    LATEST = 2


class DeploymentStatus(str, Enum):
    """Outcome recorded in a status report."""
    SUCCEEDED = "DeploymentSucceeded"
    FAILED = "DeploymentFailed"


# =============================================================================
# PACKAGE
# =============================================================================

class Package(BaseModel):
    """
    One downloaded update, as described by its manifest.

    Unknown manifest keys are preserved so that metadata round-trips to the
    script runtime unchanged.
    """
    package_hash: Optional[str] = Field(default=None, alias="packageHash")
    label: Optional[str] = None
    deployment_key: Optional[str] = Field(default=None, alias="deploymentKey")
    description: Optional[str] = None
    app_version: Optional[str] = Field(default=None, alias="appVersion")
    binary_modified_time: Optional[int] = Field(default=None, alias="binaryModifiedTime")
    is_mandatory: bool = Field(default=False, alias="isMandatory")
    is_first_run: bool = Field(default=False, alias="isFirstRun")
    binary_path: Optional[str] = Field(default=None, alias="binaryPath")
    bundle_path: Optional[str] = Field(default=None, alias="bundlePath")
    package_size: Optional[int] = Field(default=None, alias="packageSize")
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")

    # Annotations added to metadata query results, never persisted
    is_pending: Optional[bool] = Field(default=None, alias="isPending")
    is_debug_only: Optional[bool] = Field(default=None, alias="_isDebugOnly")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("binary_modified_time", mode="before")
    @classmethod
    def _parse_modified_time(cls, value: Any) -> Optional[int]:
        # Stored as a quoted string by older clients
        if value is None or value == "":
            return None
        if isinstance(value, str):
            return int(value.replace('"', "").strip())
        return value

    @property
    def is_major_update(self) -> bool:
        """True when this package replaces the host binary itself."""
        return bool(self.binary_path)

    @property
    def status_report_identifier(self) -> Optional[str]:
        """Identifier used to detect whether this package was already reported."""
        if not self.deployment_key or not self.label:
            return None
        return f"{self.deployment_key}:{self.label}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase dictionary stored in app.json."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_record(self) -> Dict[str, Any]:
        """Like to_dict() but without the query-time annotations."""
        data = self.to_dict()
        data.pop("isPending", None)
        data.pop("_isDebugOnly", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Package":
        """Create from a manifest dictionary."""
        return cls.model_validate(data)


# =============================================================================
# SETTINGS RECORDS
# =============================================================================

@dataclass
class PendingUpdate:
    """An installed update that has not been confirmed yet."""
    hash: str
    is_loading: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"hash": self.hash, "isLoading": self.is_loading}


@dataclass
class DownloadProgress:
    """Bytes received so far for a package download."""
    total_bytes: int
    received_bytes: int

    @property
    def is_completed(self) -> bool:
        return self.total_bytes == self.received_bytes

    def to_dict(self) -> Dict[str, Any]:
        return {"totalBytes": self.total_bytes, "receivedBytes": self.received_bytes}


class StatusReport(BaseModel):
    """Deployment outcome handed to the telemetry transport."""
    app_version: Optional[str] = Field(default=None, alias="appVersion")
    package: Optional[Dict[str, Any]] = None
    status: Optional[DeploymentStatus] = None
    previous_deployment_key: Optional[str] = Field(default=None, alias="previousDeploymentKey")
    previous_label_or_app_version: Optional[str] = Field(default=None, alias="previousLabelOrAppVersion")

    model_config = ConfigDict(populate_by_name=True, extra="allow", use_enum_values=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
