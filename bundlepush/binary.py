# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Binary Identity

The installed binary is identified by its app version and by the build
timestamp of the bundle embedded in it. A package is only "latest" for the
binary build it was installed on top of; a rebuilt or reinstalled binary
invalidates it.
"""

import logging
from pathlib import Path
from typing import Optional

from .config import BinaryConfig
from .errors import MissingBinaryMetadataError
from .models import Package

logger = logging.getLogger(__name__)


class BinaryInfo:
    """Version and build timestamp of the running binary."""

    def __init__(
        self,
        app_version: Optional[str],
        modified_time: Optional[int] = None,
        build_info_file: Optional[Path] = None,
        embedded_bundle_prefix: str = "assets://",
    ):
        self._app_version = app_version
        self._modified_time = modified_time
        self.build_info_file = build_info_file
        self.embedded_bundle_prefix = embedded_bundle_prefix

    @classmethod
    def from_config(cls, config: BinaryConfig) -> "BinaryInfo":
        return cls(
            app_version=config.app_version,
            modified_time=config.modified_time,
            build_info_file=config.build_info_file,
            embedded_bundle_prefix=config.embedded_bundle_prefix,
        )

    @property
    def app_version(self) -> str:
        if not self._app_version:
            raise MissingBinaryMetadataError("Binary app version is not configured")
        return self._app_version

    def override_app_version(self, app_version: str) -> None:
        """Report a different app version than the one the binary was built with."""
        self._app_version = app_version

    @property
    def modified_time(self) -> int:
        """Build timestamp of the embedded bundle.

        Raises:
            MissingBinaryMetadataError: If neither a configured value nor a
                                        readable build info file exists.
        """
        if self._modified_time is None:
            self._modified_time = self._read_build_info()
        return self._modified_time

    def embedded_bundle_path(self, assets_bundle_file_name: str) -> str:
        return f"{self.embedded_bundle_prefix}{assets_bundle_file_name}"

    def _read_build_info(self) -> int:
        if self.build_info_file is None:
            raise MissingBinaryMetadataError("Binary build time is not configured")
        try:
            # Build tooling may quote the value
            raw = Path(self.build_info_file).read_text().replace('"', "").strip()
            return int(raw)
        except (OSError, ValueError) as e:
            raise MissingBinaryMetadataError(
                f"Error in getting binary resources modified time from {self.build_info_file}"
            ) from e


def is_package_bundle_latest(package: Package, binary: BinaryInfo, test_configuration: bool = False) -> bool:
    """True when package was installed on top of exactly this binary build."""
    return (
        package.binary_modified_time is not None
        and package.binary_modified_time == binary.modified_time
        and (test_configuration or package.app_version == binary.app_version)
    )


def has_binary_version_changed(package: Package, binary: BinaryInfo) -> bool:
    """True when the binary's version differs from the one the package targets."""
    return package.app_version != binary.app_version
