# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Boot Resolver

Decides, each time a bundle is loaded, whether to serve the current update
package or the bundle embedded in the binary.

"Latest" is relative to the binary build, not to wall-clock time: a package
folder stays valid across restarts of the same binary but is invalidated as
soon as the binary is rebuilt or reinstalled.
"""

import logging
from pathlib import Path
from typing import NamedTuple

from .binary import BinaryInfo, has_binary_version_changed, is_package_bundle_latest
from .errors import BundlePushError, MissingBinaryMetadataError
from .package_store import PackageStore
from .session import Session
from .settings_store import SettingsStore

logger = logging.getLogger(__name__)


class ResolvedBundle(NamedTuple):
    """Bundle to load for this process."""
    path: str
    is_binary_version: bool


class BootResolver:
    """Chooses the bundle file for the running process."""

    def __init__(
        self,
        package_store: PackageStore,
        settings_store: SettingsStore,
        binary: BinaryInfo,
        session: Session,
        debug_mode: bool = False,
        test_configuration: bool = False,
    ):
        self.package_store = package_store
        self.settings_store = settings_store
        self.binary = binary
        self.session = session
        self.debug_mode = debug_mode
        self.test_configuration = test_configuration

    def resolve_bundle_path(self, assets_bundle_file_name: str) -> ResolvedBundle:
        """
        Resolve the bundle to serve and record the outcome on the session.

        Never fails for missing or unreadable packages; those fall back to
        the embedded bundle. A missing binary build identifier is a
        packaging defect and is raised.

        Args:
            assets_bundle_file_name: Bundle file name, e.g. "index.android.bundle"

        Returns:
            ResolvedBundle(path, is_binary_version)
        """
        self.session.assets_bundle_file_name = assets_bundle_file_name
        try:
            resolved = self._resolve(assets_bundle_file_name)
        except MissingBinaryMetadataError:
            raise
        except (OSError, BundlePushError) as e:
            logger.error("Unable to resolve update bundle, using binary bundle: %s", e)
            resolved = self._binary_bundle(assets_bundle_file_name)

        self.session.is_running_binary_version = resolved.is_binary_version
        logger.info("Loading bundle from %s", resolved.path)
        return resolved

    def clear_updates(self) -> None:
        """Discard every stored package together with pending and failed records."""
        self.package_store.clear_updates()
        self.settings_store.remove_pending_update()
        self.settings_store.remove_failed_updates()

    def _resolve(self, assets_bundle_file_name: str) -> ResolvedBundle:
        bundle_path = self.package_store.get_current_package_bundle_path(assets_bundle_file_name)
        package = self.package_store.get_current_package()
        if bundle_path is None or package is None:
            # There has not been any downloaded update
            return self._binary_bundle(assets_bundle_file_name)

        if is_package_bundle_latest(package, self.binary, self.test_configuration):
            if _exists(bundle_path):
                logger.debug("Current package %s is latest", package.package_hash)
                return ResolvedBundle(str(bundle_path), False)
            logger.warning("Bundle file of package %s does not exist: %s", package.package_hash, bundle_path)
            return self._binary_bundle(assets_bundle_file_name)

        if package.is_major_update:
            # A major update is itself a new binary, so the build check does not apply
            if _exists(bundle_path):
                return ResolvedBundle(str(bundle_path), False)
            logger.warning("Bundle file of major package %s does not exist: %s", package.package_hash, bundle_path)
            return ResolvedBundle(self.binary.embedded_bundle_path(assets_bundle_file_name), False)

        logger.info("Binary is newer than package %s, not applying it", package.package_hash)
        self.session.did_update = False
        if not self.debug_mode or has_binary_version_changed(package, self.binary):
            self.clear_updates()
        return self._binary_bundle(assets_bundle_file_name)

    def _binary_bundle(self, assets_bundle_file_name: str) -> ResolvedBundle:
        return ResolvedBundle(self.binary.embedded_bundle_path(assets_bundle_file_name), True)


def _exists(path: Path) -> bool:
    return Path(path).is_file()
