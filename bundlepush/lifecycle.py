# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Update Lifecycle

Runs once per process start, before any bundle is loaded, and classifies
how the previous run ended:

  NO_PENDING                   nothing was installed since the last confirmation
  SUPERSEDED_BY_BINARY         the binary itself moved on; the package is stale
  MAJOR_APPLIED                a binary-replacing update was installed by the OS
  CRASHED_ROLLBACK             the last run loaded the update but never confirmed it
  FIRST_RUN_CONFIRMED_PENDING  the update is being loaded for the first time

A pending record moves isLoading=false -> isLoading=true when a run starts
loading the update, and is removed when the running application confirms it.
Finding isLoading=true at startup therefore means the previous run died
before confirming, and the update is rolled back rather than retried.

Known limitation: a pending major update skips the loading-flag check, so a
crashing binary replacement is never detected or rolled back here. The OS
installer owns that transition.
"""

import logging
from enum import Enum

from .binary import BinaryInfo, has_binary_version_changed, is_package_bundle_latest
from .errors import InvalidPackageError
from .package_store import PackageStore
from .session import Session
from .settings_store import SettingsStore

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    """Outcome of the startup lifecycle check."""
    NO_PENDING = "no_pending"
    SUPERSEDED_BY_BINARY = "superseded_by_binary"
    MAJOR_APPLIED = "major_applied"
    CRASHED_ROLLBACK = "crashed_rollback"
    FIRST_RUN_CONFIRMED_PENDING = "first_run_confirmed_pending"


class UpdateLifecycle:
    """Confirm-or-rollback state machine over the package and settings stores."""

    def __init__(
        self,
        package_store: PackageStore,
        settings_store: SettingsStore,
        binary: BinaryInfo,
        session: Session,
        test_configuration: bool = False,
    ):
        self.package_store = package_store
        self.settings_store = settings_store
        self.binary = binary
        self.session = session
        self.test_configuration = test_configuration

    def run(self) -> LifecycleState:
        """
        Classify the previous run and perform the rollback or commit step.

        Returns:
            The LifecycleState that was detected.

        Raises:
            CorruptSettingsError: If the pending record is malformed. This is
                never swallowed, since ignoring it could hide a broken update.
        """
        self.session.did_update = False

        pending = self.settings_store.get_pending_update()
        if pending is None:
            return LifecycleState.NO_PENDING

        current = self.package_store.get_current_package()
        if current is None or (
            not is_package_bundle_latest(current, self.binary, self.test_configuration)
            and has_binary_version_changed(current, self.binary)
        ):
            logger.info("Skipping lifecycle check, binary version is newer")
            if current is not None and current.is_major_update:
                # The OS-level upgrade is the update
                self.session.did_update = True
                self.session.is_running_binary_version = False
            return LifecycleState.SUPERSEDED_BY_BINARY

        pending_package = self.package_store.get_package(pending.hash)
        if pending_package is not None and pending_package.is_major_update:
            self.session.did_update = True
            logger.info("Pending update %s was a major update", pending.hash)
            return LifecycleState.MAJOR_APPLIED

        if pending.is_loading:
            logger.warning(
                "Update %s did not finish loading the last time, rolling back to a previous version",
                pending.hash,
            )
            self.session.need_to_report_rollback = True
            self._rollback(current)
            return LifecycleState.CRASHED_ROLLBACK

        # A new update is running for the first time. Mark it as loading so
        # that a crash before confirmation rolls it back on the next start.
        self.session.did_update = True
        self.settings_store.save_pending_update(pending.hash, is_loading=True)
        logger.info("Loading update %s for the first time", pending.hash)
        return LifecycleState.FIRST_RUN_CONFIRMED_PENDING

    def confirm_application_ready(self) -> None:
        """Commit the running update permanently. Safe to call repeatedly."""
        self.settings_store.remove_pending_update()
        logger.debug("Application reported ready")

    def finish_major_update(self) -> None:
        """Complete a binary-replacing update after the OS installed it.

        Raises:
            InvalidPackageError: If there is no pending major package to finish.
        """
        pending = self.settings_store.get_pending_update()
        if pending is None:
            raise InvalidPackageError("No pending update to finish")
        package = self.package_store.get_package(pending.hash)
        if package is None:
            raise InvalidPackageError(f"Pending package {pending.hash} is not stored")

        logger.info("Finishing major update %s", pending.hash)
        self.package_store.install_package(package, self.settings_store.is_pending_update())
        self.settings_store.save_pending_update(pending.hash, is_loading=False)
        self.session.did_update = True
        self.session.is_running_binary_version = False

    def _rollback(self, failed_package) -> None:
        self.settings_store.save_failed_update(failed_package)
        if self.package_store.get_previous_package() is not None:
            self.package_store.rollback_package()
        else:
            # First update on top of the binary: fall back to the embedded bundle
            self.package_store.discard_current_package()
        self.settings_store.remove_pending_update()
