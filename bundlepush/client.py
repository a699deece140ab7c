# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Client

Wires the package store, settings store, boot resolver, lifecycle machine,
install scheduler and status reporter together and exposes the operations
the host application and its script runtime call.

Startup sequence (once per process):
  1. init_client() creates the client and runs the lifecycle check
  2. The host asks get_bundle_path() which bundle to load
  3. The running bundle calls confirm_application_ready() once healthy

Update sequence:
  1. download_update() persists a package handed over by the downloader
  2. install_update() makes it current and schedules its activation
  3. The scheduler (or restart_app) reloads the engine via a BundleActivator
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Union

from .activator import ActivatorLike, BinaryInstaller, BundleActivator, FallbackActivator, as_activator
from .binary import BinaryInfo
from .boot_resolver import BootResolver, ResolvedBundle
from .config import Config
from .errors import ActivationError, DownloadFailure, InvalidPackageError, NotInitializedError
from .install_scheduler import AppStateEvents, InstallScheduler
from .lifecycle import LifecycleState, UpdateLifecycle
from .metadata import select_update_metadata
from .models import InstallMode, Package, StatusReport, UpdateState
from .package_store import Payload, PackageStore
from .progress import ProgressCoalescer
from .session import Session
from .settings_store import SettingsStore
from .telemetry import StatusReporter

logger = logging.getLogger(__name__)

Manifest = Union[Package, Dict[str, Any]]


class BundlePushClient:
    """Over-the-air update client for one application process.

    Usage:
        client = BundlePushClient(config, activator=reload_engine)
        client.run_lifecycle_check()
        path = client.resolve_bundle_path("index.android.bundle").path
    """

    def __init__(
        self,
        config: Config,
        activator: Optional[ActivatorLike] = None,
        legacy_activator: Optional[ActivatorLike] = None,
        binary_installer: Optional[BinaryInstaller] = None,
        events: Optional[AppStateEvents] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """Initialize the client.

        Args:
            config: Loaded configuration.
            activator: Swaps the running engine's bundle in place.
            legacy_activator: Used when the activator fails, e.g. by
                              restarting the hosting screen.
            binary_installer: Hands a replacement binary to the OS installer.
            events: Foreground/background signal source.
            loop: Event loop running the install scheduler timers.
        """
        self.config = config
        self.debug_mode = config.install.debug_mode
        self.test_configuration = config.install.test_configuration

        self.session = Session()
        self.binary = BinaryInfo.from_config(config.binary)
        self.package_store = PackageStore(config.storage.root_directory)
        self.settings_store = SettingsStore(config.storage.settings_file)
        self.resolver = BootResolver(
            self.package_store,
            self.settings_store,
            self.binary,
            self.session,
            debug_mode=self.debug_mode,
            test_configuration=self.test_configuration,
        )
        self.lifecycle = UpdateLifecycle(
            self.package_store,
            self.settings_store,
            self.binary,
            self.session,
            test_configuration=self.test_configuration,
        )
        self.reporter = StatusReporter(self.settings_store)

        primary = as_activator(activator)
        fallback = as_activator(legacy_activator)
        self.activator: Optional[BundleActivator] = (
            FallbackActivator(primary, fallback) if primary is not None else fallback
        )
        self.binary_installer = binary_installer
        self.events = events or AppStateEvents()
        self._loop = loop
        self._scheduler: Optional[InstallScheduler] = None

    # =========================================================================
    # STARTUP
    # =========================================================================

    def run_lifecycle_check(self) -> LifecycleState:
        """Classify the previous run and roll back or commit. Call once per start."""
        state = self.lifecycle.run()
        logger.info("Lifecycle check: %s", state.value)
        return state

    def resolve_bundle_path(self, assets_bundle_file_name: Optional[str] = None) -> ResolvedBundle:
        """Return the bundle this process should load."""
        name = assets_bundle_file_name or self.config.binary.default_bundle_name
        return self.resolver.resolve_bundle_path(name)

    def confirm_application_ready(self) -> None:
        """Called by the running bundle once it is healthy; commits the update."""
        self.lifecycle.confirm_application_ready()

    def clear_debug_cache_if_needed(self) -> None:
        """Drop the development server's cached bundle when an update is pending."""
        cache_file = self.config.storage.dev_bundle_cache_file
        if self.debug_mode and cache_file is not None and self.settings_store.is_pending_update():
            if cache_file.exists():
                cache_file.unlink()
                logger.debug("Removed cached development bundle %s", cache_file)

    # =========================================================================
    # DOWNLOAD & INSTALL
    # =========================================================================

    async def download_update(
        self,
        manifest: Manifest,
        payload: Payload,
        notify_progress: bool = False,
        on_progress=None,
    ) -> Package:
        """Persist a package handed over by the downloader.

        Args:
            manifest: Package manifest from the update server.
            payload: Bundle payload (zip archive or bare bundle).
            notify_progress: Whether to deliver progress events.
            on_progress: Callback receiving DownloadProgress events.

        Returns:
            The stored package, stamped with this binary's build time.

        Raises:
            InvalidPackageError: Manifest has no hash or payload has no bundle.
            DownloadFailure: Payload stream failed.
        """
        package = _to_package(manifest)
        package = package.model_copy(update={"binary_modified_time": self.binary.modified_time})

        coalescer = ProgressCoalescer(asyncio.get_running_loop(), self.config.install.progress_tick_seconds)
        if notify_progress and on_progress is not None:
            coalescer.on_progress(on_progress)

        bundle_name = self.session.assets_bundle_file_name or self.config.binary.default_bundle_name
        try:
            stored = await asyncio.to_thread(
                self.package_store.download_package, package, payload, bundle_name, coalescer
            )
        except (DownloadFailure, InvalidPackageError) as e:
            logger.error("Download of package %s failed: %s", package.package_hash, e)
            if package.package_hash:
                # Never silently retry a hash that failed to install
                self.settings_store.save_failed_update(package)
            raise

        return stored

    def install_update(
        self,
        manifest: Manifest,
        install_mode: InstallMode = InstallMode.ON_NEXT_RESTART,
        minimum_background_duration: int = 0,
    ) -> None:
        """Make a downloaded package current and schedule its activation.

        Major updates are not promoted here: they are recorded as pending and
        their binary is handed to the OS installer; finish_major_update()
        completes them once the new binary is installed.

        Raises:
            InvalidPackageError: If the package has no hash or was never downloaded.
        """
        package = _to_package(manifest)
        if not package.package_hash:
            raise InvalidPackageError("Update package to be installed has no hash")
        package = self.package_store.get_package(package.package_hash) or package

        if package.is_major_update:
            self._install_major_update(package)
            return

        self.package_store.install_package(package, self.settings_store.is_pending_update())
        self.settings_store.save_pending_update(package.package_hash, is_loading=False)
        self.schedule_install(install_mode, minimum_background_duration)

    def _install_major_update(self, package: Package) -> None:
        self.settings_store.save_pending_update(package.package_hash, is_loading=True)
        binary_file = self.package_store.get_package_folder_path(package.package_hash) / package.binary_path
        if not binary_file.is_file():
            logger.error("Replacement binary does not exist: %s", binary_file)
            return
        if self.binary_installer is None:
            logger.warning("No binary installer configured, cannot install %s", binary_file)
            return
        logger.info("Installing new binary %s", binary_file)
        self.binary_installer(binary_file)

    def finish_major_update(self) -> None:
        """Called when the OS reports this application's binary was replaced."""
        self.lifecycle.finish_major_update()

    def set_pending(self) -> None:
        """Mark the current package as pending and already loading.

        Raises:
            InvalidPackageError: If there is no current package.
        """
        current_hash = self.package_store.get_current_package_hash()
        if not current_hash:
            raise InvalidPackageError("No current package to mark as pending")
        self.settings_store.save_pending_update(current_hash, is_loading=True)

    def schedule_install(self, install_mode: InstallMode, minimum_background_duration: int = 0) -> None:
        if InstallMode(install_mode) == InstallMode.ON_NEXT_RESTART:
            # Applied by the lifecycle check on the next cold start
            return
        self.scheduler.schedule(install_mode, minimum_background_duration)

    @property
    def scheduler(self) -> InstallScheduler:
        if self._scheduler is None:
            self._scheduler = InstallScheduler(
                self.settings_store,
                self.load_bundle,
                self.events,
                loop=self._loop,
            )
        return self._scheduler

    # =========================================================================
    # RELOAD
    # =========================================================================

    def restart_app(self, only_if_update_is_pending: bool = False) -> bool:
        """Reload the bundle, optionally only when an update is waiting."""
        if not only_if_update_is_pending or self.settings_store.is_pending_update():
            return self.load_bundle()
        return False

    def load_bundle(self) -> bool:
        """Swap the running engine to the resolved bundle and re-run the lifecycle check.

        Returns:
            True if the bundle was activated.
        """
        # Detach the observer first so a reload cannot schedule another reload
        if self._scheduler is not None:
            self._scheduler.clear()
        self.clear_debug_cache_if_needed()

        if self.activator is None:
            logger.warning("No bundle activator configured, cannot reload")
            return False

        resolved = self.resolve_bundle_path(self.session.assets_bundle_file_name)
        try:
            self.activator.activate(resolved.path)
        except ActivationError as e:
            logger.error("Unable to activate bundle %s: %s", resolved.path, e)
            return False

        self.run_lifecycle_check()
        return True

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_update_metadata(self, update_state: UpdateState = UpdateState.RUNNING) -> Optional[Package]:
        """Return the RUNNING, PENDING or LATEST package, or None."""
        current = self.package_store.get_current_package()
        current_is_pending = False
        if current is not None and current.package_hash:
            current_is_pending = self.settings_store.is_pending_update(current.package_hash)

        previous = None
        if current is not None and current_is_pending and UpdateState(update_state) == UpdateState.RUNNING:
            previous = self.package_store.get_previous_package()

        return select_update_metadata(
            current,
            previous,
            current_is_pending,
            update_state,
            is_running_binary_version=self.session.is_running_binary_version,
        )

    def get_constants(self) -> Dict[str, int]:
        """Install mode and update state values exported to the script runtime."""
        return {
            "codePushInstallModeImmediate": InstallMode.IMMEDIATE.value,
            "codePushInstallModeOnNextRestart": InstallMode.ON_NEXT_RESTART.value,
            "codePushInstallModeOnNextResume": InstallMode.ON_NEXT_RESUME.value,
            "codePushInstallModeOnNextSuspend": InstallMode.ON_NEXT_SUSPEND.value,
            "codePushUpdateStateRunning": UpdateState.RUNNING.value,
            "codePushUpdateStatePending": UpdateState.PENDING.value,
            "codePushUpdateStateLatest": UpdateState.LATEST.value,
        }

    def is_failed_update(self, package_hash: str) -> bool:
        return self.settings_store.is_failed_hash(package_hash)

    def is_first_run(self, package_hash: Optional[str]) -> bool:
        """True when package_hash is the update that was just applied in this run."""
        return (
            self.session.did_update
            and bool(package_hash)
            and package_hash == self.package_store.get_current_package_hash()
        )

    def get_configuration(self) -> Dict[str, Any]:
        deployment = self.config.deployment
        configuration = {
            "appVersion": self.binary.app_version,
            "clientUniqueId": deployment.client_unique_id,
            "deploymentKey": deployment.deployment_key,
            "serverUrl": deployment.server_url,
        }
        # The binary hash may be absent in debug builds
        if deployment.binary_contents_hash:
            configuration["packageHash"] = deployment.binary_contents_hash
        return configuration

    # =========================================================================
    # STATUS REPORTS
    # =========================================================================

    def get_new_status_report(self) -> Optional[StatusReport]:
        """Return the report describing this run's outcome, if one is due."""
        if self.session.need_to_report_rollback:
            self.session.need_to_report_rollback = False
            failed_updates = self.settings_store.get_failed_updates()
            if failed_updates:
                return self.reporter.get_rollback_report(failed_updates[-1])
        elif self.session.did_update:
            current = self.package_store.get_current_package()
            if current is not None:
                return self.reporter.get_update_report(current)
        elif self.session.is_running_binary_version:
            return self.reporter.get_binary_update_report(self.binary.app_version)
        else:
            return self.reporter.get_retry_status_report()
        return None

    def record_status_reported(self, report: StatusReport) -> None:
        self.reporter.record_status_reported(report)

    def save_status_report_for_retry(self, report: StatusReport) -> None:
        self.reporter.save_status_report_for_retry(report)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def clear_updates(self) -> None:
        """Discard all packages and pending/failed records."""
        self.resolver.clear_updates()

    def override_app_version(self, app_version: str) -> None:
        self.binary.override_app_version(app_version)


def _to_package(manifest: Manifest) -> Package:
    if isinstance(manifest, Package):
        return manifest
    return Package.from_dict(manifest)


# =============================================================================
# MODULE-LEVEL INSTANCE
# =============================================================================

# Singleton instance, initialized at process start
_client: Optional[BundlePushClient] = None


def get_client() -> BundlePushClient:
    """Get the process-wide client.

    Raises:
        NotInitializedError: If init_client() has not been called.
    """
    if _client is None:
        raise NotInitializedError("A BundlePush client has not been created yet")
    return _client


def init_client(config: Config, **kwargs) -> BundlePushClient:
    """Create the process-wide client and run the startup lifecycle check.

    Args:
        config: Loaded configuration.
        **kwargs: Passed to BundlePushClient.

    Returns:
        The initialized client.
    """
    global _client
    _client = BundlePushClient(config, **kwargs)
    _client.clear_debug_cache_if_needed()
    _client.run_lifecycle_check()
    return _client


def get_bundle_path(assets_bundle_file_name: Optional[str] = None) -> str:
    """Bundle path the host should load for this process."""
    return get_client().resolve_bundle_path(assets_bundle_file_name).path


def shutdown_client() -> None:
    """Detach scheduled installs and forget the process-wide client."""
    global _client
    if _client is not None and _client._scheduler is not None:
        _client._scheduler.clear()
    _client = None
