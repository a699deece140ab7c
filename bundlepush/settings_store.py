# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Settings Store

Durable key/value record of pending-update state, failed-update history and
status-report bookkeeping. It is the single source of truth for crash
detection, so every mutation is flushed to disk before returning.

Each value is stored as a JSON-encoded string inside one JSON object file.
That keeps a damaged value distinguishable from a damaged file:
  - An unreadable file is treated as empty (nothing pending, nothing failed)
  - A malformed pending record raises CorruptSettingsError
  - A malformed failed-updates list is reset to an empty list
"""

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from .errors import CorruptSettingsError
from .models import Package, PendingUpdate, StatusReport

logger = logging.getLogger(__name__)

PENDING_UPDATE_KEY = "pendingUpdate"
FAILED_UPDATES_KEY = "failedUpdates"
RETRY_DEPLOYMENT_REPORT_KEY = "retryDeploymentReport"
LAST_DEPLOYMENT_REPORT_KEY = "lastDeploymentReport"


class SettingsStore:
    """
    Persistent settings backed by a single JSON file.

    Thread-safe; writes go to a temporary file that is fsynced and then
    renamed over the original.
    """

    def __init__(self, storage_path: Path):
        """
        Initialize the settings store.

        Args:
            storage_path: Path to the settings JSON file
        """
        self.storage_path = Path(storage_path)
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._values: Dict[str, str] = {}
        self._load()

    # =========================================================================
    # PENDING UPDATE
    # =========================================================================

    def get_pending_update(self) -> Optional[PendingUpdate]:
        """
        Return the pending-update record, or None if there is none.

        Raises:
            CorruptSettingsError: If the stored record is malformed.
        """
        with self._lock:
            raw = self._values.get(PENDING_UPDATE_KEY)
        if raw is None:
            return None

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise CorruptSettingsError(f"Unable to parse pending update record: {raw!r}") from e

        if not isinstance(data, dict) or not data.get("hash"):
            raise CorruptSettingsError(f"Pending update record has no hash: {raw!r}")
        is_loading = data.get("isLoading", False)
        if not isinstance(is_loading, bool):
            raise CorruptSettingsError(f"Pending update record has invalid isLoading: {raw!r}")

        return PendingUpdate(hash=data["hash"], is_loading=is_loading)

    def save_pending_update(self, package_hash: str, is_loading: bool) -> None:
        """Record package_hash as pending with the given loading flag."""
        record = PendingUpdate(hash=package_hash, is_loading=is_loading)
        self._put(PENDING_UPDATE_KEY, json.dumps(record.to_dict()))
        logger.debug("Saved pending update: %s (isLoading=%s)", package_hash, is_loading)

    def remove_pending_update(self) -> None:
        """Delete the pending-update record (no-op when absent)."""
        self._remove(PENDING_UPDATE_KEY)

    def is_pending_update(self, package_hash: Optional[str] = None) -> bool:
        """
        Check whether an installed update is waiting to be loaded.

        A record whose isLoading flag is set describes an update that is
        already running, so it does not count as pending.

        Args:
            package_hash: If given, the pending record must be for this hash.
        """
        pending = self.get_pending_update()
        return (
            pending is not None
            and not pending.is_loading
            and (package_hash is None or pending.hash == package_hash)
        )

    # =========================================================================
    # FAILED UPDATES
    # =========================================================================

    def get_failed_updates(self) -> List[Package]:
        """Return the packages that were rolled back or rejected, oldest first."""
        with self._lock:
            raw = self._values.get(FAILED_UPDATES_KEY)
        if raw is None:
            return []

        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError("failed updates is not a list")
            return [Package.from_dict(item) for item in data]
        except Exception as e:
            # Unrecognized data format, replace it with an empty list
            logger.warning("Discarding unreadable failed updates list: %s", e)
            self._put(FAILED_UPDATES_KEY, json.dumps([]))
            return []

    def save_failed_update(self, package: Package) -> None:
        """Append a package snapshot to the failed-updates list."""
        failed = [p.to_record() for p in self.get_failed_updates()]
        failed.append(package.to_record())
        self._put(FAILED_UPDATES_KEY, json.dumps(failed))
        logger.info("Recorded failed update: %s (%s)", package.package_hash, package.label)

    def remove_failed_updates(self) -> None:
        """Forget every failed update."""
        self._remove(FAILED_UPDATES_KEY)

    def is_failed_hash(self, package_hash: Optional[str]) -> bool:
        """Check whether package_hash previously failed."""
        if not package_hash:
            return False
        return any(p.package_hash == package_hash for p in self.get_failed_updates())

    # =========================================================================
    # STATUS REPORTS
    # =========================================================================

    def save_status_report_for_retry(self, report: StatusReport) -> None:
        """Keep a report the transport failed to deliver for the next run."""
        self._put(RETRY_DEPLOYMENT_REPORT_KEY, json.dumps(report.to_dict()))

    def get_status_report_for_retry_then_clear(self) -> Optional[StatusReport]:
        """Return the saved retry report and remove it."""
        with self._lock:
            raw = self._values.pop(RETRY_DEPLOYMENT_REPORT_KEY, None)
            if raw is not None:
                self._save()
        if raw is None:
            return None

        try:
            return StatusReport.model_validate(json.loads(raw))
        except Exception as e:
            logger.warning("Discarding unreadable retry status report: %s", e)
            return None

    def clear_status_report_for_retry(self) -> None:
        self._remove(RETRY_DEPLOYMENT_REPORT_KEY)

    def get_last_reported_identifier(self) -> Optional[str]:
        """Identifier (deploymentKey:label or app version) of the last delivered report."""
        with self._lock:
            return self._values.get(LAST_DEPLOYMENT_REPORT_KEY)

    def save_last_reported_identifier(self, identifier: str) -> None:
        self._put(LAST_DEPLOYMENT_REPORT_KEY, identifier)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _put(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value
            self._save()

    def _remove(self, key: str) -> None:
        with self._lock:
            if self._values.pop(key, None) is not None:
                self._save()

    def _load(self) -> None:
        """Load settings from the JSON file."""
        if not self.storage_path.exists():
            logger.info("Settings file not found, starting fresh: %s", self.storage_path)
            return

        try:
            with open(self.storage_path, "r") as f:
                data: Any = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("settings file does not hold an object")
            self._values = {k: v for k, v in data.items() if isinstance(v, str)}
            logger.debug("Loaded %d settings from %s", len(self._values), self.storage_path)
        except Exception as e:
            logger.error("Failed to load settings, treating as empty: %s", e)
            self._values = {}

    def _save(self) -> None:
        """Write settings atomically. Caller holds the lock."""
        temp_path = self.storage_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(self._values, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, self.storage_path)
