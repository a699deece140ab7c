# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Status Reports

Builds the deployment status reports handed to the telemetry transport and
remembers which deployment was last reported, so that each update, rollback
or binary upgrade is reported exactly once across restarts.
"""

import logging
from typing import Optional

from .models import DeploymentStatus, Package, StatusReport
from .settings_store import SettingsStore

logger = logging.getLogger(__name__)


def _split_identifier(identifier: str):
    """Split "deploymentKey:label" into its parts; app versions have no colon."""
    if ":" in identifier:
        deployment_key, label = identifier.split(":", 1)
        return deployment_key, label
    return None, identifier


class StatusReporter:
    """Creates status reports from settings-store bookkeeping."""

    def __init__(self, settings_store: SettingsStore):
        self.settings_store = settings_store

    def get_rollback_report(self, failed_package: Package) -> StatusReport:
        return StatusReport(package=failed_package.to_record(), status=DeploymentStatus.FAILED)

    def get_update_report(self, current_package: Package) -> Optional[StatusReport]:
        """Report for a package that started successfully, unless already reported."""
        identifier = current_package.status_report_identifier
        if identifier is None:
            return None

        previous = self.settings_store.get_last_reported_identifier()
        if previous == identifier:
            return None

        self.settings_store.clear_status_report_for_retry()
        report = StatusReport(package=current_package.to_record(), status=DeploymentStatus.SUCCEEDED)
        self._add_previous(report, previous)
        return report

    def get_binary_update_report(self, app_version: str) -> Optional[StatusReport]:
        """Report for the binary's own bundle, unless this app version was already reported."""
        previous = self.settings_store.get_last_reported_identifier()
        if previous == app_version:
            return None

        self.settings_store.clear_status_report_for_retry()
        report = StatusReport(app_version=app_version)
        self._add_previous(report, previous)
        return report

    def get_retry_status_report(self) -> Optional[StatusReport]:
        return self.settings_store.get_status_report_for_retry_then_clear()

    def record_status_reported(self, report: StatusReport) -> None:
        """Remember that report was delivered."""
        # Rollback reports are not recorded
        if report.status == DeploymentStatus.FAILED.value:
            return

        if report.app_version:
            self.settings_store.save_last_reported_identifier(report.app_version)
        elif report.package:
            identifier = Package.from_dict(report.package).status_report_identifier
            if identifier:
                self.settings_store.save_last_reported_identifier(identifier)

    def save_status_report_for_retry(self, report: StatusReport) -> None:
        self.settings_store.save_status_report_for_retry(report)

    @staticmethod
    def _add_previous(report: StatusReport, previous: Optional[str]) -> None:
        if previous is None:
            return
        deployment_key, label_or_version = _split_identifier(previous)
        report.previous_deployment_key = deployment_key
        report.previous_label_or_app_version = label_or_version
