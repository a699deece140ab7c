# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Session State

Flags describing what happened during the current process start. One
Session is created by the process entry point and shared by the boot
resolver, the lifecycle machine and the client facade.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Session:
    """Per-process update state."""
    is_running_binary_version: bool = False
    did_update: bool = False
    need_to_report_rollback: bool = False
    assets_bundle_file_name: Optional[str] = None
