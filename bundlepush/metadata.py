# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Update Metadata Selection

Pure selection of the package a metadata query should return, independent
of storage and of the bridge.
"""

from typing import Optional

from .models import Package, UpdateState


def select_update_metadata(
    current: Optional[Package],
    previous: Optional[Package],
    current_is_pending: bool,
    update_state: UpdateState,
    is_running_binary_version: bool = False,
) -> Optional[Package]:
    """
    Pick the package answering a RUNNING, PENDING or LATEST query.

    Rules:
    - No current package: nothing to report
    - PENDING requested but the current package is not pending: None
    - RUNNING requested while the current package is pending: the previous
      package (the one actually running), or None
    - Otherwise the current package, annotated with isPending and, when the
      binary bundle is what actually runs, _isDebugOnly

    Args:
        current: Current package, if any.
        previous: Previous package, if any.
        current_is_pending: Whether the current package is installed but not loaded.
        update_state: Which package the caller wants.
        is_running_binary_version: Whether the binary bundle is being served.

    Returns:
        The selected package or None.
    """
    if current is None:
        return None

    update_state = UpdateState(update_state)
    if update_state == UpdateState.PENDING and not current_is_pending:
        return None

    if update_state == UpdateState.RUNNING and current_is_pending:
        return previous

    annotated = current.model_copy(update={"is_pending": current_is_pending})
    if is_running_binary_version:
        # A stale package may stay on disk in debug builds without running
        annotated.is_debug_only = True
    return annotated
