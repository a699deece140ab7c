# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Errors

Exception hierarchy shared by the stores, the resolver and the lifecycle
machine. All of them derive from BundlePushError so the bridge can map
them to a single error response shape.
"""


class BundlePushError(Exception):
    """Base class for all BundlePush errors."""
    pass


class InvalidPackageError(BundlePushError):
    """Raised when a package manifest lacks its identity (hash) or its payload is unusable."""
    pass


class CorruptSettingsError(BundlePushError):
    """Raised when a persisted record is structurally malformed."""
    pass


class MissingBinaryMetadataError(BundlePushError):
    """Raised when the binary build timestamp or app version is unavailable."""
    pass


class DownloadFailure(BundlePushError):
    """Raised when the payload stream supplied by the downloader fails."""
    pass


class PackageStoreError(BundlePushError):
    """Raised on a package store operation the caller should never have made."""
    pass


class ActivationError(BundlePushError):
    """Raised by a BundleActivator that could not swap the running bundle."""
    pass


class NotInitializedError(BundlePushError):
    """Raised when the client is used before it has been created."""
    pass
