# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Package Store

Content-addressed on-disk representation of downloaded update packages.

Layout under the private root directory:
  status.json            {"currentPackage": <hash>, "previousPackage": <hash>}
  packages/<hash>/       one folder per package (app.json + bundle files)
  staging/<hash>/        downloads in progress

Promotion rules:
  - A package folder is built in staging/ and renamed into packages/ in one step
  - The current/previous pointers live in status.json, which is replaced
    atomically; folders are only deleted after the pointer stops naming them
  - Readers take the same lock, so they never see a half-promoted package
"""

import json
import logging
import os
import shutil
import uuid
import zipfile
from pathlib import Path
from threading import RLock
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Optional, Union

from .errors import DownloadFailure, InvalidPackageError, PackageStoreError
from .models import DownloadProgress, Package

logger = logging.getLogger(__name__)

STATUS_FILE_NAME = "status.json"
PACKAGE_FILE_NAME = "app.json"
CURRENT_PACKAGE_KEY = "currentPackage"
PREVIOUS_PACKAGE_KEY = "previousPackage"
DOWNLOAD_FILE_NAME = "download.tmp"
DOWNLOAD_CHUNK_SIZE = 65536  # 64KB chunks

Payload = Union[BinaryIO, Iterable[bytes]]


class PackageStore:
    """
    Stores update packages and tracks the current and previous package.

    Usage:
        store = PackageStore(Path("/data/app/bundlepush"))
        package = store.download_package(manifest, stream, "index.android.bundle")
        store.install_package(package, is_previous_pending_already_loading=False)
    """

    def __init__(self, root_dir: Path):
        self.root_dir = Path(root_dir)
        self.packages_dir = self.root_dir / "packages"
        self.staging_dir = self.root_dir / "staging"
        self.status_file = self.root_dir / STATUS_FILE_NAME
        self._lock = RLock()

        self.packages_dir.mkdir(parents=True, exist_ok=True)
        self.staging_dir.mkdir(parents=True, exist_ok=True)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get_current_package_hash(self) -> Optional[str]:
        with self._lock:
            return self._read_status().get(CURRENT_PACKAGE_KEY)

    def get_previous_package_hash(self) -> Optional[str]:
        with self._lock:
            return self._read_status().get(PREVIOUS_PACKAGE_KEY)

    def get_current_package(self) -> Optional[Package]:
        """Return the current package, or None when the binary bundle is current."""
        with self._lock:
            return self.get_package(self.get_current_package_hash())

    def get_previous_package(self) -> Optional[Package]:
        """Return the package a rollback would restore, or None."""
        with self._lock:
            return self.get_package(self.get_previous_package_hash())

    def get_package(self, package_hash: Optional[str]) -> Optional[Package]:
        """Return the stored package with this hash, or None if absent or unreadable."""
        if not package_hash:
            return None

        package_file = self.get_package_folder_path(package_hash) / PACKAGE_FILE_NAME
        with self._lock:
            if not package_file.exists():
                return None
            try:
                with open(package_file, "r") as f:
                    return Package.from_dict(json.load(f))
            except Exception as e:
                logger.warning("Unable to read package metadata %s: %s", package_file, e)
                return None

    # =========================================================================
    # PATHS
    # =========================================================================

    def get_package_folder_path(self, package_hash: str) -> Path:
        """Folder owned by the package with this hash (may not exist)."""
        return self.packages_dir / _safe_hash(package_hash)

    def get_current_package_folder_path(self) -> Optional[Path]:
        current_hash = self.get_current_package_hash()
        if not current_hash:
            return None
        return self.get_package_folder_path(current_hash)

    def get_current_package_bundle_path(self, assets_bundle_file_name: str) -> Optional[Path]:
        """
        Path of the current package's bundle file.

        The path is derived from metadata only; callers check that it exists.
        """
        with self._lock:
            package_folder = self.get_current_package_folder_path()
            if package_folder is None:
                return None
            package = self.get_package(self.get_current_package_hash())
            if package is None:
                return None
            bundle_path = package_folder / (package.bundle_path or assets_bundle_file_name)
            if not _is_within(bundle_path, package_folder):
                logger.warning("Bundle path of package %s leaves its folder: %s", package.package_hash, bundle_path)
                return None
            return bundle_path

    # =========================================================================
    # DOWNLOAD
    # =========================================================================

    def download_package(
        self,
        package: Package,
        payload: Payload,
        assets_bundle_file_name: str,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    ) -> Package:
        """Persist a package delivered by the downloader.

        The payload is streamed into a staging folder. Zip archives are
        extracted; anything else is taken to be the bundle itself. The
        finished folder is then renamed into place.

        Args:
            package: Manifest describing the package.
            payload: File-like object or iterable of byte chunks.
            assets_bundle_file_name: Bundle file name to look for.
            progress_callback: Receives DownloadProgress events; the last
                               one is always the completed event.

        Returns:
            The stored package metadata.

        Raises:
            InvalidPackageError: If the manifest has no hash or the payload
                                 holds no bundle.
            DownloadFailure: If reading the payload fails.
        """
        if not package.package_hash:
            raise InvalidPackageError("Update package has no hash")

        package_hash = _safe_hash(package.package_hash)
        if package.bundle_path:
            _safe_relative_path(package.bundle_path)
        staging = self.staging_dir / package_hash
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)

        try:
            download_path = staging / DOWNLOAD_FILE_NAME
            self._stream_payload(payload, download_path, package.package_size or 0, progress_callback)

            metadata = package.to_record()
            if zipfile.is_zipfile(download_path):
                _extract_archive(download_path, staging)
                download_path.unlink()
                bundle_path = _find_bundle(staging, package.bundle_path, assets_bundle_file_name)
                if bundle_path is None and not package.is_major_update:
                    raise InvalidPackageError(
                        f"Package {package.package_hash} contains no {assets_bundle_file_name}"
                    )
                if bundle_path is not None:
                    metadata["bundlePath"] = bundle_path
            else:
                bundle_path = package.bundle_path or assets_bundle_file_name
                target = staging / bundle_path
                target.parent.mkdir(parents=True, exist_ok=True)
                os.replace(download_path, target)
                metadata["bundlePath"] = bundle_path

            with open(staging / PACKAGE_FILE_NAME, "w") as f:
                json.dump(metadata, f, indent=2)

            self._promote(staging, package_hash)
        except BaseException:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
            raise

        logger.info("Stored package %s (%s)", package.package_hash, package.label)
        return self.get_package(package.package_hash)

    def _stream_payload(
        self,
        payload: Payload,
        destination: Path,
        expected_size: int,
        progress_callback: Optional[Callable[[DownloadProgress], None]],
    ) -> None:
        """Copy the payload to destination, reporting progress."""
        received = 0
        try:
            with open(destination, "wb") as f:
                for chunk in _iter_chunks(payload):
                    f.write(chunk)
                    received += len(chunk)
                    if progress_callback and received < expected_size:
                        progress_callback(DownloadProgress(expected_size, received))
                f.flush()
                os.fsync(f.fileno())
        except (OSError, ValueError) as e:
            raise DownloadFailure(f"Failed to receive package payload: {e}") from e

        if progress_callback:
            progress_callback(DownloadProgress(received, received))

    def _promote(self, staging: Path, package_hash: str) -> None:
        """Rename a finished staging folder into packages/."""
        destination = self.packages_dir / package_hash
        with self._lock:
            if destination.exists():
                # Re-download of a stored hash: move the old copy aside first
                retired = self.staging_dir / f"{package_hash}.old-{uuid.uuid4().hex[:8]}"
                os.replace(destination, retired)
                os.replace(staging, destination)
                shutil.rmtree(retired, ignore_errors=True)
            else:
                os.replace(staging, destination)

    # =========================================================================
    # POINTER TRANSITIONS
    # =========================================================================

    def install_package(self, package: Package, is_previous_pending_already_loading: bool) -> None:
        """Make a downloaded package the current package.

        Args:
            package: The package to promote. Its folder must already exist.
            is_previous_pending_already_loading: True when the current
                package is itself an unconfirmed pending update. It is then
                discarded instead of becoming the rollback target.

        Raises:
            InvalidPackageError: If the package has no hash or was never stored.
        """
        if not package.package_hash:
            raise InvalidPackageError("Update package to be installed has no hash")

        package_hash = package.package_hash
        with self._lock:
            if not self.get_package_folder_path(package_hash).exists():
                raise InvalidPackageError(f"Package {package_hash} has not been downloaded")

            status = self._read_status()
            current_hash = status.get(CURRENT_PACKAGE_KEY)
            previous_hash = status.get(PREVIOUS_PACKAGE_KEY)
            if package_hash == current_hash:
                logger.debug("Package %s is already current", package_hash)
                return

            obsolete: List[str] = []
            if package.is_major_update:
                # Rolling back across a binary replacement is not supported
                obsolete.extend(h for h in (current_hash, previous_hash) if h)
                previous_hash = None
            elif is_previous_pending_already_loading:
                if current_hash:
                    obsolete.append(current_hash)
            else:
                if previous_hash:
                    obsolete.append(previous_hash)
                previous_hash = current_hash

            self._write_status(package_hash, previous_hash)
            self._delete_folders(h for h in obsolete if h not in (package_hash, previous_hash))

        logger.info(
            "Installed package %s (previous=%s, major=%s)",
            package_hash, previous_hash, package.is_major_update,
        )

    def rollback_package(self) -> None:
        """Make the previous package current again and forget the failed one.

        Raises:
            PackageStoreError: If there is no previous package to return to.
        """
        with self._lock:
            status = self._read_status()
            current_hash = status.get(CURRENT_PACKAGE_KEY)
            previous_hash = status.get(PREVIOUS_PACKAGE_KEY)
            if not previous_hash or not self.get_package_folder_path(previous_hash).exists():
                raise PackageStoreError("No previous package to roll back to")

            self._write_status(previous_hash, None)
            if current_hash and current_hash != previous_hash:
                self._delete_folders([current_hash])

        logger.info("Rolled back from %s to %s", current_hash, previous_hash)

    def discard_current_package(self) -> None:
        """Stop serving the current package; the binary bundle becomes current."""
        with self._lock:
            status = self._read_status()
            current_hash = status.get(CURRENT_PACKAGE_KEY)
            previous_hash = status.get(PREVIOUS_PACKAGE_KEY)
            if not current_hash:
                return
            self._write_status(None, previous_hash)
            self._delete_folders([current_hash])

        logger.info("Discarded current package %s", current_hash)

    def clear_updates(self) -> None:
        """Delete every stored package and the pointer record."""
        with self._lock:
            if self.status_file.exists():
                self.status_file.unlink()
            shutil.rmtree(self.packages_dir, ignore_errors=True)
            shutil.rmtree(self.staging_dir, ignore_errors=True)
            self.packages_dir.mkdir(parents=True, exist_ok=True)
            self.staging_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Cleared all stored updates under %s", self.root_dir)

    # =========================================================================
    # STATUS PERSISTENCE
    # =========================================================================

    def _read_status(self) -> Dict[str, Any]:
        if not self.status_file.exists():
            return {}
        try:
            with open(self.status_file, "r") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("status record is not an object")
            return data
        except Exception as e:
            logger.error("Unable to read package status %s, treating as empty: %s", self.status_file, e)
            return {}

    def _write_status(self, current_hash: Optional[str], previous_hash: Optional[str]) -> None:
        status = {}
        if current_hash:
            status[CURRENT_PACKAGE_KEY] = current_hash
        if previous_hash:
            status[PREVIOUS_PACKAGE_KEY] = previous_hash

        temp_path = self.status_file.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(status, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, self.status_file)

    def _delete_folders(self, hashes: Iterable[str]) -> None:
        for package_hash in hashes:
            folder = self.get_package_folder_path(package_hash)
            if folder.exists():
                shutil.rmtree(folder, ignore_errors=True)
                logger.debug("Deleted package folder %s", folder)


# =============================================================================
# HELPERS
# =============================================================================

def _safe_hash(package_hash: str) -> str:
    """Reject hashes that cannot be used as a single folder name."""
    if (
        not package_hash
        or package_hash in (".", "..")
        or "/" in package_hash
        or "\\" in package_hash
        or "\x00" in package_hash
    ):
        raise InvalidPackageError(f"Invalid package hash: {package_hash!r}")
    return package_hash


def _safe_relative_path(path: str) -> str:
    """Reject paths that could leave the package folder."""
    member_path = Path(path)
    if member_path.is_absolute() or ".." in member_path.parts or "\x00" in path:
        raise InvalidPackageError(f"Unsafe path in package: {path!r}")
    return path


def _is_within(path: Path, folder: Path) -> bool:
    try:
        path.resolve().relative_to(folder.resolve())
    except ValueError:
        return False
    return True


def _iter_chunks(payload: Payload) -> Iterable[bytes]:
    if hasattr(payload, "read"):
        while True:
            chunk = payload.read(DOWNLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    else:
        yield from payload


def _extract_archive(archive_path: Path, destination: Path) -> None:
    with zipfile.ZipFile(archive_path) as archive:
        # Security: prevent path traversal attacks
        for name in archive.namelist():
            _safe_relative_path(name)
        archive.extractall(destination)


def _find_bundle(folder: Path, declared: Optional[str], assets_bundle_file_name: str) -> Optional[str]:
    """Return the bundle path relative to folder, or None if there is none."""
    if declared and (folder / _safe_relative_path(declared)).is_file():
        return declared
    for candidate in sorted(folder.rglob(assets_bundle_file_name)):
        if candidate.is_file():
            return candidate.relative_to(folder).as_posix()
    return None
