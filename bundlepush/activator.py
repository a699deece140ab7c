# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Bundle Activation

The core decides which bundle to run and when; swapping the bundle inside
a running script engine is host-specific and lives behind BundleActivator.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import ActivationError

logger = logging.getLogger(__name__)


class BundleActivator(ABC):
    """Capability to make a running engine load a different bundle."""

    @abstractmethod
    def activate(self, path: str) -> None:
        """
        Load the bundle at path into the running engine and restart it.

        Raises:
            ActivationError: If the bundle could not be swapped in.
        """


class CallbackActivator(BundleActivator):
    """Activator backed by a host-provided callable."""

    def __init__(self, callback: Callable[[str], None]):
        self.callback = callback

    def activate(self, path: str) -> None:
        try:
            self.callback(path)
        except ActivationError:
            raise
        except Exception as e:
            raise ActivationError(f"Unable to activate bundle {path}: {e}") from e


class FallbackActivator(BundleActivator):
    """
    Tries a primary activator and falls back to a secondary one.

    Hosts typically pair an in-place engine reload with a full restart of
    the hosting screen or process.
    """

    def __init__(self, primary: BundleActivator, fallback: Optional[BundleActivator] = None):
        self.primary = primary
        self.fallback = fallback

    def activate(self, path: str) -> None:
        try:
            self.primary.activate(path)
        except ActivationError as e:
            if self.fallback is None:
                raise
            logger.warning("Bundle activation failed (%s), using fallback activator", e)
            self.fallback.activate(path)


BinaryInstaller = Callable[[Path], None]
"""Host callable that hands a replacement binary to the OS installer."""

ActivatorLike = Union[BundleActivator, Callable[[str], None]]


def as_activator(activator: Optional[ActivatorLike]) -> Optional[BundleActivator]:
    """Wrap a plain callable in a CallbackActivator."""
    if activator is None or isinstance(activator, BundleActivator):
        return activator
    return CallbackActivator(activator)
