# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Install-Mode Scheduler

Governs when an installed update is applied to a live process:

  ON_NEXT_RESTART  nothing to schedule; the next cold start loads it
  IMMEDIATE        reload on the next return to the foreground
  ON_NEXT_RESUME   reload on return to the foreground after at least
                   minimum_background_duration seconds in the background
  ON_NEXT_SUSPEND  reload while still backgrounded, once the app has been
                   in the background for minimum_background_duration seconds

Foreground/background transitions come from an AppStateEvents source.
Only the ON_NEXT_SUSPEND timer needs an event loop: either the one passed
to the scheduler or the loop running when the background event arrives.
Without one the update is applied on the next resume instead.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional

from .models import InstallMode
from .settings_store import SettingsStore

logger = logging.getLogger(__name__)


class AppStateListener:
    """Receives foreground/background transitions."""

    def on_background(self) -> None:
        pass

    def on_foreground(self) -> None:
        pass


class AppStateEvents:
    """Process lifecycle signal source fed by the host application."""

    def __init__(self):
        self._listeners: List[AppStateListener] = []

    def add_listener(self, listener: AppStateListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: AppStateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_background(self) -> None:
        for listener in list(self._listeners):
            listener.on_background()

    def notify_foreground(self) -> None:
        for listener in list(self._listeners):
            listener.on_foreground()


class _InstallObserver(AppStateListener):
    """Tracks time spent in the background and triggers the reload."""

    def __init__(self, scheduler: "InstallScheduler", install_mode: InstallMode):
        self.scheduler = scheduler
        self.install_mode = install_mode
        self.last_paused: Optional[float] = None
        self.suspend_timer: Optional[asyncio.TimerHandle] = None

    def on_background(self) -> None:
        self.last_paused = self.scheduler.clock()

        if self.install_mode == InstallMode.ON_NEXT_SUSPEND and self.scheduler.settings_store.is_pending_update():
            self.cancel_timer()
            loop = self.scheduler.get_loop()
            if loop is None:
                logger.warning("No event loop to run the suspend timer, update will be applied on resume")
                return
            self.suspend_timer = loop.call_later(
                self.scheduler.minimum_background_duration, self._on_suspend_timeout
            )
            logger.debug("Armed suspend reload in %ds", self.scheduler.minimum_background_duration)

    def on_foreground(self) -> None:
        self.cancel_timer()
        # The first foreground event can arrive before any background event
        if self.last_paused is None:
            return

        duration_in_background = self.scheduler.clock() - self.last_paused
        if (
            self.install_mode == InstallMode.IMMEDIATE
            or duration_in_background >= self.scheduler.minimum_background_duration
        ):
            logger.info("Loading bundle on resume")
            self.scheduler.trigger_reload()

    def cancel_timer(self) -> None:
        if self.suspend_timer is not None:
            self.suspend_timer.cancel()
            self.suspend_timer = None

    def _on_suspend_timeout(self) -> None:
        self.suspend_timer = None
        logger.info("Loading bundle on suspend")
        self.scheduler.trigger_reload()


class InstallScheduler:
    """
    Schedules the reload that makes an installed update live.

    At most one observer is registered. Scheduling again while an observer
    exists only updates minimum_background_duration; the install mode of
    the registered observer is kept.
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        reload: Callable[[], None],
        events: AppStateEvents,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings_store = settings_store
        self.reload = reload
        self.events = events
        self.loop = loop
        self.clock = clock
        self.minimum_background_duration = 0
        self._observer: Optional[_InstallObserver] = None

    def get_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        """Loop running the suspend timer: the configured one, else the running one."""
        if self.loop is not None:
            return self.loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    @property
    def is_active(self) -> bool:
        return self._observer is not None

    def schedule(self, install_mode: InstallMode, minimum_background_duration: int = 0) -> None:
        """
        Arrange for an installed update to be applied according to install_mode.

        Args:
            install_mode: Activation policy.
            minimum_background_duration: Seconds in the background required
                                         before ON_NEXT_RESUME/ON_NEXT_SUSPEND reload.
        """
        install_mode = InstallMode(install_mode)
        if install_mode == InstallMode.ON_NEXT_RESTART:
            logger.debug("Update will be applied on next restart")
            return

        self.minimum_background_duration = minimum_background_duration
        if self._observer is None:
            self._observer = _InstallObserver(self, install_mode)
            self.events.add_listener(self._observer)
            logger.info(
                "Scheduled install (mode=%s, minimumBackgroundDuration=%ds)",
                install_mode.name, minimum_background_duration,
            )

    def clear(self) -> None:
        """Remove the observer and cancel any armed timer."""
        if self._observer is not None:
            self._observer.cancel_timer()
            self.events.remove_listener(self._observer)
            self._observer = None

    def trigger_reload(self) -> None:
        try:
            self.reload()
        except Exception as e:
            logger.exception("Scheduled reload failed: %s", e)
