# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush Download Progress

Coalesces download progress events so that observers see at most one
intermediate event per tick of the event loop, however fast the download
runs. The completed event bypasses coalescing: it is delivered immediately
on the calling thread and is never dropped.
"""

import asyncio
import logging
from threading import Lock
from typing import Callable, List, Optional

from .models import DownloadProgress

logger = logging.getLogger(__name__)


class ProgressCoalescer:
    """
    Rate-limits DownloadProgress events delivered to listeners.

    The download usually runs on a worker thread (asyncio.to_thread);
    intermediate events are handed to the event loop with
    call_soon_threadsafe, so the loop tick is the coalescing window.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        tick_seconds: float = 0.0,
    ):
        """
        Args:
            loop: Event loop that delivers intermediate events.
            tick_seconds: Extra delay before an intermediate event is
                          flushed (0 = next loop iteration).
        """
        self._loop = loop
        self._tick_seconds = tick_seconds
        self._listeners: List[Callable[[DownloadProgress], None]] = []
        self._lock = Lock()
        # Serializes delivery so nothing reaches listeners after the completed event
        self._dispatch_lock = Lock()
        self._latest: Optional[DownloadProgress] = None
        self._scheduled = False
        self._completed = False

    def on_progress(self, callback: Callable[[DownloadProgress], None]) -> None:
        """Register a progress listener."""
        self._listeners.append(callback)

    def __call__(self, progress: DownloadProgress) -> None:
        """Receive a raw progress event from the download."""
        with self._lock:
            if self._completed:
                return
            self._latest = progress
            if progress.is_completed:
                self._completed = True
            elif self._scheduled:
                return
            else:
                self._scheduled = True

        if progress.is_completed:
            with self._dispatch_lock:
                self._dispatch(progress)
        else:
            self._loop.call_soon_threadsafe(self._schedule_flush)

    def _schedule_flush(self) -> None:
        if self._tick_seconds > 0:
            self._loop.call_later(self._tick_seconds, self._flush)
        else:
            self._flush()

    def _flush(self) -> None:
        with self._dispatch_lock:
            with self._lock:
                self._scheduled = False
                if self._completed or self._latest is None:
                    return
                progress = self._latest
            self._dispatch(progress)

    def _dispatch(self, progress: DownloadProgress) -> None:
        for callback in self._listeners:
            try:
                callback(progress)
            except Exception as e:
                logger.warning("Progress callback error: %s", e)
