# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 The BundlePush Authors

"""
BundlePush Install Scheduler Tests

Run with: pytest tests/test_install_scheduler.py -v
"""

import asyncio

import pytest


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reloads():
    return []


@pytest.fixture
def scheduler(settings_store, loop, clock, reloads):
    from bundlepush.install_scheduler import AppStateEvents, InstallScheduler

    return InstallScheduler(
        settings_store,
        lambda: reloads.append(clock.now),
        AppStateEvents(),
        loop=loop,
        clock=clock,
    )


def test_on_next_restart_registers_nothing(scheduler):
    from bundlepush.models import InstallMode

    scheduler.schedule(InstallMode.ON_NEXT_RESTART)

    assert scheduler.is_active is False


def test_immediate_reloads_on_foreground(scheduler, clock, reloads):
    """Test IMMEDIATE reloads on return to the foreground regardless of duration."""
    from bundlepush.models import InstallMode

    scheduler.schedule(InstallMode.IMMEDIATE, minimum_background_duration=300)
    scheduler.events.notify_background()
    clock.now = 1
    scheduler.events.notify_foreground()

    assert reloads == [1]


def test_foreground_without_background_is_ignored(scheduler, reloads):
    from bundlepush.models import InstallMode

    scheduler.schedule(InstallMode.IMMEDIATE)
    scheduler.events.notify_foreground()

    assert reloads == []


def test_on_next_resume_waits_for_minimum_duration(scheduler, clock, reloads):
    """Test ON_NEXT_RESUME only reloads after enough time in the background."""
    from bundlepush.models import InstallMode

    scheduler.schedule(InstallMode.ON_NEXT_RESUME, minimum_background_duration=10)

    scheduler.events.notify_background()
    clock.now = 5
    scheduler.events.notify_foreground()
    assert reloads == []

    scheduler.events.notify_background()
    clock.now = 15
    scheduler.events.notify_foreground()
    assert reloads == [15]


def test_on_next_suspend_reloads_while_backgrounded(scheduler, settings_store, loop, reloads):
    """Test the suspend timer reloads without waiting for the foreground."""
    from bundlepush.models import InstallMode

    settings_store.save_pending_update("aaa", is_loading=False)
    scheduler.schedule(InstallMode.ON_NEXT_SUSPEND, minimum_background_duration=0)

    scheduler.events.notify_background()
    loop.run_until_complete(asyncio.sleep(0.01))

    assert len(reloads) == 1


def test_on_next_suspend_cancelled_by_foreground(scheduler, settings_store, loop, clock, reloads):
    """Test returning to the foreground cancels the armed suspend timer."""
    from bundlepush.models import InstallMode

    settings_store.save_pending_update("aaa", is_loading=False)
    scheduler.schedule(InstallMode.ON_NEXT_SUSPEND, minimum_background_duration=60)

    scheduler.events.notify_background()
    observer = scheduler._observer
    timer = observer.suspend_timer
    assert timer is not None

    clock.now = 1
    scheduler.events.notify_foreground()
    loop.run_until_complete(asyncio.sleep(0.01))

    assert timer.cancelled()
    assert observer.suspend_timer is None
    assert reloads == []


def test_on_next_suspend_needs_pending_update(scheduler):
    from bundlepush.models import InstallMode

    scheduler.schedule(InstallMode.ON_NEXT_SUSPEND, minimum_background_duration=0)
    scheduler.events.notify_background()

    assert scheduler._observer.suspend_timer is None


def test_rescheduling_does_not_duplicate_observer(scheduler, clock, reloads):
    """Test scheduling twice keeps one observer and updates the duration."""
    from bundlepush.models import InstallMode

    scheduler.schedule(InstallMode.ON_NEXT_RESUME, minimum_background_duration=10)
    scheduler.schedule(InstallMode.ON_NEXT_RESUME, minimum_background_duration=30)

    assert len(scheduler.events._listeners) == 1
    assert scheduler.minimum_background_duration == 30

    scheduler.events.notify_background()
    clock.now = 20
    scheduler.events.notify_foreground()

    assert reloads == []


def test_clear_detaches_observer(scheduler, clock, reloads):
    from bundlepush.models import InstallMode

    scheduler.schedule(InstallMode.IMMEDIATE)
    scheduler.clear()
    scheduler.events.notify_background()
    scheduler.events.notify_foreground()

    assert scheduler.is_active is False
    assert reloads == []


def test_reload_failure_is_logged(settings_store, loop, caplog):
    """Test a failing reload does not propagate into the event source."""
    from bundlepush.install_scheduler import AppStateEvents, InstallScheduler
    from bundlepush.models import InstallMode

    def reload():
        raise RuntimeError("engine gone")

    scheduler = InstallScheduler(settings_store, reload, AppStateEvents(), loop=loop)
    scheduler.schedule(InstallMode.IMMEDIATE)
    scheduler.events.notify_background()
    scheduler.events.notify_foreground()

    assert "Scheduled reload failed" in caplog.text


def test_scheduling_without_event_loop(settings_store, clock, reloads):
    """Test resume scheduling works from synchronous code with no event loop."""
    from bundlepush.install_scheduler import AppStateEvents, InstallScheduler
    from bundlepush.models import InstallMode

    scheduler = InstallScheduler(settings_store, lambda: reloads.append(clock.now), AppStateEvents(), clock=clock)
    scheduler.schedule(InstallMode.IMMEDIATE)

    scheduler.events.notify_background()
    clock.now = 1
    scheduler.events.notify_foreground()

    assert reloads == [1]


def test_suspend_without_event_loop_applies_on_resume(settings_store, clock, reloads, caplog):
    """Test ON_NEXT_SUSPEND degrades to a resume reload when no loop can run the timer."""
    from bundlepush.install_scheduler import AppStateEvents, InstallScheduler
    from bundlepush.models import InstallMode

    settings_store.save_pending_update("aaa", is_loading=False)
    scheduler = InstallScheduler(settings_store, lambda: reloads.append(clock.now), AppStateEvents(), clock=clock)
    scheduler.schedule(InstallMode.ON_NEXT_SUSPEND, minimum_background_duration=10)

    scheduler.events.notify_background()
    assert scheduler._observer.suspend_timer is None
    assert "No event loop" in caplog.text

    clock.now = 12
    scheduler.events.notify_foreground()

    assert reloads == [12]


def test_suspend_timer_uses_running_loop(settings_store):
    """Test the suspend timer picks up the loop running the background event."""
    from bundlepush.install_scheduler import AppStateEvents, InstallScheduler
    from bundlepush.models import InstallMode

    settings_store.save_pending_update("aaa", is_loading=False)

    async def run():
        reloads = []
        scheduler = InstallScheduler(settings_store, lambda: reloads.append(True), AppStateEvents())
        scheduler.schedule(InstallMode.ON_NEXT_SUSPEND, minimum_background_duration=0)
        scheduler.events.notify_background()
        await asyncio.sleep(0.01)
        return reloads

    assert asyncio.run(run()) == [True]
