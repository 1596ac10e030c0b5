"""Tests for LifecycleController.

The preloader and monitor are mocks; the connectivity signal is real so the
watch task sees the same replay-then-updates stream as in production.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cryptotracker.connectivity import ConnectivitySignal
from cryptotracker.lifecycle import LifecycleController
from cryptotracker.sync.preloader import SyncEvent
from helpers import StepClock, spin


@pytest.fixture
def synchronizer() -> MagicMock:
    sync = MagicMock()
    sync.start = AsyncMock()
    sync.stop = AsyncMock()
    sync.get_status = MagicMock(return_value={"state": "idle"})
    return sync


@pytest.fixture
def monitor() -> MagicMock:
    mon = MagicMock()
    mon.start = AsyncMock()
    mon.stop = AsyncMock()
    mon.get_status = MagicMock(return_value={"running": False})
    return mon


def listener_of(synchronizer: MagicMock):
    """The callback the controller registered on the preloader."""
    return synchronizer.add_listener.call_args.args[0]


class TestTransitions:
    @pytest.mark.asyncio
    async def test_only_changes_trigger_reactions(
        self, synchronizer: MagicMock, monitor: MagicMock
    ) -> None:
        controller = LifecycleController(
            ConnectivitySignal(True), synchronizer, monitor, sleep=StepClock(free=0)
        )

        results = [await controller.handle_connectivity(v) for v in (True, True, False, True)]

        assert results == [False, False, True, True]
        assert controller.transitions == 2
        synchronizer.start.assert_awaited_once_with(1)
        monitor.stop.assert_awaited_once()
        monitor.start.assert_awaited_once()
        await controller.stop()

    @pytest.mark.asyncio
    async def test_reconnect_restarts_from_configured_page(
        self, synchronizer: MagicMock, monitor: MagicMock
    ) -> None:
        controller = LifecycleController(
            ConnectivitySignal(True), synchronizer, monitor, start_page=3,
            sleep=StepClock(free=0),
        )

        await controller.handle_connectivity(False)
        await controller.handle_connectivity(True)

        synchronizer.start.assert_awaited_once_with(3)
        assert not controller.is_offline
        await controller.stop()

    @pytest.mark.asyncio
    async def test_offline_banner_raised_then_cleared(
        self, synchronizer: MagicMock, monitor: MagicMock
    ) -> None:
        clock = StepClock()
        controller = LifecycleController(
            ConnectivitySignal(True), synchronizer, monitor,
            offline_banner_seconds=1.5, sleep=clock,
        )

        await controller.handle_connectivity(False)
        assert controller.show_offline_message
        assert controller.is_offline

        await spin()

        assert clock.delays == [1.5]
        assert not controller.show_offline_message
        assert controller.is_offline

    @pytest.mark.asyncio
    async def test_watch_follows_signal(
        self, synchronizer: MagicMock, monitor: MagicMock
    ) -> None:
        connectivity = ConnectivitySignal(True)
        controller = LifecycleController(
            connectivity, synchronizer, monitor, sleep=StepClock(free=0)
        )

        await controller.start()
        for value in (True, False, True):
            connectivity.publish(value)
        await spin()

        assert controller.transitions == 2
        # Initial start plus the reconnect
        assert synchronizer.start.await_count == 2
        assert monitor.start.await_count == 2
        assert monitor.stop.await_count == 1
        await controller.stop()


class TestStartStop:
    @pytest.mark.asyncio
    async def test_start_offline_skips_monitor(
        self, synchronizer: MagicMock, monitor: MagicMock
    ) -> None:
        controller = LifecycleController(ConnectivitySignal(False), synchronizer, monitor)

        await controller.start()

        synchronizer.start.assert_awaited_once_with(1)
        monitor.start.assert_not_awaited()
        assert controller.is_running
        await controller.stop()

    @pytest.mark.asyncio
    async def test_stop_stops_both_loops(
        self, synchronizer: MagicMock, monitor: MagicMock
    ) -> None:
        controller = LifecycleController(ConnectivitySignal(True), synchronizer, monitor)
        await controller.start()

        await controller.stop()

        monitor.stop.assert_awaited()
        synchronizer.stop.assert_awaited()
        assert not controller.is_running

    @pytest.mark.asyncio
    async def test_restart_sync(self, synchronizer: MagicMock, monitor: MagicMock) -> None:
        controller = LifecycleController(
            ConnectivitySignal(True), synchronizer, monitor, start_page=2
        )

        await controller.restart_sync()

        synchronizer.start.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_status_includes_loop_status(
        self, synchronizer: MagicMock, monitor: MagicMock
    ) -> None:
        controller = LifecycleController(ConnectivitySignal(True), synchronizer, monitor)

        status = controller.get_status()

        assert status["is_loading"] is True
        assert status["preloader"] == {"state": "idle"}
        assert status["monitor"] == {"running": False}


class TestPreloaderEvents:
    def test_loading_clears_on_first_settled_iteration(
        self, synchronizer: MagicMock, monitor: MagicMock
    ) -> None:
        controller = LifecycleController(ConnectivitySignal(True), synchronizer, monitor)
        on_event = listener_of(synchronizer)

        assert controller.is_loading
        on_event(SyncEvent.PAGE_FAILED, 1)

        assert not controller.is_loading
        assert not controller.is_offline

    def test_offline_event_sets_offline(
        self, synchronizer: MagicMock, monitor: MagicMock
    ) -> None:
        controller = LifecycleController(ConnectivitySignal(True), synchronizer, monitor)
        on_event = listener_of(synchronizer)

        on_event(SyncEvent.OFFLINE, 4)
        assert controller.is_offline
        assert not controller.is_loading

        on_event(SyncEvent.PAGE_STORED, 4)
        assert not controller.is_offline
