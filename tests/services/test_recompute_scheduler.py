"""
Tests for RecomputeScheduler.

Timers are replaced by a manual fake so debounce behaviour is tested
without sleeping.
"""

from dataclasses import replace

import pytest

from recon_config import get_active_config
from recon_config.schema import RecomputeSettings
from recon_engines.pipeline import ReconciliationEngine
from recon_kernel.exceptions import SchedulerClosedError
from recon_services.scheduler import RecomputeScheduler
from tests.conftest import make_expected, make_scan, make_snapshot


class FakeTimer:
    """Stand-in for threading.Timer; fires only when told to."""

    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.started = False
        self.cancelled = False
        self.daemon = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        return self.function(*self.args)


class FakeTimerFactory:

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function, args=()):
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer


class TestRecomputeScheduler:

    def setup_method(self):
        self.snapshots = {
            "dock-1": make_snapshot("dock-1", expected=[make_expected()], scans=[make_scan(quantity=40)]),
        }
        self.results = []
        self.errors = []
        self.timers = FakeTimerFactory()
        self.scheduler = RecomputeScheduler(
            snapshot_provider=lambda key: self.snapshots[key],
            on_result=self.results.append,
            engine=ReconciliationEngine(),
            debounce_seconds=1.5,
            timer_factory=self.timers,
            on_error=lambda key, exc: self.errors.append((key, exc)),
        )

    def test_notify_starts_debounce_timer(self):
        self.scheduler.notify_change("dock-1")
        (timer,) = self.timers.timers
        assert timer.started
        assert timer.daemon
        assert timer.interval == 1.5
        assert self.scheduler.pending() == ("dock-1",)

    def test_fire_delivers_result(self):
        self.scheduler.notify_change("dock-1")
        self.timers.timers[0].fire()
        (result,) = self.results
        assert result.session_key == "dock-1"
        assert result.total_flagged == 1
        assert self.scheduler.pending() == ()

    def test_burst_collapses_to_one_run(self):
        for _ in range(3):
            self.scheduler.notify_change("dock-1")
        first, second, third = self.timers.timers
        assert first.cancelled and second.cancelled
        assert not third.cancelled
        third.fire()
        assert len(self.results) == 1
        assert self.scheduler.generation("dock-1") == 3

    def test_stale_timer_dropped(self):
        self.scheduler.notify_change("dock-1")
        stale = self.timers.timers[0]
        self.scheduler.notify_change("dock-1")
        # a cancelled timer that fires anyway carries an old generation
        assert stale.fire() is None
        assert self.results == []

    def test_change_during_run_discards_result(self):
        def provider(key):
            # a newer change arrives while this run is in flight
            self.scheduler.notify_change(key)
            return self.snapshots[key]

        self.scheduler._provider = provider
        self.scheduler.notify_change("dock-1")
        assert self.timers.timers[0].fire() is None
        assert self.results == []
        assert self.scheduler.pending() == ("dock-1",)

    def test_sessions_independent(self):
        self.snapshots["dock-2"] = make_snapshot("dock-2", expected=[make_expected()])
        self.scheduler.notify_change("dock-1")
        self.scheduler.notify_change("dock-2")
        assert self.scheduler.pending() == ("dock-1", "dock-2")
        self.timers.timers[1].fire()
        assert [r.session_key for r in self.results] == ["dock-2"]

    def test_run_now_bypasses_debounce(self):
        self.scheduler.notify_change("dock-1")
        result = self.scheduler.run_now("dock-1")
        assert result is not None
        assert self.timers.timers[0].cancelled
        assert self.results == [result]

    def test_provider_failure_reported(self):
        self.scheduler.notify_change("unknown")
        assert self.timers.timers[0].fire() is None
        (key, exc), = self.errors
        assert key == "unknown"
        assert isinstance(exc, KeyError)

    def test_shutdown_cancels_and_refuses(self):
        self.scheduler.notify_change("dock-1")
        self.scheduler.shutdown()
        assert self.timers.timers[0].cancelled
        assert self.scheduler.closed
        with pytest.raises(SchedulerClosedError):
            self.scheduler.notify_change("dock-1")
        assert self.timers.timers[0].fire() is None
        assert self.results == []

    def test_result_handler_may_notify_again(self):
        def on_result(result):
            self.results.append(result)
            self.scheduler.notify_change(result.session_key)

        self.scheduler._on_result = on_result
        self.scheduler.notify_change("dock-1")
        self.timers.timers[0].fire()
        assert len(self.results) == 1
        assert self.scheduler.pending() == ("dock-1",)

    def test_shutdown_forgets_generations(self):
        self.scheduler.notify_change("dock-1")
        self.scheduler.shutdown()
        assert self.scheduler.generation("dock-1") == 0

    def test_run_binds_correlation_id(self, captured_logs):
        self.scheduler.notify_change("dock-1")
        self.timers.timers[0].fire()
        (record,) = [r for r in captured_logs() if r["message"] == "recompute_delivered"]
        assert record["correlation_id"] == "dock-1:1"

    def test_result_handler_failure_reported(self):
        def on_result(result):
            raise RuntimeError("publish failed")

        self.scheduler._on_result = on_result
        self.scheduler.notify_change("dock-1")
        assert self.timers.timers[0].fire() is None
        (key, exc), = self.errors
        assert key == "dock-1"
        assert str(exc) == "publish failed"


class TestSchedulerFromConfig:

    def test_uses_configured_debounce_and_owners(self):
        config = replace(get_active_config(), recompute=RecomputeSettings(debounce_seconds=0.25))
        timers = FakeTimerFactory()
        results = []
        snapshot = make_snapshot(
            "dock-1",
            expected=[make_expected(variant="X-606-PINK")],
            scans=[make_scan(variant="X-606-PUR")],
        )
        scheduler = RecomputeScheduler.from_config(
            config,
            snapshot_provider=lambda key: snapshot,
            on_result=results.append,
            timer_factory=timers,
        )
        scheduler.notify_change("dock-1")
        (timer,) = timers.timers
        assert timer.interval == 0.25

        timer.fire()
        (result,) = results
        (mismatch,) = [d for d in result.discrepancies if d.type.value == "variant_mismatch"]
        assert result.routing[mismatch.id].assigned_to == config.shipping.secondary_contact
