"""
recon_services.scheduler -- Debounced recompute on confirmation changes.

Responsibility:
    When a session's scans or receipts change, re-run reconciliation for
    that session after a quiet period, using a freshly fetched snapshot.
    Bursts of changes collapse into one run; a run that finishes after a
    newer change was notified is discarded instead of delivered.

Architecture position:
    Services -- owns timers and threads; the engine it calls stays pure.
    The host supplies ``snapshot_provider`` (fetch) and ``on_result``
    (publish), so the scheduler never performs I/O itself.

Invariants enforced:
    - At most one pending timer per session key.
    - Generation check: only the result of the latest notified change for
      a session is delivered; the check and the delivery happen under one
      lock.
    - After ``shutdown()`` no new run starts and ``notify_change`` raises
      ``SchedulerClosedError``.

Failure modes:
    - A provider, engine or ``on_result`` failure is logged and handed to
      ``on_error`` (when given); the scheduler keeps serving other sessions.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from recon_config.schema import ReconciliationConfig
from recon_engines.pipeline import ReconciliationEngine
from recon_engines.routing import RoutingCategory
from recon_engines.types import ReconciliationResult, SessionSnapshot
from recon_kernel.exceptions import SchedulerClosedError
from recon_kernel.logging_config import LogContext, get_logger
from recon_services.session_runner import build_engine

logger = get_logger("services.scheduler")

TimerFactory = Callable[..., Any]


class RecomputeScheduler:
    """Per-session debounced reconciliation trigger."""

    def __init__(
        self,
        snapshot_provider: Callable[[str], SessionSnapshot],
        on_result: Callable[[ReconciliationResult], None],
        engine: ReconciliationEngine | None = None,
        category: RoutingCategory | None = None,
        debounce_seconds: float = 2.0,
        timer_factory: TimerFactory = threading.Timer,
        on_error: Callable[[str, Exception], None] | None = None,
    ) -> None:
        self._provider = snapshot_provider
        self._on_result = on_result
        self._engine = engine or ReconciliationEngine()
        self._category = category
        self._debounce = debounce_seconds
        self._timer_factory = timer_factory
        self._on_error = on_error

        self._lock = threading.RLock()
        self._timers: dict[str, Any] = {}
        self._generations: dict[str, int] = {}
        self._closed = False

    @classmethod
    def from_config(
        cls,
        config: ReconciliationConfig,
        snapshot_provider: Callable[[str], SessionSnapshot],
        on_result: Callable[[ReconciliationResult], None],
        **kwargs: Any,
    ) -> RecomputeScheduler:
        """Scheduler using the configured engine, shipping owners and debounce."""
        return cls(
            snapshot_provider,
            on_result,
            engine=build_engine(config),
            category=config.shipping,
            debounce_seconds=config.recompute.debounce_seconds,
            **kwargs,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> tuple[str, ...]:
        """Session keys with a run waiting on its debounce timer."""
        with self._lock:
            return tuple(sorted(self._timers))

    def generation(self, session_key: str) -> int:
        with self._lock:
            return self._generations.get(session_key, 0)

    def notify_change(self, session_key: str) -> None:
        """Record a change for ``session_key`` and (re)start its timer.

        Raises:
            SchedulerClosedError: if the scheduler has been shut down.
        """
        with self._lock:
            if self._closed:
                raise SchedulerClosedError(session_key)
            generation = self._generations.get(session_key, 0) + 1
            self._generations[session_key] = generation

            previous = self._timers.pop(session_key, None)
            if previous is not None:
                previous.cancel()

            timer = self._timer_factory(
                self._debounce, self._fire, args=(session_key, generation),
            )
            timer.daemon = True
            self._timers[session_key] = timer
            timer.start()

        logger.debug("recompute_scheduled", extra={
            "session_key": session_key,
            "generation": generation,
            "debounce_seconds": self._debounce,
        })

    def run_now(self, session_key: str) -> ReconciliationResult | None:
        """Skip the debounce: bump the generation and run synchronously."""
        with self._lock:
            if self._closed:
                raise SchedulerClosedError(session_key)
            generation = self._generations.get(session_key, 0) + 1
            self._generations[session_key] = generation
            previous = self._timers.pop(session_key, None)
            if previous is not None:
                previous.cancel()
        return self._fire(session_key, generation)

    def shutdown(self) -> None:
        """Cancel pending timers and refuse further changes."""
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
            self._generations.clear()
        for timer in timers:
            timer.cancel()
        logger.info("scheduler_shutdown", extra={"cancelled_timers": len(timers)})

    def _is_current(self, session_key: str, generation: int) -> bool:
        return not self._closed and self._generations.get(session_key) == generation

    def _fire(self, session_key: str, generation: int) -> ReconciliationResult | None:
        with self._lock:
            if generation == self._generations.get(session_key):
                self._timers.pop(session_key, None)
            if not self._is_current(session_key, generation):
                return None

        with LogContext.bind(correlation_id=f"{session_key}:{generation}"):
            try:
                snapshot = self._provider(session_key)
                result = self._engine.reconcile(snapshot, category=self._category)
            except Exception as exc:
                self._report_failure("recompute_failed", session_key, generation, exc)
                return None

            with self._lock:
                if not self._is_current(session_key, generation):
                    logger.info("recompute_result_stale", extra={
                        "session_key": session_key,
                        "generation": generation,
                    })
                    return None
                try:
                    self._on_result(result)
                except Exception as exc:
                    self._report_failure("recompute_delivery_failed", session_key, generation, exc)
                    return None

            logger.info("recompute_delivered", extra={
                "session_key": session_key,
                "generation": generation,
                "total_flagged": result.total_flagged,
            })
            return result

    def _report_failure(
        self, event: str, session_key: str, generation: int, exc: Exception,
    ) -> None:
        logger.exception(event, extra={
            "session_key": session_key,
            "generation": generation,
            "error": str(exc),
        })
        if self._on_error is not None:
            self._on_error(session_key, exc)
