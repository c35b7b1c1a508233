import asyncio
import logging
import time
from datetime import UTC, datetime

from fastapi import FastAPI

from uptimewatch.services.cycle import run_cycle


class PollScheduler:
    """Fires a poll cycle every ``interval_s`` after an initial ``warmup_s`` delay.

    Ticks fire on a fixed cadence whether or not the previous cycle has
    returned; a tick that arrives while a cycle is still running is skipped,
    so cycles never overlap.
    """

    def __init__(self, app: FastAPI, interval_s: float, warmup_s: float = 5.0) -> None:
        self.app = app
        self.interval_s = interval_s
        self.warmup_s = warmup_s
        self._task: asyncio.Task[None] | None = None
        self._ticks: set[asyncio.Task[bool]] = set()
        self._stop_event = asyncio.Event()
        self._run_lock = asyncio.Lock()
        self.last_run: datetime | None = None
        self.last_error: str | None = None
        self.last_cycle_duration_ms: float | None = None
        self.last_probed_count = 0
        self.successful_cycles = 0
        self.failed_cycles = 0
        self.skipped_cycles = 0
        self.consecutive_failures = 0
        self._logger = logging.getLogger('uptimewatch.scheduler')

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cycle_in_progress(self) -> bool:
        return self._run_lock.locked()

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        pending = [self._task, *self._ticks]
        for task in self._ticks:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._ticks.clear()
        self._task = None

    def _now(self) -> datetime:
        clock = getattr(self.app.state, 'clock', None)
        if clock is None:
            return datetime.now(UTC)
        return clock()

    async def run_once(self) -> int:
        async with self._run_lock:
            started = time.perf_counter()
            now = self._now()
            self._logger.info('cycle_start', extra={'cycle_now': now.isoformat()})
            try:
                polled = await asyncio.to_thread(
                    run_cycle,
                    now,
                    self.app.state.repository,
                    self.app.state.probe_target,
                )
                self.last_cycle_duration_ms = round((time.perf_counter() - started) * 1000, 3)
                self.last_run = now
                self.last_error = None
                self.last_probed_count = len(polled)
                self.successful_cycles += 1
                self.consecutive_failures = 0
                online_count = sum(1 for target in polled if target.status == 'online')
                self._logger.info(
                    'cycle_complete',
                    extra={
                        'duration_ms': self.last_cycle_duration_ms,
                        'probed_targets': len(polled),
                        'online_count': online_count,
                        'offline_count': len(polled) - online_count,
                    },
                )
                return len(polled)
            except Exception as exc:
                self.last_cycle_duration_ms = round((time.perf_counter() - started) * 1000, 3)
                self.last_error = str(exc)
                self.failed_cycles += 1
                self.consecutive_failures += 1
                self._logger.error(
                    'cycle_failed',
                    extra={
                        'duration_ms': self.last_cycle_duration_ms,
                        'error': self.last_error,
                    },
                )
                raise

    async def tick(self) -> bool:
        """Run one cycle unless one is already in flight. Returns whether it ran."""
        if self._run_lock.locked():
            self.skipped_cycles += 1
            self._logger.warning('cycle_skipped', extra={'reason': 'previous_cycle_running'})
            return False
        try:
            await self.run_once()
        except Exception:
            # logged by run_once; remaining due targets are retried next tick
            return False
        return True

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self.tick())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _loop(self) -> None:
        try:
            await asyncio.sleep(self.warmup_s)
            while not self._stop_event.is_set():
                self._spawn_tick()
                await asyncio.sleep(self.interval_s)
        except asyncio.CancelledError:
            return
