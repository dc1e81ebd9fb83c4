"""
Deferred power actions for chillers
Timers are persisted so they survive restarts; a background sweep fires due
timers once through the control adapter
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Set

from database.models import TimerRecord, utc_now, parse_timestamp
from devices.models import VarsConfig

logger = logging.getLogger(__name__)

TIMER_MODES = ('on', 'off')


class TimerScheduler:
    """Schedules, cancels and executes timed power commands.

    Constructed once per process by the server and shared with the API.
    `replace_existing=False` keeps earlier active timers for the same IP when
    a new one is scheduled, so two timers can fire for one device.
    """

    def __init__(self, store, controller, vars_resolver: Callable[[str], VarsConfig],
                 interval_seconds: float = 15, replace_existing: bool = False):
        self.store = store
        self.controller = controller
        self.vars_resolver = vars_resolver
        self.interval_seconds = interval_seconds
        self.replace_existing = replace_existing

        self._task: Optional[asyncio.Task] = None
        self._sweeps: Set[asyncio.Task] = set()
        self._sweep_lock = asyncio.Lock()
        self.running = False
        self.stats = {
            'sweeps': 0,
            'fired': 0,
            'failed': 0
        }

    # ================== TIMER RECORDS ==================

    async def schedule(self, chiller_name: str, chiller_ip: str, mode: str,
                       hours: float, target_at) -> TimerRecord:
        """Persist a new active timer"""
        if self.replace_existing:
            replaced = await self.store.deactivate_timers_for_ip(chiller_ip)
            if replaced:
                logger.info(f"[TIMER] Replaced {replaced} active timer(s) for {chiller_ip}")

        timer = await self.store.add_timer(
            chiller_name=chiller_name,
            chiller_ip=chiller_ip,
            mode=mode,
            hours=hours,
            target_at=parse_timestamp(target_at)
        )
        logger.info(f"[TIMER] Scheduled {mode} for {chiller_name} ({chiller_ip}) at {timer.target_at.isoformat()}")
        return timer

    async def cancel(self, chiller_ip: str) -> int:
        count = await self.store.deactivate_timers_for_ip(chiller_ip)
        logger.info(f"[TIMER] Cancelled {count} timer(s) for {chiller_ip}")
        return count

    async def get_active(self, chiller_ip: str) -> Optional[TimerRecord]:
        return await self.store.find_active_timer(chiller_ip)

    # ================== EXECUTION ==================

    async def run_due_timers_once(self, now: Optional[datetime] = None) -> List[TimerRecord]:
        """
        Fire every active timer whose target time has passed.
        A timer is claimed (set inactive) before its command is sent, so it is
        consumed even if the device call fails and never fires twice.
        Claimed timers run concurrently; a slow or failing device only delays
        its own timer. Returns the timers this sweep claimed.
        """
        async with self._sweep_lock:
            now = now or utc_now()
            self.stats['sweeps'] += 1
            try:
                due = await self.store.due_timers(now)
            except Exception as e:
                logger.error(f"[TIMER] Failed to load due timers: {e}")
                return []

            claimed = []
            for timer in due:
                try:
                    if not await self.store.deactivate_timer(timer.id):
                        continue
                except Exception as e:
                    logger.error(f"[TIMER] Could not claim timer {timer.id} for {timer.chiller_ip}: {e}")
                    continue
                timer.active = False
                claimed.append(timer)

        results = await asyncio.gather(*(self._execute(timer) for timer in claimed), return_exceptions=True)
        for timer, result in zip(claimed, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                self.stats['failed'] += 1
                logger.error(f"[TIMER] Timer {timer.id} for {timer.chiller_ip} failed: {result}")
        return claimed

    async def _execute(self, timer: TimerRecord):
        target = timer.mode == 'on'
        vars_config = self.vars_resolver(timer.chiller_ip)
        ok = await self.controller.set_power(timer.chiller_ip, vars_config, target)
        if ok:
            self.stats['fired'] += 1
            logger.info(f"[TIMER] Fired {timer.mode} for {timer.chiller_name} ({timer.chiller_ip})")
        else:
            self.stats['failed'] += 1
            logger.warning(f"[TIMER] Power {timer.mode} for {timer.chiller_name} ({timer.chiller_ip}) "
                           f"failed - timer consumed without retry")

    # ================== BACKGROUND SWEEP ==================

    def start(self) -> bool:
        """Start the sweep task; further calls are no-ops while it is running"""
        if self._task is not None and not self._task.done():
            return False
        self.running = True
        self._task = asyncio.create_task(self._sweep_service())
        return True

    async def stop(self):
        self.running = False
        tasks = list(self._sweeps)
        if self._task is not None:
            tasks.append(self._task)
            self._task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._sweeps.clear()
        logger.info(f"Timer sweep stopped: {self.stats['sweeps']} sweeps, "
                    f"{self.stats['fired']} fired, {self.stats['failed']} failed")

    async def _sweep(self):
        try:
            fired = await self.run_due_timers_once()
            if fired:
                logger.debug(f"Timer sweep claimed {len(fired)} timer(s)")
        except Exception as e:
            logger.error(f"Timer sweep error: {e}")

    async def _sweep_service(self):
        """Background service: sweep immediately, then on a fixed interval.
        Each sweep runs as its own task, so a device that is slow to answer
        does not hold back the next sweep."""
        logger.info(f"Timer sweep service started (every {self.interval_seconds}s)")

        while self.running:
            sweep = asyncio.create_task(self._sweep())
            self._sweeps.add(sweep)
            sweep.add_done_callback(self._sweeps.discard)
            await asyncio.sleep(self.interval_seconds)
