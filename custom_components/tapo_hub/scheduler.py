"""Background jobs of the hub and its child devices."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from homeassistant.helpers.event import async_call_later, async_track_time_interval

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from homeassistant.core import CALLBACK_TYPE, HomeAssistant

    JobAction = Callable[[], Awaitable[None]]

_LOGGER = logging.getLogger(__name__)


class ScheduledJob:
    """A cancelable one-shot or recurring job.

    A tick that fires while the previous run of the same job is still in
    progress is skipped, so runs of one job never overlap.
    """

    def __init__(self, name: str, action: JobAction) -> None:
        """Initialize the job."""
        self.name = name
        self._action = action
        self._unsub: CALLBACK_TYPE | None = None
        self._running = False
        self._cancelled = False

    @property
    def active(self) -> bool:
        """Return True while the job is scheduled."""
        return self._unsub is not None and not self._cancelled

    def attach(self, unsub: CALLBACK_TYPE) -> None:
        """Store the cancel callback returned by the event helper."""
        self._unsub = unsub

    async def async_run(self, _now: datetime | None = None) -> None:
        """Run the action unless cancelled or already running."""
        if self._cancelled:
            return
        if self._running:
            _LOGGER.debug("Job %s still running, skipping this run", self.name)
            return

        self._running = True
        try:
            await self._action()
        finally:
            self._running = False

    async def async_run_once(self, now: datetime | None = None) -> None:
        """Run a one-shot job and mark it done."""
        self._unsub = None
        await self.async_run(now)

    def cancel(self) -> None:
        """Cancel the job. Calling it again is a no-op."""
        self._cancelled = True
        if self._unsub is not None:
            self._unsub()
            self._unsub = None


class PollingScheduler:
    """Creates and tracks the jobs of one hub or device."""

    def __init__(self, hass: HomeAssistant, name: str) -> None:
        """Initialize the scheduler.

        Args:
            hass: Home Assistant instance.
            name: Prefix for job names in log messages.

        """
        self._hass = hass
        self._name = name
        self._jobs: list[ScheduledJob] = []

    @property
    def jobs(self) -> list[ScheduledJob]:
        """Return the jobs that are still scheduled."""
        return [job for job in self._jobs if job.active]

    def schedule_once(
        self, delay: float, action: JobAction, name: str = "startup"
    ) -> ScheduledJob:
        """Run an action once after a delay in seconds."""
        job = ScheduledJob(f"{self._name}_{name}", action)
        job.attach(async_call_later(self._hass, delay, job.async_run_once))
        self._jobs.append(job)
        return job

    def schedule_interval(
        self,
        interval: timedelta,
        action: JobAction,
        name: str = "polling",
        run_immediately: bool = False,
    ) -> ScheduledJob | None:
        """Run an action repeatedly.

        Args:
            interval: Time between runs. Intervals of zero or less disable
                the job.
            action: Coroutine function to run.
            name: Job name for log messages.
            run_immediately: Also run once right away.

        Returns:
            The job, or None if the interval disables it.

        """
        job_name = f"{self._name}_{name}"
        if interval <= timedelta(0):
            _LOGGER.debug("Job %s disabled with interval '0'", job_name)
            return None

        _LOGGER.debug("Starting job %s with interval %s", job_name, interval)
        job = ScheduledJob(job_name, action)
        job.attach(async_track_time_interval(self._hass, job.async_run, interval))
        self._jobs.append(job)
        if run_immediately:
            self._hass.async_create_task(job.async_run())
        return job

    def cancel_all(self) -> None:
        """Cancel every job. Safe to call repeatedly."""
        for job in self._jobs:
            job.cancel()
        self._jobs.clear()
