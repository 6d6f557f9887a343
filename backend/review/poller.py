"""
Job status polling.

Follows one backend job at a time and maps its progress onto the known
pipeline steps. Responses are tagged with the job id they were requested for;
anything tagged with an id that is no longer tracked is dropped, so detaching
is enough to make in-flight polls harmless.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from dashboard.models import JobStatus, JobView
from review.errors import ReviewError

logger = logging.getLogger(__name__)


class StepState(str, Enum):
    """Display state of one pipeline step."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class PollUpdate:
    """An applied tick, handed to the update listener."""
    job_id: str
    status: JobStatus
    progress: int
    step_index: int
    current_step: Optional[str] = None
    error: Optional[str] = None
    terminal: bool = False


class JobPoller:
    """Tracks a single job id and derives monotonic step progress.

    Usage:
        poller = JobPoller(["seo_keywords", "marketing_brief", ...])
        view = await poller.follow(job_id, client.get_job_status, interval=2.0)
    """

    def __init__(
        self,
        steps: list[str],
        max_failures: int = 5,
        on_update: Optional[Callable[[PollUpdate], None]] = None,
    ):
        self.steps = list(steps)
        self.max_failures = max_failures
        self.on_update = on_update

        self.job_id: Optional[str] = None
        self.last_status: Optional[JobStatus] = None
        self.last_progress = 0
        self.step_index = 0
        self.failures = 0
        self.last_view: Optional[JobView] = None

    @property
    def is_active(self) -> bool:
        return self.job_id is not None

    def attach(self, job_id: str) -> None:
        """Start tracking a job; any previously tracked job is dropped."""
        if job_id == self.job_id:
            return
        if self.job_id:
            logger.info(f"Switching poll from job {self.job_id} to {job_id}")
        self.job_id = job_id
        self.last_status = None
        self.last_progress = 0
        self.step_index = 0
        self.failures = 0
        self.last_view = None

    def detach(self) -> None:
        """Stop tracking; late responses for the old id become no-ops."""
        if self.job_id:
            logger.debug(f"Detached from job {self.job_id}")
        self.job_id = None

    def on_tick(self, job_id: str, view: JobView) -> Optional[PollUpdate]:
        """Apply a poll response requested for `job_id`.

        Returns the applied update, or None if the response was stale.
        """
        if job_id != self.job_id:
            logger.debug(f"Discarding stale tick for job {job_id}")
            return None

        self.failures = 0
        self.last_view = view
        self.last_status = view.status
        self.last_progress = max(self.last_progress, view.progress)

        if view.status == JobStatus.COMPLETED:
            self.step_index = len(self.steps)
            self.last_progress = 100
        elif view.status == JobStatus.PROCESSING:
            self.step_index = max(self.step_index, self._index_for(view))

        update = PollUpdate(
            job_id=job_id,
            status=view.status,
            progress=self.last_progress,
            step_index=self.step_index,
            current_step=view.current_step,
            error=view.error,
            terminal=view.status.is_terminal,
        )
        if update.terminal:
            logger.info(f"Job {job_id} reached {view.status.value}")
            self.detach()
        if self.on_update:
            self.on_update(update)
        return update

    def on_error(self, job_id: str, error: Exception) -> Optional[PollUpdate]:
        """Record a failed poll.

        A failed poll alone does not stop polling; after `max_failures`
        consecutive failures the job is treated as failed.
        """
        if job_id != self.job_id:
            return None
        self.failures += 1
        logger.warning(f"Poll {self.failures}/{self.max_failures} for job {job_id} failed: {error}")
        if self.failures < self.max_failures:
            return None
        view = JobView(
            job_id=job_id,
            status=JobStatus.FAILED,
            progress=self.last_progress,
            error=f"Lost contact with job after {self.failures} failed polls: {error}",
        )
        return self.on_tick(job_id, view)

    def step_states(self) -> list[tuple[str, StepState]]:
        """Per-step display state for the current progress."""
        states = []
        for index, step in enumerate(self.steps):
            if index < self.step_index:
                state = StepState.COMPLETED
            elif index == self.step_index and self.last_status == JobStatus.PROCESSING:
                state = StepState.IN_PROGRESS
            else:
                state = StepState.PENDING
            states.append((step, state))
        return states

    async def follow(
        self,
        job_id: str,
        fetch_status: Callable[[str], Awaitable[JobView]],
        interval: float = 2.0,
    ) -> Optional[JobView]:
        """Poll `job_id` until it is terminal or no longer tracked.

        Returns the last applied view, or None if detached before any.
        """
        self.attach(job_id)
        while self.job_id == job_id:
            try:
                view = await fetch_status(job_id)
            except ReviewError as e:
                self.on_error(job_id, e)
            else:
                self.on_tick(job_id, view)
            if self.job_id != job_id:
                break
            await asyncio.sleep(interval)
        return self.last_view if self.last_view and self.last_view.job_id == job_id else None

    def _index_for(self, view: JobView) -> int:
        count = len(self.steps)
        if not count:
            return 0
        if view.current_step:
            named = self._match_step(view.current_step)
            if named is not None:
                return named
        return min(count, math.floor(view.progress / 100 * count))

    def _match_step(self, current_step: str) -> Optional[int]:
        name = current_step.lower()
        for index, step in enumerate(self.steps):
            step_id = step.lower()
            if name == step_id or step_id in name:
                return index
        return None
