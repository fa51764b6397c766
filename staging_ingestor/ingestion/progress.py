"""Milestone-based progress tracking with ETA for in-flight jobs."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone

from ..schemas.progress import ProgressSnapshot
from ..utils.logging import setup_logger

logger = setup_logger(__name__, context={"job_type": "ProgressTracker"})

DEFAULT_MIN_INTERVAL_SECONDS = 0.5

PublishFn = Callable[[ProgressSnapshot], None]


class ProgressTracker:
    """
    Tracks percentage complete for one job and publishes throttled snapshots.

    Percentage never decreases. ETA is a linear extrapolation of the pace so
    far and is 0 until any progress has been made. Publishing is limited to
    one snapshot per ``min_interval`` seconds except for :meth:`complete`,
    which always publishes 100%.
    """

    def __init__(
        self,
        publish: PublishFn | None = None,
        *,
        min_interval: float = DEFAULT_MIN_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must be non-negative")
        self._publish = publish
        self._min_interval = min_interval
        self._clock = clock
        self._started = clock()
        self._last_published: float | None = None
        self._percentage = 0.0
        self._milestones: dict[str, float] = {}
        self.last_snapshot: ProgressSnapshot | None = None

    @property
    def percentage(self) -> float:
        return self._percentage

    def add_milestone(self, name: str, percentage: float) -> None:
        """Register a named checkpoint at ``percentage``."""

        if not 0 <= percentage <= 100:
            raise ValueError(f"Milestone '{name}' must be between 0 and 100, got {percentage}")
        self._milestones[name] = float(percentage)

    def set_progress(self, percentage: float) -> None:
        """Move to ``percentage`` (clamped to 0-100); lower values are ignored."""

        clamped = max(0.0, min(float(percentage), 100.0))
        self._percentage = max(self._percentage, clamped)

    def advance(self, increment: float, description: str = "") -> ProgressSnapshot | None:
        """Add ``increment`` percent, holding below 100 until :meth:`complete`."""

        self.set_progress(min(self._percentage + increment, 99.0))
        return self.update(description)

    def reach_milestone(self, name: str) -> ProgressSnapshot | None:
        """Jump to a registered milestone and publish; unknown names are ignored."""

        if name not in self._milestones:
            logger.debug("Unknown milestone %s", name)
            return None
        self.set_progress(self._milestones[name])
        return self.update(f"Milestone reached: {name}")

    def _eta(self, elapsed: float) -> float:
        if self._percentage <= 0:
            return 0.0
        return (100 - self._percentage) * (elapsed / self._percentage)

    def get_progress(self) -> ProgressSnapshot:
        """Return the current snapshot without publishing."""

        elapsed = max(self._clock() - self._started, 0.0)
        return ProgressSnapshot(
            percentage=round(self._percentage, 2),
            elapsed=int(round(elapsed)),
            eta=int(round(self._eta(elapsed))),
            description="",
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def update(self, description: str = "") -> ProgressSnapshot | None:
        """Publish a snapshot unless one was published less than ``min_interval`` ago."""

        now = self._clock()
        if self._last_published is not None and now - self._last_published < self._min_interval:
            return None
        return self._emit(now, description)

    def complete(self, description: str = "Job completed") -> ProgressSnapshot:
        """Set progress to 100% and publish regardless of throttling."""

        self._percentage = 100.0
        return self._emit(self._clock(), description)

    def _emit(self, now: float, description: str) -> ProgressSnapshot:
        snapshot = self.get_progress().model_copy(update={"description": description})
        self._last_published = now
        self.last_snapshot = snapshot
        if self._publish is not None:
            try:
                self._publish(snapshot)
            except Exception:
                logger.warning("Failed to publish job progress", exc_info=True)
        return snapshot
