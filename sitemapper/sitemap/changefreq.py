"""Estimate ``changefreq`` for page files from their revision history."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

from ..core.batching import gather_in_batches
from ..utils.logging import get_logger
from .errors import RemoteDataError
from .models import FileRevision, PageFile

if TYPE_CHECKING:
    from ..remote.base import SiteFetcher

LOGGER = get_logger(__name__)

MAX_REVISIONS = 5
DAMPING = 0.7

# Upper bound (inclusive unless noted) of the damped days-per-revision value.
_BUCKETS = (
    (1.0, "daily"),
    (7.0, "weekly"),
    (31.0, "monthly"),
    (365.0, "yearly"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify(days_per_revision: float) -> str:
    damped = days_per_revision * DAMPING
    if damped < 0.05:
        return "hourly"
    for limit, label in _BUCKETS:
        if damped <= limit:
            return label
    return "never"


def estimate(
    revisions: Sequence[FileRevision], default: str, *, now: datetime | None = None
) -> str:
    """Classify one file from its revisions (newest first).

    Fewer than two revisions keep ``default``.
    """

    recent = list(revisions[:MAX_REVISIONS])
    if len(recent) < 2:
        return default
    now = now or _utcnow()
    oldest = min(revision.modified for revision in recent)
    # Whole days, rounded half up.
    age_days = math.floor(max((now - oldest).total_seconds(), 0.0) / 86400 + 0.5)
    return classify(age_days / len(recent))


class ChangeFrequencyEstimator:
    def __init__(
        self,
        fetcher: SiteFetcher,
        *,
        default: str,
        batch_size: int = 20,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetcher = fetcher
        self._default = default
        self._batch_size = batch_size
        self._clock = clock

    async def estimate_files(self, files: Iterable[PageFile]) -> dict[str, str]:
        """Return ``{page file name: changefreq}``; lookup failures keep the default."""

        files = list(files)
        now = self._clock()

        async def one(page_file: PageFile) -> str:
            try:
                revisions = await self._fetcher.get_file_revisions(page_file.id)
            except RemoteDataError as exc:
                LOGGER.warning(
                    "Revision lookup failed, keeping default changefreq",
                    extra={
                        "event": "changefreq.degraded",
                        "file": page_file.name,
                        "default": self._default,
                        "error": str(exc),
                    },
                )
                return self._default
            return estimate(revisions, self._default, now=now)

        results = await gather_in_batches(files, self._batch_size, one)
        estimates = {page_file.name: value for page_file, value in zip(files, results)}
        LOGGER.info(
            "Estimated change frequencies",
            extra={"event": "changefreq.estimated", "files": len(estimates)},
        )
        return estimates


__all__ = ["ChangeFrequencyEstimator", "classify", "estimate"]
