"""
Deadline Scheduler

Named, durable deadlines on top of APScheduler. A deadline name encodes its
kind and token id (``abandon_42``, ``expiry_42``); the name is the job id, so
registering a name again replaces the pending deadline.

Jobs are persisted in an SQLAlchemy job store and survive restarts. The job
callable is the module-level ``fire_deadline`` so the store can serialise it
by reference; it decodes the name and hands ``(kind, token_id)`` to whatever
handler is bound. Handlers must re-read persisted state, since it may have
changed since the deadline was registered.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from enum import Enum

from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from consent_wallet.exceptions import InvalidDeadlineNameError
from consent_wallet.utils.metrics import DEADLINES_FIRED_TOTAL

logger = logging.getLogger(__name__)


class DeadlineKind(str, Enum):
    EXPIRY = "expiry"
    ABANDON = "abandon"


DeadlineHandler = Callable[[DeadlineKind, str], Awaitable[None]]

_handler: DeadlineHandler | None = None


def deadline_name(kind: DeadlineKind, token_id: str) -> str:
    return f"{DeadlineKind(kind).value}_{token_id}"


def parse_deadline_name(name: str) -> tuple[DeadlineKind, str]:
    """
    Split a deadline name into its kind and token id.

    Raises:
        InvalidDeadlineNameError: unknown kind or empty token id
    """
    kind, sep, token_id = name.partition("_")
    if not sep or not token_id:
        raise InvalidDeadlineNameError(name)
    try:
        return DeadlineKind(kind), token_id
    except ValueError as e:
        raise InvalidDeadlineNameError(name) from e


def bind_deadline_handler(handler: DeadlineHandler | None) -> None:
    """Route fired deadlines to ``handler`` (the coordinator)."""
    global _handler
    _handler = handler


async def fire_deadline(name: str) -> None:
    """APScheduler job entry point for every deadline."""
    try:
        kind, token_id = parse_deadline_name(name)
    except InvalidDeadlineNameError:
        logger.warning(f"[Scheduler] Dropping deadline with undecodable name '{name}'")
        return

    if _handler is None:
        logger.warning(f"[Scheduler] Deadline {name} fired with no handler bound")
        DEADLINES_FIRED_TOTAL.labels(kind=kind.value, outcome="unhandled").inc()
        return

    logger.info(f"[Scheduler] Deadline {name} fired", extra={"deadline": name, "token_id": token_id})
    await _handler(kind, token_id)


def create_scheduler(jobstore_url: str | None = None) -> AsyncIOScheduler:
    """
    Build the application's AsyncIOScheduler.

    Args:
        jobstore_url: Synchronous SQLAlchemy URL for the durable job store.
            ``None`` keeps jobs in memory (tests).
    """
    jobstore = SQLAlchemyJobStore(url=jobstore_url) if jobstore_url else MemoryJobStore()
    return AsyncIOScheduler(
        jobstores={"default": jobstore},
        job_defaults={"coalesce": True, "misfire_grace_time": None, "max_instances": 1},
        timezone=timezone.utc,
    )


class DeadlineScheduler:
    """schedule/cancel pair over named deadlines."""

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.scheduler = scheduler
        self._clock = clock

    def bind(self, handler: DeadlineHandler | None) -> None:
        bind_deadline_handler(handler)

    def schedule(self, name: str, when: datetime | None = None, delay: timedelta | None = None) -> datetime:
        """
        Register (or replace) the deadline ``name``.

        Exactly one of ``when`` (absolute) or ``delay`` (relative to now) is required.

        Returns:
            The absolute fire time
        """
        if (when is None) == (delay is None):
            raise ValueError("schedule() needs exactly one of 'when' or 'delay'")
        parse_deadline_name(name)

        run_date = when if when is not None else self._clock() + delay
        if run_date.tzinfo is None:
            run_date = run_date.replace(tzinfo=timezone.utc)

        self.scheduler.add_job(
            fire_deadline,
            trigger=DateTrigger(run_date=run_date, timezone=timezone.utc),
            args=[name],
            id=name,
            name=name,
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.info(f"[Scheduler] Deadline {name} scheduled at {run_date.isoformat()}", extra={"deadline": name})
        return run_date

    def cancel(self, name: str) -> bool:
        """Remove a pending deadline. Returns False if there was none."""
        try:
            self.scheduler.remove_job(name)
        except JobLookupError:
            return False
        logger.info(f"[Scheduler] Deadline {name} cancelled", extra={"deadline": name})
        return True

    def next_fire_time(self, name: str) -> datetime | None:
        job = self.scheduler.get_job(name)
        if job is None:
            return None
        return job.next_run_time

    def pending(self) -> list[str]:
        return sorted(job.id for job in self.scheduler.get_jobs())
