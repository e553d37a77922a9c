"""Export job status monitoring.

This module turns periodic status polling into a lazy sequence of
events. Polling is single-threaded: the generator sleeps between polls
and the caller consumes events as they are produced.
"""

from __future__ import annotations

import time
from typing import Callable, Iterator, TypeVar

from core.errors import BulkFetchError, UnauthorizedError
from core.types import JobStatus, MonitorEvent
from export_api.client import ExportJobClient

T = TypeVar("T")

SleepFn = Callable[[float], None]
ClockFn = Callable[[], float]


def poll_until(
    check: Callable[[], T],
    is_done: Callable[[T], bool],
    poll_interval: float,
    timeout: float,
    sleep: SleepFn = time.sleep,
    clock: ClockFn = time.monotonic,
) -> Iterator[tuple[T | None, BulkFetchError | None]]:
    """Poll ``check`` until ``is_done`` holds or ``timeout`` elapses.

    Args:
        check: Status query; may raise ``BulkFetchError``.
        is_done: Predicate marking a terminal result.
        poll_interval: Seconds slept between polls.
        timeout: Seconds after the first poll at which polling stops.
        sleep: Sleep function, injectable for tests.
        clock: Monotonic clock, injectable for tests.

    Yields:
        ``(result, None)`` for successful polls, ``(None, error)`` for failed ones.
    """
    started_at = clock()
    while True:
        try:
            result = check()
        except BulkFetchError as error:
            yield None, error
        else:
            yield result, None
            if is_done(result):
                return
        if clock() - started_at >= timeout:
            return
        sleep(poll_interval)


def monitor_job_status(
    client: ExportJobClient,
    job_url: str,
    poll_interval: float,
    timeout: float,
    sleep: SleepFn = time.sleep,
    clock: ClockFn = time.monotonic,
) -> Iterator[MonitorEvent]:
    """Yield one event per job status poll until the job ends or times out.

    The last event carries the last known status; callers distinguish
    completion from timeout with ``event.status.is_complete``. A failed
    job also ends the sequence. A rejected token triggers one
    re-authentication before the next poll.

    Args:
        client: Export job client.
        job_url: Job status URL.
        poll_interval: Seconds between polls.
        timeout: Seconds to keep polling.
        sleep: Sleep function, injectable for tests.
        clock: Monotonic clock, injectable for tests.

    Yields:
        Monitor events in poll order.
    """
    last_status = JobStatus(job_url=job_url, state="pending")
    polls = poll_until(
        lambda: client.get_job_status(job_url),
        lambda status: status.is_complete or status.state == "failed",
        poll_interval,
        timeout,
        sleep=sleep,
        clock=clock,
    )
    for status, error in polls:
        if status is not None:
            last_status = status
        if isinstance(error, UnauthorizedError):
            error = _reauthenticate(client, error)
        yield MonitorEvent(status=last_status, error=error)


def _reauthenticate(client: ExportJobClient, error: UnauthorizedError) -> BulkFetchError:
    try:
        client.authenticate()
    except BulkFetchError as auth_error:
        return auth_error
    return error
