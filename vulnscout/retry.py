"""Retrying of remote calls with exponential backoff."""

from __future__ import annotations

import logging
import random
import time
from enum import Enum
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 10
_INITIAL_INTERVAL = 0.5
_MULTIPLIER = 1.5
_RANDOMIZATION = 0.5
_MAX_INTERVAL = 60.0
_MAX_ELAPSED = 15 * 60.0


class ErrorCode(str, Enum):
    CANCELED = "canceled"
    UNKNOWN = "unknown"
    INVALID_ARGUMENT = "invalid_argument"
    MALFORMED = "malformed"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    NOT_FOUND = "not_found"
    BAD_ROUTE = "bad_route"
    ALREADY_EXISTS = "already_exists"
    PERMISSION_DENIED = "permission_denied"
    UNAUTHENTICATED = "unauthenticated"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    FAILED_PRECONDITION = "failed_precondition"
    ABORTED = "aborted"
    OUT_OF_RANGE = "out_of_range"
    UNIMPLEMENTED = "unimplemented"
    INTERNAL = "internal"
    UNAVAILABLE = "unavailable"
    DATA_LOSS = "dataloss"


class TwirpError(Exception):
    """An error reported by a remote service, carrying an error code."""

    def __init__(self, code: ErrorCode, msg: str) -> None:
        super().__init__(f"twirp error {code.value}: {msg}")
        self.code = code
        self.msg = msg


def _intervals() -> "Iterator[float]":
    interval = _INITIAL_INTERVAL
    while True:
        delta = _RANDOMIZATION * interval
        yield random.uniform(interval - delta, interval + delta)
        interval = min(interval * _MULTIPLIER, _MAX_INTERVAL)


def retry(
    operation: Callable[[], T],
    max_retries: int = MAX_RETRIES,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``operation``, retrying while it raises an UNAVAILABLE TwirpError.

    Any other exception is raised at once; after ``max_retries`` retries the
    last error is raised.
    """
    start = time.monotonic()
    intervals = _intervals()
    attempt = 0
    while True:
        try:
            return operation()
        except TwirpError as err:
            if err.code is not ErrorCode.UNAVAILABLE:
                raise
            wait = next(intervals)
            if attempt >= max_retries or time.monotonic() - start + wait > _MAX_ELAPSED:
                raise
            attempt += 1
            logger.warning("%s", err)
            logger.info("Retrying HTTP request...")
            sleep(wait)


from typing import Iterator  # noqa: E402