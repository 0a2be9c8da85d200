"""
Exponential-backoff polling until an operation reaches a terminal state.

Uses tenacity for the wait/stop policy; ``sleep`` is injectable so callers
and tests can drive the schedule without real delays.
"""

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, wait_exponential
from tenacity.stop import stop_base

from .config import (
    POLL_INITIAL_SECONDS,
    POLL_MAX_SECONDS,
    POLL_MULTIPLIER,
    POLL_TIMEOUT_SECONDS,
    logger,
)
from .exceptions import JobTimeoutError

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Polling schedule.

    Attributes:
        initial: Delay before the second poll, in seconds
        multiplier: Growth factor applied to each following delay
        cap: Maximum single delay, in seconds
        ceiling: Total waiting time after which polling gives up, in seconds
    """
    initial: float = POLL_INITIAL_SECONDS
    multiplier: float = POLL_MULTIPLIER
    cap: float = POLL_MAX_SECONDS
    ceiling: float = POLL_TIMEOUT_SECONDS


class stop_after_idle(stop_base):
    """Stop once the time spent sleeping between attempts reaches ``ceiling``."""

    def __init__(self, ceiling: float) -> None:
        self.ceiling = ceiling

    def __call__(self, retry_state) -> bool:
        return retry_state.idle_for >= self.ceiling


def poll_until_terminal(
    poll: Callable[[], T],
    is_terminal: Callable[[T], bool],
    policy: BackoffPolicy = BackoffPolicy(),
    sleep: Callable[[float], None] = time.sleep,
    job_id: str = "",
) -> T:
    """
    Call ``poll`` until ``is_terminal`` accepts its result.

    The first poll happens immediately; later polls follow the policy's
    exponential schedule. Exceptions raised by ``poll`` propagate unchanged.

    Raises:
        JobTimeoutError: no terminal result before the policy's ceiling
    """
    retrying = Retrying(
        retry=retry_if_result(lambda result: not is_terminal(result)),
        wait=wait_exponential(multiplier=policy.initial, exp_base=policy.multiplier, max=policy.cap),
        stop=stop_after_idle(policy.ceiling) | stop_after_delay(policy.ceiling),
        sleep=sleep,
        before_sleep=lambda state: logger.debug(
            f"Job {job_id} not finished, polling again in "
            f"{state.next_action.sleep:.2f}s (attempt {state.attempt_number})"
        ),
    )
    try:
        return retrying(poll)
    except RetryError as exc:
        elapsed = retrying.statistics.get("idle_for", policy.ceiling)
        raise JobTimeoutError(job_id, elapsed) from exc
