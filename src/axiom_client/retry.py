"""
Retry/backoff state machine for API requests.

The policy is a pure function of (state, outcome): the transport feeds every
attempt's outcome into `next_step` and either sleeps for the returned interval
or stops. Nothing in here performs I/O or touches a clock on its own, so the
same machine can be driven by asyncio, a thread, or a test.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional, Union


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff configuration.

    Attributes:
        initial_interval: Delay before the first retry, in seconds
        max_interval: Upper bound for a single computed delay, in seconds
        max_elapsed_time: Total time budget for the attempt sequence, in seconds
        multiplier: Growth factor applied to the interval after every retry
        randomization_factor: Jitter spread; the delay is drawn from
            interval * [1 - factor, 1 + factor]
        max_attempts: Hard cap on the number of attempts (first one included)
    """
    initial_interval: float = 0.5
    max_interval: float = 60.0
    max_elapsed_time: float = 30.0
    multiplier: float = 2.0
    randomization_factor: float = 0.5
    max_attempts: int = 10

    def __post_init__(self):
        if self.initial_interval < 0 or self.max_interval < 0 or self.max_elapsed_time < 0:
            raise ValueError("retry intervals must not be negative")
        if self.multiplier < 1:
            raise ValueError("retry multiplier must be >= 1")
        if not 0 <= self.randomization_factor < 1:
            raise ValueError("randomization_factor must be in [0, 1)")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def start(self, now: float) -> "RetryState":
        """Create the state for a fresh attempt sequence starting at `now`."""
        return RetryState(attempt=0, next_interval=self.initial_interval, deadline=now + self.max_elapsed_time)


@dataclass(frozen=True)
class RetryState:
    """Transient state of one attempt sequence."""
    attempt: int
    next_interval: float
    deadline: float


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class Outcome:
    """
    Result of a single attempt.

    `value` holds the response for successes and the exception (or failed
    response) otherwise. `retry_after` is a server-supplied delay hint in
    seconds, only honoured for retryable outcomes.
    """
    kind: OutcomeKind
    value: Any = None
    retry_after: Optional[float] = None

    @classmethod
    def success(cls, value: Any) -> "Outcome":
        return cls(OutcomeKind.SUCCESS, value)

    @classmethod
    def retryable(cls, value: Any, retry_after: Optional[float] = None) -> "Outcome":
        return cls(OutcomeKind.RETRYABLE, value, retry_after)

    @classmethod
    def terminal(cls, value: Any) -> "Outcome":
        return cls(OutcomeKind.TERMINAL, value)


@dataclass(frozen=True)
class Retry:
    """Wait `interval` seconds, then attempt again with `state`."""
    interval: float
    state: RetryState


class StopReason(str, Enum):
    SUCCEEDED = "succeeded"
    TERMINAL = "terminal"
    MAX_ATTEMPTS = "max_attempts"
    DEADLINE = "deadline"


@dataclass(frozen=True)
class Stop:
    """The sequence is over; `outcome` is the last attempt's outcome."""
    outcome: Outcome
    reason: StopReason
    attempts: int


Step = Union[Retry, Stop]


def next_step(policy: RetryPolicy, state: RetryState, outcome: Outcome, now: float, jitter: float) -> Step:
    """
    Advance the retry state machine by one attempt.

    Args:
        policy: Backoff configuration
        state: State before the attempt that produced `outcome`
        outcome: What the attempt produced
        now: Current monotonic time, in seconds
        jitter: Uniform random sample in [0, 1) used to randomize the delay

    Returns:
        Retry with the delay and the advanced state, or Stop with the reason
    """
    attempts = state.attempt + 1

    if outcome.kind is OutcomeKind.SUCCESS:
        return Stop(outcome, StopReason.SUCCEEDED, attempts)
    if outcome.kind is OutcomeKind.TERMINAL:
        return Stop(outcome, StopReason.TERMINAL, attempts)
    if attempts >= policy.max_attempts:
        return Stop(outcome, StopReason.MAX_ATTEMPTS, attempts)

    if outcome.retry_after is not None:
        interval = max(0.0, outcome.retry_after)
    else:
        interval = randomize_interval(state.next_interval, policy.randomization_factor, jitter)

    if now + interval > state.deadline:
        return Stop(outcome, StopReason.DEADLINE, attempts)

    grown = min(state.next_interval * policy.multiplier, policy.max_interval)
    return Retry(interval, replace(state, attempt=attempts, next_interval=grown))


def randomize_interval(interval: float, randomization_factor: float, jitter: float) -> float:
    """Spread `interval` uniformly over [interval * (1 - f), interval * (1 + f)]."""
    delta = randomization_factor * interval
    low = interval - delta
    return low + jitter * (2 * delta)
