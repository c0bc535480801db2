import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from ..models import ErrorClassification, RetryState
from .errors import classify, classify_exhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryOutcome(Generic[T]):
    """Terminal state of a RetryController run.

    Either ``value`` is set (Succeeded) or ``classification`` and ``error``
    describe a classified failure.
    """

    value: T | None = None
    classification: ErrorClassification | None = None
    error: BaseException | None = None
    attempts: int = 1

    @property
    def succeeded(self) -> bool:
        return self.classification is None


class RetryController:
    """Runs one turn attempt with exponential backoff on transient failures."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._sleep = sleep
        self.state = RetryState(attempt=0, max_attempts=max_attempts)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before the given (1-based) retry."""
        return self.backoff_base**attempt

    async def run(self, attempt_fn: Callable[[], Awaitable[T]]) -> RetryOutcome[T]:
        """Execute ``attempt_fn`` until it succeeds or fails terminally.

        Args:
            attempt_fn: Zero-argument coroutine factory; called once per attempt.

        Returns:
            RetryOutcome: ``value`` on success, otherwise the classification
                and error of the last failure. Transient failures are retried
                after ``backoff_base ** attempt`` seconds until ``max_attempts``
                is reached, then mapped through ``classify_exhausted``.

        Raises:
            Exception: Unclassified failures, re-raised unchanged and never retried.
        """
        self.state = RetryState(attempt=0, max_attempts=self.max_attempts)

        while True:
            try:
                value = await attempt_fn()
            except Exception as e:
                classification = classify(e)
                logger.warning(
                    "Agent attempt %d/%d failed (%s): %s",
                    self.state.attempt + 1,
                    self.max_attempts,
                    classification.value,
                    e,
                )

                if classification is ErrorClassification.UNCLASSIFIED:
                    raise

                if classification is not ErrorClassification.TRANSIENT:
                    return RetryOutcome(
                        classification=classification,
                        error=e,
                        attempts=self.state.attempt + 1,
                    )

                if not self.state.can_retry:
                    return RetryOutcome(
                        classification=classify_exhausted(e),
                        error=e,
                        attempts=self.state.attempt + 1,
                    )

                self.state.attempt += 1
                delay = self.delay_for(self.state.attempt)
                logger.info(
                    "Retrying in %.1fs (retry %d of %d)",
                    delay,
                    self.state.attempt,
                    self.max_attempts - 1,
                )
                await self._sleep(delay)
                continue

            return RetryOutcome(value=value, attempts=self.state.attempt + 1)
