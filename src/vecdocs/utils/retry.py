"""
Exponential backoff for transient persistence failures.

Stores never retry on their own. A background writer wraps its store calls
in retry_with_backoff() and decides which exception types are transient;
vecdocs.indexer retries PersistenceError only.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, Type


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Backoff settings.

    Attributes:
        max_attempts: Total tries, the first one included
        initial_delay_ms: Wait after the first failure
        max_delay_ms: Upper bound for any single wait
        backoff_multiplier: Growth factor between consecutive waits
        jitter: Spread each wait by up to 25% either way
    """
    max_attempts: int = 3
    initial_delay_ms: float = 250.0
    max_delay_ms: float = 1000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True

    def delay_ms(self, failures: int) -> float:
        """Un-jittered wait in milliseconds after `failures` + 1 failed tries."""
        grown = self.initial_delay_ms * (self.backoff_multiplier ** failures)
        return min(grown, self.max_delay_ms)


@dataclass
class RetryResult:
    """
    Outcome of retry_with_backoff.

    `error` is the exception that ended the loop (the last transient one when
    attempts ran out), and `error_history` holds one message per failed try.
    """
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[Exception] = None
    error_history: List[str] = field(default_factory=list)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Seconds to wait before the try following `attempt` (0-based).
    """
    delay_ms = config.delay_ms(attempt)
    if config.jitter:
        delay_ms *= random.uniform(0.75, 1.25)
    return delay_ms / 1000.0


def retry_with_backoff(
    operation: Callable[[], Any],
    config: RetryConfig,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    operation_name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryResult:
    """
    Call `operation` until it succeeds, fails permanently or runs out of tries.

    Only exceptions in `retry_on` trigger another try. Anything else ends the
    loop at once. Errors are reported in the returned RetryResult; callers
    that want them raised re-raise `result.error`.

    Example:
        >>> result = retry_with_backoff(
        ...     lambda: store.soft_delete("v1"),
        ...     RetryConfig(max_attempts=5),
        ...     retry_on=(PersistenceError,),
        ... )
        >>> if not result.success:
        ...     raise result.error
    """
    outcome = RetryResult(success=False)

    while outcome.attempts < config.max_attempts:
        outcome.attempts += 1
        try:
            outcome.result = operation()
        except retry_on as e:
            outcome.error = e
            outcome.error_history.append(str(e))
            logger.warning(
                f"{operation_name}: try {outcome.attempts} of {config.max_attempts} failed: {e}"
            )
        except Exception as e:
            outcome.error = e
            outcome.error_history.append(str(e))
            logger.error(f"{operation_name}: giving up on non-transient error: {e}")
            return outcome
        else:
            outcome.success = True
            outcome.error = None
            if outcome.attempts > 1:
                logger.info(f"{operation_name} recovered on try {outcome.attempts}")
            return outcome

        if outcome.attempts < config.max_attempts:
            delay = calculate_delay(outcome.attempts - 1, config)
            logger.debug(f"{operation_name}: waiting {delay:.3f}s")
            sleep(delay)

    logger.error(f"{operation_name}: no success after {config.max_attempts} tries")
    return outcome
