"""
Circuit Breaker, Retry and Dead Letter Queue

Resilience primitives for the accounting engine:
- CircuitBreaker: stops hammering a failing Distance Resolver
- retry_with_backoff: re-runs a pipeline that lost the per-truck lock race
- DeadLetterQueue: remembers deadhead lookups that failed so they can be
  inspected and are cleared once the next delivery resolves them
"""

import functools
import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states"""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Failing, reject all calls
    HALF_OPEN = "HALF_OPEN"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker"""

    failure_threshold: int = 5  # Failures before opening
    success_threshold: int = 1  # Successes to close from half-open
    timeout_seconds: float = 60.0  # Time before trying half-open
    excluded_exceptions: tuple = ()  # Exceptions that don't count as failures


@dataclass
class CircuitStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    last_failure_time: Optional[datetime] = None
    consecutive_failures: int = 0
    consecutive_successes: int = 0


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open"""


class CircuitBreaker:
    """
    Circuit Breaker Pattern Implementation

    States:
    - CLOSED: calls pass through
    - OPEN: all calls rejected until timeout_seconds elapsed
    - HALF_OPEN: one trial call decides whether to close or reopen

    Usage:
        breaker = CircuitBreaker("distance_resolver")
        miles = breaker.execute(resolver.resolve_miles, "Dallas", "TX", "Chicago", "IL")
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.stats = CircuitStats()
        self._clock = clock
        self._lock = Lock()
        self._last_state_change = clock()

    def __call__(self, func: Callable) -> Callable:
        """Decorator usage"""

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return self.execute(func, *args, **kwargs)

        return wrapper

    def execute(self, func: Callable, *args, **kwargs) -> Any:
        """Execute function with circuit breaker protection"""
        if not self.can_execute():
            self.stats.rejected_calls += 1
            raise CircuitBreakerOpenError(
                f"Circuit breaker '{self.name}' is OPEN. "
                f"Failures: {self.stats.consecutive_failures}"
            )

        self.stats.total_calls += 1

        try:
            result = func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def can_execute(self) -> bool:
        with self._lock:
            if self.state == CircuitState.OPEN:
                elapsed = (self._clock() - self._last_state_change).total_seconds()
                if elapsed >= self.config.timeout_seconds:
                    self._transition_to(CircuitState.HALF_OPEN)
                    return True
                return False
            return True

    def record_success(self):
        with self._lock:
            self.stats.successful_calls += 1
            self.stats.consecutive_successes += 1
            self.stats.consecutive_failures = 0

            if self.state == CircuitState.HALF_OPEN:
                if self.stats.consecutive_successes >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
                    logger.info(f"🟢 Circuit '{self.name}' CLOSED (service recovered)")

    def record_failure(self, exception: Optional[Exception] = None):
        with self._lock:
            self.stats.failed_calls += 1
            self.stats.consecutive_failures += 1
            self.stats.consecutive_successes = 0
            self.stats.last_failure_time = self._clock()

            if self.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
                logger.warning(
                    f"🔴 Circuit '{self.name}' OPEN (failed during recovery): {exception}"
                )
            elif self.state == CircuitState.CLOSED:
                if self.stats.consecutive_failures >= self.config.failure_threshold:
                    self._transition_to(CircuitState.OPEN)
                    logger.warning(
                        f"🔴 Circuit '{self.name}' OPEN after {self.stats.consecutive_failures} failures"
                    )

    def _transition_to(self, new_state: CircuitState):
        self.state = new_state
        self._last_state_change = self._clock()
        if new_state == CircuitState.HALF_OPEN:
            self.stats.consecutive_successes = 0
            logger.info(f"🟡 Circuit '{self.name}' HALF_OPEN (testing recovery)")

    def reset(self):
        """Manually reset circuit breaker"""
        with self._lock:
            self.state = CircuitState.CLOSED
            self.stats = CircuitStats()
            self._last_state_change = self._clock()

    def get_status(self) -> Dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "stats": {
                "total_calls": self.stats.total_calls,
                "successful_calls": self.stats.successful_calls,
                "failed_calls": self.stats.failed_calls,
                "rejected_calls": self.stats.rejected_calls,
                "consecutive_failures": self.stats.consecutive_failures,
            },
        }


@dataclass
class RetryConfig:
    """Configuration for retry with exponential backoff"""

    max_retries: int = 3
    base_delay_seconds: float = 0.1
    max_delay_seconds: float = 5.0
    exponential_base: float = 2.0
    jitter: bool = True  # Add randomness to prevent thundering herd
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)


def retry_with_backoff(
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for retry with exponential backoff

    Only exceptions listed in config.retry_on are retried; anything else
    propagates on the first attempt.

    Usage:
        @retry_with_backoff(RetryConfig(max_retries=3, retry_on=(ConcurrentRecomputation,)))
        def run_pipeline():
            ...
    """
    config = config or RetryConfig()

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(config.max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except config.retry_on as e:
                    if attempt == config.max_retries:
                        logger.error(
                            f"❌ {func.__name__} failed after {config.max_retries + 1} attempts: {e}"
                        )
                        raise

                    delay = min(
                        config.base_delay_seconds * (config.exponential_base**attempt),
                        config.max_delay_seconds,
                    )
                    if config.jitter:
                        delay *= 1 + random.random() * 0.5

                    logger.warning(
                        f"⚠️ {func.__name__} attempt {attempt + 1} failed: {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )

                    if on_retry:
                        on_retry(attempt + 1, e)

                    sleep(delay)

        return wrapper

    return decorator


@dataclass
class DeadLetterItem:
    """Item in dead letter queue"""

    truck_id: str
    operation: str
    error: str
    timestamp: datetime
    attempts: int
    data: Dict = field(default_factory=dict)


class DeadLetterQueue:
    """
    Dead Letter Queue for failed deadhead lookups

    Entries are keyed by truck. The deadhead step removes a truck's entries
    once a later lookup for that truck succeeds.
    """

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._queue: deque = deque(maxlen=max_size)
        self._failure_counts: Dict[str, int] = {}
        self._lock = Lock()

    def add(
        self,
        truck_id: str,
        operation: str,
        error: str,
        data: Optional[Dict] = None,
        attempts: int = 1,
    ):
        with self._lock:
            self._queue.append(
                DeadLetterItem(
                    truck_id=truck_id,
                    operation=operation,
                    error=error,
                    timestamp=datetime.now(),
                    attempts=attempts,
                    data=data or {},
                )
            )
            self._failure_counts[truck_id] = self._failure_counts.get(truck_id, 0) + 1

            logger.warning(
                f"📥 DLQ: Added {truck_id}/{operation} "
                f"(total failures: {self._failure_counts[truck_id]})"
            )

    def get_all(self) -> List[DeadLetterItem]:
        with self._lock:
            return list(self._queue)

    def get_by_truck(self, truck_id: str) -> List[DeadLetterItem]:
        with self._lock:
            return [item for item in self._queue if item.truck_id == truck_id]

    def remove(self, truck_id: str, operation: Optional[str] = None) -> int:
        """Remove items from queue (after successful retry)

        A truck's failure count is dropped once none of its items remain.
        """
        with self._lock:
            original_len = len(self._queue)
            self._queue = deque(
                [
                    i
                    for i in self._queue
                    if not (
                        i.truck_id == truck_id
                        and (operation is None or i.operation == operation)
                    )
                ],
                maxlen=self.max_size,
            )
            removed = original_len - len(self._queue)
            if not any(i.truck_id == truck_id for i in self._queue):
                self._failure_counts.pop(truck_id, None)
            if removed:
                logger.info(f"📤 DLQ: Removed {removed} items for {truck_id}")
            return removed

    def get_failure_count(self, truck_id: str) -> int:
        return self._failure_counts.get(truck_id, 0)

    def get_stats(self) -> Dict:
        with self._lock:
            return {
                "size": len(self._queue),
                "max_size": self.max_size,
                "unique_trucks": len(self._failure_counts),
                "total_failures": sum(self._failure_counts.values()),
            }
