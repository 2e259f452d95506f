"""Retry policy for chain reads.

Every external read goes through ``RetryPolicy.call``: the blocking client
method runs in a worker thread and transient transport errors are retried
with the configured wait generator until ``max_tries`` or ``max_time`` is
exhausted, at which point the last error propagates.
"""
import asyncio
import logging
from typing import Any, Callable, Optional, Tuple, Type

import backoff

from chain import NodeConnectionError

logger = logging.getLogger(__name__)

class RetryPolicy:
    """Configurable retry around blocking chain reads."""

    def __init__(
        self,
        interval: float = 3.0,
        max_tries: Optional[int] = None,
        max_time: Optional[float] = None,
        wait_gen: Callable = backoff.constant,
        exceptions: Tuple[Type[BaseException], ...] = (NodeConnectionError,),
        **wait_kwargs
    ):
        """Initialize the policy.

        Args:
            interval: Seconds between attempts for the default constant wait
            max_tries: Attempts before giving up, None retries indefinitely
            max_time: Seconds before giving up, None for no limit
            wait_gen: backoff wait generator (constant, expo, fibo, ...)
            exceptions: Exception types treated as transient
            **wait_kwargs: Extra arguments for the wait generator
        """
        self.max_tries = max_tries
        self.max_time = max_time
        self.wait_gen = wait_gen
        self.exceptions = exceptions
        self.wait_kwargs = dict(wait_kwargs)
        if wait_gen is backoff.constant:
            self.wait_kwargs.setdefault('interval', interval)

    @classmethod
    def from_settings(cls, settings) -> 'RetryPolicy':
        """Fixed-delay policy from ``retry_interval`` and ``retry_max_tries``"""
        return cls(
            interval=settings['retry_interval'],
            max_tries=settings['retry_max_tries'] or None,
        )

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(wait={self.wait_gen.__name__}, max_tries={self.max_tries}, "
            f"max_time={self.max_time})"
        )

    @staticmethod
    def _log_backoff(details) -> None:
        logger.warning(
            f"Chain read {details['target'].__name__} failed "
            f"(attempt {details['tries']}), retrying in {details['wait']:.1f}s: "
            f"{details.get('exception')}"
        )

    @staticmethod
    def _log_giveup(details) -> None:
        logger.error(
            f"Giving up on chain read {details['target'].__name__} after "
            f"{details['tries']} attempts: {details.get('exception')}"
        )

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Run ``func(*args, **kwargs)`` in a thread under this policy.

        Raises:
            The last transient error once the policy is exhausted, or any
            non-transient error immediately
        """
        async def attempt():
            return await asyncio.to_thread(func, *args, **kwargs)

        attempt.__name__ = getattr(func, "__name__", repr(func))
        retrying = backoff.on_exception(
            self.wait_gen,
            self.exceptions,
            max_tries=self.max_tries,
            max_time=self.max_time,
            jitter=None,
            on_backoff=self._log_backoff,
            on_giveup=self._log_giveup,
            **self.wait_kwargs
        )(attempt)
        return await retrying()
