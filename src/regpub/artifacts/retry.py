# regpub - artifacts - retry policy
# Copyright (C) 2025  Clyso GmbH
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.

import asyncio
import random
from collections.abc import Awaitable, Callable

from regpub.artifacts import logger as parent_logger

logger = parent_logger.getChild("retry")


RetryHook = Callable[[int, BaseException, float], None]
SleepFn = Callable[[float], Awaitable[None]]


def _always(_: BaseException) -> bool:
    return True


class RetryPolicy:
    """
    Describes how an operation is to be retried.

    An operation is attempted at most `max_retries + 1` times. Before retry `n`
    (starting at 0), we wait `2**n * delay_factor` seconds, plus up to
    `jitter` of that value picked at random. Only errors for which `retryable`
    returns `True` are retried; any other error is propagated immediately.
    """

    max_retries: int
    delay_factor: float
    jitter: float
    retryable: Callable[[BaseException], bool]

    def __init__(
        self,
        *,
        max_retries: int,
        delay_factor: float,
        jitter: float = 0.2,
        retryable: Callable[[BaseException], bool] = _always,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")  # noqa: TRY003
        self.max_retries = max_retries
        self.delay_factor = delay_factor
        self.jitter = jitter
        self.retryable = retryable

    def delay(self, retry: int) -> float:
        base = 2**retry * self.delay_factor
        return base + base * random.uniform(0, self.jitter)  # noqa: S311


async def retry_async[T](
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_retry: RetryHook | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """
    Run `fn` according to `policy`.

    The last error is propagated once retries are exhausted. `on_retry` is called
    once per retry, before sleeping, with the retry number, the error that
    triggered it, and the delay to be waited.
    """
    retry = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if retry >= policy.max_retries or not policy.retryable(e):
                raise

            delay = policy.delay(retry)
            logger.warning(
                f"attempt {retry + 1} of {policy.max_retries + 1} failed: {e} "
                + f"-- retrying in {delay:.2f} seconds"
            )
            if on_retry is not None:
                on_retry(retry, e, delay)
            await sleep(delay)
            retry += 1
