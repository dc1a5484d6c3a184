#!/usr/bin/env python3

"""
This module provides functions that wait for conditions on the cluster to hold,
polling them regularly until a timeout is elapsed.
"""

import logging
import time

from typing import Any, Callable, Tuple, Type, TypeVar

from cdap_testing.faults import ConfigurationFault, NotFoundFault, TimeoutFault

T = TypeVar("T")

RetryOn = Tuple[Type[BaseException], ...]

def _check_bounds(timeout: float, poll_interval: float) -> None:
    if timeout <= 0:
        return

    if poll_interval <= 0 or poll_interval >= timeout:
        raise ConfigurationFault(
            "The poll interval must be positive and less than the timeout; got poll interval {} and timeout {}."
            .format(poll_interval, timeout))

def wait_for(expected: T,
             supplier: Callable[[], T],
             timeout: float,
             poll_interval: float,
             retry_on: RetryOn = (NotFoundFault,)) -> T:
    """
    Evaluates `supplier` regularly with a period of `poll_interval` until it returns
    a value equal to `expected` or `timeout` is elapsed.

    If `supplier` raises an exception listed in `retry_on`, the attempt is treated as
    the condition not holding yet. Any other exception is propagated immediately.

    Args:
        expected: The value that `supplier` should return.
        supplier: A function without arguments that is safe to call repeatedly.
        timeout: The maximal time to wait, in seconds. If it is zero or negative,
            `supplier` is evaluated exactly once.
        poll_interval: The time between evaluations, in seconds. Must be positive
            and less than `timeout` if `timeout` is positive.
        retry_on: The exception types that mean "not yet".

    Returns:
        The value returned by `supplier` that equals `expected`.

    Raises:
        ConfigurationFault: If the poll interval is not within the bounds described above.
        TimeoutFault: If `supplier` did not return `expected` in time. The fault carries
            the last value or exception observed and the elapsed time.

    """

    _check_bounds(timeout, poll_interval)

    start_time = time.monotonic()
    attempts = 0
    last_observed: Any = None

    while True:
        attempts += 1
        try:
            last_observed = supplier()
            if last_observed == expected:
                logging.debug("Condition met after %s attempt(s).", attempts)
                return last_observed
        except retry_on as error: # pylint: disable=catching-non-exception
            last_observed = error

        elapsed = time.monotonic() - start_time
        logging.debug("Attempt %s: expected %r, observed %r.", attempts, expected, last_observed)

        if elapsed >= timeout:
            logging.warning("Timed out after %.3f seconds waiting for %r; last observed %r.",
                            elapsed, expected, last_observed)
            raise TimeoutFault("Timed out waiting for {!r} after {} attempt(s).".format(expected, attempts),
                               last_observed,
                               elapsed)

        time.sleep(min(poll_interval, timeout - elapsed))

def wait_for_true(predicate: Callable[[], bool],
                  timeout: float,
                  poll_interval: float,
                  retry_on: RetryOn = (NotFoundFault,)) -> None:
    """
    Waits until `predicate` returns True. See `wait_for` for the details.
    """

    wait_for(True, predicate, timeout, poll_interval, retry_on)
