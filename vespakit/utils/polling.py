# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

import logging
import sys
import threading
import time
from typing import IO, Callable, Optional

from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from vespakit.exceptions import (
    DeploymentCancelledError,
    DeploymentTimeoutError,
    InvalidArgumentError,
)

logger = logging.getLogger(__name__)

DEFAULT_TRY_INTERVAL = 5


def poll_until(
    check: Callable[[], bool],
    max_wait: int,
    try_interval: int = DEFAULT_TRY_INTERVAL,
    description: str = "service",
    output_file: IO = sys.stdout,
    sleep: Optional[Callable[[float], None]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> int:
    """
    Call `check` every `try_interval` seconds until it returns True.

    The interval is fixed, there is no backoff. The wait is bounded by a counter rather than the wall
    clock: after `max_wait // try_interval` sleeps the next failed check ends the wait, so a check
    that never succeeds is performed exactly `max_wait // try_interval + 1` times.

    Args:
        check (callable): Returns True when the awaited service is ready. Exceptions it raises are not retried.
        max_wait (int): Seconds to wait before giving up.
        try_interval (int, optional): Seconds between two checks. Default is 5.
        description (str, optional): What is awaited, used in progress and error messages.
        output_file (IO, optional): Stream receiving the progress messages.
        sleep (callable, optional): Sleep function. Defaults to `time.sleep`.
        cancel_event (threading.Event, optional): Setting the event aborts the wait at the next pause.

    Returns:
        int: Seconds waited before `check` succeeded.

    Raises:
        DeploymentTimeoutError: `check` did not succeed within `max_wait`.
        DeploymentCancelledError: `cancel_event` was set while waiting.
    """
    if try_interval <= 0:
        raise InvalidArgumentError("try_interval must be a positive number of seconds")
    if max_wait < 0:
        raise InvalidArgumentError("max_wait cannot be negative")

    sleep = sleep or time.sleep
    waited = 0

    def report(retry_state) -> None:
        print(
            "Waiting for {0}, {1}/{2} seconds...".format(description, waited, max_wait),
            file=output_file,
        )

    def pause(seconds: float) -> None:
        nonlocal waited
        if cancel_event is None:
            sleep(seconds)
        elif cancel_event.wait(seconds):
            logger.debug("Wait for %s cancelled after %s seconds", description, waited)
            raise DeploymentCancelledError(
                "Waiting for {} was cancelled after {} seconds.".format(
                    description, waited
                ),
                waited=waited,
            )
        waited += try_interval

    retryer = Retrying(
        wait=wait_fixed(try_interval),
        stop=stop_after_attempt(max_wait // try_interval + 1),
        retry=retry_if_result(lambda ready: not ready),
        before_sleep=report,
        sleep=pause,
    )
    try:
        retryer(check)
    except RetryError:
        logger.error("%s not ready after %s seconds", description, waited)
        raise DeploymentTimeoutError(
            "{} did not start, waited for {} seconds.".format(
                description[0].upper() + description[1:], waited
            ),
            waited=waited,
        ) from None
    return waited
