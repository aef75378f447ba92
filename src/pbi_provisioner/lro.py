"""
Polling of long-running Power BI operations.

Package imports and dataset refreshes are asynchronous on the platform side.
The Poller waits a fixed interval, fetches a fresh status snapshot, and stops
when the snapshot is terminal, the attempt budget runs out, or the
cancellation token fires.

Classes:
    PollOutcome: Result of a poll loop
    Poller: Fixed-interval poll loop with progress reporting and cancellation
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from tqdm import tqdm

from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PollOutcome(Generic[T]):
    """
    Attributes:
        completed: True if ``is_done`` accepted the last snapshot
        attempts: Number of status fetches performed
        last: Last snapshot fetched (None if none was fetched)
    """
    completed: bool
    attempts: int
    last: Optional[T] = None


class Poller:
    """Fixed-interval poll loop.

    Each iteration waits ``interval`` seconds first and then fetches, so the
    remote operation always gets one full interval before the first check.

    Example:
        >>> poller = Poller()
        >>> outcome = poller.poll(
        ...     fetch=lambda: client.get_import_in_group(group_id, import_id),
        ...     is_done=lambda status: status.import_state != "Publishing",
        ...     interval=2,
        ...     description="Import publishing",
        ... )
    """

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        show_progress: bool = False,
        slice_seconds: float = 1.0,
    ):
        """
        Args:
            sleep: Suspension primitive
            show_progress: Render a tqdm progress bar while polling
            slice_seconds: Granularity of cancellation checks while waiting
        """
        self._sleep = sleep
        self._show_progress = show_progress
        self._slice_seconds = slice_seconds

    def _wait(self, seconds: float, token: Optional[CancellationToken], description: str) -> None:
        if token is None:
            self._sleep(seconds)
            return

        remaining = float(seconds)
        while remaining > 0:
            token.throw_if_cancelled(description)
            step = min(self._slice_seconds, remaining)
            deadline_left = token.remaining()
            if deadline_left is not None:
                step = min(step, max(deadline_left, 0.0)) or step
            self._sleep(step)
            remaining -= step
        token.throw_if_cancelled(description)

    def poll(
        self,
        fetch: Callable[[], T],
        is_done: Callable[[T], bool],
        interval: float,
        max_attempts: Optional[int] = None,
        description: str = "Operation",
        status_of: Optional[Callable[[T], Any]] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> PollOutcome[T]:
        """Poll until ``is_done`` holds or the attempt budget is exhausted.

        Args:
            fetch: Returns a fresh status snapshot; exceptions propagate
            is_done: Decides whether a snapshot is terminal
            interval: Seconds to wait before each fetch
            max_attempts: Attempt cap, or None to poll until done
            description: Label used in logs and the progress bar
            status_of: Extracts a printable status from a snapshot
            cancellation_token: Optional token checked before each wait

        Returns:
            PollOutcome; ``completed`` is False only when the cap was hit

        Raises:
            OperationCancelledException: If the token is cancelled
        """
        attempts = 0
        last: Optional[T] = None

        with tqdm(
            total=max_attempts,
            desc=description,
            unit="poll",
            disable=not self._show_progress,
        ) as pbar:
            while max_attempts is None or attempts < max_attempts:
                if cancellation_token is not None:
                    cancellation_token.throw_if_cancelled(description)

                self._wait(interval, cancellation_token, description)
                last = fetch()
                attempts += 1
                pbar.update(1)

                status = status_of(last) if status_of else None
                if status is not None:
                    pbar.set_postfix_str(f"Status: {status}")

                if is_done(last):
                    logger.info(f"{description}: finished after {attempts} poll(s) (status: {status})")
                    return PollOutcome(completed=True, attempts=attempts, last=last)

                logger.info(f"{description}: still running after {attempts} poll(s) (status: {status})")

        logger.warning(f"{description}: not finished after {attempts} poll(s), giving up")
        return PollOutcome(completed=False, attempts=attempts, last=last)
