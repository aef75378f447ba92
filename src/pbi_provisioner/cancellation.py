"""
Cooperative cancellation for the provisioning poll loops.

A CancellationToken is checked by the import and refresh poll loops before
every wait. It is cancelled explicitly (``cancel()``), by Ctrl+C through
``setup_cancellation_handler()``, or implicitly once its optional deadline
passes.

Example:
    ```python
    token = CancellationToken.with_timeout(30 * 60)
    provisioner.initialize_from_template(config, cancellation_token=token)
    ```
"""

import logging
import signal
import threading
import time
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class OperationCancelledException(Exception):
    """
    Raised when an operation is cancelled or its deadline passes.

    Attributes:
        message: Human-readable description of the cancellation.
        operation: Optional name of the operation that was cancelled.
    """

    def __init__(
        self,
        message: str = "Operation was cancelled",
        operation: Optional[str] = None
    ):
        self.message = message
        self.operation = operation
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.operation:
            return f"{self.message} (operation: {self.operation})"
        return self.message


class CancellationToken:
    """
    Thread-safe cancellation token with an optional deadline.

    Args:
        deadline: Absolute time (in ``clock`` units) after which the token
            reports itself cancelled. None means no deadline.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cancelled = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()
        self._cancel_reason: Optional[str] = None
        self._deadline = deadline
        self._clock = clock

    @classmethod
    def with_timeout(
        cls,
        seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CancellationToken":
        """Create a token that cancels itself ``seconds`` from now."""
        return cls(deadline=clock() + seconds, clock=clock)

    def cancel(self, reason: Optional[str] = None) -> None:
        """
        Mark the token as cancelled and run registered callbacks once.

        Safe to call from any thread, including signal handlers.
        """
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancel_reason = reason
            self._cancelled.set()
            callbacks = list(self._callbacks)

        logger.info(f"Cancellation requested: {reason or 'user initiated'}")
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}")

    @property
    def deadline_passed(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(self._deadline - self._clock(), 0.0)

    def is_cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        if self.deadline_passed:
            self.cancel("deadline exceeded")
            return True
        return False

    def throw_if_cancelled(self, operation: Optional[str] = None) -> None:
        """
        Raise OperationCancelledException if cancellation was requested.

        Raises:
            OperationCancelledException: If cancelled or past the deadline.
        """
        if self.is_cancelled():
            message = "Operation was cancelled"
            if self._cancel_reason:
                message = f"Operation was cancelled: {self._cancel_reason}"
            raise OperationCancelledException(message, operation)

    def register_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._callbacks.append(callback)

    @property
    def cancel_reason(self) -> Optional[str]:
        return self._cancel_reason


_original_sigint_handler = None


def setup_cancellation_handler(
    message: str = "\nCancellation requested. Cleaning up...",
    timeout: Optional[float] = None,
) -> CancellationToken:
    """
    Install a SIGINT handler that cancels the returned token.

    The first Ctrl+C cancels gracefully; a second one restores the original
    handler and raises KeyboardInterrupt.

    Args:
        message: Printed on the first Ctrl+C
        timeout: Optional deadline in seconds for the returned token
    """
    global _original_sigint_handler

    token = CancellationToken.with_timeout(timeout) if timeout else CancellationToken()
    interrupted = [False]

    def signal_handler(sig: int, frame) -> None:
        if interrupted[0]:
            print("\nForced exit. Some cleanup may be incomplete.")
            if _original_sigint_handler:
                signal.signal(signal.SIGINT, _original_sigint_handler)
            raise KeyboardInterrupt

        interrupted[0] = True
        print(message)
        token.cancel("user interrupted (SIGINT)")

    _original_sigint_handler = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, signal_handler)

    return token


def restore_default_handler() -> None:
    """Restore the SIGINT handler replaced by setup_cancellation_handler()."""
    global _original_sigint_handler

    if _original_sigint_handler:
        signal.signal(signal.SIGINT, _original_sigint_handler)
        _original_sigint_handler = None
