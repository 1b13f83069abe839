"""Deferred interrupt handling for destructive runs.

While a lifecycle request executes, Ctrl-C must not tear down a gateway
call that is in flight: an interrupted destroy leaves the node-side
object in an undefined state. The first SIGINT therefore only sets a
cancellation event; the controller finishes the current call and skips
every identifier that has not started. A second SIGINT restores the
normal behaviour and interrupts immediately.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from types import FrameType

from qmctl.utils.logging import get_logger

logger = get_logger("signals")


@contextmanager
def deferred_interrupt(cancel: threading.Event | None = None) -> Iterator[threading.Event]:
    """Turn the first SIGINT into a cancellation request.

    Outside the main thread signal handlers cannot be installed; the
    event is still yielded so callers can cancel programmatically.

    Example:
        >>> with deferred_interrupt() as cancel:
        ...     report = controller.execute(plan, cancel=cancel)
    """
    cancel = cancel or threading.Event()

    if threading.current_thread() is not threading.main_thread():
        yield cancel
        return

    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum: int, frame: FrameType | None) -> None:
        if cancel.is_set():
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        logger.warning("Interrupt received; finishing the current operation, skipping the rest")
        cancel.set()

    signal.signal(signal.SIGINT, _handler)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)
