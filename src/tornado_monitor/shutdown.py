"""Signal handling for the long-running monitor process.

Usage:
    ```python
    async with GracefulShutdown() as shutdown:
        shutdown.register_cleanup(service.stop)
        await service.start()
        await shutdown.wait()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Callable
from contextlib import suppress
from types import FrameType
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT = 30.0

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)

Cleanup = Callable[[], Any]


class GracefulShutdown:
    """Turns SIGTERM/SIGINT into an awaitable stop request for the monitors.

    A second signal while the monitors are stopping exits at once with
    ``128 + signum``. Cleanups run on context exit, each bounded by
    ``timeout`` seconds.
    """

    def __init__(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        self._timeout = timeout
        self._shutdown_event: asyncio.Event | None = None
        self._requested = False
        self._received_signal: signal.Signals | None = None
        self._previous_handlers: dict[signal.Signals, Any] = {}
        self._cleanups: list[Cleanup] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def is_shutdown_requested(self) -> bool:
        return self._requested

    @property
    def received_signal(self) -> signal.Signals | None:
        """Signal that triggered the stop; None for ``request_shutdown``."""
        return self._received_signal

    def register_cleanup(self, callback: Cleanup) -> None:
        """Add a sync or async callable to run on exit, in registration order."""
        self._cleanups.append(callback)

    def request_shutdown(self) -> None:
        """Ask the monitors to stop without a signal (e.g. on a fatal error)."""
        if self._requested:
            return
        logger.info("Stop requested by the application")
        self._mark_requested()

    async def wait(self) -> None:
        """Block until a signal arrives or ``request_shutdown`` is called."""
        await self._event().wait()

    def install_signal_handlers(self) -> None:
        """Trap SIGTERM and SIGINT on the running loop.

        Windows has no loop signal support, so ``signal.signal`` is used there.
        """
        self._loop = asyncio.get_running_loop()
        self._event()

        for sig in SHUTDOWN_SIGNALS:
            try:
                if sys.platform == "win32":
                    self._previous_handlers[sig] = signal.signal(sig, self._on_windows_signal)
                else:
                    self._loop.add_signal_handler(sig, self._handle_signal, sig)
            except (ValueError, OSError, NotImplementedError) as e:
                logger.warning("Cannot trap %s: %s", sig.name, e)
            else:
                logger.debug("Trapping %s", sig.name)

    def remove_signal_handlers(self) -> None:
        """Give the signals back to whoever handled them before."""
        if self._loop is not None and sys.platform != "win32":
            for sig in SHUTDOWN_SIGNALS:
                with suppress(ValueError, OSError, NotImplementedError):
                    self._loop.remove_signal_handler(sig)
        for sig, previous in self._previous_handlers.items():
            with suppress(ValueError, OSError):
                signal.signal(sig, previous)
        self._previous_handlers.clear()

    async def run_cleanup_callbacks(self) -> None:
        """Run every cleanup; one failing or hanging does not skip the rest."""
        for callback in self._cleanups:
            name = getattr(callback, "__qualname__", repr(callback))
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await asyncio.wait_for(result, timeout=self._timeout)
            except TimeoutError:
                logger.error("Cleanup %s did not finish within %gs", name, self._timeout)
            except Exception as e:
                logger.error("Cleanup %s failed: %s", name, e)

    def _event(self) -> asyncio.Event:
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
            if self._requested:
                self._shutdown_event.set()
        return self._shutdown_event

    def _mark_requested(self) -> None:
        self._requested = True
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._requested:
            logger.warning("%s received while stopping monitors, exiting now", sig.name)
            sys.exit(128 + sig.value)

        logger.info("%s received, stopping monitors...", sig.name)
        self._received_signal = sig
        self._mark_requested()

    def _on_windows_signal(self, signum: int, _frame: FrameType | None) -> None:
        self._handle_signal(signal.Signals(signum))

    async def __aenter__(self) -> GracefulShutdown:
        self.install_signal_handlers()
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        self.remove_signal_handlers()
        await self.run_cleanup_callbacks()
