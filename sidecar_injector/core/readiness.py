from __future__ import annotations

import threading
from typing import Optional

from sidecar_injector.core.errors import ReadinessTimeoutError


class ReadinessGate:
    """
    One-shot latch signalling that the injector finished initializing.

    Any number of threads may `wait()` concurrently, each with its own timeout. Once opened the
    gate stays open for the lifetime of the process.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def is_open(self) -> bool:
        return self._event.is_set()

    def open(self) -> None:
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> None:
        """
        Block until the gate opens.

        Raises `ReadinessTimeoutError` when `timeout` seconds pass first. `timeout=None` waits
        without a bound; callers serving probes should always pass one.
        """
        if self._event.is_set():
            return
        if timeout is not None and timeout <= 0:
            raise ReadinessTimeoutError()
        if not self._event.wait(timeout):
            raise ReadinessTimeoutError()
