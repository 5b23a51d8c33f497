"""Shutdown signal handling."""

from __future__ import annotations

import os
import signal
import threading

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)
_installed = threading.Event()


def setup_signal_handler() -> threading.Event:
    """Install handlers for SIGINT and SIGTERM and return an event set on the first one.

    A second signal terminates the process with exit code 1. Calling this
    function more than once raises RuntimeError.
    """
    if _installed.is_set():
        raise RuntimeError("signal handler has already been set up")
    _installed.set()

    stop = threading.Event()

    def _handle(signum, frame):
        if stop.is_set():
            os._exit(1)
        stop.set()

    for sig in _SHUTDOWN_SIGNALS:
        signal.signal(sig, _handle)
    return stop