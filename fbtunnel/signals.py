"""
Interrupt handling for a run.

SIGINT and SIGTERM are turned into a one-shot event. A listener thread
runs the registered shutdown callbacks, so nothing heavy happens inside
the signal handler itself. Tests call fire() instead of sending signals.
"""

import logging
import signal
import threading

log = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class InterruptListener:
    """Explicit cancellation source for the orchestrator."""

    def __init__(self, handle_signals=True, signals=DEFAULT_SIGNALS):
        self.handle_signals = handle_signals
        self.signals = tuple(signals)
        self.signum = None
        self._fired = threading.Event()
        self._handled = threading.Event()
        self._callbacks = []
        self._previous_handlers = {}
        self._thread = None

    @property
    def fired(self):
        return self._fired.is_set()

    def add_callback(self, callback):
        """Register a callable to run, in order, once the listener fires."""
        self._callbacks.append(callback)

    def start(self):
        """Start the listener thread and, if enabled, take over the OS signals."""
        if self._thread is not None:
            return

        if self.handle_signals:
            for signum in self.signals:
                self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

        self._thread = threading.Thread(target=self._listen, name='interrupt-listener', daemon=True)
        self._thread.start()

    def close(self):
        """Give the OS signals back to whoever had them before start()."""
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def fire(self, signum=None):
        if self._fired.is_set():
            return
        self.signum = signum
        self._fired.set()

    def wait(self, timeout=None):
        """Sleep up to timeout seconds; returns True early if the listener fired."""
        return self._fired.wait(timeout)

    def wait_handled(self, timeout=None):
        """Wait for the shutdown callbacks to finish. True if they have."""
        return self._handled.wait(timeout)

    def _handle_signal(self, signum, frame):
        self.fire(signum)

    def _listen(self):
        self._fired.wait()
        if self.signum is not None:
            log.info(f"Received signal {signal.Signals(self.signum).name}, shutting down")
        try:
            for callback in self._callbacks:
                try:
                    callback()
                except Exception:
                    log.exception("Shutdown callback failed")
        finally:
            self._handled.set()
