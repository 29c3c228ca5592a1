# utils/completion.py
import logging
import threading
from typing import Optional

REASON_COMPLETE = "complete"
REASON_TIMEOUT = "timeout"
REASON_ABORTED = "aborted"


class CompletionSignal:
    """
    One-shot "run finished" event: pending -> fired, exactly once.

    Any number of threads may call fire(); only the first one changes state and records
    its reason, the rest are no-ops and get False back.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def fire(self, reason: str = REASON_COMPLETE) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
        logging.info(f"[DONE] completion signal fired (reason={reason})")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until fired. Returns False if ``timeout`` seconds pass first."""
        return self._event.wait(timeout)


class CompletionDetector:
    """Fires ``signal`` once the received count reaches ``target``."""

    def __init__(self, target: int, signal: CompletionSignal):
        if target <= 0:
            raise ValueError(f"completion target must be positive, got {target}")
        self.target = target
        self.signal = signal

    def check(self, count: int) -> bool:
        if count >= self.target and not self.signal.fired:
            return self.signal.fire(REASON_COMPLETE)
        return False

    def wait(self, timeout: Optional[float] = None) -> str:
        """
        Wait for completion; on timeout force the signal so late verifier calls see a
        fired state. Returns the reason the run ended with.
        """
        if not self.signal.wait(timeout if timeout else None):
            if self.signal.fire(REASON_TIMEOUT):
                logging.warning(f"[DONE] timed out after {timeout}s before {self.target} packets arrived")
        return self.signal.reason
