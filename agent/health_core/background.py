"""
Background probes — slow checks that must not block the tick.

At most one run per probe is outstanding. The worker thread never touches
engine state: it only puts its result on the queue, and the tick thread
applies queued results in the order they completed.
"""

import queue
import threading
import time
from datetime import datetime, timezone

from .config import log
from .signals import run_probe


class BackgroundProbe:

    def __init__(self, name, probe, results, interval_sec=0):
        self.name = name
        self._probe = probe
        self._results = results
        self.interval_sec = interval_sec
        self._in_flight = False
        self._last_submit = None     # monotonic

    @property
    def in_progress(self) -> bool:
        return self._in_flight

    def due(self, now=None) -> bool:
        if self._last_submit is None:
            return True
        now = time.monotonic() if now is None else now
        return (now - self._last_submit) >= self.interval_sec

    def submit(self) -> bool:
        """Start a run unless one is still outstanding. Returns True if started."""
        if self._in_flight:
            log.info("Background probe %s still in progress — not re-issued", self.name)
            return False
        self._in_flight = True
        self._last_submit = time.monotonic()

        def do_probe():
            # run_probe never raises; the flag is cleared before the result
            # becomes visible to the tick thread.
            result = run_probe(self.name, self._probe)
            self._in_flight = False
            self._results.put((self.name, result, datetime.now(timezone.utc)))

        threading.Thread(target=do_probe, name=f"probe-{self.name}", daemon=True).start()
        return True


def drain(results, limit=100):
    """Yield queued (name, result, completed_at) tuples, oldest first."""
    count = 0
    while count < limit:
        try:
            item = results.get_nowait()
        except queue.Empty:
            break
        count += 1
        yield item
