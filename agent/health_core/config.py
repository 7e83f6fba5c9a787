"""
Paths, logging setup, safe_print.
"""

import os
import sys
import logging
from pathlib import Path

from .constants import LOG_FORMAT, LOG_DATEFMT, LOG_MAX_BYTES, LOG_ARCHIVE_COUNT
from .logsink import LogSink


# ─── Paths ───────────────────────────────────────────────────────
# Fixed machine-wide location, independent of where the exe runs from.
_FOLDER_NAME = "EndpointHealth"

if sys.platform == "win32":
    BASE_DIR = Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData")) / _FOLDER_NAME
else:
    BASE_DIR = Path(__file__).parent.parent

STATE_FILE = BASE_DIR / "state.json"
LOG_FILE = BASE_DIR / "health.log"


# ─── Safe print (no crash when --noconsole) ──────────────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except Exception:
        pass


# ─── Logging ─────────────────────────────────────────────────────

log = logging.getLogger("health")


def setup_logging(log_file=LOG_FILE, max_bytes=LOG_MAX_BYTES, keep=LOG_ARCHIVE_COUNT,
                  console=True):
    """
    Attach the LogSink (file) and a console handler to the agent logger.
    Safe to call again: previously installed handlers are replaced.
    Returns the LogSink.
    """
    log_file = Path(log_file)
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        safe_print("Could not create log directory %s: %s" % (log_file.parent, e))

    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    sink = LogSink(log_file, max_bytes=max_bytes, keep=keep)
    log.addHandler(sink)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        log.addHandler(console_handler)

    log.setLevel(logging.INFO)
    log.propagate = False

    # A full log left by the previous run is archived before anything new is written.
    sink.rotate()
    return sink
