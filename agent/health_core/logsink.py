"""
LogSink — append-only log file writer with bounded retry and rotation.

Each line is written by opening the file, appending and closing it again,
so the handle is only held for the duration of one write. Transient write
failures are retried a few times, then the line goes to the fallback
stream (stderr). Nothing here ever raises into the caller.

Rotation renames the active file to a timestamped archive and prunes old
archives down to `keep`. While a rotation runs, incoming lines are dropped
(not queued): a log call made from inside rotation must not trigger
another rotation.
"""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path

from .constants import (
    LOG_MAX_BYTES, LOG_ARCHIVE_COUNT, IO_RETRY_ATTEMPTS, IO_RETRY_DELAY_SEC,
    LOG_FORMAT, LOG_DATEFMT,
)


class LogSink(logging.Handler):
    """logging.Handler that owns the agent log file."""

    def __init__(self, path, max_bytes=LOG_MAX_BYTES, keep=LOG_ARCHIVE_COUNT,
                 retries=IO_RETRY_ATTEMPTS, retry_delay=IO_RETRY_DELAY_SEC,
                 fallback=None):
        super().__init__(level=logging.INFO)
        self.path = Path(path)
        self.max_bytes = max_bytes
        self.keep = keep
        self.retries = retries
        self.retry_delay = retry_delay
        self._fallback = fallback
        self._rotating = False
        self.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))

    @property
    def rotating(self) -> bool:
        return self._rotating

    # ─── Writing ─────────────────────────────────────────────

    def append(self, level, message):
        """Write one `[timestamp] [LEVEL] message` line. Never raises."""
        try:
            if isinstance(level, str):
                levelno = logging.getLevelName(level.upper())
                if not isinstance(levelno, int):
                    levelno = logging.INFO
            else:
                levelno = int(level)
            record = logging.LogRecord(
                "health", levelno, __file__, 0, str(message), None, None,
            )
            self.handle(record)
        except Exception as e:
            self._to_fallback("LogSink.append failed: %s" % e)

    def emit(self, record):
        if self._rotating:
            return
        try:
            line = self.format(record)
        except Exception as e:
            self._to_fallback("LogSink could not format record: %s" % e)
            return
        if self._write_line(line):
            self.rotate()

    def _write_line(self, line):
        """Append with retry. Returns True if the line reached the file."""
        last_error = None
        for attempt in range(1, self.retries + 1):
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
                return True
            except OSError as e:
                last_error = e
                if attempt < self.retries:
                    time.sleep(self.retry_delay)
        self._to_fallback(line)
        self._to_fallback("LogSink write failed after %d attempts: %s" % (self.retries, last_error))
        return False

    def _to_fallback(self, text):
        stream = self._fallback or sys.stderr
        try:
            stream.write(text + "\n")
            stream.flush()
        except Exception:
            pass

    # ─── Rotation ────────────────────────────────────────────

    def archives(self):
        """Existing archive files, oldest first (creation time, then name)."""
        pattern = f"{self.path.stem}_*{self.path.suffix}"
        found = []
        for p in self.path.parent.glob(pattern):
            try:
                st = p.stat()
            except OSError:
                continue
            created = getattr(st, "st_birthtime", st.st_ctime)
            found.append((created, p.name, p))
        found.sort(key=lambda item: (item[0], item[1]))
        return [p for _, _, p in found]

    def rotate(self):
        """
        Rotate the active file if it is over `max_bytes`.
        Returns the archive path, or None if nothing was rotated.
        """
        if self._rotating:
            return None
        try:
            if not self.path.exists() or self.path.stat().st_size <= self.max_bytes:
                return None
        except OSError as e:
            self._to_fallback("LogSink could not stat %s: %s" % (self.path, e))
            return None

        self._rotating = True
        try:
            archive = self._archive_active()
            if archive is not None:
                self._prune()
            return archive
        except Exception as e:
            self._to_fallback("LogSink rotation failed: %s" % e)
            return None
        finally:
            self._rotating = False

    def _archive_name(self):
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        target = self.path.with_name(f"{self.path.stem}_{stamp}{self.path.suffix}")
        n = 1
        # Coarse clocks (Windows) can repeat a stamp between quick rotations.
        while target.exists():
            target = self.path.with_name(f"{self.path.stem}_{stamp}_{n}{self.path.suffix}")
            n += 1
        return target

    def _archive_active(self):
        for attempt in range(1, self.retries + 1):
            target = self._archive_name()
            try:
                self.path.rename(target)
                return target
            except OSError as e:
                if attempt < self.retries:
                    time.sleep(self.retry_delay)
                else:
                    self._to_fallback("LogSink could not rename %s: %s" % (self.path, e))
        return None

    def _prune(self):
        archives = self.archives()
        excess = len(archives) - self.keep
        for old in archives[:max(excess, 0)]:
            for attempt in range(1, self.retries + 1):
                try:
                    old.unlink()
                    break
                except FileNotFoundError:
                    break
                except OSError as e:
                    if attempt < self.retries:
                        time.sleep(self.retry_delay)
                    else:
                        self._to_fallback("LogSink could not delete %s: %s" % (old, e))
