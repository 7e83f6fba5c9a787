"""
PersistedState + StateStore — the agent's only durable record.

The state file holds both configuration (URL, intervals, thresholds) and
last-known snapshots. Administrators may edit it by hand, and older or
newer agent versions may have written it, so loading is tolerant:

  - missing or wrongly-typed keys are backfilled from the typed defaults
  - unknown keys are carried along untouched and written back on save
  - a file that cannot be parsed at all is renamed to state.json.corrupt-<stamp>
    before defaults are used; its bytes are never overwritten by a later save

Saves go to a temporary sibling and are swapped in with os.replace, so a
crash mid-write never leaves a half-written state file behind.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .config import log, STATE_FILE
from .constants import (
    DEFAULT_CONTENT_URL, REFRESH_INTERVAL_SEC, CACHE_TTL_SEC, FETCH_TIMEOUT_SEC,
    LOG_MAX_BYTES, LOG_ARCHIVE_COUNT, CERT_SUBJECT, CERT_WARNING_DAYS,
    CERT_CHECK_INTERVAL_SEC, ENDPOINT_AGENT_SERVICE,
)


@dataclass
class PersistedState:
    # ── Configuration ─────────────────────────────────────────
    content_url: str = DEFAULT_CONTENT_URL
    refresh_interval_sec: int = REFRESH_INTERVAL_SEC
    cache_ttl_sec: int = CACHE_TTL_SEC
    fetch_timeout_sec: int = FETCH_TIMEOUT_SEC
    log_max_bytes: int = LOG_MAX_BYTES
    log_archive_count: int = LOG_ARCHIVE_COUNT
    certificate_subject: str = CERT_SUBJECT
    certificate_warning_days: int = CERT_WARNING_DAYS
    certificate_check_interval_sec: int = CERT_CHECK_INTERVAL_SEC
    endpoint_agent_service: str = ENDPOINT_AGENT_SERVICE

    # ── Last-known snapshots (None until the first successful fetch) ──
    last_announcements: dict = None
    last_support: dict = None
    last_signal_check: dict = field(default_factory=dict)

    # ── Keys this version does not know about ─────────────────
    extras: dict = field(default_factory=dict)

    def mark_checked(self, name, when=None):
        when = when or datetime.now(timezone.utc)
        self.last_signal_check[name] = when.isoformat()

    def last_checked(self, name):
        """Parsed timestamp of the last check for `name`, or None."""
        raw = self.last_signal_check.get(name)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except (TypeError, ValueError):
            return None


# (JSON key, attribute, accepted types). Order = order written to disk.
_FIELDS = (
    ("ContentUrl", "content_url", (str,)),
    ("RefreshIntervalSec", "refresh_interval_sec", (int,)),
    ("CacheTtlSec", "cache_ttl_sec", (int,)),
    ("FetchTimeoutSec", "fetch_timeout_sec", (int,)),
    ("LogMaxBytes", "log_max_bytes", (int,)),
    ("LogArchiveCount", "log_archive_count", (int,)),
    ("CertificateSubject", "certificate_subject", (str,)),
    ("CertificateWarningDays", "certificate_warning_days", (int,)),
    ("CertificateCheckIntervalSec", "certificate_check_interval_sec", (int,)),
    ("EndpointAgentService", "endpoint_agent_service", (str,)),
    ("LastAnnouncements", "last_announcements", (dict, type(None))),
    ("LastSupport", "last_support", (dict, type(None))),
    ("LastSignalCheck", "last_signal_check", (dict,)),
)

_KNOWN_KEYS = frozenset(key for key, _, _ in _FIELDS)
_ATTR_BY_KEY = {key: attr for key, attr, _ in _FIELDS}


def get_field(state, key):
    """Read a field by its JSON key ("LastAnnouncements" → last_announcements)."""
    return getattr(state, _ATTR_BY_KEY[key])


def set_field(state, key, value):
    setattr(state, _ATTR_BY_KEY[key], value)


def _accepts(value, types):
    # bool is an int subclass; never let true/false stand in for a number.
    if isinstance(value, bool) and bool not in types:
        return False
    return isinstance(value, types)


def merge_with_defaults(raw):
    """
    Build a PersistedState from a loaded JSON object.
    Returns (state, backfilled_keys).
    """
    state = PersistedState()
    backfilled = []
    if not isinstance(raw, dict):
        return state, [key for key, _, _ in _FIELDS]

    for key, attr, types in _FIELDS:
        if key in raw and _accepts(raw[key], types):
            setattr(state, attr, raw[key])
        else:
            if key in raw:
                log.warning("State key %s has unexpected type %s — using default",
                            key, type(raw[key]).__name__)
            backfilled.append(key)

    state.extras = {k: v for k, v in raw.items() if k not in _KNOWN_KEYS}
    return state, backfilled


def state_to_dict(state):
    """Serialize state; unknown keys first so known keys always win."""
    data = dict(state.extras)
    for key, attr, _ in _FIELDS:
        data[key] = getattr(state, attr)
    return data


class StateStore:
    """Loads, merges and saves PersistedState at a fixed path."""

    def __init__(self, path=STATE_FILE):
        self.path = Path(path)

    def load(self) -> PersistedState:
        """Load state, or defaults on first run / unreadable file."""
        if not self.path.exists():
            log.info("No state file at %s — starting with defaults", self.path)
            return PersistedState()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            log.error("State file %s unreadable (%s) — starting with defaults", self.path, e)
            self._quarantine()
            return PersistedState()

        state, backfilled = merge_with_defaults(raw)
        if backfilled:
            log.info("State loaded; backfilled defaults for: %s", ", ".join(backfilled))
        return state

    def _quarantine(self):
        """Move an unreadable state file aside so the next save cannot destroy it."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            os.replace(self.path, target)
        except OSError as e:
            log.error("Could not move unreadable state file aside: %s", e)
            return None
        log.error("Unreadable state file kept as %s", target)
        return target

    def save(self, state) -> bool:
        """Write state atomically. Returns False (and logs ERROR) on failure."""
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            payload = json.dumps(state_to_dict(state), indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            log.error("State save to %s failed: %s", self.path, e)
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                pass
            return False
