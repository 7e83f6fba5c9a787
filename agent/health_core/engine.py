"""
HealthEngine — the periodic synchronisation pipeline.

One tick, on one thread:
  drain background results → submit due background probes →
  fetch content → detect changes per section → aggregate reboot signals →
  run tick-thread compliance probes → publish health → save state

Everything the pipeline touches lives on an EngineContext; there are no
module-level caches. Slow probes (PowerShell, certificate store) run as
BackgroundProbes and hand their results back through ctx.results.
"""

import queue
import sys
import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .config import log
from .constants import (
    AGENT_VERSION, CONTENT_SECTIONS, COMPLIANCE_CHECK_INTERVAL_SEC,
)
from .background import BackgroundProbe, drain
from .changes import detect, should_alert
from .content import ContentSection, ContentError, FetchSource
from .fetcher import ContentFetcher
from .health import HealthPublisher, HealthState
from .signals import SignalAggregator, SignalSet, run_probe
from .state import PersistedState, StateStore, get_field, set_field
from . import platform_win


class StatusView(Protocol):
    """What the engine needs from the presentation layer."""

    def is_expanded(self, section: str) -> bool: ...

    def notify_changes(self, section: str, description) -> None: ...

    def show_health(self, state: HealthState) -> None: ...


class HeadlessView:
    """StatusView for running without a UI: logs and remembers."""

    def __init__(self):
        self.expanded = set()
        self.notifications = []
        self.health = None

    def is_expanded(self, section):
        return section in self.expanded

    def notify_changes(self, section, description):
        self.notifications.append((section, tuple(description)))
        for line in description:
            log.info("%s: %s", section, line)

    def show_health(self, state):
        self.health = state


@dataclass
class EngineContext:
    store: StateStore
    state: PersistedState
    fetcher: ContentFetcher
    aggregator: SignalAggregator = field(default_factory=SignalAggregator)
    publisher: HealthPublisher = field(default_factory=HealthPublisher)
    view: object = field(default_factory=HeadlessView)
    reboot_probes: dict = field(default_factory=dict)
    compliance_probes: dict = field(default_factory=dict)     # run on the tick thread
    background: list = field(default_factory=list)            # BackgroundProbe instances
    results: queue.Queue = field(default_factory=queue.Queue)

    # ── Per-cycle outputs ─────────────────────────────────────
    alerts: dict = field(default_factory=dict)                # section → alert active
    compliance: dict = field(default_factory=dict)            # check → last ProbeResult
    signals: Optional[SignalSet] = None
    health: Optional[HealthState] = None
    last_fetch: object = None


class HealthEngine:

    def __init__(self, ctx: EngineContext):
        self.ctx = ctx
        ctx.publisher.subscribe(self._show_health)

    # ─── Public ──────────────────────────────────────────────

    def tick(self):
        """Run the pipeline once. Never raises; returns the published state."""
        try:
            return self._do_tick()
        except Exception as e:
            log.error("_tick error: %s", e, exc_info=True)
            return self.ctx.health

    def run(self, stop_event=None):
        """Tick every RefreshIntervalSec until `stop_event` is set."""
        stop_event = stop_event or threading.Event()
        log.info(
            "v%s engine started (interval=%ds, content=%s)",
            AGENT_VERSION, self.ctx.state.refresh_interval_sec, self.ctx.state.content_url,
        )
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(max(self.ctx.state.refresh_interval_sec, 1))
        log.info("Engine stopped.")

    def acknowledge(self, section):
        """The user opened `section`; its alert is cleared until new content arrives."""
        if self.ctx.alerts.get(section):
            log.info("%s alert acknowledged", section)
        self.ctx.alerts[section] = False

    # ─── Pipeline ────────────────────────────────────────────

    def _do_tick(self):
        ctx = self.ctx

        self._apply_background_results()
        for probe in ctx.background:
            if probe.due():
                probe.submit()

        result = ctx.fetcher.fetch(ctx.state.content_url, ctx.state.cache_ttl_sec)
        ctx.last_fetch = result
        if result.source is FetchSource.REMOTE:
            self._reconcile(result.data)

        ctx.signals = ctx.aggregator.aggregate(ctx.reboot_probes)
        ctx.state.mark_checked("PendingReboot")

        for name, probe in ctx.compliance_probes.items():
            ctx.compliance[name] = run_probe(name, probe)
            ctx.state.mark_checked(name)

        ctx.health = ctx.publisher.publish(ctx.alerts, ctx.signals, ctx.compliance)
        ctx.store.save(ctx.state)
        return ctx.health

    def _apply_background_results(self):
        ctx = self.ctx
        for name, result, completed_at in drain(ctx.results):
            ctx.compliance[name] = result
            ctx.state.mark_checked(name, completed_at)
            if result.error:
                log.warning("Background probe %s failed: %s", name, result.error)
            else:
                log.info("Background probe %s=%s %s", name, result.status, result.message)

    def _reconcile(self, snapshot):
        ctx = self.ctx
        for section, state_key, _ in CONTENT_SECTIONS:
            current = snapshot.section(section)
            last = self._last_known(state_key)
            report = detect(current, last)

            if report.changed:
                if should_alert(report, self._is_expanded(section)):
                    ctx.alerts[section] = True
                    log.info("%s changed (%d change(s)) — alert raised",
                             section, len(report.description))
                    try:
                        ctx.view.notify_changes(section, report.description)
                    except Exception as e:
                        log.error("View notify_changes failed: %s", e)
                else:
                    log.info("%s changed while open on screen — no alert", section)

            # Persisted whether or not an alert was raised.
            set_field(ctx.state, state_key, current.to_dict())

    def _last_known(self, state_key):
        raw = get_field(self.ctx.state, state_key)
        if raw is None:
            return None
        try:
            return ContentSection.from_dict(raw, state_key)
        except ContentError as e:
            log.warning("Stored %s unusable (%s) — treating as no baseline", state_key, e)
            return None

    def _is_expanded(self, section):
        try:
            return bool(self.ctx.view.is_expanded(section))
        except Exception as e:
            log.error("View is_expanded failed: %s", e)
            return False

    def _show_health(self, state):
        self.ctx.view.show_health(state)


# ─── Wiring ──────────────────────────────────────────────────────

def build_engine(store=None, view=None, session=None):
    """
    Load state and wire the Windows probes into a ready HealthEngine.
    On Windows the PowerShell-backed checks run as background probes.
    """
    store = store or StateStore()
    state = store.load()
    results = queue.Queue()

    compliance = platform_win.compliance_probes(state.endpoint_agent_service)
    background = [
        BackgroundProbe(name, probe, results, COMPLIANCE_CHECK_INTERVAL_SEC)
        for name, probe in compliance.items()
    ]
    background.append(BackgroundProbe(
        "Certificate",
        platform_win.make_certificate_probe(
            state.certificate_subject, state.certificate_warning_days,
        ),
        results,
        state.certificate_check_interval_sec,
    ))
    if sys.platform != "win32":
        log.warning("Not running on Windows — all probes will report unsupported platform")

    ctx = EngineContext(
        store=store,
        state=state,
        fetcher=ContentFetcher(session=session, timeout=state.fetch_timeout_sec),
        view=view or HeadlessView(),
        reboot_probes=platform_win.reboot_probes(),
        background=background,
        results=results,
    )
    return HealthEngine(ctx)
