"""
HealthPublisher — the single Healthy / Warning verdict and its reasons.

Reason order is fixed: content alerts (in section order), then pending
reboot, then compliance checks in declared order. The published state is
the only thing the tray/icon code looks at.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from .config import log
from .constants import CONTENT_SECTIONS, COMPLIANCE_CHECKS


class HealthStatus(Enum):
    HEALTHY = "Healthy"
    WARNING = "Warning"


@dataclass(frozen=True)
class HealthState:
    status: HealthStatus
    reasons: Tuple[str, ...] = ()

    @property
    def healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY


class HealthPublisher:

    def __init__(self, sections=CONTENT_SECTIONS, checks=COMPLIANCE_CHECKS):
        self._alert_reasons = [(name, reason) for name, _, reason in sections]
        self._checks = list(checks)
        self._subscribers = []
        self.last = None

    def subscribe(self, callback):
        self._subscribers.append(callback)

    def publish(self, content_alerts, reboot, compliance) -> HealthState:
        """
        content_alerts: {section name: alert active}
        reboot:         SignalSet, or a plain bool
        compliance:     {check name: ProbeResult}; registered checks missing
                        from the mapping count as failing ("status unknown")
        """
        reasons = []

        for name, reason in self._alert_reasons:
            if content_alerts.get(name):
                reasons.append(reason)

        pending = getattr(reboot, "pending_reboot", reboot)
        if pending:
            causes = getattr(reboot, "reasons", ())
            if causes:
                reasons.append("Restart pending: " + ", ".join(causes))
            else:
                reasons.append("Restart pending")

        for name, label in self._checks:
            result = compliance.get(name)
            if result is None:
                reasons.append(f"{label}: status unknown")
            elif not result.status:
                detail = result.message or result.error or "not compliant"
                reasons.append(f"{label}: {detail}")

        status = HealthStatus.WARNING if reasons else HealthStatus.HEALTHY
        state = HealthState(status, tuple(reasons))

        if self.last is None or self.last != state:
            if state.healthy:
                log.info("Health: %s", state.status.value)
            else:
                log.warning("Health: %s — %s", state.status.value, "; ".join(state.reasons))
        self.last = state

        for callback in self._subscribers:
            try:
                callback(state)
            except Exception as e:
                log.error("Health subscriber %r failed: %s", callback, e, exc_info=True)
        return state
