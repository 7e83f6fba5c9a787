"""
SignalAggregator — folds independent probes into one explainable verdict.

A probe is any zero-argument callable returning a ProbeResult, a bool, or a
(bool, message) tuple. Probes are isolated from each other: one that raises
is recorded as False with its error kept, and the rest still run.

Every probe result is kept verbatim for diagnostics, but only the declared
relevant subset feeds PendingReboot.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .config import log
from .constants import REBOOT_SIGNALS


@dataclass(frozen=True)
class ProbeResult:
    status: bool
    message: str = ""
    error: Optional[str] = None

    @classmethod
    def coerce(cls, value):
        if isinstance(value, ProbeResult):
            return value
        if isinstance(value, tuple):
            status = bool(value[0]) if value else False
            message = str(value[1]) if len(value) > 1 and value[1] is not None else ""
            error = str(value[2]) if len(value) > 2 and value[2] is not None else None
            return cls(status, message, error)
        return cls(bool(value))


def run_probe(name, probe) -> ProbeResult:
    """Run one probe, turning any exception into a recorded False result."""
    if probe is None:
        return ProbeResult(False, "", "no probe registered")
    try:
        return ProbeResult.coerce(probe())
    except Exception as e:
        log.warning("Probe %s failed: %s", name, e)
        return ProbeResult(False, "", f"{type(e).__name__}: {e}")


@dataclass(frozen=True)
class SignalSpec:
    name: str
    label: str
    relevant: bool = True


DEFAULT_SIGNALS = tuple(SignalSpec(*row) for row in REBOOT_SIGNALS)


@dataclass(frozen=True)
class SignalSet:
    results: Dict[str, ProbeResult] = field(default_factory=dict)
    pending_reboot: bool = False
    reasons: Tuple[str, ...] = ()

    @property
    def values(self):
        return {name: r.status for name, r in self.results.items()}

    @property
    def errors(self):
        return {name: r.error for name, r in self.results.items() if r.error}


class SignalAggregator:

    def __init__(self, specs=DEFAULT_SIGNALS, relevant=None):
        """
        specs: declared signals in reason order.
        relevant: optional set of names overriding each spec's own flag.
        """
        self.specs = tuple(specs)
        if relevant is not None:
            relevant = set(relevant)
            self.specs = tuple(
                SignalSpec(s.name, s.label, s.name in relevant) for s in self.specs
            )

    def aggregate(self, probes) -> SignalSet:
        results = {}
        for spec in self.specs:
            results[spec.name] = run_probe(spec.name, probes.get(spec.name))
        for name, probe in probes.items():
            if name not in results:
                results[name] = run_probe(name, probe)

        reasons = tuple(
            spec.label for spec in self.specs
            if spec.relevant and results[spec.name].status
        )

        for name, result in results.items():
            if result.error:
                log.warning("Signal %s recorded False: %s", name, result.error)
        log.info("Signals: %s | pending_reboot=%s",
                 ", ".join(f"{n}={r.status}" for n, r in results.items()),
                 bool(reasons))
        return SignalSet(results=results, pending_reboot=bool(reasons), reasons=reasons)
