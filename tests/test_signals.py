"""Tests for probe isolation and pending-reboot aggregation."""

import pytest

from health_core.signals import (
    DEFAULT_SIGNALS, ProbeResult, SignalAggregator, SignalSpec, run_probe,
)

FOUR = {"ComponentBasedServicing", "WindowsUpdate", "MSIInProgress", "VendorAgentPending"}


def _probes(**values):
    return {name: (lambda v=v: v) for name, v in values.items()}


def test_component_servicing_only():
    aggregator = SignalAggregator(relevant=FOUR)
    probes = _probes(
        ComponentBasedServicing=True,
        WindowsUpdate=False,
        MSIInProgress=False,
        VendorAgentPending=False,
    )

    signals = aggregator.aggregate(probes)

    assert signals.pending_reboot is True
    assert signals.reasons == ("Component-Based Servicing",)


def test_nothing_pending():
    signals = SignalAggregator().aggregate(_probes(
        ComponentBasedServicing=False, WindowsUpdate=False,
        MSIInProgress=False, VendorAgentPending=False, PendingFileRename=False,
    ))
    assert signals.pending_reboot is False
    assert signals.reasons == ()


def test_file_rename_is_recorded_but_not_relevant():
    signals = SignalAggregator().aggregate(_probes(
        ComponentBasedServicing=False, WindowsUpdate=False,
        MSIInProgress=False, VendorAgentPending=False, PendingFileRename=True,
    ))

    assert signals.values["PendingFileRename"] is True
    assert signals.pending_reboot is False
    assert signals.reasons == ()


def test_reasons_follow_declaration_order():
    probes = {
        "VendorAgentPending": lambda: True,
        "MSIInProgress": lambda: False,
        "WindowsUpdate": lambda: True,
        "ComponentBasedServicing": lambda: True,
    }

    signals = SignalAggregator().aggregate(probes)

    assert signals.reasons == (
        "Component-Based Servicing",
        "Windows Update",
        "Management agent restart pending",
    )


def test_failing_probe_is_isolated():
    def broken():
        raise OSError("registry access denied")

    probes = _probes(WindowsUpdate=True, MSIInProgress=False, VendorAgentPending=False)
    probes["ComponentBasedServicing"] = broken

    signals = SignalAggregator().aggregate(probes)

    cbs = signals.results["ComponentBasedServicing"]
    assert cbs.status is False
    assert "registry access denied" in cbs.error
    assert signals.reasons == ("Windows Update",)
    assert "ComponentBasedServicing" in signals.errors


def test_unregistered_declared_probe_recorded_false():
    signals = SignalAggregator().aggregate({})
    assert set(signals.results) == {spec.name for spec in DEFAULT_SIGNALS}
    assert all(r.error == "no probe registered" for r in signals.results.values())
    assert signals.pending_reboot is False


def test_undeclared_probe_recorded_after_declared_ones():
    aggregator = SignalAggregator(specs=[SignalSpec("A", "Alpha")])
    signals = aggregator.aggregate({"Extra": lambda: True, "A": lambda: False})

    assert list(signals.results) == ["A", "Extra"]
    assert signals.values["Extra"] is True
    assert signals.pending_reboot is False


def test_same_input_same_output():
    probes = _probes(ComponentBasedServicing=True, WindowsUpdate=True)
    aggregator = SignalAggregator()
    assert aggregator.aggregate(probes) == aggregator.aggregate(probes)


@pytest.mark.parametrize("raw, expected", [
    (True, ProbeResult(True)),
    (0, ProbeResult(False)),
    ((True, "key present"), ProbeResult(True, "key present")),
    ((False, "", "timeout"), ProbeResult(False, "", "timeout")),
    (ProbeResult(True, "ok"), ProbeResult(True, "ok")),
])
def test_probe_result_coercion(raw, expected):
    assert run_probe("x", lambda: raw) == expected


def test_run_probe_without_callable():
    assert run_probe("x", None) == ProbeResult(False, "", "no probe registered")
