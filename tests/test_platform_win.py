"""Tests for the Windows probe collaborators (PowerShell output handling)."""

import subprocess
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from health_core import platform_win
from health_core.signals import ProbeResult


@pytest.fixture
def on_windows(monkeypatch):
    monkeypatch.setattr(platform_win.sys, "platform", "win32")


@pytest.fixture
def off_windows(monkeypatch):
    monkeypatch.setattr(platform_win.sys, "platform", "linux")


@pytest.fixture
def powershell(monkeypatch):
    """Replace run_powershell_json with a stub returning queued payloads."""
    stub = MagicMock()
    monkeypatch.setattr(platform_win, "run_powershell_json", stub)
    return stub


def _completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


# ─── run_powershell_json ─────────────────────────────────────────

def test_powershell_single_object_is_wrapped(monkeypatch):
    run = MagicMock(return_value=_completed('{"Name":"Domain","Enabled":true}'))
    monkeypatch.setattr(platform_win.subprocess, "run", run)

    assert platform_win.run_powershell_json("Get-Thing") == [{"Name": "Domain", "Enabled": True}]
    cmd = run.call_args.args[0]
    assert cmd[0] == "powershell.exe"
    assert cmd[-1].endswith("ConvertTo-Json -Depth 3 -Compress")
    assert run.call_args.kwargs["timeout"] == 60


def test_powershell_list_and_empty(monkeypatch):
    monkeypatch.setattr(platform_win.subprocess, "run",
                        MagicMock(return_value=_completed('[{"a":1},{"a":2}]')))
    assert platform_win.run_powershell_json("x") == [{"a": 1}, {"a": 2}]

    monkeypatch.setattr(platform_win.subprocess, "run", MagicMock(return_value=_completed("  ")))
    assert platform_win.run_powershell_json("x") == []


def test_powershell_failure_raises(monkeypatch):
    monkeypatch.setattr(platform_win.subprocess, "run",
                        MagicMock(return_value=_completed(returncode=1, stderr="Access denied")))
    with pytest.raises(RuntimeError, match="Access denied"):
        platform_win.run_powershell_json("x")


# ─── Off Windows ─────────────────────────────────────────────────

def test_probes_unsupported_off_windows(off_windows):
    probes = list(platform_win.reboot_probes().values())
    probes += list(platform_win.compliance_probes("CcmExec").values())
    probes.append(platform_win.make_certificate_probe("", 14))

    for probe in probes:
        assert probe() == platform_win.UNSUPPORTED
    assert platform_win.certificate_expiries() == []
    assert platform_win.ensure_single_instance() is True


# ─── Compliance probes ───────────────────────────────────────────

def test_antivirus_enabled(on_windows, powershell):
    powershell.return_value = [{"displayName": "Defender", "productState": 397568}]
    assert platform_win.probe_antivirus() == ProbeResult(True, "Defender")


def test_antivirus_disabled(on_windows, powershell):
    powershell.return_value = [{"displayName": "Defender", "productState": 393472}]
    result = platform_win.probe_antivirus()
    assert result.status is False
    assert "disabled (Defender)" in result.message


def test_antivirus_missing(on_windows, powershell):
    powershell.return_value = []
    assert platform_win.probe_antivirus().message == "No antivirus product registered"


@pytest.mark.parametrize("status, expected", [(1, True), ("On", True), (0, False), ("Off", False)])
def test_disk_encryption(on_windows, powershell, status, expected):
    powershell.return_value = [{"MountPoint": "C:", "ProtectionStatus": status}]
    assert platform_win.probe_disk_encryption().status is expected


@pytest.mark.parametrize("services, expected", [
    ([{"Name": "CcmExec", "Status": 4}], True),
    ([{"Name": "CcmExec", "Status": "Running"}], True),
    ([{"Name": "CcmExec", "Status": 1}], False),
    ([], False),
])
def test_endpoint_agent_service(on_windows, powershell, services, expected):
    powershell.return_value = services
    assert platform_win.make_service_probe("CcmExec")().status is expected


def test_firewall_reports_disabled_profiles(on_windows, powershell):
    powershell.return_value = [
        {"Name": "Domain", "Enabled": True},
        {"Name": "Public", "Enabled": False},
    ]
    result = platform_win.probe_firewall()
    assert result == ProbeResult(False, "Firewall disabled for: Public")


# ─── Certificates ────────────────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [
    ("/Date(1767225600000)/", datetime(2026, 1, 1, tzinfo=timezone.utc)),
    ("2026-01-01T00:00:00", datetime(2026, 1, 1, tzinfo=timezone.utc)),
    ("2026-01-01T00:00:00Z", datetime(2026, 1, 1, tzinfo=timezone.utc)),
    ({"value": "/Date(1767225600000)/"}, datetime(2026, 1, 1, tzinfo=timezone.utc)),
    ("not a date", None),
    (None, None),
])
def test_parse_ps_datetime(raw, expected):
    assert platform_win._parse_ps_datetime(raw) == expected


def test_certificate_expiries_filters_by_subject(on_windows, powershell):
    powershell.return_value = [{"Subject": "CN=alice", "NotAfter": "2027-03-01T00:00:00"}]

    expiries = platform_win.certificate_expiries("alice")

    assert expiries == [datetime(2027, 3, 1, tzinfo=timezone.utc)]
    script = powershell.call_args.args[0]
    assert "Where-Object { $_.Subject -like '*alice*' }" in script


def test_certificate_probe_uses_evaluation(on_windows, monkeypatch):
    monkeypatch.setattr(platform_win, "certificate_expiries", lambda subject: [])
    result = platform_win.make_certificate_probe("alice", 14)()
    assert result == ProbeResult(False, "No matching certificate found")
