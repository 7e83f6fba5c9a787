"""
Windows-specific probes and process helpers:
  - Single instance enforcement (Mutex)
  - Pending-reboot registry signals
  - Compliance checks via PowerShell (antivirus, BitLocker, service, firewall)
  - Certificate expiries from the current user's store

Every probe returns a ProbeResult and carries its own timeout. Off Windows
they all report "unsupported platform".
"""

import json
import os
import sys
import ctypes
import subprocess
from datetime import datetime, timezone

from .config import log
from .constants import PROBE_TIMEOUT_SEC
from .certificate import evaluate_certificate
from .signals import ProbeResult

_EXE_NAME = "ehealthsvc.exe"
_MUTEX_NAME = "Global\\EndpointHealth_41c2"

UNSUPPORTED = ProbeResult(False, "unsupported platform")


# ─── Single Instance Lock ────────────────────────────────────────

_instance_mutex = None
_TH32CS_SNAPPROCESS = 0x00000002


class _PROCESSENTRY32W(ctypes.Structure):
    _fields_ = [
        ("dwSize",              ctypes.c_ulong),
        ("cntUsage",            ctypes.c_ulong),
        ("th32ProcessID",       ctypes.c_ulong),
        ("th32DefaultHeapID",   ctypes.c_size_t),
        ("th32ModuleID",        ctypes.c_ulong),
        ("cntThreads",          ctypes.c_ulong),
        ("th32ParentProcessID", ctypes.c_ulong),
        ("pcPriClassBase",      ctypes.c_long),
        ("dwFlags",             ctypes.c_ulong),
        ("szExeFile",           ctypes.c_wchar * 260),
    ]


def _is_exe_running_elsewhere():
    """Return True if another process with our exe name is running."""
    our_pid = os.getpid()
    target = _EXE_NAME.lower()
    try:
        kernel32 = ctypes.windll.kernel32
        snapshot = kernel32.CreateToolhelp32Snapshot(_TH32CS_SNAPPROCESS, 0)
        if snapshot in (0, -1):
            return False
        try:
            pe = _PROCESSENTRY32W()
            pe.dwSize = ctypes.sizeof(pe)
            ok = kernel32.Process32FirstW(snapshot, ctypes.byref(pe))
            while ok:
                if pe.szExeFile.lower() == target and pe.th32ProcessID != our_pid:
                    return True
                ok = kernel32.Process32NextW(snapshot, ctypes.byref(pe))
            return False
        finally:
            kernel32.CloseHandle(snapshot)
    except Exception:
        return False


def ensure_single_instance():
    """Prevent multiple instances using a Windows named mutex.

    A mutex left behind by Fast Startup (hybrid shutdown) is reclaimed
    when no other agent process is actually running.
    """
    global _instance_mutex
    if sys.platform != "win32":
        return True

    try:
        _instance_mutex = ctypes.windll.kernel32.CreateMutexW(None, False, _MUTEX_NAME)
        last_error = ctypes.windll.kernel32.GetLastError()

        if last_error == 183:  # ERROR_ALREADY_EXISTS
            if _is_exe_running_elsewhere():
                log.info("Another instance is already running. Exiting.")
                return False

            log.info("Stale mutex detected (no running instance) — reclaiming")
            ctypes.windll.kernel32.CloseHandle(_instance_mutex)
            _instance_mutex = ctypes.windll.kernel32.CreateMutexW(None, True, _MUTEX_NAME)
        return True
    except Exception:
        return True


# ─── Registry helpers ────────────────────────────────────────────

_CBS_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Component Based Servicing\RebootPending"
_WU_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\WindowsUpdate\Auto Update\RebootRequired"
_MSI_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Installer\InProgress"
_SCCM_KEY = r"SOFTWARE\Microsoft\SMS\Mobile Client\Reboot Management\RebootData"
_SESSION_MANAGER_KEY = r"SYSTEM\CurrentControlSet\Control\Session Manager"


def _hklm_key_exists(path):
    import winreg
    try:
        key = winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, path, 0, winreg.KEY_READ)
    except FileNotFoundError:
        return False
    winreg.CloseKey(key)
    return True


def _hklm_value(path, name):
    import winreg
    try:
        key = winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, path, 0, winreg.KEY_READ)
    except FileNotFoundError:
        return None
    try:
        value, _ = winreg.QueryValueEx(key, name)
        return value
    except FileNotFoundError:
        return None
    finally:
        winreg.CloseKey(key)


def _key_probe(path, present_msg):
    def probe():
        if sys.platform != "win32":
            return UNSUPPORTED
        if _hklm_key_exists(path):
            return ProbeResult(True, present_msg)
        return ProbeResult(False, "")
    return probe


def probe_pending_file_rename():
    if sys.platform != "win32":
        return UNSUPPORTED
    value = _hklm_value(_SESSION_MANAGER_KEY, "PendingFileRenameOperations")
    entries = [v for v in (value or []) if v]
    if entries:
        return ProbeResult(True, f"{len(entries)} pending file rename entries")
    return ProbeResult(False, "")


def reboot_probes():
    """Pending-reboot probes keyed by declared signal name."""
    return {
        "ComponentBasedServicing": _key_probe(_CBS_KEY, "CBS RebootPending key present"),
        "WindowsUpdate": _key_probe(_WU_KEY, "Windows Update RebootRequired key present"),
        "MSIInProgress": _key_probe(_MSI_KEY, "Windows Installer InProgress key present"),
        "VendorAgentPending": _key_probe(_SCCM_KEY, "Management client RebootData present"),
        "PendingFileRename": probe_pending_file_rename,
    }


# ─── PowerShell helpers ──────────────────────────────────────────

def run_powershell_json(script, timeout=PROBE_TIMEOUT_SEC):
    """
    Run a PowerShell snippet whose output is ConvertTo-Json and return the
    parsed value (a single object is wrapped in a list). Raises on
    non-zero exit, timeout or unparsable output; callers go through
    run_probe, which records the error.
    """
    cmd = [
        "powershell.exe", "-NoProfile", "-NonInteractive",
        "-ExecutionPolicy", "Bypass", "-Command",
        f"{script} | ConvertTo-Json -Depth 3 -Compress",
    ]
    result = subprocess.run(
        cmd, capture_output=True, text=True, timeout=timeout,
        creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
    )
    if result.returncode != 0:
        raise RuntimeError(f"powershell exit {result.returncode}: {result.stderr.strip()[:200]}")
    out = result.stdout.strip()
    if not out:
        return []
    data = json.loads(out)
    return data if isinstance(data, list) else [data]


# SecurityCenter2 productState: 0x1000 set = real-time protection on.
_AV_ENABLED_MASK = 0x1000


def probe_antivirus():
    if sys.platform != "win32":
        return UNSUPPORTED
    products = run_powershell_json(
        "Get-CimInstance -Namespace root/SecurityCenter2 -ClassName AntiVirusProduct"
        " | Select-Object displayName, productState"
    )
    if not products:
        return ProbeResult(False, "No antivirus product registered")
    enabled = [p.get("displayName", "?") for p in products
               if int(p.get("productState") or 0) & _AV_ENABLED_MASK]
    if enabled:
        return ProbeResult(True, ", ".join(enabled))
    names = ", ".join(p.get("displayName", "?") for p in products)
    return ProbeResult(False, f"Antivirus installed but disabled ({names})")


def probe_disk_encryption():
    if sys.platform != "win32":
        return UNSUPPORTED
    drive = os.environ.get("SystemDrive", "C:")
    volumes = run_powershell_json(
        f"Get-BitLockerVolume -MountPoint '{drive}' | Select-Object MountPoint, ProtectionStatus"
    )
    if not volumes:
        return ProbeResult(False, f"No BitLocker information for {drive}")
    # ProtectionStatus serialises as 1 (On) or the string "On".
    status = volumes[0].get("ProtectionStatus")
    if status in (1, "On"):
        return ProbeResult(True, f"BitLocker protection on for {drive}")
    return ProbeResult(False, f"BitLocker protection off for {drive}")


def make_service_probe(service_name):
    def probe():
        if sys.platform != "win32":
            return UNSUPPORTED
        services = run_powershell_json(
            f"Get-Service -Name '{service_name}' -ErrorAction SilentlyContinue"
            " | Select-Object Name, Status"
        )
        if not services:
            return ProbeResult(False, f"Service {service_name} not installed")
        # Status serialises as 4 (Running) or the string "Running".
        status = services[0].get("Status")
        if status in (4, "Running"):
            return ProbeResult(True, f"{service_name} running")
        return ProbeResult(False, f"{service_name} not running")
    return probe


def probe_firewall():
    if sys.platform != "win32":
        return UNSUPPORTED
    profiles = run_powershell_json("Get-NetFirewallProfile | Select-Object Name, Enabled")
    if not profiles:
        return ProbeResult(False, "No firewall profiles reported")
    disabled = [p.get("Name", "?") for p in profiles if p.get("Enabled") not in (True, 1)]
    if disabled:
        return ProbeResult(False, "Firewall disabled for: " + ", ".join(disabled))
    return ProbeResult(True, "Firewall enabled for all profiles")


def compliance_probes(endpoint_agent_service):
    """Compliance probes run on the tick thread, keyed by declared check name."""
    return {
        "Antivirus": probe_antivirus,
        "DiskEncryption": probe_disk_encryption,
        "EndpointAgent": make_service_probe(endpoint_agent_service),
        "SecurityPolicy": probe_firewall,
    }


# ─── Certificates ────────────────────────────────────────────────

def _parse_ps_datetime(value):
    """ConvertTo-Json dates come as "/Date(ms)/" (PS 5) or ISO-8601 (PS 7)."""
    if isinstance(value, dict):
        value = value.get("value") or value.get("DateTime")
    if not isinstance(value, str):
        return None
    if value.startswith("/Date("):
        ms = int(value[6:].split(")")[0].split("+")[0].split("-")[0])
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def certificate_expiries(subject=""):
    """NotAfter of every certificate in Cert:\\CurrentUser\\My matching `subject`."""
    if sys.platform != "win32":
        return []
    safe = subject.replace("'", "''")
    where = f" | Where-Object {{ $_.Subject -like '*{safe}*' }}" if subject else ""
    certs = run_powershell_json(
        f"Get-ChildItem Cert:\\CurrentUser\\My{where}"
        " | Select-Object Subject, @{n='NotAfter';e={$_.NotAfter.ToUniversalTime().ToString('s')}}"
    )
    expiries = []
    for cert in certs:
        dt = _parse_ps_datetime(cert.get("NotAfter"))
        if dt is not None:
            expiries.append(dt)
    return expiries


def make_certificate_probe(subject, warning_days):
    """Slow (PowerShell + store enumeration); meant for a BackgroundProbe."""
    def probe():
        if sys.platform != "win32":
            return UNSUPPORTED
        return evaluate_certificate(certificate_expiries(subject), warning_days=warning_days)
    return probe
