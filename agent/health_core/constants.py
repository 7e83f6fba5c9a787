"""
Constants, thresholds, compiled-in defaults and declared signal tables.
"""

AGENT_VERSION = "1.4.0"

# ─── Scheduling ──────────────────────────────────────────────────
REFRESH_INTERVAL_SEC = 30          # Main tick interval
CACHE_TTL_SEC = 300                # Reuse fetched content for 5 min
CERT_CHECK_INTERVAL_SEC = 3600     # Certificate probe is slow (PowerShell), run hourly
COMPLIANCE_CHECK_INTERVAL_SEC = 300  # PowerShell compliance probes, off the tick thread

# ─── Network / external processes ───────────────────────────────
FETCH_TIMEOUT_SEC = 30             # Budget shared by original + stripped-query attempt
PROBE_TIMEOUT_SEC = 60             # Any single PowerShell / external probe

# ─── Log file ────────────────────────────────────────────────────
LOG_MAX_BYTES = 1_000_000          # Rotate once the active log passes ~1 MB
LOG_ARCHIVE_COUNT = 3              # Keep at most 3 rotated archives
IO_RETRY_ATTEMPTS = 3
IO_RETRY_DELAY_SEC = 0.1
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# ─── Certificates ────────────────────────────────────────────────
CERT_SUBJECT = ""                  # Empty = any certificate in the user store
CERT_WARNING_DAYS = 14

# ─── Compliance ──────────────────────────────────────────────────
ENDPOINT_AGENT_SERVICE = "CcmExec"

DEFAULT_CONTENT_URL = "announcements.json"

# ─── Content sections ────────────────────────────────────────────
# (snapshot key, persisted key, reason shown while the alert is active)
CONTENT_SECTIONS = (
    ("Announcements", "LastAnnouncements", "New announcements available"),
    ("Support", "LastSupport", "Support information updated"),
)

# Compiled-in fallback used whenever content cannot be fetched or parsed.
DEFAULT_CONTENT = {
    "Announcements": {
        "Text": "No announcements at this time.",
        "Details": "",
        "Links": [],
    },
    "Support": {
        "Text": "Contact the IT service desk for help with this device.",
        "Links": [
            {"Name": "IT Service Desk", "Url": "https://support.example.com"},
        ],
    },
}

# ─── Pending reboot signals ──────────────────────────────────────
# (name, human label, contributes to PendingReboot)
# File-rename operations are recorded but left out of the verdict:
# they stay set for long periods on healthy machines.
REBOOT_SIGNALS = (
    ("ComponentBasedServicing", "Component-Based Servicing", True),
    ("WindowsUpdate", "Windows Update", True),
    ("MSIInProgress", "MSI installation in progress", True),
    ("VendorAgentPending", "Management agent restart pending", True),
    ("PendingFileRename", "Pending file rename operations", False),
)

# ─── Compliance checks (declared order = reason order) ───────────
COMPLIANCE_CHECKS = (
    ("Antivirus", "Antivirus"),
    ("DiskEncryption", "Disk encryption"),
    ("EndpointAgent", "Endpoint management agent"),
    ("SecurityPolicy", "Firewall policy"),
    ("Certificate", "User certificate"),
)
