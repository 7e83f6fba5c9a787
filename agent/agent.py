"""
Endpoint Health Agent — Desktop Agent
=====================================
Periodically checks announcement content and local compliance signals
(pending reboot, antivirus, disk encryption, management agent, firewall,
user certificate) and keeps one Healthy / Warning state up to date.

Usage:
    python agent.py
"""

from health_core.runner import run_with_auto_restart


if __name__ == "__main__":
    run_with_auto_restart()
