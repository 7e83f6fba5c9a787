"""
Certificate presence / expiry evaluation.

The raw store query lives in platform_win; this only judges its result.
"""

from datetime import datetime, timezone

from .signals import ProbeResult


def evaluate_certificate(expiries, now=None, warning_days=14) -> ProbeResult:
    """
    expiries: NotAfter datetimes of the matching certificates (may be empty).
    The certificate expiring last is the one that counts.
    """
    now = now or datetime.now(timezone.utc)
    if not expiries:
        return ProbeResult(False, "No matching certificate found")

    latest = max(_aware(e) for e in expiries)
    days_left = (latest - now).total_seconds() / 86400
    if days_left < 0:
        return ProbeResult(False, f"Certificate expired on {latest:%Y-%m-%d}")
    if days_left < warning_days:
        return ProbeResult(False, f"Certificate expires in {int(days_left)} days ({latest:%Y-%m-%d})")
    return ProbeResult(True, f"Certificate valid until {latest:%Y-%m-%d}")


def _aware(dt):
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
