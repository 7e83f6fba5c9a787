"""
ChangeDetector — diff of a content section against its last-known value.

Links are compared by position. A link at an index the previous snapshot
did not have is "new"; a link whose Name or Url differs at the same index
is "changed". Links that disappear off the end are not reported.
"""

from dataclasses import dataclass
from typing import Tuple

from .content import ContentSection


@dataclass(frozen=True)
class ChangeReport:
    changed: bool
    description: Tuple[str, ...] = ()


NO_CHANGE = ChangeReport(False, ())


def detect(current: ContentSection, last) -> ChangeReport:
    """
    Compare `current` with `last` (a ContentSection, or None before any
    baseline exists). With no baseline nothing is reported.
    """
    if last is None:
        return NO_CHANGE

    lines = []
    if (current.text or "") != (last.text or ""):
        lines.append(f"Text changed from '{last.text or ''}' to '{current.text or ''}'")
    if (current.details or "") != (last.details or ""):
        lines.append(f"Details changed from '{last.details or ''}' to '{current.details or ''}'")

    for i, link in enumerate(current.links):
        if i >= len(last.links):
            lines.append(f"New link added: {link.label()}")
            continue
        old = last.links[i]
        if old.name != link.name or old.url != link.url:
            lines.append(f"Link {i + 1} changed from '{old.label()}' to '{link.label()}'")

    return ChangeReport(bool(lines), tuple(lines))


def should_alert(report: ChangeReport, acknowledged: bool) -> bool:
    """A change alerts unless the section is open on screen right now."""
    return report.changed and not acknowledged
