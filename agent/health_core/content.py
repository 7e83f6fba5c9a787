"""
Content model — announcement/support snapshots and fetch results.

Remote schema:
    {
      "Announcements": {"Text": str, "Details"?: str, "Links": [{"Name": str, "Url": str}]},
      "Support":       {"Text": str, "Details"?: str, "Links": [...]}
    }
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Tuple

from .constants import DEFAULT_CONTENT


class ContentError(ValueError):
    """Raised when fetched content does not match the snapshot schema."""


def _optional_str(raw, key):
    # Absent or null means empty; any other non-string is left for the type check.
    value = raw.get(key)
    return "" if value is None else value


@dataclass(frozen=True)
class Link:
    name: str
    url: str

    def label(self) -> str:
        return f"{self.name} ({self.url})"

    def to_dict(self):
        return {"Name": self.name, "Url": self.url}


@dataclass(frozen=True)
class ContentSection:
    text: str = ""
    details: str = ""
    links: Tuple[Link, ...] = ()

    @classmethod
    def from_dict(cls, raw, where="section"):
        if not isinstance(raw, dict):
            raise ContentError(f"{where}: expected an object, got {type(raw).__name__}")

        text = _optional_str(raw, "Text")
        details = _optional_str(raw, "Details")
        if not isinstance(text, str) or not isinstance(details, str):
            raise ContentError(f"{where}: Text/Details must be strings")

        raw_links = raw.get("Links")
        if raw_links is None:
            raw_links = []
        if not isinstance(raw_links, list):
            raise ContentError(f"{where}: Links must be an array")

        links = []
        for i, item in enumerate(raw_links):
            if not isinstance(item, dict):
                raise ContentError(f"{where}: link {i + 1} is not an object")
            name = _optional_str(item, "Name")
            url = _optional_str(item, "Url")
            if not isinstance(name, str) or not isinstance(url, str):
                raise ContentError(f"{where}: link {i + 1} Name/Url must be strings")
            links.append(Link(name, url))

        return cls(text=text, details=details, links=tuple(links))

    def to_dict(self):
        return {
            "Text": self.text,
            "Details": self.details,
            "Links": [link.to_dict() for link in self.links],
        }


@dataclass(frozen=True)
class ContentSnapshot:
    announcements: ContentSection = field(default_factory=ContentSection)
    support: ContentSection = field(default_factory=ContentSection)

    @classmethod
    def from_dict(cls, raw):
        if not isinstance(raw, dict):
            raise ContentError("content root must be a JSON object")
        for key in ("Announcements", "Support"):
            if key not in raw:
                raise ContentError(f"missing top-level key '{key}'")
        return cls(
            announcements=ContentSection.from_dict(raw["Announcements"], "Announcements"),
            support=ContentSection.from_dict(raw["Support"], "Support"),
        )

    def section(self, name) -> ContentSection:
        if name == "Announcements":
            return self.announcements
        if name == "Support":
            return self.support
        raise KeyError(name)

    def to_dict(self):
        return {
            "Announcements": self.announcements.to_dict(),
            "Support": self.support.to_dict(),
        }


class FetchSource(Enum):
    CACHE = "Cache"
    REMOTE = "Remote"
    DEFAULT = "Default"


@dataclass(frozen=True)
class FetchResult:
    data: ContentSnapshot
    source: FetchSource
    fetched_at: datetime


def default_snapshot() -> ContentSnapshot:
    """The compiled-in snapshot used when nothing else is available."""
    return ContentSnapshot.from_dict(DEFAULT_CONTENT)
