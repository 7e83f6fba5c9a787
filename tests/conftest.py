"""Shared fixtures for the health_core test suite."""

import json
from unittest.mock import MagicMock

import pytest


class FakeClock:
    """Monotonic clock stand-in; advance() moves time forward."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_content(ann_text="Welcome", ann_links=(), support_text="Call IT", support_links=(),
                 ann_details=None):
    announcements = {
        "Text": ann_text,
        "Links": [{"Name": n, "Url": u} for n, u in ann_links],
    }
    if ann_details is not None:
        announcements["Details"] = ann_details
    return {
        "Announcements": announcements,
        "Support": {
            "Text": support_text,
            "Links": [{"Name": n, "Url": u} for n, u in support_links],
        },
    }


def make_response(status_code=200, payload=None, text=None):
    resp = MagicMock()
    resp.status_code = status_code
    if text is None:
        text = json.dumps(payload) if payload is not None else ""
    resp.text = text
    return resp


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    return MagicMock()
