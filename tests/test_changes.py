"""Tests for content change detection."""

from health_core.changes import ChangeReport, detect, should_alert
from health_core.content import ContentSection, Link

L1 = Link("Intranet", "https://intranet")
L2 = Link("Service desk", "https://desk")


def test_text_change_is_described():
    report = detect(ContentSection(text="A"), ContentSection(text="B"))

    assert report.changed is True
    assert "Text changed from 'B' to 'A'" in report.description


def test_identical_sections_are_unchanged():
    section = ContentSection(text="A", details="d", links=(L1, L2))
    assert detect(section, section) == ChangeReport(False, ())


def test_missing_details_counts_as_empty():
    current = ContentSection.from_dict({"Text": "A"})
    last = ContentSection.from_dict({"Text": "A", "Details": ""})
    assert detect(current, last).changed is False


def test_details_change_is_described():
    report = detect(ContentSection(details="new"), ContentSection())
    assert report.description == ("Details changed from '' to 'new'",)


def test_appended_link_reported_once():
    report = detect(ContentSection(links=(L1, L2)), ContentSection(links=(L1,)))

    added = [line for line in report.description if "new link added" in line.lower()]
    assert report.changed is True
    assert len(added) == 1
    assert "Service desk" in added[0]
    assert not any("Intranet" in line for line in report.description)


def test_modified_link_reported_by_position():
    moved = Link("Intranet", "https://intranet.new")
    report = detect(ContentSection(links=(moved,)), ContentSection(links=(L1,)))

    assert report.description == (
        "Link 1 changed from 'Intranet (https://intranet)' to 'Intranet (https://intranet.new)'",
    )


def test_reordered_links_compare_by_index_not_name():
    report = detect(ContentSection(links=(L2, L1)), ContentSection(links=(L1, L2)))

    assert report.description[0].startswith("Link 1 changed")
    assert report.description[1].startswith("Link 2 changed")


def test_removed_trailing_link_is_not_reported():
    report = detect(ContentSection(links=(L1,)), ContentSection(links=(L1, L2)))
    assert report.changed is False


def test_no_baseline_reports_nothing():
    assert detect(ContentSection(text="first ever"), None).changed is False


def test_detection_is_deterministic():
    current = ContentSection(text="A", links=(L1, L2))
    last = ContentSection(text="B", links=(L1,))
    assert detect(current, last) == detect(current, last)


def test_alert_gate():
    changed = ChangeReport(True, ("Text changed from 'B' to 'A'",))
    assert should_alert(changed, acknowledged=False) is True
    assert should_alert(changed, acknowledged=True) is False
    assert should_alert(ChangeReport(False), acknowledged=False) is False
