"""Tests for the meeting workbook parser and fetch fallbacks (network is faked)."""
import io
import json
import urllib.error
from datetime import date

import pytest

from app.congregation.modules.assignments import workbook
from app.congregation.modules.assignments.workbook import (
    APPLY_YOURSELF,
    BIBLE_STUDY,
    LIVING_AS_CHRISTIANS,
    WorkbookClient,
    client_from_config,
    parse_workbook_html,
    to_assignment_payloads,
)

WEEK = date(2025, 3, 3)

SAMPLE = """
<html><body>
<h3>Bible Reading</h3><p>Genesis 1:1-19</p><span>(4 min)</span>
<div class="pGroup main">Opening Comments (1 min)</div>
<div class="pGroup">Initial Call (3 min)</div>
<div class="pGroup">Local Needs (15 min)</div>
<div class="pGroup">Congregation Bible Study: lfb lesson 5 (30 min)</div>
<h3>Public Talk</h3><p>Why Trust the Bible?</p>
<h3>Watchtower Study</h3><p>Study Article 12</p>
<!-- %s -->
</body></html>
""" % ("x" * 1200)


class _FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def test_parse_sample_week():
    week = parse_workbook_html(SAMPLE, WEEK)
    titles = [i.title for i in week.midweek]
    assert titles == ["Bible Reading", "Initial Call", "Local Needs", "Congregation Bible Study"]
    assert week.midweek[0].source == "Genesis 1:1-19"
    assert week.midweek[0].duration == 4
    assert week.midweek[1].section == APPLY_YOURSELF
    assert week.midweek[2].section == LIVING_AS_CHRISTIANS
    assert week.midweek[3].section == BIBLE_STUDY
    assert week.midweek[3].source == "lfb lesson 5"
    assert [i.title for i in week.weekend] == ["Why Trust the Bible?", "Watchtower Study"]
    assert week.weekend[1].source == "Study Article 12"


def test_parse_garbage_is_empty_week():
    week = parse_workbook_html("<html>nothing useful</html>", WEEK)
    assert week.is_empty


def test_payloads_map_sections_to_meetings():
    payloads = to_assignment_payloads(parse_workbook_html(SAMPLE, WEEK))
    by_title = {p["title"]: p for p in payloads}
    assert by_title["Congregation Bible Study"]["assignment_type"] == "Bible Student Reader"
    assert by_title["Watchtower Study"]["assignment_type"] == "Watchtower Reader"
    assert by_title["Watchtower Study"]["meeting_type"] == "Weekend"
    assert by_title["Why Trust the Bible?"]["assignment_type"] == "Public Talk Speaker"
    assert by_title["Initial Call"]["assignment_type"] == "Life and Ministry"
    assert all(p["week"] == WEEK for p in payloads)


def test_week_url_and_proxy_candidates():
    client = WorkbookClient(
        base_url="https://example.org/workbook/",
        proxies=("https://api.allorigins.win/get?url={url}", "https://cors-anywhere.example/{url}"),
    )
    url = client.week_url(WEEK)
    assert url == "https://example.org/workbook/2025/03/03"
    candidates = client._candidates(url)
    assert candidates[0] == url
    assert candidates[1].startswith("https://api.allorigins.win/get?url=https%3A%2F%2F")
    assert candidates[2] == "https://cors-anywhere.example/" + url


def test_fetch_falls_back_to_proxy(monkeypatch):
    calls = []

    def fake_urlopen(req, timeout=None):
        calls.append(req.full_url)
        if "allorigins" not in req.full_url:
            raise urllib.error.URLError("blocked")
        return _FakeResponse(json.dumps({"contents": SAMPLE}).encode("utf-8"))

    monkeypatch.setattr(workbook.urllib.request, "urlopen", fake_urlopen)
    client = WorkbookClient(base_url="https://example.org/wb", proxies=("https://api.allorigins.win/get?url={url}",))
    week = client.fetch_week(WEEK)
    assert not week.is_empty
    assert len(calls) == 2
    assert calls[0] == "https://example.org/wb/2025/03/03"


def test_fetch_skips_short_bodies_and_returns_empty_week(monkeypatch):
    def fake_urlopen(req, timeout=None):
        return _FakeResponse(b"<html>too short</html>")

    monkeypatch.setattr(workbook.urllib.request, "urlopen", fake_urlopen)
    client = WorkbookClient(base_url="https://example.org/wb", proxies=("https://corsproxy.example/?{url}",))
    week = client.fetch_week(WEEK)
    assert week.is_empty
    assert week.week_of == WEEK


def test_fetch_html_raises_when_every_source_fails(monkeypatch):
    def fake_urlopen(req, timeout=None):
        raise urllib.error.URLError("offline")

    monkeypatch.setattr(workbook.urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(workbook.WorkbookError):
        WorkbookClient(base_url="https://example.org/wb").fetch_html(WEEK)


def test_client_from_config_defaults():
    client = client_from_config({"WORKBOOK_PROXIES": ["https://p.example/{url}"], "WORKBOOK_TIMEOUT_SECONDS": 5})
    assert client.base_url == WorkbookClient.base_url
    assert client.proxies == ("https://p.example/{url}",)
    assert client.timeout_seconds == 5
