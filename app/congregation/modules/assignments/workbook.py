"""
Meeting workbook scraper.

Best effort only: the published page has no schema contract, so parsing is a set
of regex patterns and every failure ends in an empty week instead of an error.
"""
from __future__ import annotations

import html as html_lib
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from datetime import date

logger = logging.getLogger(__name__)

MIN_HTML_LENGTH = 1000
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# Workbook section types
BIBLE_READING = "Bible Reading"
APPLY_YOURSELF = "Apply Yourself"
LIVING_AS_CHRISTIANS = "Living as Christians"
BIBLE_STUDY = "Bible Study"
PUBLIC_TALK = "Public Talk"
WATCHTOWER_STUDY = "Watchtower Study"

_BIBLE_READING_RE = re.compile(r"<h3[^>]*>\s*Bible Reading\s*</h3>[\s\S]*?<p[^>]*>([^<]+)</p>[\s\S]*?\((\d+)\s*min", re.I)
_PART_RE = re.compile(r"<div[^>]*class=\"[^\"]*pGroup[^\"]*\"[^>]*>([\s\S]*?)</div>", re.I)
_DURATION_RE = re.compile(r"\((\d+)\s*min\)", re.I)
_PUBLIC_TALK_RE = re.compile(r"<h3[^>]*>\s*Public Talk\s*</h3>[\s\S]*?<p[^>]*>([^<]+)</p>", re.I)
_WATCHTOWER_RE = re.compile(r"<h3[^>]*>\s*Watchtower Study\s*</h3>[\s\S]*?<p[^>]*>([^<]+)</p>", re.I)
_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")
_CBS_PREFIX_RE = re.compile(r"congregation bible study[:\s]*", re.I)


class WorkbookError(RuntimeError):
    pass


@dataclass(frozen=True)
class WorkbookItem:
    title: str
    section: str
    duration: int | None = None
    source: str | None = None


@dataclass
class WorkbookWeek:
    week_of: date
    midweek: list[WorkbookItem] = field(default_factory=list)
    weekend: list[WorkbookItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.midweek and not self.weekend


def clean_text(text: str) -> str:
    text = _TAG_RE.sub("", text or "")
    text = html_lib.unescape(text).replace("\xa0", " ")
    return _SPACE_RE.sub(" ", text).strip()


def _strip_duration(text: str) -> str:
    return _DURATION_RE.sub("", text).strip()


def _classify_part(text: str) -> str | None:
    lowered = text.lower()
    # Checked first: "congregation bible study" also contains "bible study".
    if "congregation bible study" in lowered:
        return BIBLE_STUDY
    if any(k in lowered for k in ("initial call", "return visit", "bible study")):
        return APPLY_YOURSELF
    if any(k in lowered for k in ("local needs", "song", "prayer")):
        return LIVING_AS_CHRISTIANS
    return None


def parse_workbook_html(html: str, week_of: date) -> WorkbookWeek:
    week = WorkbookWeek(week_of=week_of)

    m = _BIBLE_READING_RE.search(html)
    if m:
        week.midweek.append(
            WorkbookItem(title=BIBLE_READING, section=BIBLE_READING, source=clean_text(m.group(1)), duration=int(m.group(2)))
        )

    for part in _PART_RE.finditer(html):
        content = clean_text(part.group(1))
        dm = _DURATION_RE.search(content)
        duration = int(dm.group(1)) if dm else 0
        if not content or duration <= 0:
            continue
        section = _classify_part(content)
        if section is None:
            continue
        if section == BIBLE_STUDY:
            week.midweek.append(
                WorkbookItem(
                    title="Congregation Bible Study",
                    section=BIBLE_STUDY,
                    source=_CBS_PREFIX_RE.sub("", _strip_duration(content)).strip() or None,
                    duration=duration,
                )
            )
        else:
            week.midweek.append(WorkbookItem(title=_strip_duration(content), section=section, duration=duration))

    m = _PUBLIC_TALK_RE.search(html)
    if m:
        week.weekend.append(WorkbookItem(title=clean_text(m.group(1)), section=PUBLIC_TALK, duration=30))

    m = _WATCHTOWER_RE.search(html)
    if m:
        week.weekend.append(
            WorkbookItem(title=WATCHTOWER_STUDY, section=WATCHTOWER_STUDY, source=clean_text(m.group(1)), duration=60)
        )

    logger.info("Parsed workbook week %s: midweek=%s weekend=%s", week_of, len(week.midweek), len(week.weekend))
    return week


def assignment_type_for(section: str) -> str:
    if section == WATCHTOWER_STUDY:
        return "Watchtower Reader"
    if section == BIBLE_STUDY:
        return "Bible Student Reader"
    if section == PUBLIC_TALK:
        return "Public Talk Speaker"
    return "Life and Ministry"


def meeting_type_for(section: str) -> str:
    return "Weekend" if section in (WATCHTOWER_STUDY, PUBLIC_TALK) else "Midweek"


def to_assignment_payloads(week: WorkbookWeek) -> list[dict]:
    out = []
    for item in week.midweek + week.weekend:
        out.append(
            {
                "week": week.week_of,
                "meeting_type": meeting_type_for(item.section),
                "assignment_type": assignment_type_for(item.section),
                "title": item.title,
                "source": item.source,
                "duration": item.duration,
                "description": f"Imported from meeting workbook ({item.section})",
            }
        )
    return out


@dataclass(frozen=True)
class WorkbookClient:
    base_url: str = "https://www.jw.org/en/library/jw-meeting-workbook"
    proxies: tuple[str, ...] = ()
    timeout_seconds: int = 15

    def week_url(self, week_of: date) -> str:
        return f"{self.base_url.rstrip('/')}/{week_of.year}/{week_of.month:02d}/{week_of.day:02d}"

    def _candidates(self, url: str) -> list[str]:
        quoted = urllib.parse.quote(url, safe="")
        out = [url]
        for tpl in self.proxies:
            # cors-anywhere style proxies take the raw url appended to the path.
            out.append(tpl.replace("{url}", url if tpl.endswith("/{url}") else quoted))
        return out

    def _get(self, url: str) -> str:
        req = urllib.request.Request(url, method="GET")
        req.add_header("User-Agent", USER_AGENT)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                return resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            raise WorkbookError(f"HTTP {e.code} from {url}") from e
        except (urllib.error.URLError, OSError) as e:
            raise WorkbookError(f"Request to {url} failed: {e}") from e

    def fetch_html(self, week_of: date) -> str:
        """First page body longer than MIN_HTML_LENGTH from the direct url or a proxy."""
        url = self.week_url(week_of)
        for candidate in self._candidates(url):
            try:
                text = self._get(candidate)
            except WorkbookError as e:
                logger.warning("Workbook source failed: %s", e)
                continue
            if "allorigins" in candidate:
                try:
                    text = (json.loads(text) or {}).get("contents") or ""
                except (ValueError, AttributeError):
                    logger.warning("Workbook proxy returned invalid JSON: %s", candidate)
                    continue
            if len(text) > MIN_HTML_LENGTH:
                return text
            logger.warning("Workbook source returned too little content (%s chars): %s", len(text), candidate)
        raise WorkbookError(f"All workbook sources failed for {url}")

    def fetch_week(self, week_of: date) -> WorkbookWeek:
        try:
            html = self.fetch_html(week_of)
        except WorkbookError as e:
            logger.error("Workbook import for %s returned nothing: %s", week_of, e)
            return WorkbookWeek(week_of=week_of)
        return parse_workbook_html(html, week_of)


def client_from_config(config) -> WorkbookClient:
    return WorkbookClient(
        base_url=config.get("WORKBOOK_BASE_URL") or WorkbookClient.base_url,
        proxies=tuple(config.get("WORKBOOK_PROXIES") or ()),
        timeout_seconds=int(config.get("WORKBOOK_TIMEOUT_SECONDS") or 15),
    )
