"""
Walk the result pages of the plan viewer, read every frame, and merge the
day records into one sorted result.

The browser side is reached only through a small driver object:

    enumerate_frames()                -> list of frame handles
    frame_has_table(handle, timeout)  -> bool
    frame_html(handle)                -> str
    next_page()                       -> bool

plan_fetch.DSBMobileDriver talks to Chrome; HtmlPagesDriver below serves
saved HTML files.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Dict, Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup  # type: ignore[import]
from bs4.dammit import UnicodeDammit  # type: ignore[import]

from .plan_html import ScheduleTableNotFound, now_timestamp, read_frame


logger = logging.getLogger(__name__)

MAX_PAGES = 20
FRAME_PROBE_TIMEOUT = 2


# ──────────────────────────────────────────────────────────────────
#  Frame scanning
# ──────────────────────────────────────────────────────────────────

def scan_frames(
    driver,
    timeout: float = FRAME_PROBE_TIMEOUT,
    tz: str | None = None,
) -> List[Dict]:
    """
    Read every frame of the current page that carries a schedule table.

    Frames without tables, or whose tables have no "Stunde" table, are
    skipped. Returns day records ({"date", "messages", "last_update"}) in
    frame order.
    """
    frames = driver.enumerate_frames()
    logger.info(f"Found {len(frames)} frames on current page")

    days: List[Dict] = []
    for i, handle in enumerate(frames, start=1):
        if not driver.frame_has_table(handle, timeout):
            logger.debug(f"Frame {i}: no tables, skipping")
            continue

        day = read_frame(driver.frame_html(handle), tz=tz)
        if day is None:
            logger.info(f"Frame {i}: no schedule table, skipping")
            continue

        logger.info(f"Frame {i}: extracted data for {day['date'] or 'unknown date'}")
        days.append(day)
    return days


def extract_single_frame(
    driver,
    timeout: float = FRAME_PROBE_TIMEOUT,
    tz: str | None = None,
) -> Dict:
    """
    Read the first frame that has any table; it must be the schedule.

    Raises ScheduleTableNotFound if no frame has a table, or if the first
    one that does has no "Stunde" table.
    """
    for handle in driver.enumerate_frames():
        if driver.frame_has_table(handle, timeout):
            return read_frame(driver.frame_html(handle), tz=tz, strict=True)  # type: ignore[return-value]
    raise ScheduleTableNotFound("No frame with tables found")


# ──────────────────────────────────────────────────────────────────
#  Merging
# ──────────────────────────────────────────────────────────────────

def merge_day(by_date: Dict[str, Dict], day: Dict) -> bool:
    """
    Fold one day record into by_date. Groups present in the new record
    replace the stored group wholesale; other stored groups stay.
    Records without a date are ignored (returns False).
    """
    date = day.get("date")
    if not date:
        return False

    existing = by_date.get(date)
    if existing is None:
        by_date[date] = {"date": date, "messages": dict(day["messages"])}
    else:
        logger.info(f"Merging data for {date} with existing data")
        by_date[date] = {"date": date, "messages": {**existing["messages"], **day["messages"]}}
    return True


def sort_days(days: List[Dict]) -> List[Dict]:
    """Ascending by date; records without a date go last, in their original order."""
    return sorted(days, key=lambda d: (d.get("date") is None, d.get("date") or ""))


def build_result(
    days: List[Dict],
    last_update: str | None,
    tz: str | None = None,
) -> Dict:
    return {
        "last_update": last_update,
        "last_scrape": now_timestamp(tz),
        "days": sort_days(days),
    }


# ──────────────────────────────────────────────────────────────────
#  Pagination
# ──────────────────────────────────────────────────────────────────

def collect_all_days(
    driver,
    max_pages: int = MAX_PAGES,
    timeout: float = FRAME_PROBE_TIMEOUT,
    tz: str | None = None,
) -> Dict:
    """
    Scan page after page until the viewer has no next page, an error
    occurs, or max_pages pages have been read. Whatever was gathered up
    to that point is returned as {"last_update", "last_scrape", "days"}.
    """
    by_date: Dict[str, Dict] = {}
    last_update: Optional[str] = None
    page = 0

    while page < max_pages:
        page += 1
        logger.info(f"Processing page {page}")
        try:
            page_days = scan_frames(driver, timeout=timeout, tz=tz)
            logger.info(f"Found {len(page_days)} days on page {page}")

            for day in page_days:
                if day.get("last_update") and last_update is None:
                    last_update = day["last_update"]
                    logger.info(f"Captured last_update: {last_update}")
                if not merge_day(by_date, day):
                    logger.info(f"Skipping entry with null date from page {page}")

            if page >= max_pages:
                logger.warning(f"Reached maximum pages limit ({max_pages})")
                break
            if not driver.next_page():
                logger.info("No more pages available")
                break
        except Exception:
            logger.exception(f"Error processing page {page}, keeping results so far")
            break

    result = build_result(list(by_date.values()), last_update, tz=tz)
    days = result["days"]
    logger.info(
        f"Completed extraction: {page} page(s), {len(days)} unique day(s)"
        + (f", {days[0]['date']} to {days[-1]['date']}" if days else "")
    )
    return result


# ──────────────────────────────────────────────────────────────────
#  Saved HTML pages
# ──────────────────────────────────────────────────────────────────

def _read_html(path: Path) -> str:
    """Decode a saved document the way a browser would (meta charset, BOM, fallbacks)."""
    return UnicodeDammit(path.read_bytes(), is_html=True).unicode_markup


def _resolve_iframe_sources(html_path: Path, soup: BeautifulSoup) -> List[str]:
    """
    Load the documents referenced by <iframe src> of a saved page, looking
    next to the file and in the browser's "<stem>_files/" directory.
    Absolute paths and URLs are only looked up by file name in "<stem>_files/".
    """
    found: List[str] = []
    files_dir = html_path.parent / f"{html_path.stem}_files"
    for iframe in soup.find_all("iframe", src=True):
        src = re.split(r"[?#]", iframe["src"], maxsplit=1)[0]
        if not src:
            continue
        parts = urlsplit(src)
        name = Path(parts.path).name
        candidates = [files_dir / name] if name else []
        if not (parts.scheme or parts.netloc or src.startswith(("/", "\\"))):
            candidates.insert(0, html_path.parent / src)
        for candidate in candidates:
            if candidate.is_file():
                found.append(_read_html(candidate))
                break
    return found


class HtmlPagesDriver:
    """
    Driver over pre-rendered pages. Each page is a list of frame HTML
    strings; next_page() moves to the following page until none is left.
    """

    def __init__(self, pages: List[List[str]]):
        self.pages = pages
        self.index = 0

    @classmethod
    def from_files(cls, paths: List[str | Path]) -> "HtmlPagesDriver":
        """One page per file: the file itself plus any saved iframe documents."""
        pages = []
        for p in paths:
            path = Path(p)
            html = _read_html(path)
            soup = BeautifulSoup(html, "html.parser")
            pages.append([html] + _resolve_iframe_sources(path, soup))
        return cls(pages)

    def enumerate_frames(self) -> List[int]:
        if self.index >= len(self.pages):
            return []
        return list(range(len(self.pages[self.index])))

    def frame_has_table(self, handle: int, timeout: float = FRAME_PROBE_TIMEOUT) -> bool:
        soup = BeautifulSoup(self.frame_html(handle), "html.parser")
        return soup.find("table") is not None

    def frame_html(self, handle: int) -> str:
        return self.pages[self.index][handle]

    def next_page(self) -> bool:
        if self.index + 1 >= len(self.pages):
            return False
        self.index += 1
        return True
