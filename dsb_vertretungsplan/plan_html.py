"""
Parse one rendered DSBmobile / Untis substitution-plan frame into a day record.

The frame HTML is what the browser shows inside one <iframe> of the
DSBmobile plan page. Relevant structure:

- <div class="mon_title">19.9.2025 Freitag</div>  → plan date
- "Stand: 19.09.2025 09:04" somewhere in the page text → last update
- several <table>s; the schedule is the one whose first cell reads "Stunde".
  After the header row, single-cell rows name a class ("10a", or "---" for
  notices that concern everybody), followed by seven-column change rows:
    Stunde | Vertreter | Fach (alt) | Fach (neu) | Raum (alt) | Raum (neu) | Text

Everything here is a pure function of the HTML string; no browser needed.
"""
from __future__ import annotations

import re
from datetime import datetime, tzinfo
from typing import List, Dict, Optional

import pytz
from bs4 import BeautifulSoup, Tag  # type: ignore[import]


GENERAL_KEY = "general"

ENTRY_FIELDS = (
    "stunde",
    "vertreter",
    "fach_vorher",
    "fach_neu",
    "raum_vorher",
    "raum_neu",
    "text",
)

_DASH_RE = re.compile(r"^-+$")
_PLAN_DATE_RE = re.compile(r"(\d{1,2})\.(\d{1,2})\.(\d{4})")
_STAND_RE = re.compile(r"Stand:\s*(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}):(\d{2})")


class ScheduleTableNotFound(ValueError):
    """A frame that was expected to carry the schedule has no "Stunde" table."""


# ──────────────────────────────────────────────────────────────────
#  Cells / rows
# ──────────────────────────────────────────────────────────────────

def is_dash_sentinel(text: str) -> bool:
    """True for '-', '---', ' ----- ' etc.; the plan's way of saying "nothing"."""
    return bool(_DASH_RE.match(text.strip()))


def _cell_value(row: List[str], idx: int) -> str | None:
    value = row[idx] if idx < len(row) else ""
    if is_dash_sentinel(value):
        return None
    return value


def build_entry(row: List[str]) -> Dict[str, str | None]:
    """Map cells 0..6 of a change row onto the entry fields."""
    return {field: _cell_value(row, i) for i, field in enumerate(ENTRY_FIELDS)}


def group_rows(table: List[List[str]]) -> Dict[str, List[Dict[str, str | None]]]:
    """
    Turn a raw table (header row first) into {class: [entries...]}.

    A single non-blank cell opens a group; a dash cell opens the "general"
    group. Re-opening a group name starts it over. Multi-cell rows are
    appended to the open group; rows before the first group are dropped.
    """
    grouped: Dict[str, List[Dict[str, str | None]]] = {}
    current_key = ""

    for row in table[1:]:
        if len(row) == 1 and row[0].strip():
            current_key = GENERAL_KEY if is_dash_sentinel(row[0]) else row[0].strip()
            grouped[current_key] = []
        elif len(row) > 1 and current_key:
            grouped[current_key].append(build_entry(row))

    return grouped


# ──────────────────────────────────────────────────────────────────
#  Dates
# ──────────────────────────────────────────────────────────────────

def _local_tzinfo() -> tzinfo:
    """UTC offset of this machine right now, as a fixed-offset tzinfo."""
    return datetime.now().astimezone().tzinfo  # type: ignore[return-value]


def parse_plan_date(title: str | None) -> str | None:
    """'Dienstag, 19.9.2025' → '2025-09-19'."""
    if not title:
        return None
    m = _PLAN_DATE_RE.search(title)
    if not m:
        return None
    day, month, year = m.groups()
    return f"{year}-{int(month):02d}-{int(day):02d}"


def parse_last_update(text: str, tz: str | None = None) -> str | None:
    """
    Take the first "Stand: D.M.YYYY H:MM" in text and return it as an
    ISO timestamp with offset, e.g. '2025-09-19T09:04:00+02:00'.
    Only the first occurrence counts; if it is not a real date (31.02.)
    the result is None.

    Without tz the machine's current offset is used, even if the parsed
    date lies on the other side of a DST switch. With an IANA zone name
    the offset valid at the parsed time is used.
    """
    m = _STAND_RE.search(text or "")
    if not m:
        return None
    day, month, year, hour, minute = (int(g) for g in m.groups())
    try:
        naive = datetime(year, month, day, hour, minute)
    except ValueError:
        return None
    if tz:
        stamped = pytz.timezone(tz).localize(naive)
    else:
        stamped = naive.replace(tzinfo=_local_tzinfo())
    return stamped.isoformat(timespec="seconds")


def now_timestamp(tz: str | None = None) -> str:
    """Current time in the same format as parse_last_update()."""
    if tz:
        now = datetime.now(pytz.timezone(tz))
    else:
        now = datetime.now(_local_tzinfo())
    return now.isoformat(timespec="seconds")


# ──────────────────────────────────────────────────────────────────
#  Tables
# ──────────────────────────────────────────────────────────────────

def _first_cell_text(table: Tag) -> str | None:
    first_row = table.find("tr")
    if not first_row:
        return None
    cell = first_row.find(["td", "th"])
    if not cell:
        return None
    return cell.get_text().strip()


def _table_rows(table: Tag) -> List[List[str]]:
    rows: List[List[str]] = []
    for tr in table.find_all("tr"):
        cells = [c.get_text().strip() for c in tr.find_all(["td", "th"])]
        if cells:
            rows.append(cells)
    return rows


def find_schedule_table(soup: BeautifulSoup) -> Optional[Tag]:
    """First <table> whose first cell contains 'stunde' (any case)."""
    for table in soup.find_all("table"):
        first = _first_cell_text(table)
        if first and "stunde" in first.lower():
            return table
    return None


def _describe_tables(soup: BeautifulSoup) -> str:
    parts = []
    for i, table in enumerate(soup.find_all("table")):
        parts.append(f'Table {i + 1}: "{_first_cell_text(table) or "empty"}"')
    return ", ".join(parts) or "no tables"


# ──────────────────────────────────────────────────────────────────
#  Frame → day record
# ──────────────────────────────────────────────────────────────────

def read_frame(
    html: str,
    tz: str | None = None,
    strict: bool = False,
) -> Dict | None:
    """
    Evaluate one frame: {"date", "messages", "last_update"} or None when the
    frame has no schedule table (ScheduleTableNotFound instead if strict).
    """
    soup = BeautifulSoup(html, "html.parser")

    table = find_schedule_table(soup)
    if table is None:
        if strict:
            raise ScheduleTableNotFound(
                f'No table with "Stunde" found. Available: {_describe_tables(soup)}'
            )
        return None

    title = soup.select_one(".mon_title")
    return {
        "date": parse_plan_date(title.get_text().strip() if title else None),
        "messages": group_rows(_table_rows(table)),
        "last_update": parse_last_update(soup.get_text(), tz=tz),
    }
