"""
Export the extraction result to JSON.
"""
from __future__ import annotations

import json
from pathlib import Path

from .plan_html import ENTRY_FIELDS


def _ordered_entry(entry: dict) -> dict:
    return {field: entry.get(field) for field in ENTRY_FIELDS}


def _ordered_result(result: dict) -> dict:
    """Fixed key order: last_update, last_scrape, days[date, messages]."""
    return {
        "last_update": result.get("last_update"),
        "last_scrape": result.get("last_scrape"),
        "days": [
            {
                "date": day.get("date"),
                "messages": {
                    key: [_ordered_entry(e) for e in entries]
                    for key, entries in day.get("messages", {}).items()
                },
            }
            for day in result.get("days", [])
        ],
    }


def dumps_result(result: dict) -> str:
    return json.dumps(_ordered_result(result), indent=2, ensure_ascii=False)


def export_json(result: dict, out_path: str | Path) -> None:
    """Export the extraction result to JSON."""
    Path(out_path).write_text(dumps_result(result) + "\n", encoding="utf-8")


def export(result: dict, out_path: str | Path, fmt: str = "json") -> None:
    """Export to the given format (only json)."""
    fmt = fmt.lower()
    if fmt == "json":
        export_json(result, out_path)
    else:
        raise ValueError(f"Unsupported format: {fmt}. Use json.")
